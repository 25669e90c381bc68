"""
Catalog Store module for DPC.

SQLite-based storage for cataloged projects, visit history and scan runs.
"""

from .models import (
    CatalogCorruptError,
    CatalogError,
    CatalogLockedError,
    CatalogNotFoundError,
    CatalogSchemaError,
    CatalogStats,
    ProjectNotFoundError,
    ProjectRecord,
    ProjectType,
    ScanRunRecord,
)
from .queries import CatalogQueryExecutor, from_db_time, to_db_time
from .schema import CURRENT_SCHEMA_VERSION, initialize_schema, migrate_schema
from .store import CatalogStore, create_catalog_store

__all__ = [
    # Main classes
    "CatalogStore",
    "ProjectRecord",
    "ProjectType",
    "ScanRunRecord",
    "CatalogStats",
    # Errors
    "CatalogError",
    "CatalogNotFoundError",
    "CatalogCorruptError",
    "CatalogLockedError",
    "CatalogSchemaError",
    "ProjectNotFoundError",
    # Query executor
    "CatalogQueryExecutor",
    # Schema
    "CURRENT_SCHEMA_VERSION",
    "initialize_schema",
    "migrate_schema",
    # Factory
    "create_catalog_store",
    # Utilities
    "to_db_time",
    "from_db_time",
]
