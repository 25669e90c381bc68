"""
Infrastructure Layer - persistent catalog storage.
"""

from dpc.infrastructure.catalog_store import (
    CatalogCorruptError,
    CatalogError,
    CatalogLockedError,
    CatalogNotFoundError,
    CatalogSchemaError,
    CatalogStats,
    CatalogStore,
    ProjectNotFoundError,
    ProjectRecord,
    ProjectType,
    ScanRunRecord,
    create_catalog_store,
)

__all__ = [
    # Catalog store
    "CatalogStore",
    "create_catalog_store",
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
]
