"""
Durable Project Catalog.

Discovers software projects across directory trees, keeps a persistent
catalog of them and ranks them by match quality and frecency for search
and shell jumps.
"""

__version__ = "0.1.0"

from dpc.core import ConfigurationError, DPCConfig, Hint, RuleConfiguration, load_config
from dpc.infrastructure import CatalogError, CatalogStore, ProjectRecord, ProjectType
from dpc.services import AccessRecorder, ScanService, create_services, search

__all__ = [
    "__version__",
    "ConfigurationError",
    "DPCConfig",
    "Hint",
    "RuleConfiguration",
    "load_config",
    "CatalogError",
    "CatalogStore",
    "ProjectRecord",
    "ProjectType",
    "AccessRecorder",
    "ScanService",
    "create_services",
    "search",
]
