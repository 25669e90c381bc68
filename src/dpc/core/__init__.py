"""
Core Layer - rule engine, project scanning, configuration and path handling.
"""

from dpc.core.config import (
    CatalogConfig,
    CleanConfig,
    DPCConfig,
    LoggingConfig,
    ScanConfig,
    SearchConfig,
    load_config,
)
from dpc.core.path_utils import (
    PathValidationResult,
    canonicalize_path,
    default_catalog_path,
    validate_scan_root,
)
from dpc.core.project_scanner import (
    Discovery,
    ProjectScanner,
    ProjectScannerInterface,
    ScanError,
    ScanErrorKind,
    ScanRun,
)
from dpc.core.rules import (
    ConfigurationError,
    Excluded,
    Hint,
    Pattern,
    PatternKind,
    Plain,
    Project,
    RuleConfiguration,
    classify,
)

__all__ = [
    # Config
    "DPCConfig",
    "ScanConfig",
    "CatalogConfig",
    "SearchConfig",
    "CleanConfig",
    "LoggingConfig",
    "load_config",
    # Paths
    "PathValidationResult",
    "canonicalize_path",
    "default_catalog_path",
    "validate_scan_root",
    # Scanner
    "ProjectScanner",
    "ProjectScannerInterface",
    "Discovery",
    "ScanError",
    "ScanErrorKind",
    "ScanRun",
    # Rules
    "ConfigurationError",
    "Hint",
    "Pattern",
    "PatternKind",
    "RuleConfiguration",
    "Project",
    "Excluded",
    "Plain",
    "classify",
]
