"""
Configuration module for DPC.

Supports loading from YAML/JSON files with environment variable overrides.
Default values are loaded from defaults.yaml for maintainability.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from dpc.core.path_utils import default_catalog_path, default_config_dir
from dpc.core.rules import (
    DEFAULT_EXCLUSIONS,
    DEFAULT_INDICATORS,
    DEFAULT_MAX_DEPTH,
    ConfigurationError,
    RuleConfiguration,
)

logger = logging.getLogger(__name__)

# Path to the default configuration file
_DEFAULTS_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

# Cache for default values
_defaults_cache: dict[str, Any] | None = None


def _load_defaults() -> dict[str, Any]:
    """Load default configuration values from defaults.yaml."""
    global _defaults_cache

    if _defaults_cache is not None:
        return _defaults_cache

    if not _DEFAULTS_CONFIG_PATH.exists():
        logger.warning(f"Defaults config not found: {_DEFAULTS_CONFIG_PATH}")
        _defaults_cache = {}
        return _defaults_cache

    try:
        content = _DEFAULTS_CONFIG_PATH.read_text(encoding="utf-8")
        _defaults_cache = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse defaults config: {e}")
        _defaults_cache = {}

    return _defaults_cache


def _get_default(section: str, key: str, fallback: Any = None) -> Any:
    """Get a default value from the defaults config."""
    defaults = _load_defaults()
    section_defaults = defaults.get(section, {})
    value = section_defaults.get(key, fallback)
    # Lists are copied so instances never share mutable defaults
    return list(value) if isinstance(value, list) else value


@dataclass
class ScanConfig:
    """Configuration for the project scanner."""

    indicators: list[str] = field(
        default_factory=lambda: _get_default("scan", "indicators", list(DEFAULT_INDICATORS))
    )
    exclusions: list[str] = field(
        default_factory=lambda: _get_default("scan", "exclusions", list(DEFAULT_EXCLUSIONS))
    )
    max_depth: int = field(
        default_factory=lambda: _get_default("scan", "max_depth", DEFAULT_MAX_DEPTH)
    )
    case_sensitive: bool = field(
        default_factory=lambda: _get_default("scan", "case_sensitive", True)
    )
    follow_symlinks: bool = field(
        default_factory=lambda: _get_default("scan", "follow_symlinks", False)
    )
    max_workers: int = field(default_factory=lambda: _get_default("scan", "max_workers", 4))


@dataclass
class CatalogConfig:
    """Configuration for the catalog database."""

    path: str = field(default_factory=lambda: _get_default("catalog", "path", ""))


@dataclass
class SearchConfig:
    """Configuration for ranking and search."""

    default_limit: int = field(
        default_factory=lambda: _get_default("search", "default_limit", 10)
    )
    half_life_days: float = field(
        default_factory=lambda: _get_default("search", "half_life_days", 7.0)
    )
    frecency_weight: float = field(
        default_factory=lambda: _get_default("search", "frecency_weight", 2.0)
    )


@dataclass
class CleanConfig:
    """Configuration for age-based pruning."""

    max_age_days: int = field(default_factory=lambda: _get_default("clean", "max_age_days", 30))
    history_days: int = field(default_factory=lambda: _get_default("clean", "history_days", 90))


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = field(default_factory=lambda: _get_default("logging", "level", "WARNING"))
    format: str = field(
        default_factory=lambda: _get_default("logging", "format", "%(name)s - %(message)s")
    )


_SECTIONS = {
    "scan": ScanConfig,
    "catalog": CatalogConfig,
    "search": SearchConfig,
    "clean": CleanConfig,
    "logging": LoggingConfig,
}


@dataclass
class DPCConfig:
    """Main configuration class for DPC."""

    scan: ScanConfig = field(default_factory=ScanConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    clean: CleanConfig = field(default_factory=CleanConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "DPCConfig":
        """
        Load configuration from a YAML or JSON file.

        Args:
            path: Path to the configuration file (.yaml, .yml, or .json)

        Returns:
            DPCConfig instance with loaded values

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ConfigurationError: If the file format or content is invalid
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")

        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                data = json.loads(content) if content.strip() else {}
            else:
                raise ConfigurationError(f"Unsupported config file format: {path.suffix}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "DPCConfig":
        """Create DPCConfig from a dictionary."""
        config = cls()

        for name, section_cls in _SECTIONS.items():
            if name not in data:
                continue
            values = data[name] or {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"Config section '{name}' must be a mapping")
            try:
                setattr(config, name, section_cls(**values))
            except TypeError as e:
                raise ConfigurationError(f"Invalid key in config section '{name}': {e}") from e

        unknown = set(data) - set(_SECTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

        return config

    def apply_env_overrides(self) -> "DPCConfig":
        """
        Apply environment variable overrides to the configuration.

        Environment variables follow the pattern: DPC_<SECTION>_<KEY>
        Examples:
            - DPC_SCAN_MAX_DEPTH
            - DPC_SCAN_EXCLUSIONS (comma separated)
            - DPC_CATALOG_PATH
            - DPC_LOGGING_LEVEL

        Returns:
            Self with environment overrides applied
        """
        env_mappings = {
            # Scan config
            "DPC_SCAN_INDICATORS": ("scan", "indicators", _parse_list),
            "DPC_SCAN_EXCLUSIONS": ("scan", "exclusions", _parse_list),
            "DPC_SCAN_MAX_DEPTH": ("scan", "max_depth", int),
            "DPC_SCAN_CASE_SENSITIVE": ("scan", "case_sensitive", _parse_bool),
            "DPC_SCAN_FOLLOW_SYMLINKS": ("scan", "follow_symlinks", _parse_bool),
            "DPC_SCAN_MAX_WORKERS": ("scan", "max_workers", int),
            # Catalog config
            "DPC_CATALOG_PATH": ("catalog", "path", str),
            # Search config
            "DPC_SEARCH_DEFAULT_LIMIT": ("search", "default_limit", int),
            "DPC_SEARCH_HALF_LIFE_DAYS": ("search", "half_life_days", float),
            "DPC_SEARCH_FRECENCY_WEIGHT": ("search", "frecency_weight", float),
            # Clean config
            "DPC_CLEAN_MAX_AGE_DAYS": ("clean", "max_age_days", int),
            "DPC_CLEAN_HISTORY_DAYS": ("clean", "history_days", int),
            # Logging config
            "DPC_LOGGING_LEVEL": ("logging", "level", str),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                try:
                    converted = converter(value)
                except ValueError as e:
                    raise ConfigurationError(f"Invalid value for {env_var}: {value!r}") from e
                setattr(getattr(self, section), key, converted)

        return self

    def rule_configuration(self) -> RuleConfiguration:
        """Build the validated rule set for the scanner."""
        return RuleConfiguration.from_strings(
            indicators=self.scan.indicators,
            exclusions=self.scan.exclusions,
            max_depth=self.scan.max_depth,
            case_sensitive=self.scan.case_sensitive,
            follow_symlinks=self.scan.follow_symlinks,
        )

    def catalog_path(self, explicit: Optional[Path | str] = None) -> Path:
        """
        Resolve the catalog database location.

        Precedence: explicit argument, then DPC_CATALOG_PATH / config file
        (already merged into catalog.path), then the default data directory.
        """
        if explicit:
            return Path(explicit).expanduser()
        if self.catalog.path:
            return Path(self.catalog.path).expanduser()
        return default_catalog_path()

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Serialize configuration to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def to_json(self) -> str:
        """Serialize configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def save(self, path: Path | str) -> None:
        """
        Save configuration to a file.

        Args:
            path: Path to save the configuration (.yaml, .yml, or .json)

        Raises:
            ConfigurationError: If the file format is unsupported
        """
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            content = self.to_yaml()
        elif path.suffix == ".json":
            content = self.to_json()
        else:
            raise ConfigurationError(f"Unsupported config file format: {path.suffix}")

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def _parse_bool(value: str) -> bool:
    """Parse a string to boolean."""
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_list(value: str) -> list[str]:
    """Parse a comma separated string into a list of non-empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]


def find_config_file() -> Optional[Path]:
    """
    Locate a configuration file when none is given explicitly.

    Search order: $DPC_CONFIG, ./.dpc.yaml, <config dir>/config.yaml.
    """
    override = os.environ.get("DPC_CONFIG")
    if override:
        return Path(override).expanduser()

    for candidate in (Path.cwd() / ".dpc.yaml", default_config_dir() / "config.yaml"):
        if candidate.is_file():
            return candidate
    return None


def load_config(
    config_path: Optional[Path | str] = None,
    apply_env: bool = True,
    discover: bool = True,
) -> DPCConfig:
    """
    Load configuration with optional environment variable overrides.

    Args:
        config_path: Optional path to config file. If None and discover is
            True, standard locations are searched.
        apply_env: Whether to apply environment variable overrides.
        discover: Whether to search standard locations for a config file.

    Returns:
        DPCConfig instance
    """
    if config_path is None and discover:
        config_path = find_config_file()

    if config_path:
        logger.debug(f"Loading configuration from {config_path}")
        config = DPCConfig.from_file(config_path)
    else:
        config = DPCConfig()

    if apply_env:
        config.apply_env_overrides()

    return config
