"""
Centralized services container module for DPC.

Resolves configuration and the catalog location once, then builds every
service from those values. Entry points receive the container instead of
reading ambient global state.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dpc.core.config import DPCConfig, load_config
from dpc.core.project_scanner import ProjectScanner
from dpc.core.rules import RuleConfiguration
from dpc.infrastructure.catalog_store import CatalogStore, create_catalog_store
from dpc.services.access_recorder import AccessRecorder
from dpc.services.ranking import RankingWeights
from dpc.services.scan_service import ScanService


@dataclass
class ServicesContainer:
    """
    Container holding all shared service instances.

    Attributes:
        config: Effective configuration
        catalog_path: Resolved catalog database file
        catalog_store: SQLite catalog
        rules: Validated scan rules
        scanner: Project scanner
        scan_service: Scan workflow
        ranking_weights: Weights for search and jump ranking
        access_recorder: Visit recording and jump resolution
    """

    config: DPCConfig
    catalog_path: Path
    catalog_store: CatalogStore
    rules: RuleConfiguration
    scanner: ProjectScanner
    scan_service: ScanService
    ranking_weights: RankingWeights
    access_recorder: AccessRecorder

    def close(self) -> None:
        self.catalog_store.close()


def create_services(
    config_path: Optional[Path | str] = None,
    catalog_path: Optional[Path | str] = None,
    must_exist: bool = False,
    config: Optional[DPCConfig] = None,
) -> ServicesContainer:
    """
    Create and wire all services.

    Args:
        config_path: Optional configuration file. If None, standard
            locations are searched and environment overrides applied.
        catalog_path: Explicit catalog location, overriding configuration.
        must_exist: Fail with CatalogNotFoundError instead of creating a
            new catalog (read-only commands use this).
        config: Pre-loaded configuration; config_path is ignored if given.

    Returns:
        ServicesContainer with initialized services.

    Raises:
        ConfigurationError: If configuration or rules are invalid.
    """
    config = config or load_config(config_path)

    rules = config.rule_configuration()
    resolved_catalog = config.catalog_path(catalog_path)
    catalog_store = create_catalog_store(resolved_catalog, must_exist=must_exist)

    scanner = ProjectScanner(max_workers=config.scan.max_workers)
    scan_service = ScanService(store=catalog_store, rules=rules, scanner=scanner)

    ranking_weights = RankingWeights(
        frecency_weight=config.search.frecency_weight,
        half_life_days=config.search.half_life_days,
    )
    access_recorder = AccessRecorder(catalog_store, weights=ranking_weights)

    return ServicesContainer(
        config=config,
        catalog_path=resolved_catalog,
        catalog_store=catalog_store,
        rules=rules,
        scanner=scanner,
        scan_service=scan_service,
        ranking_weights=ranking_weights,
        access_recorder=access_recorder,
    )
