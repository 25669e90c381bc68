"""
Service Layer - ranking, visit recording, scanning and ServicesContainer.
"""

from dpc.services.access_recorder import AccessRecorder
from dpc.services.container import ServicesContainer, create_services
from dpc.services.ranking import (
    DEFAULT_WEIGHTS,
    RankingWeights,
    SearchHit,
    frecency,
    fuzzy_match,
    is_exact_match,
    search,
)
from dpc.services.scan_service import ScanService

__all__ = [
    # Container and factory
    "ServicesContainer",
    "create_services",
    # Services
    "ScanService",
    "AccessRecorder",
    # Ranking
    "RankingWeights",
    "DEFAULT_WEIGHTS",
    "SearchHit",
    "search",
    "fuzzy_match",
    "frecency",
    "is_exact_match",
]
