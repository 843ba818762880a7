"""npmstats - npm publisher dashboard with progressive GitHub enrichment."""

from npmstats.client import DashboardClient
from npmstats.config import Settings
from npmstats.enrichment import EndpointResponse, EnrichmentState, ItemEnrichment
from npmstats.exceptions import (
    ConfigurationError,
    NotFoundError,
    NpmStatsError,
    RateLimitedError,
    SearchError,
    StoreUnavailableError,
    UpstreamError,
    ValidationError,
)
from npmstats.filters import TableFilters, sort_packages
from npmstats.history import HistoryRecord, HistoryStore, SaveResult, Unavailable
from npmstats.logging import configure_logging, get_logger
from npmstats.pipeline import DashboardSession
from npmstats.rate_limit import RateLimitState
from npmstats.timeutils import format_time_until_reset
from npmstats.transport import AsyncHTTPTransport, RetryConfig, fetch_with_retry
from npmstats.types import FailureStats, GithubStats, Package, RateLimitInfo, UserStats

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Session and client
    "DashboardSession",
    "DashboardClient",
    # Enrichment
    "EndpointResponse",
    "EnrichmentState",
    "ItemEnrichment",
    "RateLimitState",
    # Types
    "Package",
    "UserStats",
    "FailureStats",
    "RateLimitInfo",
    "GithubStats",
    # History
    "HistoryStore",
    "HistoryRecord",
    "SaveResult",
    "Unavailable",
    # Exceptions
    "NpmStatsError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "RateLimitedError",
    "UpstreamError",
    "StoreUnavailableError",
    "SearchError",
    # Table helpers
    "TableFilters",
    "sort_packages",
    "format_time_until_reset",
    # Transport
    "AsyncHTTPTransport",
    "RetryConfig",
    "fetch_with_retry",
    # Configuration and logging
    "Settings",
    "configure_logging",
    "get_logger",
]
