"""npmstats type definitions.

This module exports all data model types used by the package.
"""

from npmstats.types.github import GithubStats, RepositoryRef
from npmstats.types.history import HistorySnapshot
from npmstats.types.packages import (
    FailureStats,
    Package,
    RateLimitInfo,
    SearchState,
    UserStats,
)

__all__ = [
    # Package types
    "Package",
    "UserStats",
    "FailureStats",
    "RateLimitInfo",
    "SearchState",
    # GitHub types
    "GithubStats",
    "RepositoryRef",
    # History types
    "HistorySnapshot",
]
