"""Backend services behind the HTTP endpoints."""

from npmstats.services.github_stats import GithubStatsService
from npmstats.services.stats import StatsService

__all__ = [
    "GithubStatsService",
    "StatsService",
]
