"""npmstats testing utilities.

Provides a mock backend client, an in-memory key-value store and fixtures for
testing code that uses npmstats.
"""

from npmstats.testing.fixtures import (
    create_mock_package,
    create_mock_snapshot,
    create_mock_user_stats,
)
from npmstats.testing.mock import (
    MemoryKeyValueStore,
    MockCall,
    MockDashboardClient,
    RecordingSleep,
    github_error,
    github_ok,
    github_rate_limited,
    no_sleep,
)

__all__ = [
    # Fakes
    "MockDashboardClient",
    "MockCall",
    "MemoryKeyValueStore",
    "RecordingSleep",
    "no_sleep",
    # Enrichment answers
    "github_ok",
    "github_error",
    "github_rate_limited",
    # Helper functions
    "create_mock_package",
    "create_mock_user_stats",
    "create_mock_snapshot",
]
