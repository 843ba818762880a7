"""
Pytest plugin for npmstats testing fixtures.

Re-exports all fixtures from fixtures.py so pytest discovers them. To use
them, add this to your conftest.py:

    pytest_plugins = ["npmstats.testing.conftest"]
"""

from npmstats.testing.fixtures import (
    history_store,
    memory_store,
    mock_client,
    recording_sleep,
    sample_package,
    sample_user_stats,
)

__all__ = [
    "mock_client",
    "recording_sleep",
    "memory_store",
    "history_store",
    "sample_package",
    "sample_user_stats",
]
