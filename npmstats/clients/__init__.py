"""Upstream API clients."""

from npmstats.clients.github import GithubClient
from npmstats.clients.npm import NpmClient

__all__ = [
    "GithubClient",
    "NpmClient",
]
