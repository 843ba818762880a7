"""Extract GitHub repositories from npm registry metadata."""

import re
from typing import Any

from npmstats.types.github import RepositoryRef

_SEGMENT = r"([A-Za-z0-9_.\-]+)"

# Tried in order; all of them capture owner and repo
_GITHUB_PATTERNS = [
    re.compile(rf"^https?://(?:www\.)?github\.com/{_SEGMENT}/{_SEGMENT}", re.IGNORECASE),
    re.compile(rf"^(?:ssh://)?git@github\.com[:/]{_SEGMENT}/{_SEGMENT}", re.IGNORECASE),
    re.compile(rf"^git://github\.com/{_SEGMENT}/{_SEGMENT}", re.IGNORECASE),
    re.compile(rf"^(?:www\.)?github\.com/{_SEGMENT}/{_SEGMENT}", re.IGNORECASE),
    re.compile(rf"^github:{_SEGMENT}/{_SEGMENT}$", re.IGNORECASE),
    # npm shorthand: "owner/repo" defaults to GitHub
    re.compile(rf"^{_SEGMENT}/{_SEGMENT}$"),
]


def normalize_repository_url(url: str) -> str:
    """Strip ``git+`` prefixes, fragments, trailing slashes and ``.git``."""
    cleaned = url.strip()
    if cleaned.startswith("git+"):
        cleaned = cleaned[len("git+"):]
    cleaned = cleaned.split("#", 1)[0]
    cleaned = cleaned.rstrip("/")
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]
    return cleaned.rstrip("/")


def parse_github_url(url: str) -> RepositoryRef | None:
    """
    Parse a repository URL in any of the shapes npm metadata uses.

    >>> parse_github_url("git+https://github.com/lodash/lodash.git")
    RepositoryRef(owner='lodash', repo='lodash')
    >>> parse_github_url("https://gitlab.com/foo/bar") is None
    True
    """
    if not url:
        return None

    cleaned = normalize_repository_url(url)
    for pattern in _GITHUB_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            owner, repo = match.group(1), match.group(2)
            if repo.endswith(".git"):
                repo = repo[: -len(".git")]
            if owner in (".", "..") or not repo:
                return None
            return RepositoryRef(owner=owner, repo=repo)
    return None


def extract_github_repository(metadata: dict[str, Any]) -> RepositoryRef | None:
    """
    Find the GitHub repository of a package from its registry document.

    The ``repository`` field may be a string or an object with a ``url``.
    Returns None when the field is missing or does not point at GitHub.
    """
    repository = metadata.get("repository")
    if isinstance(repository, dict):
        repository = repository.get("url")
    if not isinstance(repository, str):
        return None
    return parse_github_url(repository)
