"""GitHub enrichment result models."""

from dataclasses import dataclass
from typing import Any


@dataclass
class GithubStats:
    """Successful answer of the GitHub enrichment endpoint.

    A package without a resolvable repository is still a success, with zero
    counts and ``repo_url`` set to None.
    """

    package_name: str
    stars: int
    open_issues: int
    repo_url: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "packageName": self.package_name,
            "stars": self.stars,
            "openIssues": self.open_issues,
            "repoUrl": self.repo_url,
            "success": True,
            "rateLimited": False,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GithubStats":
        return cls(
            package_name=data.get("packageName", ""),
            stars=int(data.get("stars") or 0),
            open_issues=int(data.get("openIssues") or 0),
            repo_url=data.get("repoUrl"),
        )


@dataclass
class RepositoryRef:
    """Owner and name of a GitHub repository."""

    owner: str
    repo: str

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"
