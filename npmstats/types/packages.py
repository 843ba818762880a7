"""Package and aggregate data models.

Records are treated as immutable values: enrichment produces a new ``Package``
(via ``dataclasses.replace``) rather than mutating one in place.
"""

from dataclasses import dataclass, field, replace
from typing import Any

# Fields that are only present on the wire once they carry a value
_OPTIONAL_PACKAGE_FIELDS = {
    "is_loading_github_data": "isLoadingGithubData",
    "github_fetch_failed": "githubFetchFailed",
    "previous_weekly_downloads": "previousWeeklyDownloads",
    "previous_github_stars": "previousGithubStars",
    "previous_open_issues": "previousOpenIssues",
}

_DIFF_FIELDS = {
    "weekly_downloads": "previous_weekly_downloads",
    "github_stars": "previous_github_stars",
    "open_issues": "previous_open_issues",
}


@dataclass(frozen=True)
class Package:
    """One npm package row, optionally enriched with GitHub metrics."""

    name: str
    version: str
    weekly_downloads: int
    dependents: int
    npm_url: str
    github_stars: int = 0
    open_issues: int = 0
    last_checked: str | None = None
    repo_url: str | None = None
    is_loading_github_data: bool | None = None
    github_fetch_failed: bool | None = None
    previous_weekly_downloads: int | None = None
    previous_github_stars: int | None = None
    previous_open_issues: int | None = None

    @property
    def is_settled(self) -> bool:
        """True once enrichment has either succeeded or failed terminally."""
        return not self.is_loading_github_data

    def diff(self, field_name: str) -> int | None:
        """
        Change since the previous snapshot.

        Args:
            field_name: One of "weekly_downloads", "github_stars", "open_issues"

        Returns:
            current - previous, or None when no previous value is known
        """
        previous = getattr(self, _DIFF_FIELDS[field_name])
        if previous is None:
            return None
        return getattr(self, field_name) - previous

    def with_github_data(
        self, stars: int, open_issues: int, repo_url: str | None
    ) -> "Package":
        """Return a copy carrying successful enrichment results."""
        return replace(
            self,
            github_stars=stars,
            open_issues=open_issues,
            repo_url=repo_url or self.repo_url,
            is_loading_github_data=False,
            github_fetch_failed=False,
        )

    def as_failed(self) -> "Package":
        """Return a copy marked as a terminal enrichment failure."""
        return replace(self, is_loading_github_data=False, github_fetch_failed=True)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "weeklyDownloads": self.weekly_downloads,
            "dependents": self.dependents,
            "githubStars": self.github_stars,
            "openIssues": self.open_issues,
            "lastChecked": self.last_checked,
            "npmUrl": self.npm_url,
            "repoUrl": self.repo_url,
        }
        for attr, key in _OPTIONAL_PACKAGE_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Package":
        return cls(
            name=data["name"],
            version=data.get("version", ""),
            weekly_downloads=int(data.get("weeklyDownloads") or 0),
            dependents=int(data.get("dependents") or 0),
            npm_url=data.get("npmUrl") or f"https://www.npmjs.com/package/{data['name']}",
            github_stars=int(data.get("githubStars") or 0),
            open_issues=int(data.get("openIssues") or 0),
            last_checked=data.get("lastChecked"),
            repo_url=data.get("repoUrl"),
            **{attr: data.get(key) for attr, key in _OPTIONAL_PACKAGE_FIELDS.items()},
        )


@dataclass(frozen=True)
class UserStats:
    """All packages of one npm maintainer plus derived totals."""

    username: str
    packages: list[Package]
    total_downloads: int
    total_stars: int = 0
    is_loading_github_data: bool = False
    previous_total_downloads: int | None = None
    previous_total_stars: int | None = None

    def merge(self, updates: list[Package]) -> "UserStats":
        """
        Replace packages by name and recompute derived fields.

        ``total_stars`` is always the sum over the merged package list and
        ``is_loading_github_data`` is true while any package is still loading.
        Updates whose name is not part of this result are ignored.
        """
        by_name = {pkg.name: pkg for pkg in updates}
        packages = [by_name.get(pkg.name, pkg) for pkg in self.packages]
        return replace(
            self,
            packages=packages,
            total_stars=sum(pkg.github_stars for pkg in packages),
            is_loading_github_data=any(pkg.is_loading_github_data for pkg in packages),
        )

    def get(self, name: str) -> Package | None:
        for pkg in self.packages:
            if pkg.name == name:
                return pkg
        return None

    @property
    def failed_packages(self) -> list[Package]:
        return [pkg for pkg in self.packages if pkg.github_fetch_failed]

    def downloads_diff(self) -> int | None:
        if self.previous_total_downloads is None:
            return None
        return self.total_downloads - self.previous_total_downloads

    def stars_diff(self) -> int | None:
        if self.previous_total_stars is None:
            return None
        return self.total_stars - self.previous_total_stars

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "username": self.username,
            "packages": [pkg.to_dict() for pkg in self.packages],
            "totalDownloads": self.total_downloads,
            "totalStars": self.total_stars,
            "isLoadingGithubData": self.is_loading_github_data,
        }
        if self.previous_total_downloads is not None:
            data["previousTotalDownloads"] = self.previous_total_downloads
        if self.previous_total_stars is not None:
            data["previousTotalStars"] = self.previous_total_stars
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserStats":
        return cls(
            username=data["username"],
            packages=[Package.from_dict(pkg) for pkg in data.get("packages", [])],
            total_downloads=int(data.get("totalDownloads") or 0),
            total_stars=int(data.get("totalStars") or 0),
            is_loading_github_data=bool(data.get("isLoadingGithubData", False)),
            previous_total_downloads=data.get("previousTotalDownloads"),
            previous_total_stars=data.get("previousTotalStars"),
        )


@dataclass
class FailureStats:
    """Running count of packages whose enrichment failed terminally."""

    total: int = 0
    failed: int = 0

    def record_failure(self) -> None:
        self.failed += 1

    def record_recovery(self) -> None:
        self.failed = max(0, self.failed - 1)

    def copy(self) -> "FailureStats":
        return FailureStats(total=self.total, failed=self.failed)

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "failed": self.failed}


@dataclass
class RateLimitInfo:
    """Rate-limit warning shown alongside the results."""

    is_limited: bool = False
    reset_time: float | None = None  # Epoch seconds
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isLimited": self.is_limited,
            "resetTime": None if self.reset_time is None else int(self.reset_time * 1000),
            "message": self.message,
        }


@dataclass
class SearchState:
    """Snapshot handed to session subscribers on every update."""

    user_stats: UserStats | None
    failure_stats: FailureStats
    rate_limit_info: RateLimitInfo
    retrying: frozenset[str] = field(default_factory=frozenset)
    loading: bool = False
    no_packages_found: bool = False
