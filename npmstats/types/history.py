"""History store data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from npmstats.types.packages import UserStats


@dataclass
class HistorySnapshot:
    """A persisted copy of one search result for a given date."""

    username: str
    packages: list[dict[str, Any]]
    total_downloads: int
    total_stars: int
    package_count: int
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @classmethod
    def from_user_stats(cls, stats: UserStats) -> "HistorySnapshot":
        return cls(
            username=stats.username,
            packages=[pkg.to_dict() for pkg in stats.packages],
            total_downloads=stats.total_downloads,
            total_stars=stats.total_stars,
            package_count=len(stats.packages),
        )

    def find_package(self, name: str) -> dict[str, Any] | None:
        for pkg in self.packages:
            if pkg.get("name") == name:
                return pkg
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "packages": self.packages,
            "totalDownloads": self.total_downloads,
            "totalStars": self.total_stars,
            "packageCount": self.package_count,
            "timestamp": self.timestamp,
            "username": self.username,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistorySnapshot":
        packages = data.get("packages") or []
        return cls(
            username=data.get("username", ""),
            packages=packages,
            total_downloads=int(data.get("totalDownloads") or 0),
            total_stars=int(data.get("totalStars") or 0),
            package_count=int(data.get("packageCount") or len(packages)),
            timestamp=data.get("timestamp", ""),
        )
