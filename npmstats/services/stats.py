"""Package list for an npm maintainer."""

from datetime import datetime, timezone
from typing import Any

from npmstats.clients.npm import NpmClient
from npmstats.exceptions import ValidationError
from npmstats.repository_url import parse_github_url
from npmstats.types.packages import Package, UserStats


class StatsService:
    """Build the initial, not yet enriched, stats for a maintainer."""

    def __init__(self, npm: NpmClient) -> None:
        self.npm = npm

    async def get_user_stats(self, username: str) -> UserStats:
        """
        List a maintainer's packages with their weekly downloads.

        GitHub fields are left at zero; they are filled in by enrichment.

        Raises:
            ValidationError: If ``username`` is empty
            UpstreamError: If the registry or downloads API fails
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("MISSING_USERNAME", "Username is required")

        objects = await self.npm.search_by_maintainer(username)
        names = [obj["package"]["name"] for obj in objects]
        downloads = await self.npm.get_weekly_downloads(names)
        checked_at = datetime.now(timezone.utc).isoformat()

        packages = [
            _package_from_search(obj, downloads.get(obj["package"]["name"], 0), checked_at)
            for obj in objects
        ]
        packages.sort(key=lambda pkg: pkg.weekly_downloads, reverse=True)

        return UserStats(
            username=username,
            packages=packages,
            total_downloads=sum(pkg.weekly_downloads for pkg in packages),
            total_stars=0,
        )


def _package_from_search(
    obj: dict[str, Any], weekly_downloads: int, checked_at: str
) -> Package:
    pkg = obj["package"]
    links = pkg.get("links") or {}
    ref = parse_github_url(links.get("repository") or "")

    try:
        dependents = int(obj.get("dependents") or 0)
    except (TypeError, ValueError):
        dependents = 0

    return Package(
        name=pkg["name"],
        version=pkg.get("version", ""),
        weekly_downloads=weekly_downloads,
        dependents=dependents,
        npm_url=links.get("npm") or f"https://www.npmjs.com/package/{pkg['name']}",
        last_checked=checked_at,
        repo_url=ref.url if ref else None,
    )
