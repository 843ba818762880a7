"""npm registry and downloads API client."""

from typing import Any
from urllib.parse import quote

from npmstats.exceptions import UpstreamError
from npmstats.logging import get_logger
from npmstats.transport import AsyncHTTPTransport

logger = get_logger("http")

SEARCH_PAGE_SIZE = 250
# The downloads API accepts at most 128 unscoped names per bulk query
BULK_DOWNLOADS_LIMIT = 128


def encode_package_name(name: str) -> str:
    """Encode a package name for use in a registry path (``@scope/pkg`` -> ``@scope%2Fpkg``)."""
    return quote(name, safe="@")


class NpmClient:
    """Client for the public npm registry and downloads endpoints."""

    def __init__(
        self,
        transport: AsyncHTTPTransport,
        registry_url: str = "https://registry.npmjs.org",
        downloads_url: str = "https://api.npmjs.org",
    ) -> None:
        """
        Initialize the npm client.

        Args:
            transport: HTTP transport for making requests
            registry_url: Base URL of the package registry
            downloads_url: Base URL of the downloads API
        """
        self.transport = transport
        self.registry_url = registry_url.rstrip("/")
        self.downloads_url = downloads_url.rstrip("/")

    async def get_package(self, name: str) -> dict[str, Any] | None:
        """
        Fetch the registry document of a package.

        Returns:
            The packument, or None if the package does not exist

        Raises:
            UpstreamError: On any other non-2xx answer
        """
        url = f"{self.registry_url}/{encode_package_name(name)}"
        response = await self.transport.get(url)

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise UpstreamError(
                "NPM_REGISTRY_ERROR",
                f"Registry returned HTTP {response.status_code} for {name}",
                response.status_code,
            )
        return response.json()

    async def search_by_maintainer(self, username: str) -> list[dict[str, Any]]:
        """
        List every package maintained by ``username``.

        Pages through the registry search API until all results are read.

        Returns:
            Search result objects (each with a ``package`` entry)
        """
        results: list[dict[str, Any]] = []
        offset = 0

        while True:
            response = await self.transport.get(
                f"{self.registry_url}/-/v1/search",
                params={
                    "text": f"maintainer:{username}",
                    "size": SEARCH_PAGE_SIZE,
                    "from": offset,
                },
            )
            if response.status_code >= 400:
                raise UpstreamError(
                    "NPM_SEARCH_ERROR",
                    f"Registry search returned HTTP {response.status_code}",
                    response.status_code,
                )

            data = response.json()
            objects = data.get("objects", [])
            results.extend(objects)
            offset += len(objects)

            if not objects or offset >= data.get("total", 0):
                break

        logger.info("Found %d packages for maintainer %s", len(results), username)
        return results

    async def get_weekly_downloads(self, names: list[str]) -> dict[str, int]:
        """
        Fetch last-week download counts.

        Unscoped names are queried in bulk; scoped names one at a time since
        the bulk endpoint does not accept them. Packages without data map to 0.
        """
        downloads: dict[str, int] = {name: 0 for name in names}
        unscoped = [name for name in names if not name.startswith("@")]
        scoped = [name for name in names if name.startswith("@")]

        for start in range(0, len(unscoped), BULK_DOWNLOADS_LIMIT):
            chunk = unscoped[start:start + BULK_DOWNLOADS_LIMIT]
            data = await self._point_last_week(",".join(chunk))
            if len(chunk) == 1:
                downloads[chunk[0]] = int(data.get("downloads") or 0)
                continue
            for name in chunk:
                entry = data.get(name)
                if entry:
                    downloads[name] = int(entry.get("downloads") or 0)

        for name in scoped:
            data = await self._point_last_week(encode_package_name(name))
            downloads[name] = int(data.get("downloads") or 0)

        return downloads

    async def _point_last_week(self, names: str) -> dict[str, Any]:
        response = await self.transport.get(
            f"{self.downloads_url}/downloads/point/last-week/{names}"
        )
        if response.status_code == 404:
            return {}
        if response.status_code >= 400:
            raise UpstreamError(
                "NPM_DOWNLOADS_ERROR",
                f"Downloads API returned HTTP {response.status_code}",
                response.status_code,
            )
        return response.json()
