"""
Async client for the npmstats backend endpoints.

Used by ``DashboardSession`` to talk to ``/api/stats``, ``/api/github-stats``
and ``/api/user-stats-history``.
"""

from typing import Any

import httpx

from npmstats.config import DEFAULT_BACKEND_URL, Settings
from npmstats.enrichment import EndpointResponse
from npmstats.exceptions import SearchError
from npmstats.logging import get_logger
from npmstats.types.history import HistorySnapshot
from npmstats.types.packages import UserStats

logger = get_logger()


class DashboardClient:
    """
    Client for the dashboard's backend.

    Example:
        ```python
        import asyncio
        from npmstats import DashboardClient

        async def main():
            async with DashboardClient("http://localhost:8000") as client:
                stats = await client.get_stats("sindresorhus")
                print(stats.total_downloads)

        asyncio.run(main())
        ```
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the dashboard client.

        Args:
            base_url: Base URL of the backend (default: http://localhost:8000)
            timeout: Request timeout in seconds (default: 30.0)
            client: Preconfigured httpx client (overrides base_url and timeout)
        """
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    @classmethod
    def from_env(cls, timeout: float = DEFAULT_TIMEOUT) -> "DashboardClient":
        """Create a client pointed at ``NPMSTATS_BACKEND_URL``."""
        return cls(base_url=Settings.from_env().backend_url, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DashboardClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def get_stats(self, username: str) -> UserStats:
        """
        Fetch the package list of an npm maintainer.

        Raises:
            SearchError: If the backend answers with an error status
            httpx.RequestError: On network failure
        """
        response = await self._client.get("/api/stats", params={"username": username})

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("error") if isinstance(body, dict) else None
            raise SearchError(
                message or f"HTTP {response.status_code}", response.status_code
            )

        return UserStats.from_dict(response.json())

    async def get_github_stats(self, package_name: str) -> EndpointResponse:
        """
        Call the enrichment endpoint once.

        Error statuses are returned, not raised; classifying them is up to
        the caller.

        Raises:
            httpx.RequestError: On network failure
        """
        response = await self._client.get(
            "/api/github-stats", params={"package": package_name}
        )
        try:
            data = response.json()
        except ValueError:
            if response.is_success:
                raise
            data = {}
        return EndpointResponse(response.status_code, data if isinstance(data, dict) else {})

    async def get_history(self, user_id: str, npm_username: str) -> HistorySnapshot | None:
        """Latest snapshot for the pair, or None if there is none or it cannot be read."""
        try:
            response = await self._client.get(
                "/api/user-stats-history",
                params={"githubUserId": user_id, "npmUsername": npm_username},
            )
            if not response.is_success:
                logger.info("No historical data available (HTTP %d)", response.status_code)
                return None
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Error fetching historical data: %s", e)
            return None

        data = body.get("data") if isinstance(body, dict) else None
        return HistorySnapshot.from_dict(data) if isinstance(data, dict) else None

    async def save_history(self, user_id: str, npm_username: str, stats: UserStats) -> bool:
        """Persist a snapshot of ``stats``. Returns whether the backend confirmed it."""
        snapshot = HistorySnapshot.from_user_stats(stats)
        snapshot.username = npm_username

        try:
            response = await self._client.post(
                "/api/user-stats-history",
                json={
                    "githubUserId": user_id,
                    "npmUsername": npm_username,
                    "data": snapshot.to_dict(),
                },
            )
            if not response.is_success:
                logger.error("Failed to save history: HTTP %d", response.status_code)
                return False
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error saving history: %s", e)
            return False

        if result.get("success"):
            logger.info("Snapshot saved for %s", result.get("date"))
            return True
        logger.warning("History store did not accept the snapshot: %s", result)
        return False
