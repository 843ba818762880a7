"""GitHub REST API client."""

from typing import Any

import httpx

from npmstats.exceptions import NotFoundError, RateLimitedError, UpstreamError
from npmstats.rate_limit import RateLimitState
from npmstats.transport import AsyncHTTPTransport
from npmstats.types.github import RepositoryRef


class GithubClient:
    """Client for the GitHub repository endpoint.

    Every call consults and updates the shared ``RateLimitState``.
    """

    def __init__(
        self,
        transport: AsyncHTTPTransport,
        rate_limit: RateLimitState,
        api_url: str = "https://api.github.com",
        token: str | None = None,
    ) -> None:
        """
        Initialize the GitHub client.

        Args:
            transport: HTTP transport for making requests
            rate_limit: Process-wide rate-limit state
            api_url: Base URL of the GitHub REST API
            token: Optional token sent as a bearer credential
        """
        self.transport = transport
        self.rate_limit = rate_limit
        self.api_url = api_url.rstrip("/")
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "npmstats",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    async def get_repository(self, ref: RepositoryRef) -> dict[str, Any]:
        """
        Fetch repository metadata.

        Returns:
            The repository document (``stargazers_count``, ``open_issues_count`` ...)

        Raises:
            RateLimitedError: If the quota is known to be exhausted (no request
                is made) or GitHub answers 403/429
            NotFoundError: If the repository does not exist
            UpstreamError: On any other non-2xx answer
        """
        if self.rate_limit.is_limited():
            raise RateLimitedError(
                "RATE_LIMITED",
                "GitHub API rate limit exceeded",
                self.rate_limit.reset_time,
            )

        response = await self.transport.get(
            f"{self.api_url}/repos/{ref.owner}/{ref.repo}",
            headers=self.headers,
        )
        status = response.status_code

        if status < 400:
            self.rate_limit.update_from_headers(response.headers)
            return response.json()

        if status in (403, 429):
            reset_time = self.rate_limit.mark_limited(response.headers)
            raise RateLimitedError(
                "RATE_LIMITED",
                _error_message(response) or "GitHub API rate limit exceeded",
                reset_time,
            )
        if status == 404:
            raise NotFoundError("REPO_NOT_FOUND", f"{ref.owner}/{ref.repo} not found")

        raise UpstreamError(
            "GITHUB_API_ERROR",
            f"GitHub returned HTTP {status} for {ref.owner}/{ref.repo}",
            status,
        )


def _error_message(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get("message") if isinstance(data, dict) else None
