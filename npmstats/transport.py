"""
Async HTTP transport for npmstats.

Every call from the backend to an external API (npm registry, npm downloads,
GitHub, the key-value REST store) goes through this module. It is the only
place network resilience lives: bounded retries, exponential backoff with
jitter, and a per-attempt timeout.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from npmstats.logging import get_logger, log_http_request, log_http_response

logger = get_logger("http")


@dataclass
class RetryConfig:
    """Configuration for automatic retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0  # Seconds, doubled on every attempt
    max_jitter: float = 1.0  # Upper bound of the random delay added to each backoff
    timeout: float = 15.0  # Per-attempt timeout in seconds
    retry_on: list[int] = field(default_factory=lambda: [403, 429])  # Plus any 5xx


class AsyncHTTPTransport:
    """
    Async HTTP transport layer with retry logic.

    Handles:
    - Exponential backoff with jitter between attempts
    - Retrying 5xx, 429 and 403 responses
    - Retrying network errors and timeouts
    - Returning the last response once retries are exhausted
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            client: Existing httpx client to use (a new one is created if omitted)
            retry_config: Configuration for retry behavior
            headers: Default headers for a newly created client
        """
        self.retry_config = retry_config or RetryConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=headers,
            follow_redirects=True,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AsyncHTTPTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Make a request with automatic retry.

        Args:
            method: HTTP method
            url: Absolute URL (or path relative to the client's base_url)
            **kwargs: Passed through to ``httpx.AsyncClient.request``

        Returns:
            The first non-retryable response, or the last response once
            retries are exhausted. Error statuses are returned, not raised.

        Raises:
            httpx.RequestError: If the final attempt fails at the network level
                (including timeouts)
        """
        kwargs.setdefault("timeout", self.retry_config.timeout)
        max_retries = self.retry_config.max_retries

        for attempt in range(max_retries + 1):
            log_http_request(method, url, kwargs.get("headers"), attempt)
            started = time.monotonic()

            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TimeoutException:
                if attempt >= max_retries:
                    logger.warning("%s %s timed out on final attempt", method, url)
                    raise
                logger.info(
                    "Timeout on attempt %d/%d for %s, retrying",
                    attempt + 1, max_retries + 1, url,
                )
            except httpx.RequestError as e:
                if attempt >= max_retries:
                    logger.warning("%s %s failed: %s", method, url, e)
                    raise
                logger.info(
                    "Network error on attempt %d/%d for %s: %s",
                    attempt + 1, max_retries + 1, url, e,
                )
            else:
                log_http_response(
                    response.status_code, url, (time.monotonic() - started) * 1000
                )
                if not self._should_retry(response.status_code, attempt):
                    return response
                logger.info(
                    "HTTP %d on attempt %d/%d for %s, retrying",
                    response.status_code, attempt + 1, max_retries + 1, url,
                )

            await asyncio.sleep(self._get_backoff_time(attempt))

        # The final attempt always returns or raises above
        raise RuntimeError("retry loop exited without a result")

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Shortcut for ``request("GET", url, ...)``."""
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """Shortcut for ``request("POST", url, ...)``."""
        return await self.request("POST", url, **kwargs)

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        """
        Determine if a response should be retried.

        Successful responses and client errors other than 403/429 are final.
        Once ``max_retries`` is reached nothing is retried and the response is
        handed back to the caller as is.

        Args:
            status_code: HTTP status code
            attempt: Current attempt number (0-indexed)

        Returns:
            True if the request should be retried
        """
        if attempt >= self.retry_config.max_retries:
            return False

        return status_code >= 500 or status_code in self.retry_config.retry_on

    def _get_backoff_time(self, attempt: int) -> float:
        """
        Calculate backoff time before the next attempt.

        ``base_delay * 2^attempt`` plus a uniform random jitter in
        ``[0, max_jitter]``.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Time to wait in seconds
        """
        base_wait = self.retry_config.base_delay * (2 ** attempt)
        return base_wait + random.uniform(0, self.retry_config.max_jitter)


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    max_retries: int = 3,
    base_delay: float = 1.0,
    **kwargs: Any,
) -> httpx.Response:
    """
    Issue a single logical request against ``client`` with bounded retries.

    Example:
        ```python
        async with httpx.AsyncClient() as client:
            response = await fetch_with_retry(
                client, "https://registry.npmjs.org/react"
            )
        ```
    """
    transport = AsyncHTTPTransport(
        client=client,
        retry_config=RetryConfig(max_retries=max_retries, base_delay=base_delay),
    )
    return await transport.request(method, url, **kwargs)
