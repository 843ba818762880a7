"""
Per-package enrichment state machine.

Each package moves through::

    PENDING -> IN_FLIGHT(n) -> SUCCEEDED | RATE_LIMITED | FAILED
                    ^   |
                    +---+  (retryable answer, attempts left)

Transitions are driven only by the classified endpoint answer, so the retry
contract can be exercised without any network or timing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from npmstats.types.github import GithubStats

DEFAULT_MAX_ATTEMPTS = 2
FORBIDDEN_RETRY_DELAY = 2.0
SERVER_ERROR_RETRY_DELAY = 1.0
NETWORK_ERROR_RETRY_DELAY = 1.0
CLIENT_ERROR_RETRY_DELAY = 0.0  # Other 4xx: retried right away
DEFAULT_RATE_LIMIT_MESSAGE = "GitHub API rate limit exceeded"


class EnrichmentState(Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {EnrichmentState.SUCCEEDED, EnrichmentState.RATE_LIMITED, EnrichmentState.FAILED}
)


@dataclass
class EndpointResponse:
    """Status and decoded JSON body of an enrichment endpoint call."""

    status_code: int
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class RateLimitNotice:
    """Rate-limit details reported by a 429 answer."""

    reset_time: float  # Epoch seconds
    message: str

    @classmethod
    def from_response(cls, response: EndpointResponse) -> "RateLimitNotice | None":
        """Build a notice if the body carries a ``resetTime`` (epoch milliseconds)."""
        reset_ms = response.data.get("resetTime")
        if not reset_ms:
            return None
        return cls(
            reset_time=float(reset_ms) / 1000,
            message=response.data.get("details") or DEFAULT_RATE_LIMIT_MESSAGE,
        )


@dataclass
class ItemEnrichment:
    """Attempt bookkeeping for one package."""

    package_name: str
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    state: EnrichmentState = EnrichmentState.PENDING
    attempt: int = 0
    result: GithubStats | None = None
    rate_limit_notice: RateLimitNotice | None = None
    last_error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def succeeded(self) -> bool:
        return self.state is EnrichmentState.SUCCEEDED

    @property
    def attempts_left(self) -> bool:
        return self.attempt < self.max_attempts

    def start_attempt(self) -> None:
        if self.terminal:
            raise RuntimeError(f"{self.package_name} is already {self.state.value}")
        if not self.attempts_left:
            raise RuntimeError(f"{self.package_name} has no attempts left")
        self.attempt += 1
        self.state = EnrichmentState.IN_FLIGHT

    def on_response(self, response: EndpointResponse) -> float | None:
        """
        Apply an endpoint answer.

        Returns:
            Seconds to wait before the next attempt, or None once terminal
        """
        self._require_in_flight()
        status = response.status_code

        if response.ok:
            self.result = GithubStats.from_dict(
                {"packageName": self.package_name, **response.data}
            )
            self.state = EnrichmentState.SUCCEEDED
            return None

        self.last_error = response.data.get("error") or f"HTTP {status}"

        if status == 429:
            # Never retried; the quota will not come back within our backoff
            self.rate_limit_notice = RateLimitNotice.from_response(response)
            self.state = EnrichmentState.RATE_LIMITED
            return None
        if status == 403:
            return self._retry_or_fail(FORBIDDEN_RETRY_DELAY)
        if status >= 500:
            return self._retry_or_fail(SERVER_ERROR_RETRY_DELAY)

        return self._retry_or_fail(CLIENT_ERROR_RETRY_DELAY)

    def on_error(self, error: BaseException) -> float | None:
        """Apply a network-level failure. Same return contract as ``on_response``."""
        self._require_in_flight()
        self.last_error = str(error) or type(error).__name__
        return self._retry_or_fail(NETWORK_ERROR_RETRY_DELAY)

    def _retry_or_fail(self, delay: float) -> float | None:
        if self.attempts_left:
            return delay
        self.state = EnrichmentState.FAILED
        return None

    def _require_in_flight(self) -> None:
        if self.state is not EnrichmentState.IN_FLIGHT:
            raise RuntimeError(
                f"{self.package_name} has no attempt in flight ({self.state.value})"
            )
