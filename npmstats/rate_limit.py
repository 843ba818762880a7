"""
GitHub rate-limit tracking.

One ``RateLimitState`` is shared by every enrichment call served by a process.
It is passed explicitly to the code that needs it. All access happens on the
event loop thread, so no lock is taken.
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from npmstats.logging import get_logger

logger = get_logger("http")

DEFAULT_QUOTA = 5000
DEFAULT_LIMIT_WINDOW = 3600.0  # Seconds assumed until reset when GitHub omits the header


@dataclass
class RateLimitSnapshot:
    remaining: int
    reset_time: float | None
    is_limited: bool


class RateLimitState:
    """Process-wide view of the GitHub API quota.

    There is no explicit reset: once ``reset_time`` passes, ``is_limited()``
    reports False again on its own.
    """

    def __init__(
        self,
        quota: int = DEFAULT_QUOTA,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.remaining = quota
        self.reset_time: float | None = None
        self._limited = False
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def is_limited(self) -> bool:
        """True while a 403/429 has been seen and its reset time is still ahead."""
        return (
            self._limited
            and self.reset_time is not None
            and self.now() < self.reset_time
        )

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Record quota information from a successful GitHub response."""
        remaining = _parse_number(headers.get("x-ratelimit-remaining"))
        reset = _parse_number(headers.get("x-ratelimit-reset"))

        if remaining is not None:
            self.remaining = int(remaining)
            # A fresh window with quota left ends an expired limit for good
            self._limited = self.remaining <= 0
        if reset is not None:
            self.reset_time = reset

    def mark_limited(self, headers: Mapping[str, str] | None = None) -> float:
        """
        Flag the quota as exhausted.

        Args:
            headers: Headers of the 403/429 response, if any

        Returns:
            The reset time (epoch seconds) now in effect
        """
        reset = _parse_number((headers or {}).get("x-ratelimit-reset"))
        if reset is None or reset <= self.now():
            reset = self.now() + DEFAULT_LIMIT_WINDOW

        self._limited = True
        self.remaining = 0
        self.reset_time = reset
        logger.warning("GitHub rate limit reached, suspended until %s", int(reset))
        return reset

    def snapshot(self) -> RateLimitSnapshot:
        return RateLimitSnapshot(
            remaining=self.remaining,
            reset_time=self.reset_time,
            is_limited=self.is_limited(),
        )

    def to_dict(self) -> dict[str, Any]:
        snap = self.snapshot()
        return {
            "remaining": snap.remaining,
            "resetTime": None if snap.reset_time is None else int(snap.reset_time * 1000),
            "isLimited": snap.is_limited,
        }


def _parse_number(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
