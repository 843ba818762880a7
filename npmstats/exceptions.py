"""npmstats exception classes."""


class NpmStatsError(Exception):
    """Base exception for all npmstats errors."""

    status_code = 500

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class ConfigurationError(NpmStatsError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class ValidationError(NpmStatsError):
    """Raised when a request is missing required input."""

    status_code = 400


class NotFoundError(NpmStatsError):
    """Raised when an upstream resource does not exist."""

    status_code = 404


class RateLimitedError(NpmStatsError):
    """Raised when the GitHub quota is exhausted."""

    status_code = 429

    def __init__(self, code: str, message: str, reset_time: float) -> None:
        super().__init__(code, message)
        # Epoch seconds at which the quota is expected to reset
        self.reset_time = reset_time


class UpstreamError(NpmStatsError):
    """Raised when npm or GitHub answers with an unexpected status."""

    def __init__(
        self, code: str, message: str, upstream_status: int | None = None
    ) -> None:
        super().__init__(code, message)
        self.upstream_status = upstream_status


class StoreUnavailableError(NpmStatsError):
    """Raised by key-value backends when the store cannot be reached."""

    status_code = 503


class SearchError(NpmStatsError):
    """Raised when the initial package list for a search cannot be loaded."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__("SEARCH_FAILED", message)
        self.response_status = status_code
