"""Exception hierarchy for graphfetch.

Run-level errors (config, auth, list fetch) abort a run. Per-message
errors (FetchError and subclasses) are isolated to one identifier.
"""

from typing import Optional


class GraphFetchError(Exception):
    """Base class for all graphfetch errors."""


class ConfigError(GraphFetchError):
    """Missing or invalid settings."""


class AuthError(GraphFetchError):
    """Token acquisition failed."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.error_code = error_code
        super().__init__(message)


class TransportError(GraphFetchError):
    """Network failure, or a non-success status on a run-level request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ParseError(GraphFetchError):
    """Response body could not be interpreted."""


class FetchError(GraphFetchError):
    """A single message detail could not be fetched."""

    def __init__(
        self,
        identifier: str,
        description: str,
        status_code: Optional[int] = None,
    ):
        self.identifier = identifier
        self.description = description
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"message {identifier}{status}: {description}")


class RetryBudgetExhausted(FetchError):
    """Throttled more times, or for longer, than the retry policy allows."""

    def __init__(self, identifier: str, attempts: int, total_delay: float):
        self.attempts = attempts
        self.total_delay = total_delay
        super().__init__(
            identifier,
            f"retry budget exhausted after {attempts} attempts "
            f"({total_delay:g}s spent waiting)",
            status_code=429,
        )


class FetchCancelled(FetchError):
    """The run was cancelled before this message completed."""

    def __init__(self, identifier: str):
        super().__init__(identifier, "cancelled")
