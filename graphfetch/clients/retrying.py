"""Message detail fetcher that honors server throttling.

Each call runs a small state machine:

    SENT -> SUCCEEDED | THROTTLED | FAILED
    THROTTLED -> (wait Retry-After) -> SENT

Only HTTP 429 is retried, and only as long as the retry budget allows. The
wait is taken on a shared ``threading.Event`` so that cancelling a run wakes
every throttled worker at once.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote

import requests

from graphfetch.clients.base import GraphClient
from graphfetch.clients.messages import MESSAGES_ENDPOINT
from graphfetch.errors import (
    FetchCancelled,
    FetchError,
    ParseError,
    RetryBudgetExhausted,
    TransportError,
)
from graphfetch.models import MessageDetail
from graphfetch.observers import CompositeObserver, FetchObserver

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 2
DEFAULT_MAX_RETRIES = 5
DEFAULT_MAX_RETRY_DELAY = 300


class FetchState(Enum):
    """Where a fetch attempt is in its retry loop."""

    SENT = "sent"
    THROTTLED = "throttled"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class FetchAttempt:
    """Retry state for one identifier. Never shared between threads."""

    identifier: str
    attempt: int = 0
    next_delay: float = 0
    total_delay: float = 0
    state: FetchState = FetchState.SENT


def parse_retry_after(value: Optional[str], default: float = DEFAULT_RETRY_DELAY) -> float:
    """Seconds to wait for a ``Retry-After`` header value.

    Only a positive whole number of seconds is honored. Zero, negative,
    fractional and HTTP-date values fall back to ``default``.
    """
    if value is None:
        return default
    try:
        seconds = int(value.strip())
    except ValueError:
        return default
    return seconds if seconds > 0 else default


class RetryingDetailFetcher:
    """Fetches ``/me/messages/{id}``, retrying on 429 only."""

    def __init__(
        self,
        client: GraphClient,
        default_delay: float = DEFAULT_RETRY_DELAY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_total_delay: Optional[float] = None,
        max_retry_delay: Optional[float] = DEFAULT_MAX_RETRY_DELAY,
        cancel_event: Optional[threading.Event] = None,
        observer: Optional[FetchObserver] = None,
    ):
        """Initialize detail fetcher.

        Args:
            client: Graph client to send requests with
            default_delay: Wait used when Retry-After is absent or unusable
            max_retries: Max throttled retries per identifier
            max_total_delay: Optional cap on seconds spent waiting per identifier
            max_retry_delay: Longest single wait accepted from Retry-After;
                None leaves only the threading.TIMEOUT_MAX limit
            cancel_event: Set to abort waits and skip further requests
            observer: Receives response and throttle notifications
        """
        if default_delay <= 0:
            raise ValueError("default_delay must be positive")
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if max_retry_delay is not None and max_retry_delay <= 0:
            raise ValueError("max_retry_delay must be positive")

        self.client = client
        self.default_delay = default_delay
        self.max_retries = max_retries
        self.max_total_delay = max_total_delay
        self.max_retry_delay = min(
            max_retry_delay if max_retry_delay is not None else threading.TIMEOUT_MAX,
            threading.TIMEOUT_MAX,
        )
        self.cancel_event = cancel_event or threading.Event()
        self.observer = CompositeObserver([observer] if observer else [])

    def fetch_detail(self, identifier: str) -> MessageDetail:
        """Fetch one message.

        Raises:
            FetchError: Non-retryable status, transport or parse failure
            RetryBudgetExhausted: Still throttled when the budget ran out
            FetchCancelled: The cancel event was set
        """
        endpoint = f"{MESSAGES_ENDPOINT}/{quote(identifier, safe='')}"
        attempt = FetchAttempt(identifier=identifier)

        while True:
            if self.cancel_event.is_set():
                attempt.state = FetchState.FAILED
                raise FetchCancelled(identifier)

            attempt.attempt += 1
            attempt.state = FetchState.SENT
            try:
                response = self.client.get(endpoint)
            except TransportError as e:
                attempt.state = FetchState.FAILED
                raise FetchError(identifier, str(e)) from e

            self.observer.on_response(identifier, response.status_code)

            if response.status_code == 200:
                return self._succeed(attempt, response)

            if response.status_code != 429:
                attempt.state = FetchState.FAILED
                raise FetchError(
                    identifier,
                    _describe_error(response),
                    status_code=response.status_code,
                )

            attempt.state = FetchState.THROTTLED
            attempt.next_delay = parse_retry_after(
                response.headers.get("Retry-After"), self.default_delay
            )
            self._check_budget(attempt)

            logger.warning(
                f"Throttled (429), waiting {attempt.next_delay:g}s",
                extra={
                    "identifier": identifier,
                    "retry_after": attempt.next_delay,
                    "attempt": attempt.attempt,
                    "state": attempt.state.value,
                }
            )
            self.observer.on_throttled(identifier, attempt.attempt, attempt.next_delay)

            if self.cancel_event.wait(attempt.next_delay):
                attempt.state = FetchState.FAILED
                raise FetchCancelled(identifier)
            attempt.total_delay += attempt.next_delay

    def _succeed(self, attempt: FetchAttempt, response: requests.Response) -> MessageDetail:
        try:
            detail = MessageDetail.from_json(response.json())
        except (ValueError, ParseError) as e:
            attempt.state = FetchState.FAILED
            raise FetchError(
                attempt.identifier,
                f"unreadable message body: {e}",
                status_code=response.status_code,
            ) from e

        attempt.state = FetchState.SUCCEEDED
        logger.debug(
            "Message fetched",
            extra={
                "identifier": attempt.identifier,
                "attempts": attempt.attempt,
                "state": attempt.state.value,
            }
        )
        return detail

    def _check_budget(self, attempt: FetchAttempt) -> None:
        retries_used = attempt.attempt - 1
        over_count = retries_used >= self.max_retries
        over_time = (
            self.max_total_delay is not None
            and attempt.total_delay + attempt.next_delay > self.max_total_delay
        )
        too_long = attempt.next_delay > self.max_retry_delay
        if over_count or over_time or too_long:
            attempt.state = FetchState.FAILED
            logger.error(
                "Retry budget exhausted",
                extra={
                    "identifier": attempt.identifier,
                    "attempts": attempt.attempt,
                    "total_delay": attempt.total_delay,
                    "retry_after": attempt.next_delay,
                    "state": attempt.state.value,
                }
            )
            raise RetryBudgetExhausted(attempt.identifier, attempt.attempt, attempt.total_delay)


def _describe_error(response: requests.Response) -> str:
    """Graph error message from the body, or the reason phrase."""
    try:
        error = response.json().get("error", {})
        message = error.get("message") or error.get("code")
    except (ValueError, AttributeError):
        message = None
    return message or response.reason or f"HTTP {response.status_code}"
