"""Observers notified as messages are fetched.

Notifications are informational only. The orchestrator logs and ignores an
observer that raises.
"""

import logging
from typing import Callable, Iterable

from graphfetch.errors import FetchError
from graphfetch.models import MessageDetail

logger = logging.getLogger(__name__)


class FetchObserver:
    """No-op base; override the hooks you need."""

    def on_start(self, identifier: str) -> None:
        pass

    def on_response(self, identifier: str, status_code: int) -> None:
        pass

    def on_throttled(self, identifier: str, attempt: int, delay: float) -> None:
        pass

    def on_success(self, detail: MessageDetail) -> None:
        pass

    def on_failure(self, identifier: str, error: FetchError) -> None:
        pass


class ConsoleObserver(FetchObserver):
    """Prints human-readable status lines."""

    def __init__(self, write: Callable[[str], None] = print):
        self.write = write

    def on_start(self, identifier: str) -> None:
        self.write(f"...retrieving message: {identifier}")

    def on_response(self, identifier: str, status_code: int) -> None:
        self.write(f"...Response status code: {status_code}")

    def on_throttled(self, identifier: str, attempt: int, delay: float) -> None:
        self.write(f">>>>>>>>>>>>> sleeping for {delay:g} seconds...")

    def on_success(self, detail: MessageDetail) -> None:
        self.write(f"SUBJECT: {detail.subject}")

    def on_failure(self, identifier: str, error: FetchError) -> None:
        self.write(f"FAILED: {identifier} ({error.description})")


class CompositeObserver(FetchObserver):
    """Fans each notification out to several observers."""

    def __init__(self, observers: Iterable[FetchObserver]):
        self.observers = list(observers)

    def _notify(self, hook: str, *args) -> None:
        for observer in self.observers:
            try:
                getattr(observer, hook)(*args)
            except Exception:
                logger.exception(f"Observer {type(observer).__name__}.{hook} failed")

    def on_start(self, identifier: str) -> None:
        self._notify("on_start", identifier)

    def on_response(self, identifier: str, status_code: int) -> None:
        self._notify("on_response", identifier, status_code)

    def on_throttled(self, identifier: str, attempt: int, delay: float) -> None:
        self._notify("on_throttled", identifier, attempt, delay)

    def on_success(self, detail: MessageDetail) -> None:
        self._notify("on_success", detail)

    def on_failure(self, identifier: str, error: FetchError) -> None:
        self._notify("on_failure", identifier, error)
