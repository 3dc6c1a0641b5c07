"""Concurrent fan-out of message detail fetches.

One task per identifier runs on a thread pool. Every task ends in exactly
one ``FetchOutcome``, so a failed identifier is reported alongside the
successful ones instead of aborting them.
"""

import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from typing import Iterable, Optional

from graphfetch.clients.retrying import RetryingDetailFetcher
from graphfetch.errors import AuthError, FetchCancelled, FetchError
from graphfetch.models import FetchOutcome, FetchReport
from graphfetch.observers import CompositeObserver, FetchObserver

logger = logging.getLogger(__name__)


class FanOutOrchestrator:
    """Fetches many messages concurrently and aggregates the outcomes."""

    def __init__(
        self,
        fetcher: RetryingDetailFetcher,
        max_workers: Optional[int] = None,
        observer: Optional[FetchObserver] = None,
    ):
        """Initialize orchestrator.

        Args:
            fetcher: Fetcher run once per identifier
            max_workers: Concurrency cap; None runs one worker per identifier
            observer: Receives start, success and failure notifications
        """
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.fetcher = fetcher
        self.max_workers = max_workers
        self.observer = CompositeObserver([observer] if observer else [])
        self._futures: dict[Future, int] = {}
        self._lock = threading.Lock()

    @property
    def cancel_event(self) -> threading.Event:
        return self.fetcher.cancel_event

    def cancel(self) -> None:
        """Stop the run: wake throttled workers and drop queued tasks."""
        logger.warning("Cancelling fetch run")
        self.cancel_event.set()
        with self._lock:
            for future in self._futures:
                future.cancel()

    def fetch_all(self, identifiers: Iterable[str]) -> FetchReport:
        """Fetch every identifier and return one outcome each, in input order.

        Raises:
            AuthError: A token could not be obtained mid-run; the run is cancelled
        """
        identifiers = list(identifiers)
        report = FetchReport()
        if not identifiers:
            return report

        workers = len(identifiers)
        if self.max_workers is not None:
            workers = min(self.max_workers, workers)

        logger.info(
            "Starting fan-out",
            extra={"record_count": len(identifiers), "max_workers": workers}
        )

        outcomes: list[Optional[FetchOutcome]] = [None] * len(identifiers)
        start_time = time.monotonic()

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="graphfetch") as executor:
            with self._lock:
                self._futures = {
                    executor.submit(self._fetch_one, identifier): index
                    for index, identifier in enumerate(identifiers)
                }
                if self.cancel_event.is_set():
                    for future in self._futures:
                        future.cancel()

            try:
                for future in as_completed(self._futures):
                    index = self._futures[future]
                    outcomes[index] = self._collect(identifiers[index], future)
            except (AuthError, KeyboardInterrupt):
                self.cancel()
                raise
            finally:
                with self._lock:
                    self._futures = {}

        report.outcomes = outcomes
        report.elapsed_seconds = time.monotonic() - start_time

        logger.info(
            f"Fan-out complete: {len(report.succeeded)} succeeded, {len(report.failed)} failed",
            extra=report.to_dict()
        )
        return report

    def _fetch_one(self, identifier: str) -> FetchOutcome:
        self.observer.on_start(identifier)
        try:
            detail = self.fetcher.fetch_detail(identifier)
        except FetchError as e:
            return self._fail(identifier, e)
        except AuthError:
            raise
        except Exception as e:
            logger.exception("Unexpected error fetching message", extra={"identifier": identifier})
            return self._fail(identifier, FetchError(identifier, f"unexpected error: {e}"))

        self.observer.on_success(detail)
        return FetchOutcome(identifier=identifier, detail=detail)

    def _fail(self, identifier: str, error: FetchError) -> FetchOutcome:
        logger.error(
            "Message fetch failed",
            extra={
                "identifier": identifier,
                "status_code": error.status_code,
                "error": error.description,
            }
        )
        self.observer.on_failure(identifier, error)
        return FetchOutcome(identifier=identifier, error=error)

    def _collect(self, identifier: str, future: Future) -> FetchOutcome:
        try:
            return future.result()
        except CancelledError:
            # Cancelled before it started; report it like a cancelled fetch.
            return self._fail(identifier, FetchCancelled(identifier))
