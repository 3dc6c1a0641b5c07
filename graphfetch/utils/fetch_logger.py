"""Structured logging for fetch runs.

Every record carries the same fields:
- run_id
- step
- identifier
- status
- status_code
- retry_count
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Optional

from graphfetch.errors import FetchError
from graphfetch.models import MessageDetail
from graphfetch.observers import FetchObserver

@dataclass
class FetchLogContext:
    """Fields attached to every fetch event record."""

    run_id: str
    step: str
    identifier: Optional[str] = None
    status: str = "started"
    status_code: Optional[int] = None
    retry_count: int = 0
    delay_seconds: Optional[float] = None
    error: Optional[str] = None

    def fields(self) -> dict:
        """Set fields only, for ``extra=``."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def summary(self) -> str:
        parts = [self.step, self.status]
        if self.identifier is not None:
            parts.insert(1, self.identifier)
        if self.status_code is not None:
            parts.append(f"HTTP {self.status_code}")
        if self.retry_count:
            parts.append(f"retries={self.retry_count}")
        return " ".join(parts)


class FetchLogger(FetchObserver):
    """Observer that logs each fetch event with structured fields.

    Also keeps per-run counters; hooks run on worker threads, so the
    counters are guarded by a lock.
    """

    def __init__(self, run_id: str):
        """Initialize fetch logger.

        Args:
            run_id: Unique identifier for this run
        """
        self.run_id = run_id
        self.logger = logging.getLogger("graphfetch.run")
        self._lock = threading.Lock()
        self._started = 0
        self._responses = 0
        self._retries: dict[str, int] = {}
        self._succeeded = 0
        self._failed = 0

    def _log(self, level: int, step: str, **kwargs) -> None:
        ctx = FetchLogContext(run_id=self.run_id, step=step, **kwargs)
        self.logger.log(level, ctx.summary(), extra=ctx.fields())

    def on_start(self, identifier: str) -> None:
        with self._lock:
            self._started += 1
        self._log(logging.DEBUG, "fetch", identifier=identifier)

    def on_response(self, identifier: str, status_code: int) -> None:
        with self._lock:
            self._responses += 1
            retries = self._retries.get(identifier, 0)
        self._log(
            logging.DEBUG,
            "response",
            identifier=identifier,
            status="received",
            status_code=status_code,
            retry_count=retries,
        )

    def on_throttled(self, identifier: str, attempt: int, delay: float) -> None:
        with self._lock:
            self._retries[identifier] = self._retries.get(identifier, 0) + 1
            retries = self._retries[identifier]
        self._log(
            logging.WARNING,
            "throttled",
            identifier=identifier,
            status="waiting",
            status_code=429,
            retry_count=retries,
            delay_seconds=delay,
        )

    def on_success(self, detail: MessageDetail) -> None:
        with self._lock:
            self._succeeded += 1
            retries = self._retries.get(detail.identifier, 0)
        self._log(
            logging.INFO,
            "fetch",
            identifier=detail.identifier,
            status="success",
            retry_count=retries,
        )

    def on_failure(self, identifier: str, error: FetchError) -> None:
        with self._lock:
            self._failed += 1
            retries = self._retries.get(identifier, 0)
        self._log(
            logging.ERROR,
            "fetch",
            identifier=identifier,
            status="error",
            status_code=error.status_code,
            retry_count=retries,
            error=error.description,
        )

    def get_metrics(self) -> dict:
        """Get aggregated metrics."""
        with self._lock:
            return {
                "run_id": self.run_id,
                "started": self._started,
                "responses": self._responses,
                "retry_count": sum(self._retries.values()),
                "succeeded": self._succeeded,
                "failed": self._failed,
            }


class OperationTimer:
    """Monotonic stopwatch; ``seconds`` reads the running time until stopped."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._started = clock()
        self._stopped: Optional[float] = None

    def stop(self) -> float:
        if self._stopped is None:
            self._stopped = self._clock()
        return self.seconds

    @property
    def seconds(self) -> float:
        end = self._stopped if self._stopped is not None else self._clock()
        return end - self._started


@contextmanager
def timed_operation(name: str, logger: Optional[logging.Logger] = None):
    """Time the enclosed block; logs the duration at DEBUG when given a logger.

        with timed_operation("fan_out") as timer:
            report = orchestrator.fetch_all(ids)
        print(f"{timer.seconds:.2f}s")
    """
    timer = OperationTimer()
    try:
        yield timer
    finally:
        timer.stop()
        if logger:
            logger.debug(
                f"Operation '{name}' completed",
                extra={"operation": name, "duration_seconds": round(timer.seconds, 3)}
            )
