"""Base Graph client with request timing and metrics."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

import requests

from graphfetch.clients.transport import HttpTransport

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


@dataclass
class RequestMetrics:
    """Metrics for API requests.

    Updated from every worker thread, so all mutation goes through the lock.
    """

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    throttled_requests: int = 0
    total_duration_ms: float = 0
    request_durations: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_request(self, duration_ms: float, success: bool) -> None:
        """Record a request."""
        with self._lock:
            self.total_requests += 1
            self.total_duration_ms += duration_ms
            self.request_durations.append(duration_ms)
            if success:
                self.successful_requests += 1
            else:
                self.failed_requests += 1

    def record_throttle(self) -> None:
        """Record a 429 response."""
        with self._lock:
            self.throttled_requests += 1

    @property
    def avg_duration_ms(self) -> float:
        """Average request duration."""
        with self._lock:
            if not self.request_durations:
                return 0
            return sum(self.request_durations) / len(self.request_durations)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        avg = self.avg_duration_ms
        with self._lock:
            return {
                "total_requests": self.total_requests,
                "successful_requests": self.successful_requests,
                "failed_requests": self.failed_requests,
                "throttled_requests": self.throttled_requests,
                "total_duration_ms": round(self.total_duration_ms, 2),
                "avg_duration_ms": round(avg, 2),
            }


class GraphClient:
    """Thin client that builds Graph URLs and sends them through a transport.

    Responses are returned as-is whatever their status; callers decide what
    a status means for them.
    """

    def __init__(self, transport: HttpTransport, base_url: str = GRAPH_BASE_URL):
        """Initialize Graph client.

        Args:
            transport: Transport to send requests through (usually authenticating)
            base_url: Graph API base URL
        """
        self.transport = transport
        self.base_url = base_url.rstrip("/")
        self.metrics = RequestMetrics()

    def url_for(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> requests.Response:
        """Send a GET request and return the raw response.

        Raises:
            TransportError: On network failure
        """
        url = self.url_for(endpoint)
        request = requests.Request("GET", url, params=params, headers=headers or {})

        start_time = time.time()
        logger.debug("Making GET request", extra={"url": url, "params": params})

        try:
            response = self.transport.send(request)
        except Exception:
            duration_ms = (time.time() - start_time) * 1000
            self.metrics.record_request(duration_ms, success=False)
            raise

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code == 429:
            self.metrics.record_throttle()
        self.metrics.record_request(duration_ms, success=response.ok)

        logger.info(
            "API request completed",
            extra={
                "method": "GET",
                "endpoint": endpoint,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        )
        return response

    def close(self) -> None:
        self.transport.close()
