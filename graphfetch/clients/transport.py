"""HTTP transports.

A transport sends one ``requests.Request`` and returns the response,
whatever its status. Transports compose: ``BearerAuthTransport`` wraps any
other transport and adds the Authorization header.

Example:
    >>> transport = BearerAuthTransport(
    ...     delegate=SessionTransport(pool_size=20),
    ...     credential_provider=provider,
    ... )
    >>> response = transport.send(requests.Request("GET", url))
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from graphfetch.auth.credentials import CredentialProvider, GRAPH_DEFAULT_SCOPES
from graphfetch.errors import TransportError

logger = logging.getLogger(__name__)


class HttpTransport(ABC):
    """Capability to send an HTTP request and receive a response."""

    @abstractmethod
    def send(self, request: requests.Request) -> requests.Response:
        """Send ``request``. Raise TransportError on network failure."""
        pass

    def close(self) -> None:
        """Release pooled resources."""


class SessionTransport(HttpTransport):
    """Transport over a pooled ``requests.Session``.

    The session is shared by all worker threads. Status codes are never
    retried here; throttling is handled by the caller.
    """

    def __init__(
        self,
        timeout: float = 30,
        pool_size: int = 10,
        session: Optional[requests.Session] = None,
    ):
        """Initialize session transport.

        Args:
            timeout: Request timeout in seconds
            pool_size: Max pooled connections per host
            session: Existing session to send through
        """
        self.timeout = timeout
        self.session = session or requests.Session()

        retry_strategy = Retry(total=0, raise_on_status=False, respect_retry_after_header=False)
        adapter = HTTPAdapter(
            pool_connections=pool_size,
            pool_maxsize=pool_size,
            max_retries=retry_strategy,
        )
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def send(self, request: requests.Request) -> requests.Response:
        prepared = self.session.prepare_request(request)
        try:
            return self.session.send(prepared, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(
                "HTTP request failed",
                extra={"method": request.method, "url": request.url, "error": str(e)}
            )
            raise TransportError(f"{request.method} {request.url} failed: {e}") from e

    def close(self) -> None:
        self.session.close()


class BearerAuthTransport(HttpTransport):
    """Decorator that attaches a bearer token to every outbound request."""

    def __init__(
        self,
        delegate: HttpTransport,
        credential_provider: CredentialProvider,
        scopes: Sequence[str] = GRAPH_DEFAULT_SCOPES,
    ):
        self.delegate = delegate
        self.credential_provider = credential_provider
        self.scopes = tuple(scopes)

    def send(self, request: requests.Request) -> requests.Response:
        # The provider returns its cached token until it nears expiry.
        auth_header = self.credential_provider.get_auth_header(self.scopes)
        return self.delegate.send(_with_headers(request, auth_header))

    def close(self) -> None:
        self.delegate.close()


def _with_headers(request: requests.Request, headers: dict) -> requests.Request:
    """Copy ``request`` with ``headers`` merged over its own."""
    return requests.Request(
        method=request.method,
        url=request.url,
        headers={**(request.headers or {}), **headers},
        params=request.params,
        data=request.data,
        json=request.json,
    )
