"""Pytest configuration and fixtures."""

import json
import threading
import time
from http import HTTPStatus
from typing import Callable, Optional, Union

import pytest
import requests

from graphfetch.auth.credentials import AccessToken, CredentialProvider
from graphfetch.clients.base import GraphClient
from graphfetch.clients.transport import BearerAuthTransport, HttpTransport

BASE_URL = "https://graph.test/v1.0"


def make_response(
    status_code: int = 200,
    body: Union[dict, list, str, None] = None,
    headers: Optional[dict] = None,
) -> requests.Response:
    """Build a requests.Response without a network."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = HTTPStatus(status_code).phrase
    response.encoding = "utf-8"
    if body is None:
        response._content = b""
    elif isinstance(body, str):
        response._content = body.encode("utf-8")
    else:
        response._content = json.dumps(body).encode("utf-8")
    response.headers.update(headers or {})
    return response


Route = Union[list, Callable[[requests.Request], requests.Response]]


class FakeTransport(HttpTransport):
    """In-memory transport keyed by endpoint path relative to BASE_URL.

    A list route is consumed one response per request (the last one
    repeats); a callable route is called with the request.
    """

    def __init__(self, routes: Optional[dict] = None, latency: float = 0):
        self.routes: dict[str, Route] = dict(routes or {})
        self.latency = latency
        self.sent: list[tuple[float, requests.Request]] = []
        self.closed = False
        self._lock = threading.Lock()

    def send(self, request: requests.Request) -> requests.Response:
        endpoint = request.url[len(BASE_URL) + 1:]
        with self._lock:
            self.sent.append((time.monotonic(), request))
            route = self.routes.get(endpoint)
            if route is None:
                return make_response(404, {"error": {"code": "ErrorItemNotFound", "message": "Not found"}})
            if isinstance(route, list):
                response = route.pop(0) if len(route) > 1 else route[0]
            else:
                response = None

        if self.latency:
            time.sleep(self.latency)
        if response is None:
            response = route(request)
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, endpoint: str) -> list[tuple[float, requests.Request]]:
        url = f"{BASE_URL}/{endpoint}"
        with self._lock:
            return [(t, r) for t, r in self.sent if r.url == url]

    def close(self) -> None:
        self.closed = True


class StubCredentialProvider(CredentialProvider):
    """Issues numbered tokens and counts acquisitions."""

    def __init__(self, lifetime: float = 3600, token_expiry_buffer: int = 60):
        super().__init__(token_expiry_buffer=token_expiry_buffer)
        self.lifetime = lifetime
        self.acquisitions = 0

    def _acquire(self, scopes: list[str]) -> AccessToken:
        self.acquisitions += 1
        return AccessToken(
            token=f"token-{self.acquisitions}",
            expires_at=time.time() + self.lifetime,
        )


class RecordingEvent:
    """Stands in for threading.Event; records waits instead of sleeping."""

    def __init__(self, cancel_after_waits: Optional[int] = None):
        self.waits: list[float] = []
        self.cancel_after_waits = cancel_after_waits
        self._set = False

    def is_set(self) -> bool:
        return self._set

    def set(self) -> None:
        self._set = True

    def wait(self, timeout: Optional[float] = None) -> bool:
        self.waits.append(timeout)
        if self.cancel_after_waits is not None and len(self.waits) >= self.cancel_after_waits:
            self._set = True
        return self._set


def message_body(identifier: str, subject: str = "Hello", **extra) -> dict:
    return {"id": identifier, "subject": subject, **extra}


@pytest.fixture
def transport():
    """Empty fake transport; tests add routes."""
    return FakeTransport()


@pytest.fixture
def credential_provider():
    return StubCredentialProvider()


@pytest.fixture
def client(transport, credential_provider):
    """Graph client over the fake transport with bearer auth."""
    return GraphClient(
        BearerAuthTransport(transport, credential_provider),
        base_url=BASE_URL,
    )


@pytest.fixture
def recording_event():
    return RecordingEvent()
