"""Bearer token acquisition with in-process caching."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import msal

from graphfetch.errors import AuthError

logger = logging.getLogger(__name__)

GRAPH_DEFAULT_SCOPES = ("https://graph.microsoft.com/.default",)
AUTHORITY_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}"


@dataclass(frozen=True)
class AccessToken:
    """Bearer token information."""

    token: str
    expires_at: float
    token_type: str = "Bearer"


class CredentialProvider(ABC):
    """Caches one token per scope set and re-acquires it when expired.

    Safe to share between worker threads: acquisition happens under a lock,
    so concurrent callers never trigger duplicate token requests.
    """

    def __init__(self, token_expiry_buffer: int = 60):
        """Initialize credential provider.

        Args:
            token_expiry_buffer: Seconds before expiry to treat a token as stale
        """
        self.token_expiry_buffer = token_expiry_buffer
        self._tokens: dict[tuple[str, ...], AccessToken] = {}
        self._lock = threading.Lock()

    def acquire_token(self, scopes: Sequence[str] = GRAPH_DEFAULT_SCOPES) -> AccessToken:
        """Get a valid access token, acquiring a new one if necessary."""
        key = tuple(scopes)
        with self._lock:
            cached = self._tokens.get(key)
            if cached is not None and not self._is_token_expired(cached):
                return cached

            logger.info("Acquiring access token", extra={"scopes": list(key)})
            token = self._acquire(list(key))
            self._tokens[key] = token

            logger.info(
                "Token obtained successfully",
                extra={
                    "token_type": token.token_type,
                    "expires_in": round(token.expires_at - time.time()),
                }
            )
            return token

    def invalidate(self, scopes: Optional[Sequence[str]] = None) -> None:
        """Drop the cached token for ``scopes``, or every cached token."""
        with self._lock:
            if scopes is None:
                self._tokens.clear()
            else:
                self._tokens.pop(tuple(scopes), None)

    def get_auth_header(self, scopes: Sequence[str] = GRAPH_DEFAULT_SCOPES) -> dict:
        """Get authorization header dict for requests."""
        token = self.acquire_token(scopes)
        return {"Authorization": f"{token.token_type} {token.token}"}

    def _is_token_expired(self, token: AccessToken) -> bool:
        """Check if a token is expired or about to expire."""
        return time.time() >= (token.expires_at - self.token_expiry_buffer)

    @abstractmethod
    def _acquire(self, scopes: list[str]) -> AccessToken:
        """Obtain a fresh token. Raise AuthError on failure."""
        pass


class MsalCredentialProvider(CredentialProvider):
    """Public-client credential provider backed by MSAL.

    Tries silent acquisition for a cached account first and falls back to
    the interactive browser flow, or the device code flow when requested.
    """

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        use_device_flow: bool = False,
        prompt: Callable[[str], None] = print,
        token_expiry_buffer: int = 60,
        app: Optional[msal.PublicClientApplication] = None,
    ):
        """Initialize MSAL credential provider.

        Args:
            client_id: Application (client) ID of the app registration
            tenant_id: Directory (tenant) ID
            use_device_flow: Use the device code flow instead of a browser
            prompt: Where to show the device code instructions
            token_expiry_buffer: Seconds before expiry to trigger refresh
            app: Pre-built MSAL application (mainly for tests)
        """
        super().__init__(token_expiry_buffer=token_expiry_buffer)
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.use_device_flow = use_device_flow
        self.prompt = prompt
        self.app = app or msal.PublicClientApplication(
            client_id,
            authority=AUTHORITY_TEMPLATE.format(tenant_id=tenant_id),
        )

    def _acquire(self, scopes: list[str]) -> AccessToken:
        result = self._acquire_silent(scopes)
        if result is None:
            logger.info("No cached account token, starting interactive sign-in")
            result = self._acquire_interactive(scopes)
        return self._to_access_token(result)

    def _acquire_silent(self, scopes: list[str]) -> Optional[dict]:
        accounts = self.app.get_accounts()
        if not accounts:
            return None

        result = self.app.acquire_token_silent(scopes, account=accounts[0])
        if result and "access_token" in result:
            logger.debug("Token acquired silently")
            return result
        return None

    def _acquire_interactive(self, scopes: list[str]) -> dict:
        if not self.use_device_flow:
            return self.app.acquire_token_interactive(scopes=scopes)

        flow = self.app.initiate_device_flow(scopes=scopes)
        if "user_code" not in flow:
            raise AuthError(
                f"Could not start device flow: {flow.get('error_description', flow)}",
                error_code=flow.get("error"),
            )
        self.prompt(flow["message"])
        return self.app.acquire_token_by_device_flow(flow)

    @staticmethod
    def _to_access_token(result: Optional[dict]) -> AccessToken:
        if not result or "access_token" not in result:
            result = result or {}
            raise AuthError(
                f"Token acquisition failed: "
                f"{result.get('error_description') or result.get('error') or 'no token returned'}",
                error_code=result.get("error"),
            )

        return AccessToken(
            token=result["access_token"],
            expires_at=time.time() + int(result.get("expires_in", 3600)),
            token_type=result.get("token_type", "Bearer"),
        )
