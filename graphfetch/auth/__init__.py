"""Authentication for Microsoft Graph access.

Supports:
- Cached bearer tokens with transparent refresh
- MSAL public-client sign-in (silent, interactive, device code)
"""

from .credentials import (
    AccessToken,
    CredentialProvider,
    MsalCredentialProvider,
    GRAPH_DEFAULT_SCOPES,
)

__all__ = [
    "AccessToken",
    "CredentialProvider",
    "MsalCredentialProvider",
    "GRAPH_DEFAULT_SCOPES",
]
