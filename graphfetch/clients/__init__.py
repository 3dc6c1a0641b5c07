"""Microsoft Graph client pieces.

Includes:
- Composable HTTP transports (pooled session, bearer auth decorator)
- Request metrics
- Message listing and profile lookup
- Throttle-aware message detail fetching
"""

from .transport import HttpTransport, SessionTransport, BearerAuthTransport
from .base import GraphClient, RequestMetrics, GRAPH_BASE_URL
from .messages import MessageLister, get_profile
from .retrying import RetryingDetailFetcher, FetchAttempt, FetchState, parse_retry_after

__all__ = [
    "HttpTransport",
    "SessionTransport",
    "BearerAuthTransport",
    "GraphClient",
    "RequestMetrics",
    "GRAPH_BASE_URL",
    "MessageLister",
    "get_profile",
    "RetryingDetailFetcher",
    "FetchAttempt",
    "FetchState",
    "parse_retry_after",
]
