"""Mailbox listing and profile lookup."""

import logging

from graphfetch.clients.base import GraphClient
from graphfetch.errors import ParseError, TransportError
from graphfetch.models import UserProfile

logger = logging.getLogger(__name__)

MESSAGES_ENDPOINT = "me/messages"
PROFILE_ENDPOINT = "me"


def get_profile(client: GraphClient) -> UserProfile:
    """Fetch the signed-in user's profile.

    Raises:
        TransportError: On network failure or non-2xx status
        ParseError: If the body is not a JSON object
    """
    response = client.get(PROFILE_ENDPOINT)
    if not response.ok:
        raise TransportError(
            f"profile request failed with HTTP {response.status_code}",
            status_code=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError as e:
        raise ParseError(f"profile body is not JSON: {e}") from e
    return UserProfile.from_json(payload)


class MessageLister:
    """Lists message ids from the first page of ``/me/messages``.

    Only the first page is read. A response that advertises more pages is
    logged but not followed.
    """

    DEFAULT_PAGE_SIZE = 100
    MAX_PAGE_SIZE = 1000

    def __init__(self, client: GraphClient):
        self.client = client

    def list_identifiers(self, page_size: int = DEFAULT_PAGE_SIZE) -> list[str]:
        """Return message ids in server order.

        An empty or undecodable body, or one without a ``value`` array, is
        read as "no messages".

        Raises:
            ValueError: If page_size is out of range
            TransportError: On network failure or non-2xx status
            ParseError: If ``value`` is not a list of objects with string ids
        """
        if not 1 <= page_size <= self.MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {self.MAX_PAGE_SIZE}")

        params = {"$select": "id", "$top": page_size}
        response = self.client.get(MESSAGES_ENDPOINT, params=params)

        if not response.ok:
            raise TransportError(
                f"message list request failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Message list body is empty or not JSON, treating as no messages")
            return []

        if not isinstance(payload, dict) or "value" not in payload:
            logger.warning("Message list body has no 'value' array, treating as no messages")
            return []

        items = payload["value"]
        if not isinstance(items, list):
            raise ParseError("message list 'value' is not an array")

        identifiers = []
        for index, item in enumerate(items):
            identifier = item.get("id") if isinstance(item, dict) else None
            if not isinstance(identifier, str) or not identifier:
                raise ParseError(f"message list entry {index} has no 'id'")
            identifiers.append(identifier)

        if payload.get("@odata.nextLink"):
            logger.info(
                "More messages available beyond the first page",
                extra={"page_size": page_size, "listed": len(identifiers)}
            )

        logger.info(
            f"Listed {len(identifiers)} messages",
            extra={"record_count": len(identifiers)}
        )
        return identifiers
