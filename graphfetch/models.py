"""Records produced by a fetch run."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from graphfetch.errors import FetchError, ParseError


def _read_only(values: dict) -> Mapping[str, Any]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True)
class MessageDetail:
    """A single message as returned by ``/me/messages/{id}``."""

    identifier: str
    subject: str
    fields: Mapping[str, Any] = field(default_factory=lambda: _read_only({}))

    @classmethod
    def from_json(cls, payload: Any) -> "MessageDetail":
        """Build from a decoded JSON body.

        ``subject`` may be missing or null (drafts); ``id`` may not.
        """
        if not isinstance(payload, dict):
            raise ParseError(f"expected a JSON object, got {type(payload).__name__}")

        identifier = payload.get("id")
        if not isinstance(identifier, str) or not identifier:
            raise ParseError("message body has no 'id'")

        subject = payload.get("subject") or ""
        extra = {k: v for k, v in payload.items() if k not in ("id", "subject")}
        return cls(identifier=identifier, subject=str(subject), fields=_read_only(extra))


@dataclass(frozen=True)
class UserProfile:
    """The signed-in user, from ``/me``."""

    display_name: str
    fields: Mapping[str, Any] = field(default_factory=lambda: _read_only({}))

    @classmethod
    def from_json(cls, payload: Any) -> "UserProfile":
        if not isinstance(payload, dict):
            raise ParseError(f"expected a JSON object, got {type(payload).__name__}")
        display_name = payload.get("displayName") or ""
        extra = {k: v for k, v in payload.items() if k != "displayName"}
        return cls(display_name=str(display_name), fields=_read_only(extra))


@dataclass(frozen=True)
class FetchOutcome:
    """Terminal outcome for one identifier: a detail or an error."""

    identifier: str
    detail: Optional[MessageDetail] = None
    error: Optional[FetchError] = None

    def __post_init__(self):
        if (self.detail is None) == (self.error is None):
            raise ValueError("exactly one of detail or error must be set")

    @property
    def ok(self) -> bool:
        return self.detail is not None


@dataclass
class FetchReport:
    """Outcomes of a fan-out run, in input order."""

    outcomes: list[FetchOutcome] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> list[FetchOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[FetchOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total": len(self.outcomes),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "failures": [
                {"identifier": o.identifier, "error": str(o.error)}
                for o in self.failed
            ],
        }
