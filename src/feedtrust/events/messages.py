"""
Message formats for the signature verification worker.

VerifyRequest: Batch of wire-format events sent to the worker
VerifyResponse: Ids the worker judged valid, correlated by request_id

Both travel as plain dicts so they can cross a process boundary.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from .event import Event


# =============================================================================
# VERIFICATION MESSAGES
# =============================================================================


@dataclass
class VerifyRequest:
    """
    Batch verification request.

    Attributes:
        request_id: Correlation id, unique per verifier instance
        events: Wire-format event dicts
    """
    request_id: int
    events: List[dict] = field(default_factory=list)

    @classmethod
    def for_events(cls, request_id: int, events: Sequence[Event]) -> "VerifyRequest":
        """Build a request carrying only the signed fields of each event."""
        return cls(request_id=request_id, events=[e.to_dict() for e in events])

    def to_dict(self) -> dict:
        """Serialize to dict for transmission."""
        return {
            "request_id": self.request_id,
            "events": self.events,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VerifyRequest":
        """Deserialize from dict."""
        return cls(
            request_id=int(data["request_id"]),
            events=list(data.get("events", [])),
        )


@dataclass
class VerifyResponse:
    """
    Batch verification result.

    Ids missing from ``valid_ids`` are invalid or malformed.
    """
    request_id: int
    valid_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to dict for transmission."""
        return {
            "request_id": self.request_id,
            "valid_ids": self.valid_ids,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VerifyResponse":
        """Deserialize from dict.

        Raises:
            KeyError, TypeError, ValueError: If the message is malformed
        """
        return cls(
            request_id=int(data["request_id"]),
            valid_ids=[str(i) for i in data.get("valid_ids", [])],
        )
