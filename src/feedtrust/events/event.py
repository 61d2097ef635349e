"""Nostr event model and canonical serialization.

An event is content-addressed: its ``id`` is the SHA-256 of the NIP-01
serialization ``[0, pubkey, created_at, kind, tags, content]`` encoded as
compact UTF-8 JSON. The ``sig`` is a BIP-340 Schnorr signature over that id
by the x-only ``pubkey``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Sequence, Tuple

HEX_ID_LENGTH = 64
HEX_PUBKEY_LENGTH = 64
HEX_SIG_LENGTH = 128

_HEX_CHARS = frozenset("0123456789abcdef")


class EventFormatError(ValueError):
    """Raised when an event dict is structurally invalid."""
    pass


def _is_hex(value: Any, length: int) -> bool:
    return isinstance(value, str) and len(value) == length and set(value) <= _HEX_CHARS


def serialize_event(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Sequence[Sequence[str]],
    content: str,
) -> bytes:
    """Return the canonical NIP-01 byte serialization used for the event id."""
    payload = [0, pubkey, created_at, kind, [list(tag) for tag in tags], content]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Sequence[Sequence[str]],
    content: str,
) -> str:
    """Compute the hex event id for the given fields."""
    return hashlib.sha256(serialize_event(pubkey, created_at, kind, tags, content)).hexdigest()


@dataclass(frozen=True)
class Event:
    """A signed Nostr event as received from a relay.

    Instances are immutable. Construction does not check the id or the
    signature; that is the verifier's job.
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tuple[Tuple[str, ...], ...] = field(default_factory=tuple)
    content: str = ""
    sig: str = ""

    def __post_init__(self) -> None:
        # Normalize list-of-lists from JSON into hashable tuples
        object.__setattr__(self, "tags", tuple(tuple(tag) for tag in self.tags))

    def compute_id(self) -> str:
        """Recompute the canonical id from the signed fields."""
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def has_valid_id(self) -> bool:
        """Whether ``id`` matches the canonical hash of the other fields."""
        try:
            return self.compute_id() == self.id
        except (TypeError, ValueError):
            return False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire format."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Deserialize from the wire format.

        Raises:
            EventFormatError: If a field is missing or has the wrong shape
        """
        if not isinstance(data, dict):
            raise EventFormatError(f"Event must be an object, got {type(data).__name__}")

        event_id = data.get("id")
        pubkey = data.get("pubkey")
        sig = data.get("sig")
        created_at = data.get("created_at")
        kind = data.get("kind")
        tags = data.get("tags", [])
        content = data.get("content", "")

        if not _is_hex(event_id, HEX_ID_LENGTH):
            raise EventFormatError("id must be 64 lowercase hex characters")
        if not _is_hex(pubkey, HEX_PUBKEY_LENGTH):
            raise EventFormatError("pubkey must be 64 lowercase hex characters")
        if not _is_hex(sig, HEX_SIG_LENGTH):
            raise EventFormatError("sig must be 128 lowercase hex characters")
        if not isinstance(created_at, int) or isinstance(created_at, bool) or created_at < 0:
            raise EventFormatError("created_at must be a non-negative integer")
        if not isinstance(kind, int) or isinstance(kind, bool) or kind < 0:
            raise EventFormatError("kind must be a non-negative integer")
        if not isinstance(content, str):
            raise EventFormatError("content must be a string")
        if not isinstance(tags, list) or not all(
            isinstance(tag, list) and all(isinstance(item, str) for item in tag)
            for tag in tags
        ):
            raise EventFormatError("tags must be a list of string lists")

        return cls(
            id=event_id,
            pubkey=pubkey,
            created_at=created_at,
            kind=kind,
            tags=tags,
            content=content,
            sig=sig,
        )
