"""
Schnorr signatures for Nostr events.

Provides:
- BIP-340 Schnorr verification over secp256k1 (x-only pubkeys)
- Event signing and keypair generation for publishers and tests

All helpers operate on hex strings, matching the event wire format.
"""

from __future__ import annotations

import time
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from coincurve import PrivateKey, PublicKeyXOnly

from .event import Event, compute_event_id


def generate_keypair() -> Tuple[str, str]:
    """Generate a secp256k1 keypair.

    Returns:
        (secret_key_hex, xonly_pubkey_hex)
    """
    private_key = PrivateKey()
    return private_key.secret.hex(), private_key.public_key_xonly.format().hex()


def pubkey_from_secret(secret_key_hex: str) -> str:
    """Derive the x-only pubkey (hex) for a secret key."""
    return PrivateKey(bytes.fromhex(secret_key_hex)).public_key_xonly.format().hex()


def verify_signature(event_id_hex: str, signature_hex: str, pubkey_hex: str) -> bool:
    """Verify a Schnorr signature over an event id.

    Never raises: malformed hex, off-curve keys and wrong lengths all count
    as an invalid signature.
    """
    try:
        message = bytes.fromhex(event_id_hex)
        signature = bytes.fromhex(signature_hex)
        pubkey = PublicKeyXOnly(bytes.fromhex(pubkey_hex))
        if len(message) != 32:
            return False
        return pubkey.verify(signature, message)
    except Exception:
        return False


def verify_event(event: Event) -> bool:
    """Check that an event's id is canonical and its signature is valid."""
    if not event.has_valid_id():
        return False
    return verify_signature(event.id, event.sig, event.pubkey)


def valid_event_ids(events: Iterable[dict]) -> List[str]:
    """Return the ids of the valid events in a batch of wire dicts.

    Each event is checked on its own; a malformed event is skipped without
    affecting the rest of the batch. An id is reported only if every copy
    of it in the batch is identical and valid, so a forged copy that reuses
    a genuine id rejects that id outright.
    """
    accepted: Dict[str, Event] = {}
    rejected: Set[str] = set()
    for data in events:
        try:
            event = Event.from_dict(data)
        except Exception:
            event_id = data.get("id") if isinstance(data, Mapping) else None
            if isinstance(event_id, str):
                rejected.add(event_id.lower())
            continue
        if event.id in rejected:
            continue
        previous = accepted.get(event.id)
        if previous is None:
            if verify_event(event):
                accepted[event.id] = event
            else:
                rejected.add(event.id)
        elif previous != event:
            rejected.add(event.id)
    return [event_id for event_id in accepted if event_id not in rejected]


def sign_event(
    secret_key_hex: str,
    kind: int,
    content: str,
    tags: Optional[Sequence[Sequence[str]]] = None,
    created_at: Optional[int] = None,
) -> Event:
    """Build and sign an event.

    Args:
        secret_key_hex: Author's secret key
        kind: Event kind
        content: Event content
        tags: Optional tag list
        created_at: Unix seconds (default: now)

    Returns:
        The signed Event
    """
    private_key = PrivateKey(bytes.fromhex(secret_key_hex))
    pubkey = private_key.public_key_xonly.format().hex()
    tags = [list(tag) for tag in (tags or [])]
    if created_at is None:
        created_at = int(time.time())

    event_id = compute_event_id(pubkey, created_at, kind, tags, content)
    signature = private_key.sign_schnorr(bytes.fromhex(event_id))

    return Event(
        id=event_id,
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tags,
        content=content,
        sig=signature.hex(),
    )
