"""Trust result caches.

The scorer only talks to the ``TrustCache`` protocol, so the cache policy
can change without touching callers:

- InMemoryTrustCache: unbounded, entries live for the process lifetime.
  Trust data rarely changes within a session.
- TTLTrustCache: entries expire after a fixed age, for long-running
  services that must pick up graph changes eventually.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, runtime_checkable

from ..core import defaults
from .models import TrustData


# =============================================================================
# TRUST CACHE PROTOCOL
# =============================================================================


@runtime_checkable
class TrustCache(Protocol):
    """Protocol for pubkey -> TrustData storage."""

    def get(self, pubkey: str) -> TrustData | None:
        """Get cached trust for a pubkey, or None."""
        ...

    def set(self, pubkey: str, data: TrustData) -> None:
        """Store trust for a pubkey, replacing any previous entry."""
        ...

    def __contains__(self, pubkey: object) -> bool:
        ...

    def __len__(self) -> int:
        ...

    def clear(self) -> None:
        """Remove every entry."""
        ...


# =============================================================================
# IMPLEMENTATIONS
# =============================================================================


class InMemoryTrustCache:
    """Unbounded in-memory cache. Entries are never evicted."""

    def __init__(self) -> None:
        self._entries: dict[str, TrustData] = {}

    def get(self, pubkey: str) -> TrustData | None:
        return self._entries.get(pubkey)

    def set(self, pubkey: str, data: TrustData) -> None:
        self._entries[pubkey] = data

    def __contains__(self, pubkey: object) -> bool:
        return pubkey in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class TTLTrustCache:
    """Cache whose entries expire ``ttl`` seconds after they were stored.

    Expired entries behave as absent and are dropped lazily on access, or
    all at once by ``purge_expired()``.
    """

    def __init__(
        self,
        ttl: float = defaults.TRUST_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[TrustData, float]] = {}

    def _fresh(self, pubkey: object) -> TrustData | None:
        entry = self._entries.get(pubkey)  # type: ignore[arg-type]
        if entry is None:
            return None
        data, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[pubkey]  # type: ignore[arg-type]
            return None
        return data

    def get(self, pubkey: str) -> TrustData | None:
        return self._fresh(pubkey)

    def set(self, pubkey: str, data: TrustData) -> None:
        self._entries[pubkey] = (data, self._clock())

    def __contains__(self, pubkey: object) -> bool:
        return self._fresh(pubkey) is not None

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [pk for pk, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl]
        for pk in expired:
            del self._entries[pk]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
