"""
Trust Scorer - Cached, batched web-of-trust scoring.

Callers ask for the trust of event authors; the scorer answers from its
cache and sends only never-seen pubkeys to the oracle, one batch per call.

Invariants:
- A pubkey present in the cache is never sent to the oracle again
- After ``score_batch`` returns, every requested pubkey has a cache entry,
  whether the oracle answered, omitted it, or failed outright
- Oracle failures degrade to UNREACHABLE (fail closed to "unknown"), they
  are never raised to the caller

Two overlapping ``score_batch`` calls that start before either finishes may
both query the oracle for the same pubkey. The later answer wins; both
answers describe the same graph, so the cache stays consistent.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional

from .cache import InMemoryTrustCache, TrustCache
from .models import UNREACHABLE, TrustData
from .oracle import TrustOracle

logger = logging.getLogger(__name__)


class TrustScorer:
    """Scores pubkeys against the reference identity through a trust oracle.

    Example:
        scorer = TrustScorer(oracle=HttpTrustOracle(reference_pubkey=me))
        await scorer.score_batch(authors)
        trust = scorer.get(author)          # cached lookup, no I/O
        trust = await scorer.score_single(pk)
    """

    def __init__(
        self,
        oracle: TrustOracle,
        cache: Optional[TrustCache] = None,
    ) -> None:
        """Initialize the scorer.

        Args:
            oracle: Batch distance oracle anchored at the reference identity
            cache: Trust cache; defaults to an unbounded in-memory cache
        """
        self.oracle = oracle
        self.cache: TrustCache = cache if cache is not None else InMemoryTrustCache()
        self._stats: Dict[str, int] = {
            "cache_hits": 0,
            "oracle_calls": 0,
            "oracle_failures": 0,
            "pubkeys_queried": 0,
            "pubkeys_unreachable": 0,
        }

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    def get(self, pubkey: str) -> Optional[TrustData]:
        """Return cached trust for ``pubkey`` without querying the oracle."""
        return self.cache.get(pubkey)

    async def score_single(self, pubkey: str) -> TrustData:
        """Return trust for one pubkey, querying the oracle only on a cache miss."""
        cached = self.cache.get(pubkey)
        if cached is not None:
            self._stats["cache_hits"] += 1
            return cached

        await self.score_batch([pubkey])
        return self.cache.get(pubkey) or UNREACHABLE

    async def score_batch(self, pubkeys: Iterable[str]) -> None:
        """
        Make sure every pubkey in ``pubkeys`` has a cache entry.

        Only pubkeys absent from the cache are sent to the oracle, in a
        single request. Returns immediately if all are cached.
        """
        requested = list(dict.fromkeys(pubkeys))
        uncached = [pk for pk in requested if pk not in self.cache]
        self._stats["cache_hits"] += len(requested) - len(uncached)
        if not uncached:
            return

        self._stats["oracle_calls"] += 1
        self._stats["pubkeys_queried"] += len(uncached)
        logger.debug(f"Scoring {len(uncached)} uncached pubkeys ({len(requested)} requested)")

        try:
            results = await self.oracle.get_distance_batch(
                uncached,
                include_paths=True,
                include_scores=True,
            )
        except Exception as e:
            self._stats["oracle_failures"] += 1
            logger.warning(
                f"Trust oracle failed for {len(uncached)} pubkeys, marking them unreachable: {e}"
            )
            for pk in uncached:
                if pk not in self.cache:
                    self.cache.set(pk, UNREACHABLE)
                    self._stats["pubkeys_unreachable"] += 1
            return

        if not isinstance(results, Mapping):
            results = {}
        for pk in uncached:
            data = TrustData.from_oracle_record(results.get(pk))
            if not data.trusted:
                self._stats["pubkeys_unreachable"] += 1
            self.cache.set(pk, data)

    def clear_cache(self) -> None:
        """Forget every cached result."""
        self.cache.clear()

    def get_stats(self) -> Dict[str, int]:
        """Get scorer statistics."""
        stats = dict(self._stats)
        stats["cached"] = len(self.cache)
        return stats
