"""Trust & verification pipeline.

Sequences the two services over a batch of relay events:

    raw events -> EventVerifier.verify_batch -> valid events
               -> TrustScorer.score_batch(authors) -> ScoredEvent per event

Events that fail verification are dropped; every surviving event is
annotated with its author's trust and handed on in input order. Ranking and
filtering by trust belong to the consumer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .core import defaults
from .core.config import TrustPipelineConfig, get_config
from .events.event import Event
from .events.verifier import EventVerifier
from .events.worker import ProcessVerificationWorker
from .trust.cache import InMemoryTrustCache, TrustCache, TTLTrustCache
from .trust.models import UNREACHABLE, TrustData
from .trust.oracle import HttpTrustOracle, TrustOracle
from .trust.scorer import TrustScorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredEvent:
    """A verified event annotated with its author's trust."""

    event: Event
    trust: TrustData
    in_web_of_trust: bool = False

    @property
    def trust_score(self) -> float:
        return self.trust.score

    @property
    def distance(self) -> float:
        return self.trust.distance

    @property
    def trusted(self) -> bool:
        return self.trust.trusted

    @property
    def paths(self) -> int:
        return self.trust.paths

    def to_dict(self) -> dict[str, Any]:
        """Event wire fields plus the trust annotations."""
        data = self.event.to_dict()
        trust = self.trust.to_dict()
        data.update({
            "trust_score": trust["score"],
            "distance": trust["distance"],
            "trusted": trust["trusted"],
            "paths": trust["paths"],
            "in_web_of_trust": self.in_web_of_trust,
        })
        return data


class TrustPipeline:
    """Verification followed by trust scoring for event batches.

    Example:
        pipeline = build_pipeline()
        pipeline.start()
        scored = await pipeline.process(events)
        pipeline.close()
    """

    def __init__(
        self,
        verifier: EventVerifier,
        scorer: TrustScorer,
        max_hops: int = defaults.MAX_HOPS,
    ) -> None:
        self.verifier = verifier
        self.scorer = scorer
        self.max_hops = max_hops

    def start(self) -> None:
        """Start the verification worker (or fall back to degraded mode)."""
        self.verifier.init()

    def close(self) -> None:
        """Stop the verification worker. The trust cache is kept."""
        self.verifier.destroy()

    async def process(self, events: Iterable[Event]) -> List[ScoredEvent]:
        """
        Verify a batch and annotate the surviving events with author trust.

        Args:
            events: Raw events from the relay layer

        Returns:
            ScoredEvent for every valid event, in input order
        """
        events = list(events)
        if not events:
            return []

        valid = await self.verifier.verify_batch(events)
        if len(valid) < len(events):
            logger.debug(f"Dropped {len(events) - len(valid)} events with invalid signatures")
        if not valid:
            return []

        await self.scorer.score_batch(event.pubkey for event in valid)

        scored: List[ScoredEvent] = []
        for event in valid:
            trust = self.scorer.get(event.pubkey) or UNREACHABLE
            scored.append(ScoredEvent(
                event=event,
                trust=trust,
                in_web_of_trust=trust.within(self.max_hops),
            ))
        return scored


def build_pipeline(
    config: Optional[TrustPipelineConfig] = None,
    oracle: Optional[TrustOracle] = None,
    cache: Optional[TrustCache] = None,
) -> TrustPipeline:
    """Construct the long-lived pipeline for this process.

    Args:
        config: Settings; defaults to ``get_config()``
        oracle: Trust oracle; defaults to an HttpTrustOracle from config
        cache: Trust cache; defaults to a TTL cache if ``trust_cache_ttl``
            is configured, otherwise an unbounded in-memory cache
    """
    config = config or get_config()

    if oracle is None:
        oracle = HttpTrustOracle.from_config(config)
    if cache is None:
        if config.trust_cache_ttl is not None:
            cache = TTLTrustCache(ttl=config.trust_cache_ttl)
        else:
            cache = InMemoryTrustCache()

    verifier = EventVerifier(
        worker_factory=ProcessVerificationWorker if config.enable_worker else None,
        verify_timeout=config.verify_timeout,
    )
    scorer = TrustScorer(oracle=oracle, cache=cache)

    logger.info(
        f"Built trust pipeline anchored at {config.reference_pubkey[:16]}... "
        f"(worker={'on' if config.enable_worker else 'off'})"
    )
    return TrustPipeline(verifier=verifier, scorer=scorer, max_hops=config.max_hops)
