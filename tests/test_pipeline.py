"""
Tests for the trust & verification pipeline.

Tests cover:
- Invalid events dropped before scoring
- Authors scored once per batch, trust attached in input order
- Web-of-trust membership by hop distance
- Degraded verification and oracle outages
- build_pipeline wiring from config
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import List

import pytest

from feedtrust.core.config import TrustPipelineConfig, reset_config
from feedtrust.events.crypto import generate_keypair, sign_event, valid_event_ids
from feedtrust.events.messages import VerifyResponse
from feedtrust.events.verifier import EventVerifier, VerifierState
from feedtrust.events.worker import ProcessVerificationWorker, VerificationWorker
from feedtrust.pipeline import ScoredEvent, TrustPipeline, build_pipeline
from feedtrust.trust.cache import InMemoryTrustCache, TTLTrustCache
from feedtrust.trust.models import UNREACHABLE, TrustData
from feedtrust.trust.oracle import HttpTrustOracle, OracleError
from feedtrust.trust.scorer import TrustScorer


# =============================================================================
# FAKES
# =============================================================================


class EchoWorker(VerificationWorker):
    """Verifies synchronously in-process and answers immediately."""

    def __init__(self):
        self.on_message = None
        self.posted: List[dict] = []

    def start(self, on_message, on_error):
        self.on_message = on_message

    def post(self, message):
        self.posted.append(message)
        response = VerifyResponse(
            request_id=message["request_id"],
            valid_ids=valid_event_ids(message["events"]),
        )
        self.on_message(response.to_dict())

    def terminate(self):
        pass


class TableOracle:
    """Answers distance lookups from a fixed table."""

    def __init__(self, records=None, error=None):
        self.records = records or {}
        self.error = error
        self.calls: List[List[str]] = []

    async def get_distance_batch(self, pubkeys, include_paths=True, include_scores=True):
        self.calls.append(list(pubkeys))
        if self.error is not None:
            raise self.error
        return {pk: self.records.get(pk) for pk in pubkeys}


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def alice():
    return generate_keypair()[0]


@pytest.fixture
def bob():
    return generate_keypair()[0]


@pytest.fixture
def carol():
    return generate_keypair()[0]


@pytest.fixture
def events(alice, bob, carol):
    return [
        sign_event(alice, kind=1, content="gm", created_at=1700000000),
        sign_event(bob, kind=1, content="hello", created_at=1700000001),
        sign_event(alice, kind=1, content="again", created_at=1700000002),
        sign_event(carol, kind=1, content="far away", created_at=1700000003),
    ]


@pytest.fixture
def oracle(events):
    alice_pk, bob_pk, _, carol_pk = (e.pubkey for e in events)
    return TableOracle(records={
        alice_pk: {"hops": 1, "score": 0.9, "paths": 7},
        bob_pk: {"hops": 2, "score": 0.8, "paths": 3},
        carol_pk: {"hops": 5, "score": 0.1, "paths": 1},
    })


@pytest.fixture
def pipeline(oracle):
    p = TrustPipeline(
        verifier=EventVerifier(worker_factory=EchoWorker),
        scorer=TrustScorer(oracle=oracle),
        max_hops=3,
    )
    p.start()
    yield p
    p.close()


# =============================================================================
# PROCESS TESTS
# =============================================================================


class TestProcess:
    """Tests for TrustPipeline.process."""

    @pytest.mark.asyncio
    async def test_scores_in_input_order(self, pipeline, events):
        scored = await pipeline.process(events)

        assert [s.event for s in scored] == events
        assert scored[1].trust == TrustData(score=0.8, distance=2, trusted=True, paths=3)

    @pytest.mark.asyncio
    async def test_invalid_event_dropped_before_scoring(self, pipeline, oracle, events):
        batch = list(events)
        batch[1] = replace(events[1], content="forged")

        scored = await pipeline.process(batch)

        assert [s.event for s in scored] == [events[0], events[2], events[3]]
        assert events[1].pubkey not in oracle.calls[0]

    @pytest.mark.asyncio
    async def test_authors_deduplicated(self, pipeline, oracle, events):
        await pipeline.process(events)

        assert len(oracle.calls) == 1
        assert len(oracle.calls[0]) == 3

    @pytest.mark.asyncio
    async def test_second_batch_uses_cache(self, pipeline, oracle, events):
        await pipeline.process(events[:2])
        await pipeline.process(events)

        assert oracle.calls[1] == [events[3].pubkey]

    @pytest.mark.asyncio
    async def test_web_of_trust_membership(self, pipeline, events):
        scored = await pipeline.process(events)

        assert [s.in_web_of_trust for s in scored] == [True, True, True, False]
        assert scored[3].trusted  # reachable, just too far

    @pytest.mark.asyncio
    async def test_unknown_author_unreachable(self):
        stranger = sign_event(generate_keypair()[0], kind=1, content="who?")
        pipeline = TrustPipeline(
            verifier=EventVerifier(worker_factory=EchoWorker),
            scorer=TrustScorer(oracle=TableOracle()),
        )
        pipeline.start()

        scored = await pipeline.process([stranger])
        pipeline.close()

        assert scored[0].trust == UNREACHABLE
        assert not scored[0].in_web_of_trust

    @pytest.mark.asyncio
    async def test_empty_batch(self, pipeline, oracle):
        assert await pipeline.process([]) == []
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_all_invalid_skips_scoring(self, pipeline, oracle, events):
        forged = [replace(e, sig="00" * 64) for e in events]

        assert await pipeline.process(forged) == []
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_degraded_verifier_passes_everything(self, oracle, events):
        pipeline = TrustPipeline(
            verifier=EventVerifier(worker_factory=None),
            scorer=TrustScorer(oracle=oracle),
        )
        pipeline.start()
        batch = list(events)
        batch[1] = replace(events[1], content="forged")

        scored = await pipeline.process(batch)

        assert pipeline.verifier.state is VerifierState.DEGRADED
        assert [s.event for s in scored] == batch

    @pytest.mark.asyncio
    async def test_oracle_outage_marks_authors_untrusted(self, events):
        pipeline = TrustPipeline(
            verifier=EventVerifier(worker_factory=EchoWorker),
            scorer=TrustScorer(oracle=TableOracle(error=OracleError("down"))),
        )
        pipeline.start()

        scored = await pipeline.process(events)
        pipeline.close()

        assert len(scored) == 4
        assert all(s.trust == UNREACHABLE for s in scored)
        assert not any(s.in_web_of_trust for s in scored)


# =============================================================================
# SCORED EVENT TESTS
# =============================================================================


class TestScoredEvent:
    """Tests for the ScoredEvent view."""

    def test_properties(self, events):
        trust = TrustData(score=0.8, distance=2, trusted=True, paths=3)
        scored = ScoredEvent(event=events[0], trust=trust, in_web_of_trust=True)

        assert scored.trust_score == 0.8
        assert scored.distance == 2
        assert scored.trusted is True
        assert scored.paths == 3

    def test_to_dict(self, events):
        scored = ScoredEvent(event=events[0], trust=UNREACHABLE)

        data = scored.to_dict()

        assert data["id"] == events[0].id
        assert data["pubkey"] == events[0].pubkey
        assert data["trust_score"] == 0
        assert data["distance"] is None
        assert data["trusted"] is False
        assert data["paths"] == 0
        assert data["in_web_of_trust"] is False


# =============================================================================
# BUILD TESTS
# =============================================================================


class TestBuildPipeline:
    """Tests for build_pipeline wiring."""

    def test_defaults_from_config(self):
        config = TrustPipelineConfig(max_hops=2, verify_timeout=5.0)

        pipeline = build_pipeline(config)

        assert pipeline.max_hops == 2
        assert pipeline.verifier.worker_factory is ProcessVerificationWorker
        assert pipeline.verifier.verify_timeout == 5.0
        assert isinstance(pipeline.scorer.oracle, HttpTrustOracle)
        assert pipeline.scorer.oracle.reference_pubkey == config.reference_pubkey
        assert isinstance(pipeline.scorer.cache, InMemoryTrustCache)

    def test_ttl_cache_selected(self):
        pipeline = build_pipeline(TrustPipelineConfig(trust_cache_ttl=120), oracle=TableOracle())

        assert isinstance(pipeline.scorer.cache, TTLTrustCache)
        assert pipeline.scorer.cache.ttl == 120

    def test_explicit_collaborators(self):
        oracle = TableOracle()
        cache = InMemoryTrustCache()

        pipeline = build_pipeline(TrustPipelineConfig(), oracle=oracle, cache=cache)

        assert pipeline.scorer.oracle is oracle
        assert pipeline.scorer.cache is cache

    def test_worker_disabled(self):
        pipeline = build_pipeline(TrustPipelineConfig(enable_worker=False), oracle=TableOracle())
        pipeline.start()

        assert pipeline.verifier.state is VerifierState.DEGRADED

    def test_uses_global_config(self, monkeypatch):
        monkeypatch.setenv("FEEDTRUST_MAX_HOPS", "1")
        reset_config()
        try:
            pipeline = build_pipeline(oracle=TableOracle())
        finally:
            reset_config()

        assert pipeline.max_hops == 1

    @pytest.mark.asyncio
    async def test_end_to_end_with_process_worker(self, events, oracle):
        pipeline = build_pipeline(
            TrustPipelineConfig(verify_timeout=30),
            oracle=oracle,
        )
        pipeline.start()
        try:
            batch = list(events)
            batch[0] = replace(events[0], sig="00" * 64)
            scored = await pipeline.process(batch)
        finally:
            pipeline.close()

        assert [s.event for s in scored] == events[1:]
        assert math.isfinite(scored[0].distance)
