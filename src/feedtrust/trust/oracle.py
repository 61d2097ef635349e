"""
Trust Oracle Client - Web-of-trust distance lookups.

The oracle computes graph distances from a fixed reference identity to any
pubkey. This module defines the contract the scorer consumes and an HTTP
client for the oracle's REST API.

Protocol:
- POST /distance/batch with {"from", "targets", "includePaths", "includeScores"}
- Receive {"results": [{"to", "hops", "score"?, "paths"?}, ...]}
- Targets missing from the results are unreachable
- GET /distance?from=&to= answers a single lookup (bare number, or an
  object carrying "distance" or "hops")

Resilience:
- Targets are sent in chunks of ``batch_size``
- A failed chunk is retried one pubkey at a time when individual fallback
  is enabled; lookups that still fail are left out of the result
- OracleError is raised only when nothing could be answered at all
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import aiohttp

from ..core import defaults
from ..core.config import TrustPipelineConfig

logger = logging.getLogger(__name__)

# pubkey -> {"hops": int, "score"?: float, "paths"?: int}, or None if unreachable
DistanceResults = Dict[str, Optional[Dict[str, Any]]]


# =============================================================================
# EXCEPTIONS
# =============================================================================


class OracleError(Exception):
    """Raised when the trust oracle cannot answer a request."""
    pass


# =============================================================================
# ORACLE PROTOCOL
# =============================================================================


@runtime_checkable
class TrustOracle(Protocol):
    """Protocol for batch trust-distance lookups from the reference identity."""

    async def get_distance_batch(
        self,
        pubkeys: Sequence[str],
        include_paths: bool = True,
        include_scores: bool = True,
    ) -> DistanceResults:
        """Look up distance records for ``pubkeys``.

        Raises:
            Exception: Any failure; callers treat it as "oracle unavailable"
        """
        ...


# =============================================================================
# HTTP ORACLE CLIENT
# =============================================================================


def _extract_record(data: Any) -> Optional[Dict[str, Any]]:
    """Pull a distance record out of a batch result or single lookup body."""
    if isinstance(data, bool):
        return None
    if isinstance(data, (int, float)):
        return {"hops": data}
    if not isinstance(data, dict):
        return None

    hops = data.get("hops", data.get("distance"))
    if not isinstance(hops, (int, float)) or isinstance(hops, bool):
        return None

    record: Dict[str, Any] = {"hops": hops}
    if "score" in data:
        record["score"] = data["score"]
    if "paths" in data:
        record["paths"] = data["paths"]
    return record


@dataclass
class HttpTrustOracle:
    """
    Client for the web-of-trust oracle REST API.

    Example:
        oracle = HttpTrustOracle(reference_pubkey=my_pubkey)
        results = await oracle.get_distance_batch([pk1, pk2])
        # results[pk1] -> {"hops": 2, "score": 0.8, "paths": 3} or None
    """

    reference_pubkey: str
    base_url: str = defaults.ORACLE_URL
    batch_size: int = defaults.ORACLE_BATCH_SIZE
    request_timeout: float = defaults.ORACLE_TIMEOUT
    individual_fallback: bool = defaults.ORACLE_INDIVIDUAL_FALLBACK

    # Statistics
    _stats: Dict[str, int] = field(default_factory=lambda: {
        "batch_requests": 0,
        "batch_failures": 0,
        "individual_requests": 0,
        "individual_failures": 0,
    })

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    @classmethod
    def from_config(cls, config: TrustPipelineConfig) -> "HttpTrustOracle":
        """Create a client from pipeline configuration."""
        return cls(
            reference_pubkey=config.reference_pubkey,
            base_url=config.oracle_url,
            batch_size=config.oracle_batch_size,
            request_timeout=config.oracle_timeout,
            individual_fallback=config.oracle_individual_fallback,
        )

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    async def get_distance_batch(
        self,
        pubkeys: Sequence[str],
        include_paths: bool = True,
        include_scores: bool = True,
    ) -> DistanceResults:
        """
        Look up distances from the reference identity to ``pubkeys``.

        Args:
            pubkeys: Target pubkeys (duplicates are queried once)
            include_paths: Ask the oracle for path counts
            include_scores: Ask the oracle for trust scores

        Returns:
            Mapping of pubkey to record, or None for unreachable pubkeys.
            Pubkeys whose lookup failed entirely are absent.

        Raises:
            OracleError: If no lookup could be answered
        """
        targets = list(dict.fromkeys(pubkeys))
        results: DistanceResults = {}
        if not targets:
            return results

        answered = 0
        last_error: Optional[Exception] = None

        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for start in range(0, len(targets), self.batch_size):
                chunk = targets[start:start + self.batch_size]
                try:
                    results.update(
                        await self._query_batch(session, chunk, include_paths, include_scores)
                    )
                    answered += len(chunk)
                    continue
                except OracleError as e:
                    self._stats["batch_failures"] += 1
                    last_error = e
                    if not self.individual_fallback:
                        raise
                    logger.warning(f"Oracle batch failed, trying individual lookups: {e}")

                for pubkey in chunk:
                    try:
                        results[pubkey] = await self._query_single(session, pubkey)
                        answered += 1
                    except OracleError as e:
                        self._stats["individual_failures"] += 1
                        last_error = e
                        logger.debug(f"Oracle lookup for {pubkey[:16]} failed: {e}")

        if answered == 0:
            raise OracleError(f"Trust oracle unavailable. Last error: {last_error}")
        return results

    def get_stats(self) -> Dict[str, int]:
        """Get oracle client statistics."""
        return dict(self._stats)

    # -------------------------------------------------------------------------
    # REQUESTS
    # -------------------------------------------------------------------------

    async def _query_batch(
        self,
        session: aiohttp.ClientSession,
        chunk: List[str],
        include_paths: bool,
        include_scores: bool,
    ) -> DistanceResults:
        """Query one chunk of targets through the batch endpoint."""
        self._stats["batch_requests"] += 1
        body = {
            "from": self.reference_pubkey,
            "targets": chunk,
            "includePaths": include_paths,
            "includeScores": include_scores,
        }
        data = await self._request(session, "POST", f"{self.base_url}/distance/batch", json=body)

        wanted = set(chunk)
        results: DistanceResults = {pk: None for pk in chunk}
        entries = data.get("results") if isinstance(data, dict) else None
        if isinstance(entries, list):
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                target = entry.get("to")
                if target in wanted:
                    results[target] = _extract_record(entry)
        return results

    async def _query_single(
        self,
        session: aiohttp.ClientSession,
        pubkey: str,
    ) -> Optional[Dict[str, Any]]:
        """Query one target through the single-distance endpoint."""
        self._stats["individual_requests"] += 1
        data = await self._request(
            session,
            "GET",
            f"{self.base_url}/distance",
            params={"from": self.reference_pubkey, "to": pubkey},
        )
        return _extract_record(data)

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Any:
        """Perform one request and decode the JSON body.

        Raises:
            OracleError: On transport errors, timeouts, non-200 or bad JSON
        """
        try:
            async with session.request(method, url, **kwargs) as resp:
                if resp.status != 200:
                    raise OracleError(f"Oracle returned HTTP {resp.status}: {await resp.text()}")
                return await resp.json()
        except aiohttp.ClientError as e:
            raise OracleError(f"Connection error: {e}") from e
        except asyncio.TimeoutError:
            raise OracleError("Request timeout")
        except ValueError as e:
            raise OracleError(f"Invalid JSON from oracle: {e}") from e
