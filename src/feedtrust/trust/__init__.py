"""Web-of-trust scoring for event authors.

Trust is measured from a fixed reference identity by an external oracle:
- distance: hops through the follow graph (``math.inf`` if unreachable)
- score: the oracle's trust score
- paths: number of distinct trust paths

Results are cached per pubkey; the cache policy is pluggable.
"""

from __future__ import annotations

# Trust values
from .models import UNREACHABLE, TrustData

# Caches
from .cache import InMemoryTrustCache, TrustCache, TTLTrustCache

# Oracle contract and HTTP client
from .oracle import DistanceResults, HttpTrustOracle, OracleError, TrustOracle

# Scoring service
from .scorer import TrustScorer

__all__ = [
    # Models
    "TrustData",
    "UNREACHABLE",
    # Caches
    "TrustCache",
    "InMemoryTrustCache",
    "TTLTrustCache",
    # Oracle
    "DistanceResults",
    "TrustOracle",
    "HttpTrustOracle",
    "OracleError",
    # Scorer
    "TrustScorer",
]
