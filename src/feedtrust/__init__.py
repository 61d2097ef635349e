"""feedtrust - Trust & verification pipeline for Nostr feeds.

feedtrust provides:
- Signature verification of relay events in a parallel worker process
- Web-of-trust scoring of event authors through a cached trust oracle
- A pipeline that combines both before events reach a ranked feed

Verification fails open (no worker: events pass unverified); scoring fails
closed to "unreachable" (no oracle: authors are untrusted).
"""

__version__ = "1.0.0"

from .core.config import ConfigError, TrustPipelineConfig, get_config
from .events import Event, EventVerifier, VerifierState
from .pipeline import ScoredEvent, TrustPipeline, build_pipeline
from .trust import UNREACHABLE, HttpTrustOracle, TrustData, TrustScorer

__all__ = [
    "ConfigError",
    "Event",
    "EventVerifier",
    "HttpTrustOracle",
    "ScoredEvent",
    "TrustData",
    "TrustPipeline",
    "TrustPipelineConfig",
    "TrustScorer",
    "UNREACHABLE",
    "VerifierState",
    "build_pipeline",
    "get_config",
]
