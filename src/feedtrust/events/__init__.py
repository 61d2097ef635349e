"""Nostr events and their signature verification.

This package provides:
- Event: immutable wire-format event with canonical id computation
- Schnorr (BIP-340) signing and verification helpers
- EventVerifier: batched verification in a parallel worker process
"""

from .crypto import (
    generate_keypair,
    pubkey_from_secret,
    sign_event,
    valid_event_ids,
    verify_event,
    verify_signature,
)
from .event import (
    Event,
    EventFormatError,
    compute_event_id,
    serialize_event,
)
from .messages import VerifyRequest, VerifyResponse
from .verifier import (
    EventVerifier,
    PendingVerification,
    VerificationTimeoutError,
    VerifierError,
    VerifierState,
)
from .worker import (
    ProcessVerificationWorker,
    VerificationWorker,
    WorkerCrashedError,
    WorkerError,
    WorkerStartError,
    worker_main,
)

__all__ = [
    # Event model
    "Event",
    "EventFormatError",
    "compute_event_id",
    "serialize_event",
    # Crypto
    "generate_keypair",
    "pubkey_from_secret",
    "sign_event",
    "valid_event_ids",
    "verify_event",
    "verify_signature",
    # Worker protocol
    "VerifyRequest",
    "VerifyResponse",
    # Verifier
    "EventVerifier",
    "PendingVerification",
    "VerificationTimeoutError",
    "VerifierError",
    "VerifierState",
    # Workers
    "ProcessVerificationWorker",
    "VerificationWorker",
    "WorkerCrashedError",
    "WorkerError",
    "WorkerStartError",
    "worker_main",
]
