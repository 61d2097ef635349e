"""Centralized configurable defaults for feedtrust.

All tunable parameters in one place. ``core.config`` reads the
``FEEDTRUST_*`` environment overrides on top of these.
"""

from __future__ import annotations

# Trust anchor: the identity every distance is measured from
REFERENCE_PUBKEY = "d9590d95a7811e1cb312be66edd664d7e3e6ed57822ad9f213ed620fc6748be8"

# Trust oracle
ORACLE_URL = "https://wot-oracle.mappingbitcoin.com"
ORACLE_BATCH_SIZE = 50  # Oracle handles 50 targets per batch
ORACLE_TIMEOUT = 10.0  # seconds
ORACLE_INDIVIDUAL_FALLBACK = True

# Web-of-trust membership
MAX_HOPS = 3

# Server-side trust cache lifetime when a TTL cache is selected
TRUST_CACHE_TTL = 30 * 60.0  # 30 minutes

# Verification worker
ENABLE_WORKER = True
WORKER_POLL_INTERVAL = 0.5  # seconds between liveness checks in the listener
WORKER_JOIN_TIMEOUT = 2.0
