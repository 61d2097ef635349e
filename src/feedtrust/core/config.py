"""Runtime configuration for the trust & verification pipeline.

Values come from ``core.defaults`` and can be overridden with
``FEEDTRUST_*`` environment variables:

- FEEDTRUST_REFERENCE_PUBKEY: hex pubkey used as the trust-graph anchor
- FEEDTRUST_ORACLE_URL: base URL of the trust oracle
- FEEDTRUST_ORACLE_BATCH_SIZE: targets per oracle batch request
- FEEDTRUST_ORACLE_TIMEOUT: per-request timeout in seconds
- FEEDTRUST_ORACLE_INDIVIDUAL_FALLBACK: retry failed batches one pubkey at a time
- FEEDTRUST_ENABLE_WORKER: start the signature verification worker
- FEEDTRUST_VERIFY_TIMEOUT: seconds to wait for a worker response (unset = wait forever)
- FEEDTRUST_TRUST_CACHE_TTL: seconds before a cached trust entry expires (unset = never)
- FEEDTRUST_MAX_HOPS: maximum distance still counted as inside the web of trust
"""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass

from . import defaults

ENV_PREFIX = "FEEDTRUST_"

_HEX_PUBKEY = re.compile(r"^[0-9a-f]{64}$")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""
    pass


def _env(name: str) -> str | None:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


def _positive_finite(value: float) -> bool:
    return math.isfinite(value) and value > 0


def _parse_number(name: str, raw: str, kind: type) -> float | int:
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be a {kind.__name__}, got {raw!r}") from e


@dataclass
class TrustPipelineConfig:
    """Settings shared by the verifier, the scorer and the oracle client.

    Attributes:
        reference_pubkey: Anchor identity for all trust distances
        oracle_url: Base URL of the trust oracle REST API
        oracle_batch_size: Maximum targets per oracle batch request
        oracle_timeout: Total timeout for one oracle HTTP request (seconds)
        oracle_individual_fallback: Query pubkeys one by one when a batch fails
        enable_worker: Whether the verifier should start its worker process
        verify_timeout: Optional bound on a verifier round trip (seconds).
            ``None`` keeps the historical behaviour of waiting forever.
        trust_cache_ttl: Optional cache entry lifetime (seconds). ``None``
            selects the monotonic in-memory cache.
        max_hops: Largest distance still counted as inside the web of trust
    """

    reference_pubkey: str = defaults.REFERENCE_PUBKEY
    oracle_url: str = defaults.ORACLE_URL
    oracle_batch_size: int = defaults.ORACLE_BATCH_SIZE
    oracle_timeout: float = defaults.ORACLE_TIMEOUT
    oracle_individual_fallback: bool = defaults.ORACLE_INDIVIDUAL_FALLBACK
    enable_worker: bool = defaults.ENABLE_WORKER
    verify_timeout: float | None = None
    trust_cache_ttl: float | None = None
    max_hops: int = defaults.MAX_HOPS

    def __post_init__(self) -> None:
        self.reference_pubkey = self.reference_pubkey.lower()
        if not _HEX_PUBKEY.match(self.reference_pubkey):
            raise ConfigError("reference_pubkey must be 64 hex characters")
        self.oracle_url = self.oracle_url.rstrip("/")
        if not self.oracle_url.startswith(("http://", "https://")):
            raise ConfigError(f"oracle_url must be an http(s) URL, got {self.oracle_url!r}")
        if self.oracle_batch_size < 1:
            raise ConfigError("oracle_batch_size must be at least 1")
        if not _positive_finite(self.oracle_timeout):
            raise ConfigError("oracle_timeout must be a positive finite number")
        if self.verify_timeout is not None and not _positive_finite(self.verify_timeout):
            raise ConfigError("verify_timeout must be a positive finite number when set")
        if self.trust_cache_ttl is not None and not _positive_finite(self.trust_cache_ttl):
            raise ConfigError("trust_cache_ttl must be a positive finite number when set")
        if self.max_hops < 0:
            raise ConfigError("max_hops must not be negative")

    @classmethod
    def from_env(cls) -> TrustPipelineConfig:
        """Build a config from defaults plus ``FEEDTRUST_*`` overrides."""
        kwargs: dict = {}

        if (raw := _env("REFERENCE_PUBKEY")) is not None:
            kwargs["reference_pubkey"] = raw
        if (raw := _env("ORACLE_URL")) is not None:
            kwargs["oracle_url"] = raw
        if (raw := _env("ORACLE_BATCH_SIZE")) is not None:
            kwargs["oracle_batch_size"] = _parse_number("ORACLE_BATCH_SIZE", raw, int)
        if (raw := _env("ORACLE_TIMEOUT")) is not None:
            kwargs["oracle_timeout"] = _parse_number("ORACLE_TIMEOUT", raw, float)
        if (raw := _env("ORACLE_INDIVIDUAL_FALLBACK")) is not None:
            kwargs["oracle_individual_fallback"] = _parse_bool("ORACLE_INDIVIDUAL_FALLBACK", raw)
        if (raw := _env("ENABLE_WORKER")) is not None:
            kwargs["enable_worker"] = _parse_bool("ENABLE_WORKER", raw)
        if (raw := _env("VERIFY_TIMEOUT")) is not None:
            kwargs["verify_timeout"] = _parse_number("VERIFY_TIMEOUT", raw, float)
        if (raw := _env("TRUST_CACHE_TTL")) is not None:
            kwargs["trust_cache_ttl"] = _parse_number("TRUST_CACHE_TTL", raw, float)
        if (raw := _env("MAX_HOPS")) is not None:
            kwargs["max_hops"] = _parse_number("MAX_HOPS", raw, int)

        return cls(**kwargs)


_config: TrustPipelineConfig | None = None


def get_config() -> TrustPipelineConfig:
    """Get the process-wide config, loading it from the environment once."""
    global _config
    if _config is None:
        _config = TrustPipelineConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests, or after changing the environment)."""
    global _config
    _config = None
