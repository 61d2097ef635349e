"""Trust data model.

A TrustData value describes how an author relates to the reference identity
in the web of trust: the hop distance, the oracle's score and the number of
distinct trust paths. Unknown or unreachable authors get ``UNREACHABLE``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


@dataclass(frozen=True)
class TrustData:
    """Trust of one pubkey relative to the reference identity.

    Attributes:
        score: Oracle trust score, nominally in [0, 1]
        distance: Hop count from the reference identity, ``math.inf`` if unreachable
        trusted: Whether the pubkey is reachable in the trust graph
        paths: Number of distinct trust paths
    """

    score: float = 0.0
    distance: float = math.inf
    trusted: bool = False
    paths: int = 0

    def __post_init__(self) -> None:
        if self.distance < 0:
            raise ValueError(f"distance must be non-negative, got {self.distance}")
        if self.paths < 0:
            raise ValueError(f"paths must be non-negative, got {self.paths}")

    @property
    def reachable(self) -> bool:
        return not math.isinf(self.distance)

    def within(self, max_hops: int) -> bool:
        """Whether the pubkey is trusted and 1..max_hops hops away."""
        return self.trusted and 0 < self.distance <= max_hops

    @classmethod
    def from_oracle_record(cls, record: Any) -> TrustData:
        """Convert an oracle distance record, or return ``UNREACHABLE``.

        A well-formed record is a mapping with a non-negative integral
        ``hops``; ``score`` and ``paths`` are optional and default to 0.
        """
        if not isinstance(record, Mapping) or "hops" not in record:
            return UNREACHABLE

        hops = record["hops"]
        if not _is_number(hops) or hops < 0 or hops != int(hops):
            return UNREACHABLE

        score = record.get("score")
        paths = record.get("paths")
        return cls(
            score=float(score) if _is_number(score) else 0.0,
            distance=int(hops),
            trusted=True,
            paths=int(paths) if _is_number(paths) and paths >= 0 else 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary. Unreachable distance becomes ``None``."""
        return {
            "score": self.score,
            "distance": None if math.isinf(self.distance) else self.distance,
            "trusted": self.trusted,
            "paths": self.paths,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrustData:
        """Deserialize from dictionary."""
        distance = data.get("distance")
        return cls(
            score=float(data.get("score", 0.0)),
            distance=math.inf if distance is None else distance,
            trusted=bool(data.get("trusted", False)),
            paths=int(data.get("paths", 0)),
        )


# Default for pubkeys the oracle could not place in the trust graph
UNREACHABLE = TrustData(score=0.0, distance=math.inf, trusted=False, paths=0)
