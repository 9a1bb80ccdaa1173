"""
Process state shared between the worker, the caches and the read surface.

Both objects are created once at startup and handed to whoever needs them;
nothing here is a module-level singleton.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class TxRef:
    at: str
    amount: float
    tx: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["TxRef"]:
        """Accept only entries that carry a numeric amount."""
        if not isinstance(data, Mapping):
            return None
        amount = data.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return None
        tx = data.get("tx")
        return cls(at=str(data.get("at") or utc_now_iso()), amount=amount, tx=str(tx) if tx else None)


class OpsState:
    """Last claim/swap operations, kept for display only."""

    def __init__(self):
        self.last_claim: Optional[TxRef] = None
        self.last_swap: Optional[TxRef] = None

    def update(self, partial: Mapping[str, Any]) -> bool:
        changed = False
        claim = TxRef.from_dict(partial.get("lastClaim")) if partial.get("lastClaim") else None
        swap = TxRef.from_dict(partial.get("lastSwap")) if partial.get("lastSwap") else None
        if claim is not None:
            self.last_claim = claim
            changed = True
        if swap is not None:
            self.last_swap = swap
            changed = True
        return changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastClaim": asdict(self.last_claim) if self.last_claim else None,
            "lastSwap": asdict(self.last_swap) if self.last_swap else None,
        }


class Metrics:
    """Cache effectiveness counters for the snapshot read path."""

    def __init__(self):
        self.cache_hits = 0
        self.cache_misses = 0
        self.last_rpc_ms: Optional[float] = None
        self.last_snapshot_at: Optional[str] = None

    def record_hit(self) -> None:
        self.cache_hits += 1

    def record_refresh(self, duration_ms: float) -> None:
        self.cache_misses += 1
        self.last_rpc_ms = round(duration_ms, 1)
        self.last_snapshot_at = utc_now_iso()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "lastRpcMs": self.last_rpc_ms,
            "lastSnapshotAt": self.last_snapshot_at,
        }
