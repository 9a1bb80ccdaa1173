"""
Fixed-length cycle windows aligned to the wall clock.

The current cycle is a pure function of the time: no cycle state is ever
persisted, so a restarted process lands in the same cycle it left.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone


def to_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Cycle:
    id: str
    window_start: float
    window_end: float
    phase_a_at: float
    phase_b_at: float

    def has_elapsed(self, now: float) -> bool:
        return now >= self.window_end

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "windowStart": to_iso(self.window_start),
            "windowEnd": to_iso(self.window_end),
            "phaseAAt": to_iso(self.phase_a_at),
            "phaseBAt": to_iso(self.phase_b_at),
        }


def current_cycle(now: float, window_seconds: float, offset_a: float, offset_b: float) -> Cycle:
    """
    Cycle containing `now` (epoch seconds).

    The id is the window start in epoch milliseconds; arithmetic is done in
    whole milliseconds so the same instant always maps to the same id.
    """
    window_ms = int(round(window_seconds * 1000))
    if window_ms <= 0:
        raise ValueError("window length must be positive")

    start_ms = (math.floor(now * 1000) // window_ms) * window_ms
    end_ms = start_ms + window_ms
    return Cycle(
        id=str(start_ms),
        window_start=start_ms / 1000,
        window_end=end_ms / 1000,
        phase_a_at=(end_ms - int(round(offset_a * 1000))) / 1000,
        phase_b_at=(end_ms - int(round(offset_b * 1000))) / 1000,
    )
