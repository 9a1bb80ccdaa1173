import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from holder_rewards.config.settings import POLL_INTERVAL_SECONDS
from holder_rewards.core.cycle import Cycle, current_cycle
from holder_rewards.utils.errors import ConfigurationError, EmptyResultError
from holder_rewards.utils.logger import get_logger

logger = get_logger(__name__)

PhaseAction = Callable[[Cycle], Awaitable[Any]]


class CycleState(Enum):
    PENDING = "pending"
    PHASE_A_FIRED = "phase_a_fired"
    PHASE_B_FIRED = "phase_b_fired"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Phase:
    name: str
    offset: float  # seconds before the window end
    action: PhaseAction


class FiredPhaseSet:
    """(cycle_id, phase) pairs already executed by this process."""

    def __init__(self):
        self._fired: Dict[Tuple[str, str], float] = {}

    def add(self, cycle_id: str, phase: str, window_end: float) -> None:
        self._fired[(cycle_id, phase)] = window_end

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._fired

    def __len__(self) -> int:
        return len(self._fired)

    def prune(self, now: float) -> int:
        """Forget every pair whose window has fully elapsed."""
        expired = [key for key, window_end in self._fired.items() if now >= window_end]
        for key in expired:
            del self._fired[key]
        return len(expired)


class CycleScheduler:
    """
    Polls the wall clock and fires each phase at most once per cycle.

    Phase A fires once `now >= window_end - phase_a.offset`, phase B once
    `now >= window_end - phase_b.offset`. A phase is recorded as fired before
    its action runs, so a failing action is never retried within the same
    cycle; a phase whose whole firing interval passes while the process is
    down is skipped, not replayed.
    """

    def __init__(
        self,
        window_seconds: float,
        phase_a: Phase,
        phase_b: Phase,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if window_seconds <= 0:
            raise ConfigurationError("Cycle window must be positive")
        if not 0 <= phase_b.offset < phase_a.offset <= window_seconds:
            raise ConfigurationError(
                f"Phase offsets must satisfy 0 <= {phase_b.name} ({phase_b.offset}s) "
                f"< {phase_a.name} ({phase_a.offset}s) <= window ({window_seconds}s)"
            )
        self.window_seconds = window_seconds
        self.phase_a = phase_a
        self.phase_b = phase_b
        self.poll_interval = poll_interval
        self.clock = clock
        self._sleep = sleep
        self.fired = FiredPhaseSet()
        self.running = False

    def cycle_at(self, now: Optional[float] = None) -> Cycle:
        now = self.clock() if now is None else now
        return current_cycle(now, self.window_seconds, self.phase_a.offset, self.phase_b.offset)

    def state(self, cycle: Cycle, now: Optional[float] = None) -> CycleState:
        now = self.clock() if now is None else now
        if cycle.has_elapsed(now):
            return CycleState.EXPIRED
        if (cycle.id, self.phase_b.name) in self.fired:
            return CycleState.PHASE_B_FIRED
        if (cycle.id, self.phase_a.name) in self.fired:
            return CycleState.PHASE_A_FIRED
        return CycleState.PENDING

    async def tick(self, now: Optional[float] = None) -> List[str]:
        """Evaluate the current cycle once; return the names of phases fired."""
        now = self.clock() if now is None else now
        self.fired.prune(now)
        cycle = self.cycle_at(now)

        fired_now = []
        for phase, due_at in ((self.phase_a, cycle.phase_a_at), (self.phase_b, cycle.phase_b_at)):
            if now >= due_at and (cycle.id, phase.name) not in self.fired:
                self.fired.add(cycle.id, phase.name, cycle.window_end)
                await self._fire(phase, cycle)
                fired_now.append(phase.name)
        return fired_now

    async def _fire(self, phase: Phase, cycle: Cycle) -> None:
        logger.info(f"Firing phase '{phase.name}' for cycle {cycle.id}")
        try:
            result = await phase.action(cycle)
        except EmptyResultError as e:
            logger.warning(f"Phase '{phase.name}' for cycle {cycle.id} skipped: {e.reason} {e.details or ''}")
        except ConfigurationError as e:
            logger.warning(f"Phase '{phase.name}' for cycle {cycle.id} is a no-op: {e}")
        except Exception as e:
            logger.error(f"Phase '{phase.name}' for cycle {cycle.id} failed: {e}", exc_info=True)
        else:
            logger.info(f"Phase '{phase.name}' for cycle {cycle.id} completed: {result}")

    async def run(self) -> None:
        """Poll until stop() is called."""
        self.running = True
        cycle = self.cycle_at()
        logger.info(
            f"Scheduler started: window {self.window_seconds:.0f}s, current cycle {cycle.id}, "
            f"{self.phase_a.name} at T-{self.phase_a.offset:.0f}s, {self.phase_b.name} at T-{self.phase_b.offset:.0f}s"
        )
        while self.running:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in scheduler tick: {e}", exc_info=True)
            await self._sleep(self.poll_interval)
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self.running = False
