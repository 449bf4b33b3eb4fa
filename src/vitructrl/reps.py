"""
Rep detection from the trainer's wrapping rep counters.

The device reports two 16-bit counters in every rep notification: one
bumps when the user reaches the top of a rep, the other when the rep is
complete (back at the bottom). Neither is monotonic in the mathematical
sense: both wrap at 0xFFFF. :class:`RepTracker` turns counter changes,
correlated with the latest telemetry sample, into warmup/working rep
events and a rolling estimate of each cable's range of motion.

Phases: IDLE -> WARMUP -> WORKING -> COMPLETED.
"""

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional

from .core import WARMUP_REPS, WARMUP_WINDOW_SIZE, WORKING_WINDOW_SIZE
from .errors import ProtocolInvariantViolation
from .protocol import MonitorSample, RepCounters

logger = logging.getLogger(__name__)

# Rolling averages moving more than this are logged
RANGE_LOG_THRESHOLD = 5


def counter_delta(last: int, current: int) -> int:
    """Forward distance between two readings of a 16-bit wrapping counter."""
    if current >= last:
        return current - last
    return (0xFFFF - last) + current + 1


@dataclass(frozen=True)
class Band:
    """Min/max of the positions currently in a rolling window."""

    min: int
    max: int


class RollingWindow:
    """Most recent positions, bounded to ``bound`` entries.

    The bound may change between pushes (the window grows from 2 to 3
    once warmup is over); excess entries are dropped oldest first.
    """

    def __init__(self, bound: int = WARMUP_WINDOW_SIZE) -> None:
        self.bound = bound
        self._values: Deque[int] = deque()

    def __len__(self) -> int:
        return len(self._values)

    @property
    def values(self) -> List[int]:
        return list(self._values)

    def push(self, value: int, bound: Optional[int] = None) -> None:
        if bound is not None:
            self.bound = bound
        self._values.append(value)
        while len(self._values) > self.bound:
            self._values.popleft()

    def average(self) -> Optional[int]:
        if not self._values:
            return None
        # Halves round up
        return math.floor(sum(self._values) / len(self._values) + 0.5)

    def band(self) -> Optional[Band]:
        if not self._values:
            return None
        return Band(min(self._values), max(self._values))


@dataclass
class CableRange:
    """Discovered range of motion for one cable."""

    min_pos: Optional[int]
    max_pos: Optional[int]
    min_band: Optional[Band]
    max_band: Optional[Band]

    @property
    def span(self) -> Optional[int]:
        if self.min_pos is None or self.max_pos is None:
            return None
        return self.max_pos - self.min_pos


@dataclass
class RepCounterState:
    """Last counter values seen; None until the first notification."""

    last_top: Optional[int] = None
    last_complete: Optional[int] = None

    def reset(self) -> None:
        self.last_top = None
        self.last_complete = None


class WorkoutPhase(Enum):
    IDLE = "idle"
    WARMUP = "warmup"
    WORKING = "working"
    COMPLETED = "completed"


class RepEventKind(Enum):
    TOP = "top"
    WARMUP_REP = "warmup_rep"
    WARMUP_COMPLETE = "warmup_complete"
    WORKING_REP = "working_rep"
    # Device only ends a set at the bottom of the last rep: stop it first
    REQUEST_STOP = "request_stop"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RepEvent:
    kind: RepEventKind
    warmup_reps: int
    working_reps: int
    pos_a: int
    pos_b: int


@dataclass
class WorkoutRuntimeState:
    """Mutable state of the block currently running."""

    warmup_target: int = WARMUP_REPS
    target_reps: int = 0
    stop_at_top: bool = False
    is_just_lift: bool = False
    warmup_reps: int = 0
    working_reps: int = 0
    started_at: float = field(default_factory=time.time)
    warmup_end_at: Optional[float] = None
    auto_stop_armed_at: Optional[float] = None
    completed: bool = False
    top_a: RollingWindow = field(default_factory=RollingWindow)
    top_b: RollingWindow = field(default_factory=RollingWindow)
    bottom_a: RollingWindow = field(default_factory=RollingWindow)
    bottom_b: RollingWindow = field(default_factory=RollingWindow)

    @property
    def phase(self) -> WorkoutPhase:
        if self.completed:
            return WorkoutPhase.COMPLETED
        if self.warmup_reps < self.warmup_target:
            return WorkoutPhase.WARMUP
        return WorkoutPhase.WORKING

    def window_size(self) -> int:
        if self.warmup_reps + self.working_reps < self.warmup_target:
            return WARMUP_WINDOW_SIZE
        return WORKING_WINDOW_SIZE

    @property
    def range_a(self) -> CableRange:
        return CableRange(
            self.bottom_a.average(),
            self.top_a.average(),
            self.bottom_a.band(),
            self.top_a.band(),
        )

    @property
    def range_b(self) -> CableRange:
        return CableRange(
            self.bottom_b.average(),
            self.top_b.average(),
            self.bottom_b.band(),
            self.top_b.band(),
        )


class RepTracker:
    """Rep-detection state machine for one block at a time."""

    def __init__(self) -> None:
        self.state: Optional[WorkoutRuntimeState] = None
        self.counters = RepCounterState()

    @property
    def phase(self) -> WorkoutPhase:
        if self.state is None:
            return WorkoutPhase.IDLE
        return self.state.phase

    @property
    def active(self) -> bool:
        return self.state is not None and not self.state.completed

    def begin(
        self,
        target_reps: int,
        warmup_target: int = WARMUP_REPS,
        stop_at_top: bool = False,
        just_lift: bool = False,
        now: Optional[float] = None,
    ) -> WorkoutRuntimeState:
        """Start tracking a new block; counters re-baseline on the next notification."""
        self.counters.reset()
        self.state = WorkoutRuntimeState(
            warmup_target=warmup_target,
            target_reps=target_reps,
            stop_at_top=stop_at_top,
            is_just_lift=just_lift,
            started_at=time.time() if now is None else now,
        )
        return self.state

    def end(self) -> Optional[WorkoutRuntimeState]:
        """Stop tracking and hand back the final state."""
        state, self.state = self.state, None
        return state

    def process(
        self,
        counters: RepCounters,
        sample: Optional[MonitorSample],
        now: Optional[float] = None,
    ) -> List[RepEvent]:
        """Apply one rep notification and return the resulting events.

        Raises:
            ProtocolInvariantViolation: if no block is running, it already
                completed, or no telemetry sample has arrived yet
        """
        state = self.state
        if state is None or state.completed:
            raise ProtocolInvariantViolation(f"rep notification {counters} with no active block")
        if sample is None:
            raise ProtocolInvariantViolation(f"rep notification {counters} before any telemetry")
        now = time.time() if now is None else now
        events: List[RepEvent] = []

        def emit(kind: RepEventKind) -> None:
            events.append(
                RepEvent(
                    kind, state.warmup_reps, state.working_reps, sample.pos_a, sample.pos_b
                )
            )

        if self.counters.last_top is None:
            self.counters.last_top = counters.top
        else:
            delta = self._delta("top", self.counters.last_top, counters.top)
            self.counters.last_top = counters.top
            if delta > 0:
                logger.info(f"Top reached at A={sample.pos_a} B={sample.pos_b}")
                self._record(state, state.top_a, state.top_b, sample)
                emit(RepEventKind.TOP)
                if (
                    state.stop_at_top
                    and not state.is_just_lift
                    and state.target_reps > 0
                    and state.working_reps == state.target_reps - 1
                ):
                    logger.info("Top of final rep reached, requesting stop")
                    state.completed = True
                    self.counters.last_complete = counters.complete
                    emit(RepEventKind.REQUEST_STOP)
                    return events

        if self.counters.last_complete is None:
            self.counters.last_complete = counters.complete
            return events

        delta = self._delta("complete", self.counters.last_complete, counters.complete)
        self.counters.last_complete = counters.complete
        if delta == 0:
            return events

        self._record(state, state.bottom_a, state.bottom_b, sample)
        if state.warmup_reps + state.working_reps + 1 <= state.warmup_target:
            state.warmup_reps += 1
            logger.info(f"Warmup rep {state.warmup_reps}/{state.warmup_target}")
            emit(RepEventKind.WARMUP_REP)
            if state.warmup_reps == state.warmup_target and state.warmup_end_at is None:
                state.warmup_end_at = now
                emit(RepEventKind.WARMUP_COMPLETE)
        else:
            state.working_reps += 1
            if state.target_reps > 0:
                logger.info(f"Working rep {state.working_reps}/{state.target_reps}")
            else:
                logger.info(f"Working rep {state.working_reps}")
            emit(RepEventKind.WORKING_REP)
            if (
                not state.stop_at_top
                and not state.is_just_lift
                and state.target_reps > 0
                and state.working_reps >= state.target_reps
            ):
                logger.info("Target reps reached")
                state.completed = True
                emit(RepEventKind.COMPLETE)
        return events

    @staticmethod
    def _delta(name: str, last: int, current: int) -> int:
        delta = counter_delta(last, current)
        if delta > 1:
            # Collapsed into one event; the device may have skipped values
            logger.warning(f"{name} counter jumped {last} -> {current} ({delta})")
        return delta

    @staticmethod
    def _record(
        state: WorkoutRuntimeState,
        window_a: RollingWindow,
        window_b: RollingWindow,
        sample: MonitorSample,
    ) -> None:
        before = (state.range_a, state.range_b)
        size = state.window_size()
        window_a.push(sample.pos_a, size)
        window_b.push(sample.pos_b, size)
        after = (state.range_a, state.range_b)
        if _range_moved(before, after):
            a, b = after
            logger.info(
                f"Rep range updated: A[{a.min_pos}-{a.max_pos}] "
                f"B[{b.min_pos}-{b.max_pos}]"
            )


def _range_moved(before, after) -> bool:
    for old, new in zip(before, after):
        for old_pos, new_pos in (
            (old.min_pos, new.min_pos),
            (old.max_pos, new.max_pos),
        ):
            if new_pos is None:
                continue
            if old_pos is None or abs(new_pos - old_pos) > RANGE_LOG_THRESHOLD:
                return True
    return False
