"""
Auto-stop for Just Lift blocks.

Just Lift has no rep target, so the set ends when the user parks the
handles: once a cable has an established range, holding it in the bottom
5% of that range for five seconds finishes the block.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from .core import AUTO_STOP_HOLD_SECONDS, AUTO_STOP_MIN_RANGE, AUTO_STOP_ZONE_FRACTION
from .protocol import MonitorSample
from .reps import CableRange, WorkoutRuntimeState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoStopStatus:
    """Result of one auto-stop evaluation.

    ``progress`` runs 0..1 over the hold time and is for display only.
    """

    progress: float = 0.0
    armed: bool = False
    triggered: bool = False

    @property
    def seconds_left(self) -> float:
        return max(0.0, (1.0 - self.progress) * AUTO_STOP_HOLD_SECONDS)


def danger_threshold(cable: CableRange) -> Optional[float]:
    """Position below which a cable counts as parked, or None if its range is too small."""
    span = cable.span
    if span is None or span <= AUTO_STOP_MIN_RANGE:
        return None
    return cable.min_pos + span * AUTO_STOP_ZONE_FRACTION


class AutoStopMonitor:
    """Evaluates each telemetry sample against the discovered cable ranges.

    The armed timestamp lives on the block's :class:`WorkoutRuntimeState`
    so it is discarded together with the block.
    """

    def __init__(
        self,
        hold_seconds: float = AUTO_STOP_HOLD_SECONDS,
    ) -> None:
        self.hold_seconds = hold_seconds
        self._fired = False

    def reset(self) -> None:
        self._fired = False

    def evaluate(
        self,
        state: WorkoutRuntimeState,
        sample: MonitorSample,
        now: Optional[float] = None,
    ) -> AutoStopStatus:
        if not state.is_just_lift or state.completed or self._fired:
            return AutoStopStatus()

        in_zone: List[bool] = []
        for cable, pos in ((state.range_a, sample.pos_a), (state.range_b, sample.pos_b)):
            threshold = danger_threshold(cable)
            if threshold is not None:
                in_zone.append(pos <= threshold)

        if not in_zone:
            return AutoStopStatus()

        now = time.time() if now is None else now
        if not any(in_zone):
            if state.auto_stop_armed_at is not None:
                logger.info("Left the bottom of the range, auto-stop reset")
                state.auto_stop_armed_at = None
            return AutoStopStatus()

        if state.auto_stop_armed_at is None:
            state.auto_stop_armed_at = now
            logger.info(f"Near bottom of range, auto-stop in {self.hold_seconds:.0f}s")

        elapsed = now - state.auto_stop_armed_at
        progress = min(elapsed / self.hold_seconds, 1.0)
        if elapsed >= self.hold_seconds:
            self._fired = True
            logger.info("Auto-stop triggered")
            return AutoStopStatus(progress=1.0, armed=True, triggered=True)
        return AutoStopStatus(progress=progress, armed=True)
