"""
Workout plans: ordered exercise/echo blocks with sets and rest.

A plan is a list of :data:`PlanItem`. :class:`PlanScheduler` walks it with
a :class:`PlanCursor`, running every set of an item before moving to the
next one and resting ``rest_sec`` seconds between blocks.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, ClassVar, List, Optional, Set, Union

from .core import (
    ECCENTRIC_MAX_PCT,
    ECCENTRIC_MIN_PCT,
    ECHO_LEVEL_NAMES,
    ECHO_TARGET_REPS_MAX,
    ECHO_TARGET_REPS_MIN,
    PROGRAM_MODE_NAMES,
    PROGRESSION_MAX_KG,
    PROGRESSION_MIN_KG,
    REPS_MAX,
    REPS_MIN,
    REST_EXTEND_SECONDS,
    WEIGHT_MAX_KG,
    WEIGHT_MIN_KG,
    EchoLevel,
    ProgramMode,
    kg_to_unit,
)
from .errors import LinkError, ValidationError, VitruvianError
from .protocol import EchoParams, ProgramParams, _check_range

logger = logging.getLogger(__name__)

REST_MAX_SECONDS = 600
SETS_MAX = 99


@dataclass
class ExerciseItem:
    """A program-mode block repeated ``sets`` times."""

    type: ClassVar[str] = "exercise"

    name: str = "Untitled Exercise"
    mode: ProgramMode = ProgramMode.OLD_SCHOOL
    per_cable_kg: float = 10.0
    reps: int = 10
    sets: int = 3
    rest_sec: int = 60
    cables: int = 2
    progression_kg: float = 0.0
    just_lift: bool = False
    stop_at_top: bool = False

    def __post_init__(self) -> None:
        """Validate item data."""
        try:
            self.mode = ProgramMode(self.mode)
        except ValueError:
            raise ValidationError("mode", self.mode, "known program mode") from None
        _validate_common(self)
        _check_range("per_cable_kg", self.per_cable_kg, WEIGHT_MIN_KG, WEIGHT_MAX_KG)
        _check_range(
            "progression_kg", self.progression_kg, PROGRESSION_MIN_KG, PROGRESSION_MAX_KG
        )
        # Just Lift sends no rep target, so 0 is allowed there
        low = 0 if self.just_lift else REPS_MIN
        self.reps = _check_count("reps", self.reps, low, REPS_MAX)
        self.cables = _check_count("cables", self.cables, 1, 2)

    def to_params(self) -> ProgramParams:
        return ProgramParams(
            mode=self.mode,
            per_cable_kg=self.per_cable_kg,
            reps=0 if self.just_lift else self.reps,
            just_lift=self.just_lift,
            progression_kg=self.progression_kg,
        )

    def summary(self, unit: str = "kg") -> str:
        mode = PROGRAM_MODE_NAMES[self.mode]
        reps = "just lift" if self.just_lift else f"{self.reps} reps"
        weight = kg_to_unit(self.per_cable_kg, unit)
        return f"{mode} • {weight:.1f} {unit}/cable × {self.cables} • {reps}"


@dataclass
class EchoItem:
    """An echo-mode block repeated ``sets`` times."""

    type: ClassVar[str] = "echo"

    name: str = "Echo Block"
    level: EchoLevel = EchoLevel.HARD
    eccentric_pct: int = 100
    target_reps: int = 2
    sets: int = 3
    rest_sec: int = 60
    just_lift: bool = False
    stop_at_top: bool = False

    def __post_init__(self) -> None:
        """Validate item data."""
        try:
            self.level = EchoLevel(self.level)
        except ValueError:
            raise ValidationError("level", self.level, "0-3") from None
        _validate_common(self)
        self.eccentric_pct = _check_count(
            "eccentric_pct", self.eccentric_pct, ECCENTRIC_MIN_PCT, ECCENTRIC_MAX_PCT
        )
        self.target_reps = _check_count(
            "target_reps", self.target_reps, ECHO_TARGET_REPS_MIN, ECHO_TARGET_REPS_MAX
        )

    def to_params(self) -> EchoParams:
        return EchoParams(
            level=self.level,
            eccentric_pct=self.eccentric_pct,
            target_reps=0 if self.just_lift else self.target_reps,
            just_lift=self.just_lift,
        )

    def summary(self, unit: str = "kg") -> str:
        level = ECHO_LEVEL_NAMES[self.level]
        return f"{level} • ecc {self.eccentric_pct}% • target {self.target_reps} reps"


PlanItem = Union[ExerciseItem, EchoItem]


def _check_count(field: str, value: Any, low: int, high: int) -> int:
    _check_range(field, value, low, high, integer=True)
    return int(value)


def _validate_common(item: PlanItem) -> None:
    item.sets = _check_count("sets", item.sets, 1, SETS_MAX)
    item.rest_sec = _check_count("rest_sec", item.rest_sec, 0, REST_MAX_SECONDS)


def item_to_dict(item: PlanItem) -> dict:
    data = asdict(item)
    data["type"] = item.type
    if isinstance(item, ExerciseItem):
        data["mode"] = int(item.mode)
    else:
        data["level"] = int(item.level)
    return data


def item_from_dict(data: dict) -> PlanItem:
    """Build a plan item from its JSON form.

    Raises:
        ValidationError: for an unknown item type or out-of-range field
    """
    fields = dict(data)
    kind = fields.pop("type", "exercise")
    try:
        if kind == "exercise":
            return ExerciseItem(**fields)
        if kind == "echo":
            return EchoItem(**fields)
    except TypeError as e:
        raise ValidationError("item", data, f"valid {kind} fields ({e})") from None
    raise ValidationError("type", kind, "exercise or echo")


def default_plan() -> List[PlanItem]:
    """A small two-item demo plan."""
    return [
        ExerciseItem(
            name="Back Squat",
            mode=ProgramMode.OLD_SCHOOL,
            per_cable_kg=15.0,
            reps=8,
            sets=3,
            rest_sec=90,
            stop_at_top=True,
        ),
        EchoItem(
            name="Echo Finishers",
            level=EchoLevel.HARDER,
            eccentric_pct=120,
            target_reps=2,
            sets=2,
            rest_sec=60,
        ),
    ]


def add_item(items: List[PlanItem], kind: str = "exercise") -> PlanItem:
    """Append a new item with default settings and return it."""
    if kind == "exercise":
        item: PlanItem = ExerciseItem()
    elif kind == "echo":
        item = EchoItem()
    else:
        raise ValidationError("type", kind, "exercise or echo")
    items.append(item)
    return item


def remove_item(items: List[PlanItem], index: int) -> Optional[PlanItem]:
    if not 0 <= index < len(items):
        return None
    return items.pop(index)


def move_item(items: List[PlanItem], index: int, delta: int) -> bool:
    """Move ``items[index]`` by ``delta`` places; False if out of bounds."""
    target = index + delta
    if not (0 <= index < len(items)) or not (0 <= target < len(items)):
        return False
    items.insert(target, items.pop(index))
    return True


def item_fields(item: PlanItem) -> List[str]:
    return [f.name for f in fields(item)]


def update_item(items: List[PlanItem], index: int, field: str, value: Any) -> PlanItem:
    """Replace ``items[index]`` with a copy that has ``field`` set to ``value``.

    The copy goes through the item constructor, so it is validated exactly
    like a new item; on error the plan is left unchanged.

    Raises:
        ValidationError: for a bad index, unknown field or out-of-range value
    """
    if not 0 <= index < len(items):
        raise ValidationError("item", index + 1, f"1-{len(items)}")
    item = items[index]
    names = item_fields(item)
    if field not in names:
        raise ValidationError("field", field, ", ".join(names))
    updated = replace(item, **{field: value})
    items[index] = updated
    return updated


@dataclass
class PlanCursor:
    """Position in a plan: item index and 1-based set number."""

    index: int = 0
    set: int = 1


class RestTimer:
    """Countdown between blocks.

    The countdown is computed from an end timestamp rather than by
    counting ticks, so a late tick never stretches the rest. ``on_done``
    runs exactly once, whether the time runs out or the rest is skipped.

    Args:
        duration: Rest length in seconds
        on_done: Called when the rest ends
        on_tick: Called with the remaining seconds on every tick
        clock: Wall-clock source
        tick_interval: Seconds between ticks
    """

    def __init__(
        self,
        duration: float,
        on_done: Callable[[], None],
        on_tick: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.time,
        tick_interval: float = 0.25,
    ) -> None:
        self.duration = duration
        self._on_done = on_done
        self._on_tick = on_tick
        self._clock = clock
        self.tick_interval = tick_interval
        self._end: Optional[float] = None
        self._paused_remaining: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def paused(self) -> bool:
        return self._paused_remaining is not None

    @property
    def remaining(self) -> float:
        """Seconds of rest left."""
        if self._paused_remaining is not None:
            return self._paused_remaining
        if self._end is None:
            return float(self.duration)
        return max(0.0, self._end - self._clock())

    def start(self) -> None:
        self._end = self._clock() + self.duration
        self._task = asyncio.create_task(self._run())

    def pause(self) -> None:
        if self._done or self.paused:
            return
        self._paused_remaining = self.remaining
        logger.info(f"Rest paused with {self._paused_remaining:.0f}s left")

    def resume(self) -> None:
        if self._done or self._paused_remaining is None:
            return
        self._end = self._clock() + self._paused_remaining
        self._paused_remaining = None
        logger.info("Rest resumed")

    def extend(self, seconds: float = REST_EXTEND_SECONDS) -> None:
        if self._done:
            return
        if self._paused_remaining is not None:
            self._paused_remaining += seconds
        elif self._end is not None:
            self._end += seconds
        else:
            self.duration += seconds
        logger.info(f"+{seconds:.0f}s added to rest")

    def skip(self) -> None:
        if self._done:
            return
        logger.info("Rest skipped")
        self._cancel_task()
        self._finish()

    def cancel(self) -> None:
        """Abandon the rest without calling ``on_done``."""
        self._done = True
        self._cancel_task()

    def _cancel_task(self) -> None:
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _finish(self) -> None:
        if self._done:
            return
        self._done = True
        self._on_done()

    async def _run(self) -> None:
        while not self._done:
            left = self.remaining
            if self._on_tick is not None:
                try:
                    self._on_tick(left)
                except Exception as e:
                    logger.error(f"Rest tick callback error: {e}")
            if not self.paused and left <= 0:
                logger.info("Rest finished")
                self._finish()
                return
            delay = self.tick_interval if self.paused else min(self.tick_interval, left)
            await asyncio.sleep(delay)


class PlanState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    RESTING = "resting"
    FINISHED = "finished"


class PlanScheduler:
    """Runs a plan against a controller.

    The controller must provide ``is_connected``, a ``stop_at_top``
    attribute, and ``start_program``/``start_echo`` coroutines accepting
    ``on_complete`` and ``plan_meta`` keyword arguments.

    Args:
        controller: Trainer controller (see above)
        on_rest: Called with (next item, rest timer) when a rest begins
        on_finish: Called once when the last block of the plan completes
        clock: Wall-clock source for rest timers
        tick_interval: Rest timer tick interval
    """

    def __init__(
        self,
        controller: Any,
        on_rest: Optional[Callable[[PlanItem, RestTimer], None]] = None,
        on_finish: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.time,
        tick_interval: float = 0.25,
    ) -> None:
        self._controller = controller
        self._on_rest = on_rest
        self._on_finish = on_finish
        self._clock = clock
        self._tick_interval = tick_interval
        self.items: List[PlanItem] = []
        self.cursor = PlanCursor()
        self.state = PlanState.IDLE
        self.rest_timer: Optional[RestTimer] = None
        self.blocks_started = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self.state in (PlanState.RUNNING, PlanState.RESTING)

    @property
    def current_item(self) -> Optional[PlanItem]:
        if 0 <= self.cursor.index < len(self.items):
            return self.items[self.cursor.index]
        return None

    async def start(self, items: List[PlanItem]) -> None:
        """Start a plan from its first set.

        Raises:
            ValidationError: if the plan is empty
            LinkError: if the trainer is not connected
        """
        if not items:
            raise ValidationError("plan", items, "at least one item")
        if not self._controller.is_connected:
            raise LinkError("connect to the trainer before starting a plan")

        self.stop()
        self.items = list(items)
        self.cursor = PlanCursor(0, 1)
        self.blocks_started = 0
        self.state = PlanState.RUNNING
        logger.info(f"Starting plan with {len(self.items)} item(s)")
        await self.run_current_block()

    async def run_current_block(self) -> None:
        """Configure and launch the block under the cursor."""
        if not self.active:
            return
        item = self.current_item
        if item is None:
            self._finish()
            return

        logger.info(
            f"Plan item {self.cursor.index + 1}/{len(self.items)}, "
            f"set {self.cursor.set}/{item.sets}: {item.name}"
        )
        meta = {
            "set_name": item.name,
            "set_number": self.cursor.set,
            "set_total": item.sets,
            "item_type": item.type,
        }
        self.state = PlanState.RUNNING
        previous = self._controller.stop_at_top
        self._controller.stop_at_top = item.stop_at_top
        try:
            if isinstance(item, ExerciseItem):
                await self._controller.start_program(
                    item.to_params(), on_complete=self._block_complete, plan_meta=meta
                )
            else:
                await self._controller.start_echo(
                    item.to_params(), on_complete=self._block_complete, plan_meta=meta
                )
            self.blocks_started += 1
        except VitruvianError as e:
            logger.error(f"Failed to start plan block: {e}")
            self._finish()
            raise
        finally:
            self._controller.stop_at_top = previous

    def _block_complete(self, _summary: Any = None) -> None:
        if not self.active:
            return
        item = self.current_item
        if item is None:
            self._finish()
            return

        if self.cursor.set < item.sets:
            self.cursor.set += 1
            next_item = item
        else:
            self.cursor.index += 1
            self.cursor.set = 1
            if self.cursor.index >= len(self.items):
                self._finish()
                return
            next_item = self.items[self.cursor.index]

        # The finished item's rest applies before whatever comes next
        self._begin_rest(item.rest_sec, next_item)

    def _begin_rest(self, seconds: int, next_item: PlanItem) -> None:
        if seconds <= 0:
            self._spawn(self._run_next())
            return

        logger.info(f"Rest {seconds}s, up next: {next_item.name}")
        self.state = PlanState.RESTING
        self.rest_timer = RestTimer(
            seconds,
            on_done=self._rest_done,
            clock=self._clock,
            tick_interval=self._tick_interval,
        )
        self.rest_timer.start()
        if self._on_rest is not None:
            try:
                self._on_rest(next_item, self.rest_timer)
            except Exception as e:
                logger.error(f"Rest callback error: {e}")

    def _rest_done(self) -> None:
        self.rest_timer = None
        if self.state is PlanState.RESTING:
            self.state = PlanState.RUNNING
            self._spawn(self._run_next())

    async def _run_next(self) -> None:
        try:
            await self.run_current_block()
        except VitruvianError:
            # Already logged; the plan has been finished
            pass

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ========== Rest controls ==========

    def skip_rest(self) -> bool:
        if self.rest_timer is None:
            return False
        self.rest_timer.skip()
        return True

    def extend_rest(self, seconds: float = REST_EXTEND_SECONDS) -> bool:
        if self.rest_timer is None:
            return False
        self.rest_timer.extend(seconds)
        return True

    def pause_rest(self) -> bool:
        if self.rest_timer is None:
            return False
        self.rest_timer.pause()
        return True

    def resume_rest(self) -> bool:
        if self.rest_timer is None:
            return False
        self.rest_timer.resume()
        return True

    def stop(self) -> None:
        """Abandon the plan without finishing it."""
        if self.rest_timer is not None:
            self.rest_timer.cancel()
            self.rest_timer = None
        if self.active:
            logger.info("Plan stopped")
        self.state = PlanState.IDLE

    def _finish(self) -> None:
        if self.rest_timer is not None:
            self.rest_timer.cancel()
            self.rest_timer = None
        was_active = self.active
        self.state = PlanState.FINISHED
        if was_active:
            logger.info("Plan finished")
            if self._on_finish is not None:
                try:
                    self._on_finish()
                except Exception as e:
                    logger.error(f"Plan finish callback error: {e}")
