"""Plan items, rest timer and plan scheduler."""

import asyncio

import pytest

from vitructrl.core import EchoLevel, ProgramMode
from vitructrl.errors import LinkError, ValidationError
from vitructrl.plan import (
    EchoItem,
    ExerciseItem,
    PlanScheduler,
    PlanState,
    RestTimer,
    add_item,
    default_plan,
    item_from_dict,
    item_to_dict,
    move_item,
    remove_item,
    update_item,
)
from vitructrl.protocol import EchoParams, ProgramParams


class FakeController:
    """Records every block the scheduler launches."""

    def __init__(self):
        self.is_connected = True
        self.stop_at_top = False
        self.started = []
        self.fail_next = False
        self._on_complete = None

    async def start_program(self, params, on_complete=None, plan_meta=None):
        self._launch("program", params, on_complete, plan_meta)

    async def start_echo(self, params, on_complete=None, plan_meta=None):
        self._launch("echo", params, on_complete, plan_meta)

    def _launch(self, kind, params, on_complete, plan_meta):
        if self.fail_next:
            self.fail_next = False
            raise LinkError("write failed")
        self.started.append(
            {"kind": kind, "params": params, "meta": plan_meta, "stop_at_top": self.stop_at_top}
        )
        self._on_complete = on_complete

    def finish_block(self):
        callback, self._on_complete = self._on_complete, None
        callback(None)

    def labels(self):
        return [(s["meta"]["set_name"], s["meta"]["set_number"]) for s in self.started]


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


# ========== Items ==========


def test_item_defaults_and_params():
    item = ExerciseItem(name="Row", mode=ProgramMode.PUMP, per_cable_kg=12.5, reps=6)
    params = item.to_params()
    assert isinstance(params, ProgramParams)
    assert params.mode is ProgramMode.PUMP
    assert params.per_cable_kg == 12.5
    assert params.reps == 6
    assert item.sets == 3
    assert item.rest_sec == 60

    echo = EchoItem(level=EchoLevel.EPIC, eccentric_pct=130, target_reps=4)
    echo_params = echo.to_params()
    assert isinstance(echo_params, EchoParams)
    assert echo_params.level is EchoLevel.EPIC
    assert echo_params.eccentric_pct == 130


def test_just_lift_item_sends_no_rep_target():
    item = ExerciseItem(just_lift=True, reps=0)
    assert item.to_params().reps == 0
    assert item.to_params().just_lift


@pytest.mark.parametrize(
    "factory",
    [
        lambda: ExerciseItem(per_cable_kg=101),
        lambda: ExerciseItem(reps=0),
        lambda: ExerciseItem(sets=0),
        lambda: ExerciseItem(rest_sec=-5),
        lambda: ExerciseItem(progression_kg=4.0),
        lambda: ExerciseItem(cables=3),
        lambda: ExerciseItem(mode=5),
        lambda: EchoItem(eccentric_pct=151),
        lambda: EchoItem(target_reps=31),
        lambda: EchoItem(level=9),
        lambda: ExerciseItem(sets=2.5),
        lambda: ExerciseItem(sets=True),
        lambda: ExerciseItem(reps=8.5),
        lambda: ExerciseItem(rest_sec=30.5),
        lambda: ExerciseItem(cables=1.5),
        lambda: ExerciseItem(per_cable_kg="heavy"),
        lambda: EchoItem(target_reps=2.5),
        lambda: EchoItem(eccentric_pct=110.5),
        lambda: EchoItem(sets=False),
    ],
)
def test_item_validation(factory):
    with pytest.raises(ValidationError):
        factory()


def test_stored_counts_must_be_whole_numbers():
    with pytest.raises(ValidationError):
        item_from_dict({"type": "exercise", "sets": 2.5, "rest_sec": 0})

    # JSON may hand back whole floats; they are normalised to ints
    item = item_from_dict({"type": "echo", "sets": 2.0, "target_reps": 4.0})
    assert item.sets == 2
    assert isinstance(item.sets, int)
    assert isinstance(item.target_reps, int)


@pytest.mark.asyncio
async def test_whole_float_sets_run_exact_block_count():
    controller = FakeController()
    scheduler = PlanScheduler(controller)

    await scheduler.start([item_from_dict({"type": "exercise", "sets": 2.0, "rest_sec": 0})])
    controller.finish_block()
    await settle()
    controller.finish_block()
    await settle()

    assert scheduler.blocks_started == 2
    assert scheduler.state is PlanState.FINISHED


def test_item_dict_form():
    item = EchoItem(name="Finisher", level=EchoLevel.HARDEST, sets=2, rest_sec=30)
    data = item_to_dict(item)

    assert data["type"] == "echo"
    assert data["level"] == 2
    assert item_from_dict(data) == item

    with pytest.raises(ValidationError):
        item_from_dict({"type": "cardio"})
    with pytest.raises(ValidationError):
        item_from_dict({"type": "exercise", "colour": "red"})


def test_editing_helpers():
    items = default_plan()
    first, second = items

    assert move_item(items, 0, 1)
    assert items == [second, first]
    assert not move_item(items, 1, 1)
    assert not move_item(items, 5, -1)

    echo = add_item(items, "echo")
    assert items[-1] is echo
    assert echo.name == "Echo Block"
    assert echo.eccentric_pct == 100
    exercise = add_item(items)
    assert exercise.per_cable_kg == 10.0
    assert exercise.cables == 2
    with pytest.raises(ValidationError):
        add_item(items, "cardio")

    assert remove_item(items, 0) is second
    assert remove_item(items, 10) is None
    assert len(items) == 3

    updated = update_item(items, 0, "reps", 12)
    assert items[0] is updated
    assert updated.reps == 12
    with pytest.raises(ValidationError):
        update_item(items, 0, "reps", 0)
    with pytest.raises(ValidationError):
        update_item(items, 0, "colour", "red")
    with pytest.raises(ValidationError):
        update_item(items, 7, "reps", 5)
    assert items[0] is updated


def test_summary_in_pounds():
    item = ExerciseItem(name="Row", per_cable_kg=10.0, reps=8)
    assert "22.0 lb/cable" in item.summary("lb")
    assert "10.0 kg/cable" in item.summary()


# ========== Rest timer ==========


@pytest.mark.asyncio
async def test_rest_timer_runs_out():
    done = []
    ticks = []
    timer = RestTimer(
        0.05, on_done=lambda: done.append(True), on_tick=ticks.append, tick_interval=0.01
    )

    timer.start()
    await asyncio.sleep(0.2)

    assert done == [True]
    assert timer.done
    assert ticks
    assert ticks[0] > ticks[-1]


@pytest.mark.asyncio
async def test_rest_timer_skip_fires_once():
    done = []
    timer = RestTimer(60, on_done=lambda: done.append(True))
    timer.start()

    timer.skip()
    timer.skip()
    await asyncio.sleep(0.01)

    assert done == [True]


@pytest.mark.asyncio
async def test_rest_timer_pause_resume_extend():
    clock = FakeClock()
    timer = RestTimer(60, on_done=lambda: None, clock=clock)
    timer.start()

    clock.now += 10
    assert timer.remaining == 50

    timer.pause()
    clock.now += 100
    assert timer.paused
    assert timer.remaining == 50

    timer.extend(30)
    assert timer.remaining == 80

    timer.resume()
    clock.now += 20
    assert timer.remaining == 60

    timer.extend()
    assert timer.remaining == 90
    timer.cancel()


@pytest.mark.asyncio
async def test_rest_timer_cancel_does_not_fire():
    done = []
    timer = RestTimer(0.02, on_done=lambda: done.append(True), tick_interval=0.005)
    timer.start()
    timer.cancel()
    await asyncio.sleep(0.05)

    assert done == []


# ========== Scheduler ==========


@pytest.mark.asyncio
async def test_runs_every_set_of_every_item_in_order():
    controller = FakeController()
    finished = []
    scheduler = PlanScheduler(controller, on_finish=lambda: finished.append(True))
    items = [
        ExerciseItem(name="Squat", sets=2, rest_sec=0),
        EchoItem(name="Echo", sets=2, rest_sec=0),
    ]

    await scheduler.start(items)
    for _ in range(3):
        controller.finish_block()
        await settle()
    controller.finish_block()
    await settle()

    assert controller.labels() == [("Squat", 1), ("Squat", 2), ("Echo", 1), ("Echo", 2)]
    assert [s["kind"] for s in controller.started] == ["program", "program", "echo", "echo"]
    assert scheduler.blocks_started == 4
    assert scheduler.state is PlanState.FINISHED
    assert finished == [True]


@pytest.mark.asyncio
async def test_plan_meta_passed_to_controller():
    controller = FakeController()
    scheduler = PlanScheduler(controller)

    await scheduler.start([ExerciseItem(name="Deadlift", sets=4)])

    assert controller.started[0]["meta"] == {
        "set_name": "Deadlift",
        "set_number": 1,
        "set_total": 4,
        "item_type": "exercise",
    }
    scheduler.stop()


@pytest.mark.asyncio
async def test_rest_uses_finished_items_rest():
    controller = FakeController()
    rests = []
    scheduler = PlanScheduler(
        controller, on_rest=lambda item, timer: rests.append((item.name, timer.duration))
    )
    items = [
        ExerciseItem(name="Press", sets=1, rest_sec=45),
        ExerciseItem(name="Curl", sets=1, rest_sec=120),
    ]

    await scheduler.start(items)
    controller.finish_block()

    assert rests == [("Curl", 45)]
    assert scheduler.state is PlanState.RESTING
    assert len(controller.started) == 1
    scheduler.stop()


@pytest.mark.asyncio
async def test_skip_rest_starts_next_block_once():
    controller = FakeController()
    scheduler = PlanScheduler(controller)

    await scheduler.start([ExerciseItem(name="Press", sets=2, rest_sec=90)])
    controller.finish_block()
    assert scheduler.rest_timer is not None

    assert scheduler.skip_rest()
    assert not scheduler.skip_rest()
    await settle()

    assert controller.labels() == [("Press", 1), ("Press", 2)]
    assert scheduler.state is PlanState.RUNNING
    scheduler.stop()


@pytest.mark.asyncio
async def test_rest_controls_without_rest():
    scheduler = PlanScheduler(FakeController())

    assert not scheduler.skip_rest()
    assert not scheduler.extend_rest()
    assert not scheduler.pause_rest()
    assert not scheduler.resume_rest()


@pytest.mark.asyncio
async def test_paused_rest_does_not_advance():
    controller = FakeController()
    clock = FakeClock()
    scheduler = PlanScheduler(controller, clock=clock, tick_interval=0.005)

    await scheduler.start([ExerciseItem(name="Press", sets=2, rest_sec=10)])
    controller.finish_block()
    assert scheduler.pause_rest()
    clock.now += 60
    await asyncio.sleep(0.02)
    assert len(controller.started) == 1

    assert scheduler.extend_rest(30)
    assert scheduler.rest_timer.remaining == 40
    assert scheduler.resume_rest()
    clock.now += 40
    await asyncio.sleep(0.02)
    await settle()

    assert len(controller.started) == 2


@pytest.mark.asyncio
async def test_item_stop_at_top_overrides_default_for_its_blocks():
    controller = FakeController()
    scheduler = PlanScheduler(controller)

    await scheduler.start([ExerciseItem(sets=1, stop_at_top=True)])

    assert controller.started[0]["stop_at_top"] is True
    assert controller.stop_at_top is False
    scheduler.stop()


@pytest.mark.asyncio
async def test_start_rejects_empty_plan_and_no_link():
    controller = FakeController()
    scheduler = PlanScheduler(controller)

    with pytest.raises(ValidationError):
        await scheduler.start([])

    controller.is_connected = False
    with pytest.raises(LinkError):
        await scheduler.start(default_plan())
    assert controller.started == []


@pytest.mark.asyncio
async def test_launch_failure_finishes_plan():
    controller = FakeController()
    controller.fail_next = True
    scheduler = PlanScheduler(controller)

    with pytest.raises(LinkError):
        await scheduler.start(default_plan())

    assert scheduler.state is PlanState.FINISHED
    assert not scheduler.active


@pytest.mark.asyncio
async def test_stop_abandons_rest():
    controller = FakeController()
    scheduler = PlanScheduler(controller, tick_interval=0.005)

    await scheduler.start([ExerciseItem(sets=2, rest_sec=1)])
    controller.finish_block()
    timer = scheduler.rest_timer
    scheduler.stop()
    await asyncio.sleep(0.01)

    assert scheduler.state is PlanState.IDLE
    assert timer.done
    assert scheduler.rest_timer is None
    assert len(controller.started) == 1
