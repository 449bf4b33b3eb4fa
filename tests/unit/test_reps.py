"""Rep counting state machine and range estimation."""

import pytest

from vitructrl.errors import ProtocolInvariantViolation
from vitructrl.protocol import MonitorSample, RepCounters
from vitructrl.reps import (
    RepEventKind,
    RepTracker,
    RollingWindow,
    WorkoutPhase,
    counter_delta,
)


def sample(pos_a=200, pos_b=200):
    return MonitorSample(
        ticks=0, pos_a=pos_a, pos_b=pos_b, load_a=0.0, load_b=0.0, timestamp=0.0
    )


def kinds(events):
    return [e.kind for e in events]


def run_rep(tracker, n, top_pos=300, bottom_pos=100):
    """Drive rep ``n`` (1-based): top notification, then bottom notification."""
    events = tracker.process(RepCounters(n, n - 1), sample(top_pos, top_pos), now=float(n))
    events += tracker.process(RepCounters(n, n), sample(bottom_pos, bottom_pos), now=n + 0.5)
    return events


@pytest.mark.parametrize(
    "last, current, expected",
    [(5, 6, 1), (10, 10, 0), (0xFFFF, 0, 1), (0xFFFE, 1, 3), (0, 0xFFFF, 0xFFFF)],
)
def test_counter_delta(last, current, expected):
    assert counter_delta(last, current) == expected


def test_rolling_window_bound_and_average():
    window = RollingWindow(bound=2)
    window.push(100)
    window.push(101)
    # Halves round up
    assert window.average() == 101

    window.push(300, bound=3)
    assert window.values == [100, 101, 300]
    window.push(400)
    assert window.values == [101, 300, 400]
    assert window.band().min == 101
    assert window.band().max == 400


def test_rolling_window_shrinks_to_new_bound():
    window = RollingWindow(bound=3)
    for value in (1, 2, 3):
        window.push(value)
    window.push(4, bound=2)
    assert window.values == [3, 4]


def test_empty_window():
    window = RollingWindow()
    assert window.average() is None
    assert window.band() is None


def test_first_notification_only_sets_baseline():
    tracker = RepTracker()
    tracker.begin(target_reps=5, now=0.0)

    assert tracker.process(RepCounters(40, 39), sample()) == []
    assert tracker.state.warmup_reps == 0
    assert tracker.counters.last_top == 40
    assert tracker.counters.last_complete == 39


def test_top_change_alone_is_not_a_rep():
    tracker = RepTracker()
    tracker.begin(target_reps=5, now=0.0)
    tracker.process(RepCounters(5, 2), sample())

    events = tracker.process(RepCounters(6, 2), sample(pos_a=310, pos_b=305))

    assert kinds(events) == [RepEventKind.TOP]
    assert tracker.state.warmup_reps == 0
    assert tracker.state.working_reps == 0
    assert tracker.state.top_a.values == [310]
    assert tracker.state.top_b.values == [305]


def test_warmup_then_working():
    tracker = RepTracker()
    tracker.begin(target_reps=5, now=0.0)
    tracker.process(RepCounters(0, 0), sample())
    assert tracker.phase is WorkoutPhase.WARMUP

    events = []
    for n in (1, 2, 3):
        events += run_rep(tracker, n)

    assert kinds(events).count(RepEventKind.WARMUP_REP) == 3
    assert kinds(events)[-1] is RepEventKind.WARMUP_COMPLETE
    assert tracker.phase is WorkoutPhase.WORKING
    assert tracker.state.warmup_end_at == 3.5

    events = run_rep(tracker, 4)
    assert kinds(events) == [RepEventKind.TOP, RepEventKind.WORKING_REP]
    assert events[-1].working_reps == 1
    assert tracker.state.warmup_reps == 3


def test_completes_at_target():
    tracker = RepTracker()
    tracker.begin(target_reps=2, now=0.0)
    tracker.process(RepCounters(0, 0), sample())

    for n in (1, 2, 3, 4):
        run_rep(tracker, n)
    events = run_rep(tracker, 5)

    assert kinds(events)[-1] is RepEventKind.COMPLETE
    assert tracker.phase is WorkoutPhase.COMPLETED
    assert tracker.state.working_reps == 2
    # Nothing is counted after completion
    with pytest.raises(ProtocolInvariantViolation):
        run_rep(tracker, 6)
    assert tracker.state.working_reps == 2


def test_stop_at_top_requests_stop_on_final_top():
    tracker = RepTracker()
    tracker.begin(target_reps=2, stop_at_top=True, now=0.0)
    tracker.process(RepCounters(0, 0), sample())

    for n in (1, 2, 3, 4):
        events = run_rep(tracker, n)
        assert RepEventKind.REQUEST_STOP not in kinds(events)

    events = tracker.process(RepCounters(5, 4), sample(300, 300))

    assert kinds(events) == [RepEventKind.TOP, RepEventKind.REQUEST_STOP]
    assert tracker.state.completed
    assert tracker.state.working_reps == 1


def test_stop_at_top_single_rep_stops_on_first_top():
    tracker = RepTracker()
    tracker.begin(target_reps=1, stop_at_top=True, now=0.0)
    tracker.process(RepCounters(0, 0), sample())

    events = tracker.process(RepCounters(1, 0), sample(300, 300))

    # No warmup condition: working reps already equal target - 1
    assert kinds(events) == [RepEventKind.TOP, RepEventKind.REQUEST_STOP]
    assert tracker.state.completed
    assert tracker.state.warmup_reps == 0


def test_just_lift_never_completes_on_reps():
    tracker = RepTracker()
    tracker.begin(target_reps=0, just_lift=True, stop_at_top=True, now=0.0)
    tracker.process(RepCounters(0, 0), sample())

    for n in range(1, 12):
        events = run_rep(tracker, n)
        assert RepEventKind.COMPLETE not in kinds(events)
        assert RepEventKind.REQUEST_STOP not in kinds(events)

    assert tracker.state.working_reps == 8
    assert tracker.phase is WorkoutPhase.WORKING


def test_counters_wrap():
    tracker = RepTracker()
    tracker.begin(target_reps=5, now=0.0)
    tracker.process(RepCounters(0xFFFF, 0xFFFF), sample())

    events = tracker.process(RepCounters(0, 0), sample())

    assert kinds(events) == [RepEventKind.TOP, RepEventKind.WARMUP_REP]


def test_counter_jump_counts_once():
    tracker = RepTracker()
    tracker.begin(target_reps=5, now=0.0)
    tracker.process(RepCounters(0, 0), sample())

    events = tracker.process(RepCounters(3, 3), sample())

    assert kinds(events) == [RepEventKind.TOP, RepEventKind.WARMUP_REP]
    assert tracker.state.warmup_reps == 1


def test_range_tracks_recent_reps():
    tracker = RepTracker()
    tracker.begin(target_reps=10, now=0.0)
    tracker.process(RepCounters(0, 0), sample())

    run_rep(tracker, 1, top_pos=300, bottom_pos=100)
    run_rep(tracker, 2, top_pos=310, bottom_pos=110)
    state = tracker.state
    assert state.range_a.max_pos == 305
    assert state.range_a.min_pos == 105
    assert state.range_a.span == 200

    # Warmup keeps two reps, working keeps three
    for n in range(3, 7):
        run_rep(tracker, n, top_pos=400, bottom_pos=50)
    assert state.top_a.values == [400, 400, 400]
    assert state.range_a.min_pos == 50


def test_notifications_rejected_without_sample_or_block():
    tracker = RepTracker()
    with pytest.raises(ProtocolInvariantViolation):
        tracker.process(RepCounters(1, 1), sample())
    assert tracker.phase is WorkoutPhase.IDLE

    tracker.begin(target_reps=5, now=0.0)
    with pytest.raises(ProtocolInvariantViolation):
        tracker.process(RepCounters(1, 1), None)
    assert tracker.counters.last_top is None


def test_begin_resets_counters():
    tracker = RepTracker()
    tracker.begin(target_reps=5, now=0.0)
    tracker.process(RepCounters(10, 10), sample())
    tracker.end()

    tracker.begin(target_reps=5, now=1.0)

    assert tracker.counters.last_top is None
    assert tracker.process(RepCounters(50, 50), sample()) == []
