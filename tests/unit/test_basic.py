#!/usr/bin/env python
"""Basic functionality test for REPL components without device."""

import asyncio
import time

import pytest
from prompt_toolkit.application import create_app_session
from prompt_toolkit.document import Document
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput

from vitructrl.cli import VitruCtrlREPL, parse_echo_level
from vitructrl.commands import COMMANDS, CommandCompleter, get_command
from vitructrl.controller import TrainerController, WorkoutSummary
from vitructrl.core import EchoLevel, ProgramMode, program_mode_from_name
from vitructrl.display import DisplayManager
from vitructrl.errors import ValidationError
from vitructrl.plan import default_plan
from vitructrl.storage import PlanStore


def completions(completer, text):
    return [c.display_text for c in completer.get_completions(Document(text), None)]


@pytest.mark.asyncio
async def test_display():
    """Test display functionality."""
    print("\n=== Testing Display Manager ===")
    display = DisplayManager()

    print("\n1. Testing banner:")
    display.print_banner()

    print("\n2. Testing status display:")
    test_status = {
        "connected": True,
        "phase": "working",
        "mode": "Old School",
        "set_name": "Back Squat",
        "warmup_reps": 3,
        "warmup_target": 3,
        "working_reps": 4,
        "target_reps": 8,
        "just_lift": True,
        "pos_a": 412,
        "pos_b": 398,
        "load_a": 15.2,
        "load_b": 14.8,
        "range_a": (100, 600),
        "range_b": (None, None),
        "auto_stop": 0.4,
        "auto_stop_left": 3.0,
    }
    display.print_status(test_status)

    print("\n3. Testing history and plans:")
    now = time.time()
    display.print_history(
        [
            WorkoutSummary(
                mode="Old School",
                weight_kg=15.0,
                reps=8,
                start_time=now - 95,
                end_time=now,
                set_name="Back Squat",
                set_number=1,
                set_total=3,
            ),
            WorkoutSummary(mode="Echo Hard", weight_kg=0.0, reps=2, start_time=now, end_time=now),
        ]
    )
    display.print_history([])
    display.print_plan("demo", default_plan())
    display.print_rest("Echo Finishers", "Harder • ecc 120% • target 2 reps", 90)

    print("\n4. Testing messages:")
    display.print_info("This is an info message")
    display.print_error("This is an error message")
    display.print_success("This is a success message")

    print("\n5. Testing format functions:")
    assert display.format_time(125) == "2:05"
    assert display.format_time(-3) == "0:00"
    assert display.format_load(15.0) == "15.0 kg"
    assert display.format_load(None) == "-"
    assert display.format_reps(4, 8) == "4/8"
    assert display.format_reps(4, 0) == "4"
    assert display.format_range((100, 600)) == "100-600 (500)"
    assert display.format_range(None) == "?"
    assert display.format_progress(0.0, 5.0) == "armed when parked"
    assert display.format_progress(0.5, 2.5) == "[#####.....] 2s"

    display.unit = "lb"
    assert display.format_load(10.0) == "22.0 lb"
    display.print_plan("demo", default_plan())

    print("\n6. Testing help display:")
    display.print_help(COMMANDS)


@pytest.mark.asyncio
async def test_commands():
    """Test command definitions."""
    print(f"\n1. Total commands defined: {len(COMMANDS)}")

    for cmd_str, expected in [
        ("connect", "connect"),
        ("c", "connect"),
        ("pg", "program"),
        ("jl", "justlift"),
        ("e", "echo"),
        ("x", "stop"),
        ("sk", "skip"),
        ("?", "help"),
        ("exit", "quit"),
    ]:
        cmd = get_command(cmd_str)
        assert cmd is not None
        assert cmd.name == expected
    assert get_command("speed") is None

    # Every command has a handler on the REPL
    for cmd in COMMANDS:
        assert hasattr(VitruCtrlREPL, cmd.handler), cmd.handler

    # Names and aliases never collide
    names = [n for cmd in COMMANDS for n in [cmd.name, *cmd.aliases]]
    assert len(names) == len(set(names))


def test_completer():
    completer = CommandCompleter(plan_names=lambda: ["legs", "arms"])

    assert "(program)" in completions(completer, "prog")
    assert completions(completer, "") == []
    assert completions(completer, "program t") == ["tut", "tut_beast"]
    assert "purple" in completions(completer, "color p")
    assert completions(completer, "echo ") == ["1", "2", "3", "4"]
    assert completions(completer, "runplan l") == ["legs"]
    assert completions(completer, "plan ") == ["demo", "legs", "arms"]
    assert completions(completer, "program tut 1") == []
    assert completions(completer, "units ") == ["kg", "lb"]
    assert completions(completer, "additem e") == ["exercise", "echo"]
    assert completions(completer, "edit l") == ["legs"]


def test_argument_parsing():
    assert program_mode_from_name("old_school") is ProgramMode.OLD_SCHOOL
    assert program_mode_from_name("Old School") is ProgramMode.OLD_SCHOOL
    assert program_mode_from_name("tut-beast") is ProgramMode.TUT_BEAST
    assert program_mode_from_name("6") is ProgramMode.ECCENTRIC_ONLY
    with pytest.raises(KeyError):
        program_mode_from_name("spin")

    assert parse_echo_level("1") is EchoLevel.HARD
    assert parse_echo_level("4") is EchoLevel.EPIC
    assert parse_echo_level("harder") is EchoLevel.HARDER
    with pytest.raises(ValidationError):
        parse_echo_level("5")


@pytest.mark.asyncio
async def test_repl_commands_without_device(tmp_path):
    """Commands that need no trainer work offline; the rest report errors."""
    with create_pipe_input() as pipe, create_app_session(input=pipe, output=DummyOutput()):
        repl = VitruCtrlREPL(plan_store=PlanStore(tmp_path / "plans.json"))

    # Nothing to save until a working plan exists
    await repl._handle_input("saveplan legs")
    assert repl.plans.names() == []

    await repl._handle_input("edit demo")
    assert [item.name for item in repl.draft] == ["Back Squat", "Echo Finishers"]
    await repl._handle_input("additem exercise Romanian Deadlift")
    await repl._handle_input("additem cardio")
    assert len(repl.draft) == 3
    assert repl.draft[2].name == "Romanian Deadlift"

    await repl._handle_input("units lb")
    assert repl.display.unit == "lb"
    await repl._handle_input("setitem 3 per_cable_kg 44.1")
    assert repl.draft[2].per_cable_kg == pytest.approx(20.0, abs=0.01)
    await repl._handle_input("setitem 3 mode pump")
    assert repl.draft[2].mode is ProgramMode.PUMP
    await repl._handle_input("setitem 3 stop_at_top on")
    assert repl.draft[2].stop_at_top
    # Rejected edits leave the item unchanged
    await repl._handle_input("setitem 3 sets 2.5")
    await repl._handle_input("setitem 3 reps 500")
    await repl._handle_input("setitem 3 colour red")
    await repl._handle_input("setitem 9 sets 2")
    assert repl.draft[2].sets == 3
    assert repl.draft[2].reps == 10
    await repl._handle_input("units stone")
    assert repl.display.unit == "lb"

    await repl._handle_input("moveitem 3 up")
    assert [item.name for item in repl.draft] == [
        "Back Squat",
        "Romanian Deadlift",
        "Echo Finishers",
    ]
    await repl._handle_input("moveitem 1 up")
    await repl._handle_input("rmitem 1")
    assert [item.name for item in repl.draft] == ["Romanian Deadlift", "Echo Finishers"]
    await repl._handle_input("draft")

    await repl._handle_input("saveplan legs")
    assert repl.plans.names() == ["legs"]
    assert repl.plans.load("legs") == repl.draft

    await repl._handle_input("newplan")
    assert repl.draft == []
    await repl._handle_input("edit legs")
    assert repl.draft_name == "legs"
    await repl._handle_input("setitem 2 target_reps 5")
    await repl._handle_input("saveplan")
    assert repl.plans.load("legs")[1].target_reps == 5

    await repl._handle_input("plans")
    await repl._handle_input("plan legs")
    await repl._handle_input("plan missing")
    await repl._handle_input("stopattop on")
    assert repl.controller.stop_at_top
    await repl._handle_input("program old_school 20 8")
    await repl._handle_input("runplan demo")
    await repl._handle_input("runplan")
    assert not repl.scheduler.active
    await repl._handle_input("skip")
    await repl._handle_input("history")
    await repl._handle_input("status")
    await repl._handle_input("info")
    await repl._handle_input("bogus")
    await repl._handle_input("delplan legs")
    assert repl.plans.names() == []


@pytest.mark.asyncio
async def test_controller_properties():
    """Test controller properties (without connection)."""
    controller = TrainerController()

    assert not controller.is_connected
    assert controller.device_name is None
    assert controller.history == []
    assert controller.DEVICE_NAME_PREFIX == "Vee"

    status = controller.get_status()
    print(f"  {status}")
    assert status["warmup_target"] == 3
    assert status["auto_stop"] == 0.0
    assert status["auto_stop_left"] == 5.0


async def main():
    """Run all tests."""
    print("=" * 60)
    print("VitruCtrl REPL - Basic Component Tests")
    print("=" * 60)

    await test_display()
    await test_commands()
    test_completer()
    await test_controller_properties()

    print("\n" + "=" * 60)
    print("✓ All basic tests completed successfully!")
    print("=" * 60)
    return True


if __name__ == "__main__":
    success = asyncio.run(main())
    exit(0 if success else 1)
