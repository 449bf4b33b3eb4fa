"""
Main REPL application for Vitruvian trainer control.

Interactive command loop with async support, auto-completion,
plan scheduling and live telemetry display.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import InMemoryHistory

from .commands import COMMANDS, CommandCompleter, get_command
from .controller import TrainerController, WorkoutSummary
from .core import (
    COLOR_PRESETS,
    ECHO_LEVEL_NAMES,
    PROGRAM_MODE_NAMES,
    REST_EXTEND_SECONDS,
    WEIGHT_UNITS,
    EchoLevel,
    program_mode_from_name,
    unit_to_kg,
)
from .display import DisplayManager
from .errors import LinkError, ValidationError
from .plan import (
    PlanItem,
    PlanScheduler,
    RestTimer,
    add_item,
    default_plan,
    item_fields,
    move_item,
    remove_item,
    update_item,
)
from .protocol import EchoParams, ProgramParams
from .reps import RepEvent, RepEventKind
from .storage import PlanStore

logger = logging.getLogger(__name__)

DEMO_PLAN_NAME = "demo"


def configure_logging(debug: bool = False) -> None:
    """Configure root logging for the console."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
    )


def parse_echo_level(text: str) -> EchoLevel:
    """Parse a 1-based echo level ("1".."4") or a level name."""
    text = text.strip().lower()
    if text.isdigit():
        value = int(text)
        if 1 <= value <= len(EchoLevel):
            return EchoLevel(value - 1)
    for level, name in ECHO_LEVEL_NAMES.items():
        if name.lower() == text:
            return level
    raise ValidationError("level", text, "1-4 or hard/harder/hardest/epic")


class VitruCtrlREPL:
    """Interactive REPL for Vitruvian trainer control."""

    def __init__(self, plan_store: Optional[PlanStore] = None) -> None:
        """Initialize REPL with controller, plan scheduler and display manager."""
        self.controller = TrainerController()
        self.display = DisplayManager()
        self.plans = plan_store or PlanStore()
        self.scheduler = PlanScheduler(
            self.controller,
            on_rest=self._on_rest,
            on_finish=self._on_plan_finish,
        )
        # Plan being edited with additem/setitem/...; saved by saveplan
        self.draft: List[PlanItem] = []
        self.draft_name: Optional[str] = None
        self.running = False
        self.session: PromptSession

        # Set up callbacks
        self.controller.set_on_rep_event(self._on_rep_event)
        self.controller.set_on_disconnect(self._on_device_disconnect)
        self.controller.set_on_workout_complete(self._on_workout_complete)

        # Create prompt session with auto-completion
        self.session = PromptSession(
            completer=CommandCompleter(plan_names=self.plans.names),
            history=InMemoryHistory(),
            enable_history_search=True,
        )

        # Background update task
        self._update_task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        """Run the main REPL loop."""
        self.running = True
        self.display.print_banner()

        # Auto-connect to device on startup
        self.display.console.print("Attempting to connect to trainer...")
        try:
            if await self.controller.connect():
                self.display.console.print("✓ Connected successfully\n")
            else:
                self.display.console.print(
                    "⚠ Could not connect to trainer. Use 'connect' command to retry.\n"
                )
        except Exception as e:
            self.display.console.print(f"⚠ Connection failed: {e}\n")

        self._start_update_loop()

        try:
            while self.running:
                try:
                    prompt_text = self._get_prompt()
                    text = await self.session.prompt_async(prompt_text)

                    if text.strip():
                        await self._handle_input(text.strip())

                except KeyboardInterrupt:
                    # Just show new prompt on Ctrl+C
                    self.display.console.print()
                    continue

        except EOFError:
            # End of input (Ctrl+D)
            await self.cmd_quit([])
        finally:
            self.running = False
            self.scheduler.stop()
            await self._stop_update_loop()

    def _start_update_loop(self) -> None:
        if self._update_task is None or self._update_task.done():
            self._update_task = asyncio.create_task(self._update_loop())

    async def _stop_update_loop(self) -> None:
        if self._update_task:
            self._update_task.cancel()
            try:
                await self._update_task
            except asyncio.CancelledError:
                pass
            self._update_task = None

    def _get_prompt(self) -> FormattedText:
        """Get dynamic prompt based on connection and plan state.

        Returns:
            FormattedText for prompt_toolkit
        """
        if not self.controller.is_connected:
            return FormattedText([("class:prompt", "[disconnected] > ")])

        device_name = self.controller.device_name or "Trainer"
        if self.scheduler.rest_timer is not None:
            left = self.display.format_time(int(self.scheduler.rest_timer.remaining))
            return FormattedText([("class:prompt", f"[{device_name} rest {left}] > ")])
        return FormattedText([("class:prompt", f"[{device_name}] > ")])

    async def _handle_input(self, text: str) -> None:
        """Parse and dispatch command.

        Args:
            text: Raw user input text
        """
        parts = text.split(maxsplit=1)
        if not parts:
            return

        cmd_name = parts[0].lower()
        args = parts[1].split() if len(parts) > 1 else []

        cmd = get_command(cmd_name)
        if not cmd:
            self.display.print_error(
                f"Unknown command: {cmd_name}. Type 'help' for available commands."
            )
            return

        handler_name = cmd.handler
        if not hasattr(self, handler_name):
            self.display.print_error(f"Handler not found: {handler_name}")
            return

        handler = getattr(self, handler_name)

        try:
            await handler(args)
        except ValidationError as e:
            self.display.print_error(f"Invalid input: {e}")
        except LinkError as e:
            self.display.print_error(f"Trainer link error: {e}")
        except Exception as e:
            self.display.print_error(f"Command failed: {e}")
            logger.exception("Command exception")

    async def _update_loop(self) -> None:
        """Background task to process telemetry updates."""
        try:
            async for update_data in self.controller.get_updates():
                if self.display.live_enabled:
                    self.display.update_live(update_data)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Update loop error: {e}")

    def _on_rep_event(self, event: RepEvent) -> None:
        """Announce phase changes; individual reps show in the live view."""
        if self.display.live_enabled:
            return
        if event.kind is RepEventKind.WARMUP_COMPLETE:
            self.display.print_info("Warmup complete, working reps start now")
        elif event.kind is RepEventKind.WORKING_REP:
            self.display.print_info(f"Rep {event.working_reps}")

    def _on_workout_complete(self, summary: WorkoutSummary) -> None:
        label = summary.set_name or summary.mode
        self.display.print_success(f"{label} complete: {summary.reps} reps")

    def _on_rest(self, next_item: PlanItem, timer: RestTimer) -> None:
        self.display.print_rest(
            next_item.name, next_item.summary(self.display.unit), timer.remaining
        )

    def _on_plan_finish(self) -> None:
        self.display.print_success("Plan complete")

    def _on_device_disconnect(self) -> None:
        """Callback when device disconnects."""
        if self.display.live_enabled:
            self.display.stop_live()
        self.scheduler.stop()
        self.display.print_info("Trainer disconnected")

    def _require_connection(self) -> bool:
        if not self.controller.is_connected:
            self.display.print_error("Not connected. Use 'connect' first.")
            return False
        return True

    def _load_plan(self, name: str) -> Optional[List[PlanItem]]:
        if name.lower() == DEMO_PLAN_NAME:
            return default_plan()
        items = self.plans.load(name)
        if items is None:
            self.display.print_error(f"No saved plan named '{name}'")
        return items

    # ========== Command Handlers ==========

    async def cmd_connect(self, args: list) -> None:
        """Connect to trainer."""
        if self.controller.is_connected:
            self.display.print_info("Already connected")
            return

        self.display.print_info("Connecting (scanning for Vee_* trainers if needed)...")
        if not await self.controller.connect():
            self.display.print_error(
                "Connection failed. Make sure the trainer is powered on and in range."
            )
            return

        self.display.print_info(f"Connected to {self.controller.device_name or 'trainer'}")
        self._start_update_loop()

    async def cmd_disconnect(self, args: list) -> None:
        """Disconnect from trainer."""
        if not self.controller.is_connected:
            self.display.print_info("Not connected")
            return

        if self.display.live_enabled:
            self.display.stop_live()

        self.scheduler.stop()
        await self.controller.disconnect()
        self.display.print_info("Disconnected")

    async def cmd_program(self, args: list) -> None:
        """Start a program-mode set."""
        if not self._require_connection():
            return
        if len(args) < 3:
            self.display.print_error(
                f"Usage: program <mode> <{self.display.unit}/cable> <reps> [progression]"
            )
            self.display.print_info(
                "Modes: " + ", ".join(m.name.lower() for m in PROGRAM_MODE_NAMES)
            )
            return

        try:
            mode = program_mode_from_name(args[0])
        except KeyError:
            self.display.print_error(f"Unknown mode: {args[0]}")
            return
        unit = self.display.unit
        try:
            weight = unit_to_kg(float(args[1]), unit)
            reps = int(args[2])
            progression = unit_to_kg(float(args[3]), unit) if len(args) > 3 else 0.0
        except ValueError:
            self.display.print_error("Weight and progression must be numbers, reps an integer")
            return

        params = ProgramParams(
            mode=mode, per_cable_kg=weight, reps=reps, progression_kg=progression
        )
        await self.controller.start_program(params)
        self.display.print_info(
            f"{PROGRAM_MODE_NAMES[mode]}: {self.display.format_load(weight)}/cable, "
            f"{reps} reps (plus 3 warmup reps)"
        )

    async def cmd_just_lift(self, args: list) -> None:
        """Start a Just Lift set."""
        if not self._require_connection():
            return
        if len(args) < 2:
            self.display.print_error(f"Usage: justlift <mode> <{self.display.unit}/cable>")
            return

        try:
            mode = program_mode_from_name(args[0])
        except KeyError:
            self.display.print_error(f"Unknown mode: {args[0]}")
            return
        try:
            weight = unit_to_kg(float(args[1]), self.display.unit)
        except ValueError:
            self.display.print_error(f"Invalid weight: {args[1]}")
            return

        params = ProgramParams(mode=mode, per_cable_kg=weight, reps=0, just_lift=True)
        await self.controller.start_program(params)
        self.display.print_info(
            "Just Lift started. Park the handles at the bottom for 5s to finish."
        )

    async def cmd_echo(self, args: list) -> None:
        """Start an echo-mode set."""
        if not self._require_connection():
            return
        if len(args) < 3:
            self.display.print_error("Usage: echo <level 1-4> <eccentric %> <target reps>")
            return

        level = parse_echo_level(args[0])
        try:
            eccentric = int(args[1])
            target = int(args[2])
        except ValueError:
            self.display.print_error("Eccentric % and target reps must be integers")
            return

        params = EchoParams(level=level, eccentric_pct=eccentric, target_reps=target)
        await self.controller.start_echo(params)
        self.display.print_info(
            f"Echo {ECHO_LEVEL_NAMES[level]}: eccentric {eccentric}%, target {target} reps"
        )

    async def cmd_stop(self, args: list) -> None:
        """Stop the current set."""
        if not self._require_connection():
            return

        summary = await self.controller.stop_workout()
        if summary is None:
            self.display.print_info("Stop sent (no set was running)")

    async def cmd_stop_at_top(self, args: list) -> None:
        """Show or change the stop-at-top default."""
        if args:
            value = args[0].lower()
            if value not in ("on", "off"):
                self.display.print_error("Usage: stopattop [on|off]")
                return
            self.controller.stop_at_top = value == "on"
        state = "on" if self.controller.stop_at_top else "off"
        self.display.print_info(f"Stop at top: {state}")

    async def cmd_color(self, args: list) -> None:
        """Set LED colour preset."""
        if not args:
            self.display.print_error("Usage: color <preset>")
            self.display.print_info("Presets: " + ", ".join(COLOR_PRESETS))
            return
        if not self._require_connection():
            return

        await self.controller.set_color_preset(args[0])
        self.display.print_info(f"Colour scheme set to {args[0].lower()}")

    async def cmd_status(self, args: list) -> None:
        """Show current set and sensor values."""
        status = self.controller.get_status()
        self.display.print_status(status)
        if self.scheduler.active:
            item = self.scheduler.current_item
            if item is not None:
                self.display.print_info(
                    f"Plan: {item.name}, set {self.scheduler.cursor.set}/{item.sets} "
                    f"({self.scheduler.state.value})"
                )

    async def cmd_live(self, args: list) -> None:
        """Toggle live display mode."""
        enabled = self.display.toggle_live()
        if enabled:
            # Need initial status for live display
            status = self.controller.get_status()
            self.display.update_live(status)
        else:
            self.display.print_info("Live display disabled")

    async def cmd_history(self, args: list) -> None:
        """Show completed sets."""
        self.display.print_history(self.controller.history)

    async def cmd_plans(self, args: list) -> None:
        """List saved plans."""
        names = self.plans.names()
        if not names:
            self.display.print_info("No saved plans (try 'plan demo' or 'saveplan <name>')")
            return
        for name in names:
            self.display.console.print(f"  {name}")

    async def cmd_plan(self, args: list) -> None:
        """Show a saved plan."""
        if not args:
            self.display.print_error("Usage: plan <name>")
            return
        name = " ".join(args)
        items = self._load_plan(name)
        if items is not None:
            self.display.print_plan(name, items)

    async def cmd_run_plan(self, args: list) -> None:
        """Run a saved plan, or the working plan when no name is given."""
        if not args and not self.draft:
            self.display.print_error("Usage: runplan <name> (working plan is empty)")
            return
        if not self._require_connection():
            return
        if args:
            name = " ".join(args)
            items = self._load_plan(name)
            if items is None:
                return
        else:
            name = self.draft_name or "working plan"
            items = list(self.draft)
        self.display.print_plan(name, items)
        await self.scheduler.start(items)

    async def cmd_save_plan(self, args: list) -> None:
        """Save the working plan."""
        name = " ".join(args) if args else self.draft_name
        if not name:
            self.display.print_error("Usage: saveplan <name>")
            return
        if not self.draft:
            self.display.print_error("Working plan is empty; use 'edit' or 'additem' first")
            return
        if self.plans.save(name, self.draft):
            self.draft_name = name
            self.display.print_success(f"Saved plan '{name}' ({len(self.draft)} items)")
        else:
            self.display.print_error(f"Could not save plan '{name}'")

    async def cmd_edit_plan(self, args: list) -> None:
        """Open a saved plan as the working plan."""
        if not args:
            self.display.print_error("Usage: edit <name>")
            return
        name = " ".join(args)
        items = self._load_plan(name)
        if items is None:
            return
        self.draft = items
        self.draft_name = None if name.lower() == DEMO_PLAN_NAME else name
        self.display.print_plan(name, self.draft)

    async def cmd_new_plan(self, args: list) -> None:
        """Start an empty working plan."""
        self.draft = []
        self.draft_name = " ".join(args) or None
        self.display.print_info("Working plan cleared; add items with 'additem'")

    async def cmd_draft(self, args: list) -> None:
        """Show the working plan."""
        if not self.draft:
            self.display.print_info("Working plan is empty")
            return
        self.display.print_plan(self.draft_name or "working plan", self.draft)

    def _item_index(self, text: str) -> int:
        """Parse a 1-based item number from the user."""
        try:
            number = int(text)
        except ValueError:
            raise ValidationError("item", text, f"1-{len(self.draft)}") from None
        if not 1 <= number <= len(self.draft):
            raise ValidationError("item", number, f"1-{len(self.draft)}")
        return number - 1

    async def cmd_add_item(self, args: list) -> None:
        """Append an item to the working plan."""
        if not args:
            self.display.print_error("Usage: additem <exercise|echo> [name]")
            return
        item = add_item(self.draft, args[0].lower())
        if len(args) > 1:
            item = update_item(self.draft, len(self.draft) - 1, "name", " ".join(args[1:]))
        self.display.print_info(f"Added item {len(self.draft)}: {item.name}")

    async def cmd_remove_item(self, args: list) -> None:
        """Remove an item from the working plan."""
        if not args:
            self.display.print_error("Usage: rmitem <n>")
            return
        item = remove_item(self.draft, self._item_index(args[0]))
        if item is not None:
            self.display.print_info(f"Removed {item.name}")

    async def cmd_move_item(self, args: list) -> None:
        """Move a working plan item one place up or down."""
        if len(args) < 2 or args[1].lower() not in ("up", "down"):
            self.display.print_error("Usage: moveitem <n> <up|down>")
            return
        index = self._item_index(args[0])
        delta = -1 if args[1].lower() == "up" else 1
        if not move_item(self.draft, index, delta):
            self.display.print_info("Item is already at that end of the plan")
            return
        await self.cmd_draft([])

    def _parse_field_value(self, field: str, words: List[str]):
        """Turn user words into a value for a plan item field."""
        text = " ".join(words)
        if field == "name":
            return text
        if field == "mode":
            try:
                return program_mode_from_name(text)
            except KeyError:
                raise ValidationError(
                    "mode", text, ", ".join(m.name.lower() for m in PROGRAM_MODE_NAMES)
                ) from None
        if field == "level":
            return parse_echo_level(text)
        if field in ("just_lift", "stop_at_top"):
            value = text.lower()
            if value not in ("on", "off", "yes", "no", "true", "false"):
                raise ValidationError(field, text, "on or off")
            return value in ("on", "yes", "true")
        try:
            if field.endswith("_kg"):
                return unit_to_kg(float(text), self.display.unit)
            return int(text)
        except ValueError:
            raise ValidationError(field, text, "a number") from None

    async def cmd_set_item(self, args: list) -> None:
        """Change one field of a working plan item."""
        if len(args) < 3:
            self.display.print_error("Usage: setitem <n> <field> <value>")
            if self.draft:
                fields = item_fields(self.draft[0])
                self.display.print_info(f"Fields of item 1: {', '.join(fields)}")
            return
        index = self._item_index(args[0])
        field = args[1].lower()
        if field not in item_fields(self.draft[index]):
            raise ValidationError("field", field, ", ".join(item_fields(self.draft[index])))
        value = self._parse_field_value(field, args[2:])
        item = update_item(self.draft, index, field, value)
        self.display.print_info(f"{item.name}: {item.summary(self.display.unit)}")

    async def cmd_delete_plan(self, args: list) -> None:
        """Delete a saved plan."""
        if not args:
            self.display.print_error("Usage: delplan <name>")
            return
        name = " ".join(args)
        if self.plans.delete(name):
            self.display.print_success(f"Deleted plan '{name}'")
        else:
            self.display.print_error(f"No saved plan named '{name}'")

    async def cmd_end_plan(self, args: list) -> None:
        """Abandon the running plan."""
        if not self.scheduler.active:
            self.display.print_info("No plan running")
            return
        self.scheduler.stop()
        self.display.print_info("Plan abandoned")

    async def cmd_skip(self, args: list) -> None:
        """Skip the current rest."""
        if not self.scheduler.skip_rest():
            self.display.print_info("Not resting")

    async def cmd_extend(self, args: list) -> None:
        """Add time to the current rest."""
        seconds: float = REST_EXTEND_SECONDS
        if args:
            try:
                seconds = float(args[0])
            except ValueError:
                self.display.print_error(f"Invalid seconds: {args[0]}")
                return
        if self.scheduler.extend_rest(seconds):
            timer = self.scheduler.rest_timer
            left = self.display.format_time(int(timer.remaining)) if timer else "0:00"
            self.display.print_info(f"Rest extended, {left} left")
        else:
            self.display.print_info("Not resting")

    async def cmd_pause(self, args: list) -> None:
        """Pause the rest countdown."""
        if not self.scheduler.pause_rest():
            self.display.print_info("Not resting")
            return
        self.display.print_info("Rest paused")

    async def cmd_resume(self, args: list) -> None:
        """Resume the rest countdown."""
        if not self.scheduler.resume_rest():
            self.display.print_info("Not resting")
            return
        self.display.print_info("Rest resumed")

    async def cmd_units(self, args: list) -> None:
        """Show or set the weight display unit."""
        if args:
            unit = args[0].lower()
            if unit not in WEIGHT_UNITS:
                raise ValidationError("unit", args[0], " or ".join(WEIGHT_UNITS))
            self.display.unit = unit
        self.display.print_info(f"Weights shown in {self.display.unit}")

    async def cmd_info(self, args: list) -> None:
        """Show device and debug information."""
        self.display.console.print("[bold cyan]Device Information[/bold cyan]")
        self.display.console.print(f"  Connected: {self.controller.is_connected}")
        self.display.console.print(f"  Device name: {self.controller.device_name}")
        self.display.console.print(f"  Stop at top: {self.controller.stop_at_top}")

        self.display.console.print()
        self.display.console.print("[bold cyan]Debug Information[/bold cyan]")
        self.display.console.print(f"  Phase: {self.controller.phase.value}")
        self.display.console.print(f"  Running: {self.controller._is_running}")
        self.display.console.print(f"  Live enabled: {self.display.live_enabled}")
        self.display.console.print(
            f"  Update queue size: {self.controller._update_queue.qsize()}"
        )
        self.display.console.print(f"  Plan state: {self.scheduler.state.value}")
        self.display.console.print(f"  Blocks started: {self.scheduler.blocks_started}")
        transport = self.controller._transport
        if transport is not None:
            subscribed = ", ".join(transport.subscriptions) or "none"
            self.display.console.print(f"  Notifications: {subscribed}")
            self.display.console.print(f"  Pending GATT ops: {transport.pending}")
        sample = self.controller.current_sample
        if sample is not None:
            self.display.console.print(
                f"  Last sample: ticks={sample.ticks} A={sample.pos_a}/{sample.load_a:.1f} "
                f"B={sample.pos_b}/{sample.load_b:.1f}"
            )

    async def cmd_help(self, args: list) -> None:
        """Show all available commands."""
        self.display.print_help(COMMANDS)

    async def cmd_quit(self, args: list) -> None:
        """Exit the REPL."""
        if self.display.live_enabled:
            self.display.stop_live()

        self.scheduler.stop()
        if self.controller.is_connected:
            self.display.print_info("Disconnecting...")
            await self.controller.disconnect()

        self.display.console.print("[cyan]Goodbye![/cyan]")
        self.running = False


async def run_plan_to_completion(
    controller: TrainerController, display: DisplayManager, items: List[PlanItem]
) -> None:
    """Run a plan unattended, returning once it finishes or the link drops."""
    finished = asyncio.Event()
    scheduler = PlanScheduler(
        controller,
        on_rest=lambda item, timer: display.print_rest(
            item.name, item.summary(), timer.remaining
        ),
        on_finish=finished.set,
    )
    controller.set_on_disconnect(finished.set)
    controller.set_on_workout_complete(
        lambda s: display.print_success(f"{s.set_name or s.mode}: {s.reps} reps")
    )

    await scheduler.start(items)
    await finished.wait()
    scheduler.stop()


async def run_cli_command(command: str, argument: Optional[str] = None) -> None:
    """Run a single CLI command and exit."""
    controller = TrainerController()
    display = DisplayManager()

    try:
        # Handle commands that don't need connection first
        if command == "clear-cache":
            controller.clear_address_cache()
            display.print_info("Cleared cached device address")
            return

        if command == "list-plans":
            names = PlanStore().names()
            if not names:
                display.print_info("No saved plans")
            for name in names:
                display.console.print(f"  {name}")
            return

        plan_name = argument or DEMO_PLAN_NAME
        items: List[PlanItem] = []
        if command == "plan":
            if plan_name.lower() == DEMO_PLAN_NAME:
                items = default_plan()
            else:
                items = PlanStore().load(plan_name) or []
            if not items:
                display.print_error(f"No saved plan named '{plan_name}'")
                sys.exit(1)

        # Auto-connect if not connected
        if not controller.is_connected:
            display.print_info("Connecting to trainer...")
            if not await controller.connect():
                display.print_error("Failed to connect to trainer")
                sys.exit(1)

        if command == "stop":
            await controller.stop_workout()
            display.print_info("Stop command sent")

        elif command == "status":
            display.print_status(controller.get_status())

        elif command == "plan":
            display.print_plan(plan_name, items)
            await run_plan_to_completion(controller, display, items)
            display.print_history(controller.history)

        else:
            display.print_error(f"Unknown command: {command}")
            sys.exit(1)

    finally:
        # Ensure we disconnect if still connected
        if controller.is_connected:
            try:
                await controller.disconnect()
            except Exception as e:
                logger.debug(f"Disconnect during shutdown failed: {e}")


def main() -> None:
    """Entry point for the REPL application."""
    parser = argparse.ArgumentParser(
        description="Vitruvian Trainer Control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vitructrl                    # Start interactive REPL
  vitructrl --status           # Show trainer status (auto-connects)
  vitructrl --stop             # Stop the current set (auto-connects)
  vitructrl --plan demo        # Run the demo plan unattended
  vitructrl --plan legs        # Run the saved plan "legs"
  vitructrl --list-plans       # List saved plans
  vitructrl --clear-cache      # Clear cached device address
        """,
    )

    parser.add_argument("--stop", action="store_true", help="Stop the current set")

    parser.add_argument("--status", action="store_true", help="Show trainer status")

    parser.add_argument("--plan", metavar="NAME", help="Run a saved plan (or 'demo')")

    parser.add_argument("--list-plans", action="store_true", help="List saved plans")

    parser.add_argument(
        "--clear-cache", action="store_true", help="Clear cached device address"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    configure_logging(args.debug)

    # Check which command was requested
    commands = []
    if args.stop:
        commands.append("stop")
    if args.status:
        commands.append("status")
    if args.plan:
        commands.append("plan")
    if args.list_plans:
        commands.append("list-plans")
    if args.clear_cache:
        commands.append("clear-cache")

    # If no CLI commands, start REPL
    if not commands:
        try:
            repl = VitruCtrlREPL()
            asyncio.run(repl.run())
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(0)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        if len(commands) > 1:
            print("Error: Only one command can be specified at a time", file=sys.stderr)
            sys.exit(1)

        try:
            asyncio.run(run_cli_command(commands[0], args.plan))
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(1)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
