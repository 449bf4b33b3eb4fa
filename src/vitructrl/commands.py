"""
Command definitions and auto-completion for REPL.

Defines all available commands with metadata and provides a completer
for prompt_toolkit auto-completion.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .core import COLOR_PRESETS, WEIGHT_UNITS, ProgramMode


@dataclass
class Command:
    """Command definition with metadata."""

    name: str
    aliases: List[str]
    description: str
    usage: str
    handler: str


# Define all available commands
COMMANDS = [
    Command(
        name="connect",
        aliases=["c"],
        description="Connect to trainer",
        usage="connect",
        handler="cmd_connect",
    ),
    Command(
        name="disconnect",
        aliases=["dc"],
        description="Disconnect from trainer",
        usage="disconnect",
        handler="cmd_disconnect",
    ),
    Command(
        name="program",
        aliases=["pg"],
        description="Start a program-mode set",
        usage="program <mode> <weight/cable> <reps> [progression]",
        handler="cmd_program",
    ),
    Command(
        name="justlift",
        aliases=["jl"],
        description="Start a Just Lift set (auto-stops when parked)",
        usage="justlift <mode> <weight/cable>",
        handler="cmd_just_lift",
    ),
    Command(
        name="echo",
        aliases=["e"],
        description="Start an echo-mode set",
        usage="echo <level 1-4> <eccentric %> <target reps>",
        handler="cmd_echo",
    ),
    Command(
        name="stop",
        aliases=["x"],
        description="Stop the current set",
        usage="stop",
        handler="cmd_stop",
    ),
    Command(
        name="stopattop",
        aliases=["sat"],
        description="Finish sets at the top of the final rep",
        usage="stopattop [on|off]",
        handler="cmd_stop_at_top",
    ),
    Command(
        name="color",
        aliases=["col"],
        description="Set LED colour preset",
        usage="color <preset>",
        handler="cmd_color",
    ),
    Command(
        name="status",
        aliases=["st"],
        description="Show current set and sensor values",
        usage="status",
        handler="cmd_status",
    ),
    Command(
        name="live",
        aliases=["l"],
        description="Toggle live display mode",
        usage="live",
        handler="cmd_live",
    ),
    Command(
        name="history",
        aliases=["hi"],
        description="Show completed sets",
        usage="history",
        handler="cmd_history",
    ),
    Command(
        name="plans",
        aliases=["pls"],
        description="List saved plans",
        usage="plans",
        handler="cmd_plans",
    ),
    Command(
        name="plan",
        aliases=["pl"],
        description="Show a saved plan (or 'demo')",
        usage="plan <name>",
        handler="cmd_plan",
    ),
    Command(
        name="runplan",
        aliases=["rp"],
        description="Run a saved plan, 'demo' or the working plan",
        usage="runplan [name]",
        handler="cmd_run_plan",
    ),
    Command(
        name="saveplan",
        aliases=["sp"],
        description="Save the working plan (default: the name it was opened as)",
        usage="saveplan [name]",
        handler="cmd_save_plan",
    ),
    Command(
        name="edit",
        aliases=["ed"],
        description="Open a saved plan (or 'demo') as the working plan",
        usage="edit <name>",
        handler="cmd_edit_plan",
    ),
    Command(
        name="newplan",
        aliases=["np"],
        description="Start an empty working plan",
        usage="newplan [name]",
        handler="cmd_new_plan",
    ),
    Command(
        name="draft",
        aliases=["dr"],
        description="Show the working plan",
        usage="draft",
        handler="cmd_draft",
    ),
    Command(
        name="additem",
        aliases=["ai"],
        description="Append an exercise or echo item to the working plan",
        usage="additem <exercise|echo> [name]",
        handler="cmd_add_item",
    ),
    Command(
        name="rmitem",
        aliases=["ri"],
        description="Remove an item from the working plan",
        usage="rmitem <n>",
        handler="cmd_remove_item",
    ),
    Command(
        name="moveitem",
        aliases=["mv"],
        description="Move a working plan item up or down",
        usage="moveitem <n> <up|down>",
        handler="cmd_move_item",
    ),
    Command(
        name="setitem",
        aliases=["si"],
        description="Change one field of a working plan item",
        usage="setitem <n> <field> <value>",
        handler="cmd_set_item",
    ),
    Command(
        name="delplan",
        aliases=["dp"],
        description="Delete a saved plan",
        usage="delplan <name>",
        handler="cmd_delete_plan",
    ),
    Command(
        name="endplan",
        aliases=["ep"],
        description="Abandon the running plan",
        usage="endplan",
        handler="cmd_end_plan",
    ),
    Command(
        name="skip",
        aliases=["sk"],
        description="Skip the current rest",
        usage="skip",
        handler="cmd_skip",
    ),
    Command(
        name="extend",
        aliases=["ex"],
        description="Add time to the current rest",
        usage="extend [seconds]",
        handler="cmd_extend",
    ),
    Command(
        name="pause",
        aliases=["p"],
        description="Pause the rest countdown",
        usage="pause",
        handler="cmd_pause",
    ),
    Command(
        name="resume",
        aliases=["r"],
        description="Resume the rest countdown",
        usage="resume",
        handler="cmd_resume",
    ),
    Command(
        name="units",
        aliases=["u"],
        description="Show or set the weight unit (kg or lb)",
        usage="units [kg|lb]",
        handler="cmd_units",
    ),
    Command(
        name="info",
        aliases=["i"],
        description="Show device and debug information",
        usage="info",
        handler="cmd_info",
    ),
    Command(
        name="help",
        aliases=["h", "?"],
        description="Show all available commands",
        usage="help",
        handler="cmd_help",
    ),
    Command(
        name="quit",
        aliases=["q", "exit"],
        description="Exit the REPL",
        usage="quit",
        handler="cmd_quit",
    ),
]

MODE_CHOICES = [mode.name.lower() for mode in ProgramMode]
ECHO_LEVEL_CHOICES = ["1", "2", "3", "4"]
PLAN_COMMANDS = ("plan", "pl", "runplan", "rp", "delplan", "dp", "edit", "ed")
ITEM_KINDS = ["exercise", "echo"]


def get_command(name: str) -> Command | None:
    """Get command by name or alias.

    Args:
        name: Command name or alias

    Returns:
        Command object if found, None otherwise
    """
    for cmd in COMMANDS:
        if cmd.name == name or name in cmd.aliases:
            return cmd
    return None


def _complete_word(partial: str, choices: Iterable[str]) -> Iterable[Completion]:
    for choice in choices:
        if choice.startswith(partial):
            yield Completion(
                choice[len(partial) :],
                start_position=0,
                display=choice,
            )


class CommandCompleter(Completer):
    """Auto-completion for commands and arguments.

    Args:
        plan_names: Returns saved plan names for plan commands
    """

    def __init__(self, plan_names: Optional[Callable[[], List[str]]] = None) -> None:
        self._command_names = set()
        self._command_aliases = set()
        self._plan_names = plan_names

        for cmd in COMMANDS:
            self._command_names.add(cmd.name)
            self._command_aliases.update(cmd.aliases)

    def get_completions(self, document: Document, complete_event) -> Any:  # type: ignore[no-untyped-def]
        """Get completion suggestions for current input.

        Yields:
            Completion objects for matching commands/arguments
        """
        text = document.text_before_cursor.lstrip()
        parts = text.split()

        # If no text yet, suggest nothing (avoid spam)
        if not text:
            return

        # First part: complete command name
        if len(parts) == 1 and not text.endswith(" "):
            partial_cmd = parts[0].lower()
            all_names = self._command_names | self._command_aliases
            for name in sorted(all_names):
                if name.startswith(partial_cmd):
                    yield Completion(
                        name[len(partial_cmd) :],
                        start_position=0,
                        display=f"({name})",
                    )
            return

        first_cmd = parts[0].lower()
        arg_index = len(parts) - 1 if not text.endswith(" ") else len(parts)
        partial = "" if text.endswith(" ") else parts[-1].lower()
        if arg_index != 1:
            return

        if first_cmd in ("program", "pg", "justlift", "jl"):
            yield from _complete_word(partial, MODE_CHOICES)
        elif first_cmd in ("color", "col"):
            yield from _complete_word(partial, sorted(COLOR_PRESETS))
        elif first_cmd in ("echo", "e"):
            yield from _complete_word(partial, ECHO_LEVEL_CHOICES)
        elif first_cmd in ("stopattop", "sat"):
            yield from _complete_word(partial, ["on", "off"])
        elif first_cmd in ("units", "u"):
            yield from _complete_word(partial, list(WEIGHT_UNITS))
        elif first_cmd in ("additem", "ai"):
            yield from _complete_word(partial, ITEM_KINDS)
        elif first_cmd in PLAN_COMMANDS and self._plan_names is not None:
            yield from _complete_word(partial, ["demo", *self._plan_names()])
