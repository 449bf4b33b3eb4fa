"""
Display manager for Rich-based REPL output and live updates.

Handles all console output: status tables, workout history, plan
listings, rest countdowns and the toggle-able live view.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .core import AUTO_STOP_HOLD_SECONDS, kg_to_unit

logger = logging.getLogger(__name__)


class DisplayManager:
    """Manages console output with Rich library."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize display manager.

        Args:
            console: Rich Console instance (creates one if None)
        """
        self.console = console or Console()
        self.live_enabled = False
        self._live: Optional[Live] = None
        self._live_data: dict[str, Any] = {}
        # Display unit for weights; "kg" or "lb"
        self.unit = "kg"

    def print_banner(self) -> None:
        """Print startup banner."""
        panel = Panel(
            "[bold cyan]VitruCtrl - Vitruvian Trainer Control[/bold cyan]\n"
            "[dim]Type 'help' for commands, 'quit' to exit[/dim]",
            expand=False,
        )
        self.console.print(panel)

    def print_status(self, data: dict) -> None:
        """Display one-time status table."""
        self.console.print(self.format_status_table(data))

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print_info(self, message: str) -> None:
        self.console.print(f"[cyan]Info:[/cyan] {message}", highlight=False)

    def print_success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}", highlight=False)

    def print_help(self, commands: list) -> None:
        """Display command reference.

        Args:
            commands: List of Command objects
        """
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Aliases", style="magenta")
        table.add_column("Description", style="white")
        table.add_column("Usage", style="yellow")

        for cmd in commands:
            aliases = ", ".join(cmd.aliases) if cmd.aliases else "-"
            table.add_row(cmd.name, aliases, cmd.description, cmd.usage)

        self.console.print(table)
        self.console.print(
            "[dim]Keyboard shortcuts: Ctrl+C to interrupt, Ctrl+D to exit[/dim]"
        )

    def print_history(self, history: Sequence[Any]) -> None:
        """Display completed workouts, newest first."""
        if not history:
            self.console.print("[dim]No workouts completed yet[/dim]")
            return

        table = Table(title="Workout History", show_header=True)
        table.add_column("Set", style="cyan")
        table.add_column("Mode", style="magenta")
        table.add_column("Weight", style="yellow")
        table.add_column("Reps", style="white")
        table.add_column("Duration", style="white")
        table.add_column("Finished", style="dim")

        for workout in history:
            label = workout.set_name or "Unnamed Set"
            if workout.set_number and workout.set_total:
                label += f" ({workout.set_number}/{workout.set_total})"
            weight = self.format_load(workout.weight_kg) if workout.weight_kg > 0 else "Adaptive"
            duration = self.format_time(int(workout.end_time - workout.start_time))
            table.add_row(
                label,
                workout.mode,
                weight,
                str(workout.reps),
                duration,
                self.format_timestamp(workout.end_time),
            )

        self.console.print(table)

    def print_plan(self, name: str, items: Sequence[Any]) -> None:
        """Display the items of a plan."""
        table = Table(title=f"Plan: {name}", show_header=True)
        table.add_column("#", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Details", style="white")
        table.add_column("Sets", style="yellow")
        table.add_column("Rest", style="yellow")

        for i, item in enumerate(items, start=1):
            flags = []
            if item.just_lift:
                flags.append("just lift")
            if item.stop_at_top:
                flags.append("stop at top")
            details = item.summary(self.unit)
            if flags:
                details += f" [dim]({', '.join(flags)})[/dim]"
            table.add_row(
                str(i), item.name, item.type, details, str(item.sets), f"{item.rest_sec}s"
            )

        self.console.print(table)

    def print_rest(self, next_name: str, next_summary: str, seconds: float) -> None:
        """Announce a rest period and what follows it."""
        self.console.print(
            Panel(
                f"[bold]Rest {self.format_time(int(seconds))}[/bold]\n"
                f"Up next: [cyan]{next_name}[/cyan]\n[dim]{next_summary}[/dim]\n"
                "[dim]'skip' to start now, 'extend' for +30s, 'pause'/'resume'[/dim]",
                expand=False,
            )
        )

    def start_live(self) -> None:
        """Start live display refresh mode."""
        if self.live_enabled:
            return

        self.live_enabled = True
        self._live_data = {"phase": "idle"}
        renderable = self._create_live_table()
        self._live = Live(renderable, console=self.console, refresh_per_second=4)
        self._live.start()
        self.console.print("[dim]Live display enabled ['live' to disable][/dim]")

    def stop_live(self) -> None:
        """Stop live display refresh mode."""
        if not self.live_enabled:
            return

        self.live_enabled = False
        if self._live is not None:
            self._live.stop()
            self._live = None

    def update_live(self, data: dict) -> None:
        """Update live display with a new status snapshot."""
        if not self.live_enabled or self._live is None:
            return

        self._live_data.update(data)
        try:
            self._live.update(self._create_live_table())
        except Exception as e:
            logger.error(f"Live update error: {e}")

    def toggle_live(self) -> bool:
        """Toggle live display on/off.

        Returns:
            New live display state (True = on, False = off)
        """
        if self.live_enabled:
            self.stop_live()
        else:
            self.start_live()
        return self.live_enabled

    def _create_live_table(self) -> Table:
        return self.format_status_table(self._live_data)

    def format_status_table(self, data: dict) -> Table:
        """Create Rich Table for status display.

        Args:
            data: Snapshot from ``TrainerController.get_status``

        Returns:
            Rich Table object
        """
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow")

        table.add_row("Connected", "yes" if data.get("connected") else "no")
        table.add_row("Phase", str(data.get("phase", "idle")).upper())
        if data.get("mode"):
            table.add_row("Mode", data["mode"])
        if data.get("set_name"):
            table.add_row("Set", data["set_name"])
        table.add_row(
            "Warmup", f"{data.get('warmup_reps', 0)}/{data.get('warmup_target', 3)}"
        )
        table.add_row(
            "Working",
            self.format_reps(data.get("working_reps", 0), data.get("target_reps", 0)),
        )
        table.add_row(
            "Position", f"A {self.format_pos(data.get('pos_a'))} | B {self.format_pos(data.get('pos_b'))}"
        )
        table.add_row(
            "Load",
            f"A {self.format_load(data.get('load_a'))} | B {self.format_load(data.get('load_b'))}",
        )
        table.add_row(
            "Range",
            f"A {self.format_range(data.get('range_a'))} | B {self.format_range(data.get('range_b'))}",
        )
        if data.get("just_lift"):
            table.add_row(
                "Auto-stop",
                self.format_progress(
                    data.get("auto_stop", 0.0),
                    data.get("auto_stop_left", AUTO_STOP_HOLD_SECONDS),
                ),
            )

        return table

    @staticmethod
    def format_time(seconds: int) -> str:
        """Convert seconds to MM:SS format."""
        seconds = max(0, int(seconds))
        mins = seconds // 60
        secs = seconds % 60
        return f"{mins}:{secs:02d}"

    def format_load(self, kg: Optional[float]) -> str:
        if kg is None:
            return "-"
        return f"{kg_to_unit(kg, self.unit):.1f} {self.unit}"

    @staticmethod
    def format_pos(pos: Optional[int]) -> str:
        return "-" if pos is None else str(pos)

    @staticmethod
    def format_reps(done: int, target: int) -> str:
        if target > 0:
            return f"{done}/{target}"
        return str(done)

    @staticmethod
    def format_range(bounds: Optional[tuple]) -> str:
        if not bounds or bounds[0] is None or bounds[1] is None:
            return "?"
        low, high = bounds
        return f"{low}-{high} ({high - low})"

    @staticmethod
    def format_progress(progress: float, seconds_left: float) -> str:
        """Render auto-stop progress as a bar with seconds left."""
        if progress <= 0:
            return "armed when parked"
        filled = int(progress * 10)
        return f"[{'#' * filled}{'.' * (10 - filled)}] {seconds_left:.0f}s"

    @staticmethod
    def format_timestamp(ts: float) -> str:
        return datetime.fromtimestamp(ts).strftime("%H:%M:%S")
