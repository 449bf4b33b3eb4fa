"""
Async controller for Vitruvian trainers.

This module owns the BLE session: discovery and connection, the
serialized GATT transport, telemetry polling, rep tracking, auto-stop and
completion of each workout block.
"""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, List, Optional, Sequence

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice

from .autostop import AutoStopMonitor, AutoStopStatus
from .core import (
    COLOR_PRESETS,
    COMMAND_CHAR_UUID,
    DEFAULT_BRIGHTNESS,
    DEVICE_NAME_PREFIX,
    ECHO_LEVEL_NAMES,
    INIT_PRESET_DELAY,
    MONITOR_POLL_INTERVAL,
    PROGRAM_MODE_NAMES,
    PROPERTY_POLL_INTERVAL,
    REP_NOTIFY_CHAR_UUID,
    WARMUP_REPS,
    EchoLevel,
    ProgramMode,
)
from .errors import (
    FrameDecodeError,
    LinkError,
    ProtocolInvariantViolation,
    ValidationError,
)
from .polling import PollingScheduler
from .protocol import (
    EchoParams,
    MonitorSample,
    ProgramParams,
    build_color_scheme,
    build_echo_control,
    build_init_command,
    build_init_preset,
    build_program_params,
    build_stop_command,
    decode_rep_notification,
    hexdump,
)
from .reps import RepEvent, RepEventKind, RepTracker, WorkoutPhase
from .storage import get_cache_dir
from .transport import GattTransport

logger = logging.getLogger(__name__)

CompletionCallback = Callable[["WorkoutSummary"], None]


@dataclass
class WorkoutSummary:
    """Record of one finished block, handed to history and backup sinks."""

    mode: str
    weight_kg: float
    reps: int
    start_time: float
    end_time: float
    warmup_end_time: Optional[float] = None
    set_name: Optional[str] = None
    set_number: Optional[int] = None
    set_total: Optional[int] = None
    item_type: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("start_time", "end_time", "warmup_end_time"):
            if data[key] is not None:
                data[key] = datetime.fromtimestamp(data[key]).isoformat()
        return data


@dataclass
class ActiveWorkout:
    """Metadata of the block currently running."""

    mode: str
    weight_kg: float
    target_reps: int
    item_type: str
    start_time: float = field(default_factory=time.time)
    plan_meta: dict = field(default_factory=dict)
    on_complete: Optional[CompletionCallback] = None


class TrainerController:
    """Manages connection and control of a Vitruvian trainer."""

    DEVICE_NAME_PREFIX = DEVICE_NAME_PREFIX

    @classmethod
    def _get_cache_file(cls) -> Path:
        """Get the cache file location for the device address."""
        return get_cache_dir() / "device_address.json"

    def __init__(
        self,
        monitor_interval: float = MONITOR_POLL_INTERVAL,
        property_interval: float = PROPERTY_POLL_INTERVAL,
    ) -> None:
        """Initialize controller with no device connection."""
        self._device: Optional[BLEDevice] = None
        self._client: Any = None
        self._transport: Optional[GattTransport] = None
        self._poller: Optional[PollingScheduler] = None
        self._monitor_interval = monitor_interval
        self._property_interval = property_interval
        self._update_queue: asyncio.Queue = asyncio.Queue(maxsize=10)
        self._is_running = False
        self._tasks: set[asyncio.Task] = set()

        # Global default; plan items override it per block
        self.stop_at_top = False

        self.tracker = RepTracker()
        self.auto_stop = AutoStopMonitor()
        self.auto_stop_status = AutoStopStatus()
        self.current_sample: Optional[MonitorSample] = None
        self.current_workout: Optional[ActiveWorkout] = None
        self.history: List[WorkoutSummary] = []

        # Callbacks
        self._on_sample: Optional[Callable[[MonitorSample], None]] = None
        self._on_rep_event: Optional[Callable[[RepEvent], None]] = None
        self._on_disconnect: Optional[Callable[[], None]] = None
        self._on_workout_complete: Optional[CompletionCallback] = None

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to device."""
        return self._transport is not None and self._transport.is_connected

    @property
    def device_name(self) -> Optional[str]:
        if self._device is not None:
            return self._device.name
        return getattr(self._client, "name", None)

    @property
    def phase(self) -> WorkoutPhase:
        return self.tracker.phase

    def set_on_sample(self, callback: Callable[[MonitorSample], None]) -> None:
        """Set callback for every telemetry sample while a block runs."""
        self._on_sample = callback

    def set_on_rep_event(self, callback: Callable[[RepEvent], None]) -> None:
        """Set callback for rep and phase-change events."""
        self._on_rep_event = callback

    def set_on_disconnect(self, callback: Callable[[], None]) -> None:
        """Set callback for disconnect events."""
        self._on_disconnect = callback

    def set_on_workout_complete(self, callback: CompletionCallback) -> None:
        """Set the sink for finished-block summaries (e.g. a cloud backup).

        The sink is fire-and-forget: exceptions are logged and ignored.
        """
        self._on_workout_complete = callback

    # ========== Address cache ==========

    def _load_cached_address(self) -> str | None:
        try:
            cache_file = self._get_cache_file()
            if cache_file.exists():
                with open(cache_file, "r") as f:
                    return json.load(f).get("address")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load cached address: {e}")
        return None

    def _save_cached_address(self, address: str) -> None:
        try:
            with open(self._get_cache_file(), "w") as f:
                json.dump({"address": address}, f, indent=2)
            logger.info(f"Cached device address: {address}")
        except OSError as e:
            logger.warning(f"Failed to save cached address: {e}")

    def clear_address_cache(self) -> None:
        """Clear the cached device address, forcing a scan on next connect."""
        try:
            cache_file = self._get_cache_file()
            if cache_file.exists():
                cache_file.unlink()
                logger.info("Cleared cached device address")
        except OSError as e:
            logger.warning(f"Failed to clear cached address: {e}")

    # ========== Connection ==========

    async def discover(self, timeout: float = 10.0) -> bool:
        """Scan for a trainer advertising the expected name prefix.

        Returns:
            True if a device was found, False otherwise
        """
        try:
            logger.info("Scanning for Vitruvian trainers...")
            devices = await BleakScanner.discover(timeout=timeout)
        except Exception as e:
            logger.error(f"Discovery failed: {e}")
            return False

        for device in devices:
            if device.name and device.name.startswith(self.DEVICE_NAME_PREFIX):
                logger.info(f"Found trainer: {device.name} ({device.address})")
                self._device = device
                return True

        logger.warning("No Vitruvian trainer found")
        return False

    async def connect(self) -> bool:
        """Connect to the trainer and send the init sequence.

        Tries the cached address first, then falls back to scanning.

        Returns:
            True if connected successfully, False otherwise
        """
        if self.is_connected:
            logger.warning("Already connected")
            return True

        cached_address = self._load_cached_address()
        if cached_address:
            logger.info(f"Trying cached address: {cached_address}")
            try:
                device = await BleakScanner.find_device_by_address(
                    cached_address, timeout=5.0
                )
                if device is not None:
                    self._device = device
                    await self._open(device)
                    logger.info(f"Connected to {self.device_name} (cached)")
                    return True
                logger.warning("Cached device not advertising")
            except Exception as e:
                logger.warning(f"Cached address failed: {e}")
                await self._reset_link()

        device = self._device if await self.discover() else None
        if device is None:
            logger.error("Device discovery failed")
            return False

        try:
            await self._open(device)
            logger.info(f"Connected to {self.device_name}")
            self._save_cached_address(device.address)
            return True
        except Exception as e:
            logger.error(f"Connection failed: {e}")
            await self._reset_link()
            return False

    async def _open(self, device: BLEDevice) -> None:
        client = BleakClient(device, disconnected_callback=self._on_device_disconnect)
        await client.connect()
        await self.attach(client)

    async def attach(self, client: Any) -> None:
        """Take over an already connected client and initialise the trainer.

        Raises:
            LinkError: if subscribing or the init sequence fails
        """
        self._client = client
        self._transport = GattTransport(client)
        self._poller = PollingScheduler(
            self._transport,
            monitor_interval=self._monitor_interval,
            property_interval=self._property_interval,
        )
        self._is_running = True
        await self._transport.subscribe(
            REP_NOTIFY_CHAR_UUID, self._handle_rep_notification
        )
        await self.send_init()

    async def _reset_link(self) -> None:
        if self._poller is not None:
            self._poller.stop()
        if self._transport is not None:
            await self._transport.close()
        self._transport = None
        self._poller = None
        self._client = None
        self._is_running = False

    async def disconnect(self) -> None:
        """Disconnect from device."""
        if self._transport is None:
            return
        logger.info("Disconnecting...")
        await self._reset_link()
        logger.info("Disconnected")

    def _on_device_disconnect(self, _client: Any = None) -> None:
        """Handle link loss reported by bleak."""
        logger.warning("Device disconnected")
        if self._transport is not None:
            self._transport.fail_all("device disconnected")
        if self._poller is not None:
            self._poller.stop()
        self._is_running = False
        if self._on_disconnect:
            try:
                self._on_disconnect()
            except Exception as e:
                logger.error(f"Disconnect callback error: {e}")

    def _require_transport(self) -> GattTransport:
        if self._transport is None or not self._transport.is_connected:
            raise LinkError("not connected")
        return self._transport

    # ========== Commands ==========

    async def send_init(self) -> None:
        """Send the init command followed by the init preset."""
        transport = self._require_transport()
        await transport.write(COMMAND_CHAR_UUID, build_init_command())
        await asyncio.sleep(INIT_PRESET_DELAY)
        await transport.write(COMMAND_CHAR_UUID, build_init_preset())
        logger.info("Init sequence sent")

    async def start_program(
        self,
        params: ProgramParams,
        on_complete: Optional[CompletionCallback] = None,
        plan_meta: Optional[dict] = None,
    ) -> None:
        """Start a program-mode block.

        Args:
            params: Mode, weight, reps, progression and Just Lift flag
            on_complete: Called with the summary once the block completes
            plan_meta: Plan labels recorded in the summary

        Raises:
            ValidationError: if a parameter is out of range (nothing is sent)
            LinkError: if the trainer is not connected or the write fails
        """
        transport = self._require_transport()
        frame = build_program_params(params)
        mode_name = PROGRAM_MODE_NAMES[ProgramMode(params.mode)]
        if params.just_lift:
            mode_name = f"Just Lift ({mode_name})"
        target = 0 if params.just_lift else params.reps
        logger.info(
            f"Starting {mode_name}: {params.per_cable_kg:.1f} kg/cable, "
            f"{'no target' if params.just_lift else f'{target} reps'}, "
            f"progression {params.progression_kg:+.1f} kg"
        )
        workout = ActiveWorkout(
            mode=mode_name,
            weight_kg=params.per_cable_kg,
            target_reps=target,
            item_type="exercise",
            plan_meta=dict(plan_meta or {}),
            on_complete=on_complete,
        )
        await self._launch(transport, frame, workout, params.just_lift)

    async def start_echo(
        self,
        params: EchoParams,
        on_complete: Optional[CompletionCallback] = None,
        plan_meta: Optional[dict] = None,
    ) -> None:
        """Start an echo-mode block.

        Raises:
            ValidationError: if a parameter is out of range (nothing is sent)
            LinkError: if the trainer is not connected or the write fails
        """
        transport = self._require_transport()
        frame = build_echo_control(params)
        level_name = ECHO_LEVEL_NAMES[EchoLevel(params.level)]
        mode_name = (
            f"Just Lift Echo {level_name}" if params.just_lift else f"Echo {level_name}"
        )
        target = 0 if params.just_lift else params.target_reps
        logger.info(f"Starting {mode_name}: eccentric {params.eccentric_pct}%")
        workout = ActiveWorkout(
            mode=mode_name,
            weight_kg=0.0,
            target_reps=target,
            item_type="echo",
            plan_meta=dict(plan_meta or {}),
            on_complete=on_complete,
        )
        await self._launch(transport, frame, workout, params.just_lift)

    async def _launch(
        self,
        transport: GattTransport,
        frame: bytes,
        workout: ActiveWorkout,
        just_lift: bool,
    ) -> None:
        if self.current_workout is not None:
            logger.warning(f"Replacing unfinished block: {self.current_workout.mode}")
            self._stop_polling()

        self.tracker.begin(
            target_reps=workout.target_reps,
            warmup_target=WARMUP_REPS,
            stop_at_top=self.stop_at_top,
            just_lift=just_lift,
            now=workout.start_time,
        )
        self.auto_stop.reset()
        self.auto_stop_status = AutoStopStatus()
        self.current_workout = workout
        try:
            await transport.write(COMMAND_CHAR_UUID, frame)
        except LinkError:
            self.tracker.end()
            self.current_workout = None
            raise
        self._start_polling()

    async def stop_workout(self) -> Optional[WorkoutSummary]:
        """Send the stop command, then complete the running block.

        The stop is sent even when no block is known to be running.

        Raises:
            LinkError: if the stop command could not be written
        """
        transport = self._require_transport()
        await transport.write(COMMAND_CHAR_UUID, build_stop_command())
        logger.info("Workout stopped")
        return self.complete_workout()

    async def set_color_scheme(
        self,
        colors: Sequence[Sequence[int]],
        brightness: float = DEFAULT_BRIGHTNESS,
    ) -> None:
        """Set the LED colours from three RGB triples."""
        transport = self._require_transport()
        await transport.write(COMMAND_CHAR_UUID, build_color_scheme(colors, brightness))
        logger.info("Color scheme updated")

    async def set_color_preset(self, name: str) -> None:
        try:
            colors = COLOR_PRESETS[name.lower()]
        except KeyError:
            raise ValidationError("preset", name, ", ".join(COLOR_PRESETS)) from None
        await self.set_color_scheme(colors)

    # ========== Block lifecycle ==========

    def _start_polling(self) -> None:
        if self._poller is None:
            return
        self._poller.stop()
        self._poller.add_monitor_listener(self._handle_sample)
        self._poller.start()

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.stop()

    def complete_workout(self) -> Optional[WorkoutSummary]:
        """Finish the running block and hand its summary to every consumer.

        Returns:
            The summary, or None if no block was running
        """
        workout = self.current_workout
        if workout is None:
            return None

        # No consumer needs fresh samples any more
        self._stop_polling()
        state = self.tracker.end()
        self.current_workout = None
        self.auto_stop_status = AutoStopStatus()

        summary = WorkoutSummary(
            mode=workout.mode,
            weight_kg=workout.weight_kg,
            reps=state.working_reps if state is not None else 0,
            start_time=workout.start_time,
            end_time=time.time(),
            warmup_end_time=state.warmup_end_at if state is not None else None,
            set_name=workout.plan_meta.get("set_name"),
            set_number=workout.plan_meta.get("set_number"),
            set_total=workout.plan_meta.get("set_total"),
            item_type=workout.plan_meta.get("item_type", workout.item_type),
        )
        self.history.insert(0, summary)
        logger.info(f"Workout completed: {summary.mode}, {summary.reps} reps")
        self._push_update()

        for callback in (self._on_workout_complete, workout.on_complete):
            if callback is None:
                continue
            try:
                callback(summary)
            except Exception as e:
                logger.error(f"Completion callback error: {e}")
        return summary

    def _request_stop(self, reason: str) -> None:
        """Stop the device, then complete; the device won't end the set itself."""
        logger.info(f"Requesting stop: {reason}")
        task = asyncio.create_task(self._stop_then_complete())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _stop_then_complete(self) -> None:
        try:
            transport = self._require_transport()
            await transport.write(COMMAND_CHAR_UUID, build_stop_command())
        except LinkError as e:
            logger.error(f"Failed to stop workout: {e}")
            return
        self.complete_workout()

    # ========== Device events ==========

    def _handle_sample(self, sample: MonitorSample) -> None:
        self.current_sample = sample
        state = self.tracker.state
        if state is not None and state.is_just_lift and not state.completed:
            self.auto_stop_status = self.auto_stop.evaluate(state, sample)
            if self.auto_stop_status.triggered:
                state.completed = True
                self._request_stop("auto-stop")

        if self._on_sample:
            try:
                self._on_sample(sample)
            except Exception as e:
                logger.error(f"Sample callback error: {e}")
        self._push_update()

    def _handle_rep_notification(self, data: bytes) -> None:
        try:
            counters = decode_rep_notification(data)
        except FrameDecodeError as e:
            logger.debug(f"Dropped rep notification [{hexdump(data)}]: {e}")
            return

        logger.debug(f"Rep notification: top={counters.top} complete={counters.complete}")
        try:
            events = self.tracker.process(counters, self.current_sample)
        except ProtocolInvariantViolation as e:
            logger.debug(f"Ignoring rep notification: {e}")
            return

        for event in events:
            if self._on_rep_event:
                try:
                    self._on_rep_event(event)
                except Exception as e:
                    logger.error(f"Rep event callback error: {e}")
            if event.kind is RepEventKind.REQUEST_STOP:
                self._request_stop("top of final rep")
            elif event.kind is RepEventKind.COMPLETE:
                self.complete_workout()
        self._push_update()

    def _push_update(self) -> None:
        if not self._is_running:
            return
        try:
            self._update_queue.put_nowait(self.get_status())
        except asyncio.QueueFull:
            # Live display can skip a frame
            pass

    # ========== Status ==========

    def get_status(self) -> dict:
        """Snapshot of connection, block and telemetry state."""
        state = self.tracker.state
        sample = self.current_sample
        workout = self.current_workout
        status = {
            "connected": self.is_connected,
            "phase": self.phase.value,
            "mode": workout.mode if workout else None,
            "set_name": workout.plan_meta.get("set_name") if workout else None,
            "warmup_reps": state.warmup_reps if state else 0,
            "warmup_target": state.warmup_target if state else WARMUP_REPS,
            "working_reps": state.working_reps if state else 0,
            "target_reps": state.target_reps if state else 0,
            "just_lift": state.is_just_lift if state else False,
            "stop_at_top": state.stop_at_top if state else self.stop_at_top,
            "pos_a": sample.pos_a if sample else None,
            "pos_b": sample.pos_b if sample else None,
            "load_a": sample.load_a if sample else None,
            "load_b": sample.load_b if sample else None,
            "ticks": sample.ticks if sample else None,
            "range_a": None,
            "range_b": None,
            "auto_stop": self.auto_stop_status.progress,
            "auto_stop_left": self.auto_stop_status.seconds_left,
        }
        if state is not None:
            status["range_a"] = (state.range_a.min_pos, state.range_a.max_pos)
            status["range_b"] = (state.range_b.min_pos, state.range_b.max_pos)
        return status

    async def get_updates(self) -> AsyncGenerator[dict, None]:
        """Async generator that yields status snapshots as they change."""
        while self._is_running:
            try:
                data = await asyncio.wait_for(self._update_queue.get(), timeout=0.5)
                yield data
            except asyncio.TimeoutError:
                continue
