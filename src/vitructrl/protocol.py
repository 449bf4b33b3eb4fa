"""
Binary frame codec for the Vitruvian trainer protocol.

All functions here are pure: builders validate their inputs and return
``bytes`` ready to be written to the command characteristic, decoders turn
raw notification/read payloads into immutable samples. Every multi-byte
field is little-endian.
"""

import math
import struct
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .core import (
    COLOR_SCHEME_SIZE,
    DEFAULT_BRIGHTNESS,
    ECCENTRIC_MAX_PCT,
    ECCENTRIC_MIN_PCT,
    ECHO_TARGET_REPS_MAX,
    ECHO_TARGET_REPS_MIN,
    INIT_PRESET_SIZE,
    MONITOR_FRAME_SIZE,
    POSITION_SPIKE_LIMIT,
    PROGRAM_PARAMS_SIZE,
    PROGRESSION_MAX_KG,
    PROGRESSION_MIN_KG,
    REP_NOTIFICATION_MIN_SIZE,
    REPS_MAX,
    REPS_MIN,
    WARMUP_REPS,
    WEIGHT_BASELINE_OFFSET_KG,
    WEIGHT_MAX_KG,
    WEIGHT_MIN_KG,
    EchoLevel,
    ProgramMode,
)
from .errors import FrameDecodeError, SensorSpikeError, ValidationError

# Opcodes
OP_INIT = 0x0A
OP_PRESET = 0x11
OP_PROGRAM = 0x04
OP_ECHO = 0x4E
OP_STOP = 0x50

# Reps byte value meaning "no target" (Just Lift)
UNLIMITED_REPS = 0xFF

PROGRAM_SEQUENCE_ID = 0x0B

# ProgramParams field offsets
PROGRAM_REPS_OFFSET = 0x04
PROGRAM_PROFILE_OFFSET = 0x30
PROGRAM_EFFECTIVE_KG_OFFSET = 0x54
PROGRAM_PER_CABLE_KG_OFFSET = 0x58
PROGRAM_PROGRESSION_OFFSET = 0x5C

MODE_PROFILE_SIZE = 32

# Per mode: four (start, end, coefficient) triples packed as <hhf
_MODE_PROFILES = {
    ProgramMode.OLD_SCHOOL: (
        (0, 20, 3.0),
        (75, 600, 50.0),
        (-1300, -1200, 100.0),
        (-260, -110, 0.0),
    ),
    ProgramMode.PUMP: (
        (50, 450, 10.0),
        (500, 600, 50.0),
        (-700, -550, 1.0),
        (-100, -50, 1.0),
    ),
    ProgramMode.TUT: (
        (250, 350, 7.0),
        (450, 600, 50.0),
        (-900, -700, 70.0),
        (-100, 50, 14.0),
    ),
    ProgramMode.TUT_BEAST: (
        (150, 250, 7.0),
        (350, 450, 50.0),
        (-900, -700, 70.0),
        (-100, 50, 28.0),
    ),
    ProgramMode.ECCENTRIC_ONLY: (
        (50, 550, 50.0),
        (650, 750, 10.0),
        (-900, -700, 70.0),
        (-100, 50, 20.0),
    ),
}

# (gain, cap) per echo level
_ECHO_LEVEL_TABLE = {
    EchoLevel.HARD: (1.00, 50.0),
    EchoLevel.HARDER: (0.85, 40.0),
    EchoLevel.HARDEST: (0.70, 30.0),
    EchoLevel.EPIC: (0.55, 15.0),
}

# Captured from the vendor app's connect sequence
_INIT_PRESET_TABLE = bytes(
    [
        0xFF, 0x00, 0x4C, 0xFF, 0x23, 0x8C, 0xFF, 0x8C, 0x8C,
        0xFF, 0x00, 0x4C, 0xFF, 0x23, 0x8C, 0xFF, 0x8C, 0x8C,
    ]
)  # fmt: skip

_MONITOR_STRUCT = struct.Struct("<HHHHHH")
_COLOR_HEADER = struct.Struct("<IIIf")

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class MonitorSample:
    """One decoded telemetry frame."""

    ticks: int
    pos_a: int
    pos_b: int
    load_a: float
    load_b: float
    timestamp: float

    @property
    def total_load(self) -> float:
        return self.load_a + self.load_b


@dataclass(frozen=True)
class RepCounters:
    """Counters carried by a rep notification."""

    top: int
    complete: int


@dataclass
class ProgramParams:
    """Parameters for a program-mode block."""

    mode: ProgramMode
    per_cable_kg: float
    reps: int
    just_lift: bool = False
    progression_kg: float = 0.0
    sequence_id: int = PROGRAM_SEQUENCE_ID

    @property
    def effective_kg(self) -> float:
        return self.per_cable_kg + WEIGHT_BASELINE_OFFSET_KG

    def validate(self) -> None:
        try:
            ProgramMode(self.mode)
        except ValueError:
            raise ValidationError("mode", self.mode, "known program mode") from None
        _check_range("per_cable_kg", self.per_cable_kg, WEIGHT_MIN_KG, WEIGHT_MAX_KG)
        if not self.just_lift:
            _check_range("reps", self.reps, REPS_MIN, REPS_MAX, integer=True)
        _check_range(
            "progression_kg",
            self.progression_kg,
            PROGRESSION_MIN_KG,
            PROGRESSION_MAX_KG,
        )


@dataclass
class EchoParams:
    """Parameters for an echo-mode block."""

    level: EchoLevel
    eccentric_pct: int
    target_reps: int
    just_lift: bool = False
    warmup_reps: int = WARMUP_REPS

    def validate(self) -> None:
        try:
            EchoLevel(self.level)
        except ValueError:
            raise ValidationError("level", self.level, "0-3") from None
        _check_range(
            "eccentric_pct",
            self.eccentric_pct,
            ECCENTRIC_MIN_PCT,
            ECCENTRIC_MAX_PCT,
            integer=True,
        )
        if not self.just_lift:
            _check_range(
                "target_reps",
                self.target_reps,
                ECHO_TARGET_REPS_MIN,
                ECHO_TARGET_REPS_MAX,
                integer=True,
            )


@dataclass(frozen=True)
class EchoTuning:
    """Derived echo controller parameters."""

    eccentric_pct: int
    concentric_pct: int = 50
    smoothing: float = 0.1
    gain: float = 1.0
    cap: float = 50.0
    floor: float = 0.0
    neg_limit: float = -100.0


def _check_range(
    field: str, value, low: float, high: float, integer: bool = False
) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(field, value, f"{low}-{high}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(field, value, f"{low}-{high}")
    if integer and int(value) != value:
        raise ValidationError(field, value, f"integer {low}-{high}")
    if value < low or value > high:
        raise ValidationError(field, value, f"{low}-{high}")


def _check_rgb(color: Sequence[int]) -> RGB:
    if len(color) != 3 or any(
        isinstance(c, bool) or not isinstance(c, int) or not 0 <= c <= 255
        for c in color
    ):
        raise ValidationError("color", tuple(color), "three 0-255 components")
    return (color[0], color[1], color[2])


# ========== Command frames ==========


def build_init_command() -> bytes:
    """Build the 4-byte command sent once after connecting."""
    return bytes([OP_INIT, 0x00, 0x00, 0x00])


def build_init_preset() -> bytes:
    """Build the 34-byte preset sent shortly after the init command."""
    frame = bytearray(INIT_PRESET_SIZE)
    _COLOR_HEADER.pack_into(frame, 0, OP_PRESET, 0, 0, DEFAULT_BRIGHTNESS)
    frame[_COLOR_HEADER.size :] = _INIT_PRESET_TABLE
    return bytes(frame)


def build_stop_command() -> bytes:
    """Build the command that ends the running block."""
    return bytes([OP_STOP, 0x00])


def build_mode_profile(mode: ProgramMode) -> bytes:
    """Build the 32-byte timing/resistance profile for a program mode.

    Raises:
        ValidationError: if ``mode`` is not a known program mode
    """
    try:
        triples = _MODE_PROFILES[ProgramMode(mode)]
    except ValueError:
        raise ValidationError("mode", mode, "known program mode") from None
    profile = b"".join(struct.pack("<hhf", *triple) for triple in triples)
    return profile


def build_program_params(params: ProgramParams) -> bytes:
    """Build the 96-byte program frame.

    The transmitted weight is ``per_cable_kg + 10``; the device subtracts
    that baseline internally.

    Raises:
        ValidationError: if any parameter is out of range
    """
    params.validate()
    mode = ProgramMode(params.mode)
    frame = bytearray(PROGRAM_PARAMS_SIZE)

    reps_byte = UNLIMITED_REPS if params.just_lift else params.reps + WARMUP_REPS
    struct.pack_into(
        "<BBBBBB",
        frame,
        0x00,
        OP_PROGRAM,
        params.sequence_id & 0xFF,
        int(mode),
        0x01 if params.just_lift else 0x00,
        reps_byte,
        WARMUP_REPS,
    )
    struct.pack_into("<ff", frame, 0x08, 5.0, 5.0)
    struct.pack_into("<HHHH", frame, 0x14, 250, 250, 200, 30)
    struct.pack_into("<f", frame, 0x1C, 5.0)
    frame[PROGRAM_PROFILE_OFFSET : PROGRAM_PROFILE_OFFSET + MODE_PROFILE_SIZE] = (
        build_mode_profile(mode)
    )
    struct.pack_into(
        "<fff",
        frame,
        PROGRAM_EFFECTIVE_KG_OFFSET,
        params.effective_kg,
        params.per_cable_kg,
        params.progression_kg,
    )
    return bytes(frame)


def decode_program_weights(frame: bytes) -> Tuple[float, float, float]:
    """Read (effective_kg, per_cable_kg, progression_kg) back out of a program frame."""
    if len(frame) != PROGRAM_PARAMS_SIZE:
        raise FrameDecodeError(f"program frame must be {PROGRAM_PARAMS_SIZE} bytes")
    return struct.unpack_from("<fff", frame, PROGRAM_EFFECTIVE_KG_OFFSET)


def echo_tuning(level: EchoLevel, eccentric_pct: int) -> EchoTuning:
    """Derive the echo controller parameters for a level and eccentric load."""
    try:
        gain, cap = _ECHO_LEVEL_TABLE[EchoLevel(level)]
    except ValueError:
        raise ValidationError("level", level, "0-3") from None
    _check_range(
        "eccentric_pct", eccentric_pct, ECCENTRIC_MIN_PCT, ECCENTRIC_MAX_PCT, True
    )
    return EchoTuning(eccentric_pct=int(eccentric_pct), gain=gain, cap=cap)


def build_echo_control(params: EchoParams) -> bytes:
    """Build the 32-byte echo control frame.

    Raises:
        ValidationError: if any parameter is out of range
    """
    params.validate()
    tuning = echo_tuning(params.level, params.eccentric_pct)
    target = UNLIMITED_REPS if params.just_lift else params.target_reps
    frame = struct.pack(
        "<IBBHHHfffff",
        OP_ECHO,
        params.warmup_reps,
        target,
        0,
        tuning.eccentric_pct,
        tuning.concentric_pct,
        tuning.smoothing,
        tuning.gain,
        tuning.cap,
        tuning.floor,
        tuning.neg_limit,
    )
    return frame


def build_color_scheme(
    colors: Sequence[Sequence[int]], brightness: float = DEFAULT_BRIGHTNESS
) -> bytes:
    """Build the 34-byte LED colour frame from three RGB triples.

    Raises:
        ValidationError: if there are not exactly three valid colours
    """
    if len(colors) != 3:
        raise ValidationError("colors", len(colors), "exactly 3")
    triples = [_check_rgb(c) for c in colors]
    _check_range("brightness", brightness, 0.0, 1.0)

    frame = bytearray(COLOR_SCHEME_SIZE)
    _COLOR_HEADER.pack_into(frame, 0, OP_PRESET, 0, 0, brightness)
    body = bytes(component for rgb in triples for component in rgb)
    frame[_COLOR_HEADER.size :] = body * 2
    return bytes(frame)


# ========== Telemetry decoding ==========


def decode_monitor_frame(data: bytes, timestamp: Optional[float] = None) -> MonitorSample:
    """Decode a 16-byte telemetry frame.

    Args:
        data: Raw bytes read from the monitor characteristic
        timestamp: Sample time (defaults to now)

    Raises:
        FrameDecodeError: if the frame is too short
        SensorSpikeError: if either position exceeds the plausible limit
    """
    if len(data) < MONITOR_FRAME_SIZE:
        raise FrameDecodeError(
            f"monitor frame too short: {len(data)} < {MONITOR_FRAME_SIZE}"
        )
    tick_lo, tick_hi, pos_a, load_a, pos_b, load_b = _MONITOR_STRUCT.unpack_from(data)
    if pos_a > POSITION_SPIKE_LIMIT or pos_b > POSITION_SPIKE_LIMIT:
        raise SensorSpikeError(pos_a, pos_b)
    return MonitorSample(
        ticks=tick_lo | (tick_hi << 16),
        pos_a=pos_a,
        pos_b=pos_b,
        load_a=load_a / 100.0,
        load_b=load_b / 100.0,
        timestamp=time.time() if timestamp is None else timestamp,
    )


def decode_rep_notification(data: bytes) -> RepCounters:
    """Decode a rep notification into its top and complete counters.

    Raises:
        FrameDecodeError: if fewer than 6 bytes were received
    """
    if len(data) < REP_NOTIFICATION_MIN_SIZE:
        raise FrameDecodeError(
            f"rep notification too short: {len(data)} < {REP_NOTIFICATION_MIN_SIZE}"
        )
    count = len(data) // 2
    values: List[int] = list(struct.unpack_from(f"<{count}H", data))
    return RepCounters(top=values[0], complete=values[2])


def hexdump(data: bytes) -> str:
    """Format bytes as space separated hex for debug logs."""
    return " ".join(f"{b:02x}" for b in data)
