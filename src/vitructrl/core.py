"""
Core constants and enums for Vitruvian trainer control.
"""

from enum import IntEnum

# Nordic UART Service and the vendor characteristics layered on it
NUS_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
COMMAND_CHAR_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"
MONITOR_CHAR_UUID = "90e991a6-c548-44ed-969b-eb541014eae3"
PROPERTY_CHAR_UUID = "5fa538ec-d041-42f6-bbd6-c30d475387b7"
REP_NOTIFY_CHAR_UUID = "8308f2a6-0875-4a94-a86f-5c5c5e1b068a"

# Devices advertise as "Vee_xxxx"
DEVICE_NAME_PREFIX = "Vee"

# Frame sizes (bytes)
INIT_COMMAND_SIZE = 4
INIT_PRESET_SIZE = 34
PROGRAM_PARAMS_SIZE = 96
ECHO_CONTROL_SIZE = 32
COLOR_SCHEME_SIZE = 34
MONITOR_FRAME_SIZE = 16
REP_NOTIFICATION_MIN_SIZE = 6

# Input limits
WEIGHT_MIN_KG = 0.0
WEIGHT_MAX_KG = 100.0
REPS_MIN = 1
REPS_MAX = 100
PROGRESSION_MIN_KG = -3.0
PROGRESSION_MAX_KG = 3.0
ECCENTRIC_MIN_PCT = 0
ECCENTRIC_MAX_PCT = 150
ECHO_TARGET_REPS_MIN = 0
ECHO_TARGET_REPS_MAX = 30

# Device adds this to the transmitted weight; never shown to the user
WEIGHT_BASELINE_OFFSET_KG = 10.0

WARMUP_REPS = 3
POSITION_SPIKE_LIMIT = 50_000

# Polling cadences (seconds)
PROPERTY_POLL_INTERVAL = 0.5
MONITOR_POLL_INTERVAL = 0.1

# Delay between the init command and the init preset (seconds)
INIT_PRESET_DELAY = 0.05

# Auto-stop (Just Lift)
AUTO_STOP_MIN_RANGE = 50
AUTO_STOP_ZONE_FRACTION = 0.05
AUTO_STOP_HOLD_SECONDS = 5.0

# Rolling window sizes for range estimation
WARMUP_WINDOW_SIZE = 2
WORKING_WINDOW_SIZE = 3

# Default rest extension ("+30s")
REST_EXTEND_SECONDS = 30

# Fixed LED brightness; the device ignores other values
DEFAULT_BRIGHTNESS = 0.4

# Display units; the wire is always kg
WEIGHT_UNITS = ("kg", "lb")
LB_PER_KG = 2.2046226218488


class ProgramMode(IntEnum):
    """Base resistance programs understood by the trainer."""

    OLD_SCHOOL = 0
    PUMP = 2
    TUT = 3
    TUT_BEAST = 4
    ECCENTRIC_ONLY = 6


PROGRAM_MODE_NAMES = {
    ProgramMode.OLD_SCHOOL: "Old School",
    ProgramMode.PUMP: "Pump",
    ProgramMode.TUT: "TUT",
    ProgramMode.TUT_BEAST: "TUT Beast",
    ProgramMode.ECCENTRIC_ONLY: "Eccentric Only",
}


class EchoLevel(IntEnum):
    """Echo mode difficulty levels."""

    HARD = 0
    HARDER = 1
    HARDEST = 2
    EPIC = 3


ECHO_LEVEL_NAMES = {
    EchoLevel.HARD: "Hard",
    EchoLevel.HARDER: "Harder",
    EchoLevel.HARDEST: "Hardest",
    EchoLevel.EPIC: "Epic",
}

# Named three-colour LED schemes
COLOR_PRESETS = {
    "blue": ((0x00, 0xA8, 0xDD), (0x00, 0xCF, 0xFC), (0x5D, 0xDF, 0xFC)),
    "green": ((0x7D, 0xC1, 0x47), (0xA1, 0xD8, 0x6A), (0xBA, 0xE0, 0x94)),
    "teal": ((0x3E, 0x9A, 0xB7), (0x83, 0xBE, 0xD1), (0xC2, 0xDF, 0xE8)),
    "yellow": ((0xFF, 0x90, 0x51), (0xFF, 0xC6, 0x47), (0xFF, 0xD6, 0x47)),
    "pink": ((0xFF, 0x00, 0x4C), (0xFF, 0x23, 0x8C), (0xFF, 0x8C, 0x8C)),
    "red": ((0xFF, 0x00, 0x00), (0xFF, 0x55, 0x55), (0xFF, 0xAA, 0xAA)),
    "purple": ((0x88, 0x00, 0xFF), (0xB2, 0x66, 0xFF), (0xE0, 0xCC, 0xFF)),
}


def program_mode_from_name(name: str) -> ProgramMode:
    """Resolve a mode from its enum name, display name or numeric value."""
    key = name.strip().lower().replace("-", "_").replace(" ", "_")
    for mode in ProgramMode:
        if key in (mode.name.lower(), str(mode.value)):
            return mode
        if key == PROGRAM_MODE_NAMES[mode].lower().replace(" ", "_"):
            return mode
    raise KeyError(name)


def kg_to_unit(kg: float, unit: str) -> float:
    """Convert kilograms to the display unit."""
    return kg * LB_PER_KG if unit == "lb" else kg


def unit_to_kg(value: float, unit: str) -> float:
    """Convert a value entered in the display unit to kilograms."""
    return value / LB_PER_KG if unit == "lb" else value


# Application metadata
__version__ = "0.1.0"
__author__ = "OpenCode"
__description__ = "CLI and REPL interface for controlling Vitruvian trainers over BLE"
