"""
Exception taxonomy for the trainer core.

Nothing here is fatal to the process: link failures surface to the caller
of the failed operation, decode failures are dropped by their consumer and
validation failures are raised before any frame is built.
"""


class VitruvianError(Exception):
    """Base class for all trainer errors."""


class LinkError(VitruvianError):
    """The BLE link failed or was lost while an operation was pending."""


class FrameDecodeError(VitruvianError):
    """A frame received from the device could not be decoded."""


class SensorSpikeError(FrameDecodeError):
    """A telemetry frame carried an implausible cable position."""

    def __init__(self, pos_a: int, pos_b: int):
        super().__init__(f"position spike: A={pos_a} B={pos_b}")
        self.pos_a = pos_a
        self.pos_b = pos_b


class ValidationError(VitruvianError, ValueError):
    """User or plan input is out of range; nothing was sent to the device."""

    def __init__(self, field: str, value, allowed: str):
        super().__init__(f"{field}={value!r} out of range ({allowed})")
        self.field = field
        self.value = value
        self.allowed = allowed


class ProtocolInvariantViolation(VitruvianError):
    """A device event arrived that makes no sense in the current state."""
