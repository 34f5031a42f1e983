# File: beaver_types.py
"""Type definitions shared by the Beaver dome driver."""

from dataclasses import dataclass
from enum import Enum, IntEnum, IntFlag
from typing import Optional


class DomeStatus(IntFlag):
    """Bits of the 16-bit word returned by ``!dome status#``.

    Bits are independent flags; several may be set at once.
    """
    NONE = 0
    ROTATOR_MOVING = 0x0001
    SHUTTER_MOVING = 0x0002
    ROTATOR_ERROR = 0x0004       # rotator mechanical error
    SHUTTER_ERROR = 0x0008       # shutter mechanical error
    SHUTTER_COMM = 0x0010        # shutter communication error
    UNSAFE_CW = 0x0020           # counterweight unsafe
    UNSAFE_RG = 0x0040           # rotation guard unsafe
    SHUTTER_OPENED = 0x0080
    SHUTTER_CLOSED = 0x0100
    SHUTTER_OPENING = 0x0200
    SHUTTER_CLOSING = 0x0400
    ROTATOR_HOME = 0x0800
    ROTATOR_PARKED = 0x1000

    @classmethod
    def from_value(cls, value: float) -> 'DomeStatus':
        """Build a status word from a parsed response value."""
        return cls(int(value) & 0xFFFF)


class RotatorState(IntEnum):
    """Rotator (dome axis) motion state."""
    IDLE = 0
    MOVING = 1
    HOMING = 2
    PARKING = 3
    AT_HOME = 4
    PARKED = 5
    ERROR = 6


class ShutterState(IntEnum):
    """Shutter motion state."""
    UNKNOWN = 0
    CLOSED = 1
    OPEN = 2
    OPENING = 3
    CLOSING = 4
    MOVING = 5
    ERROR = 6
    COMM_ERROR = 7


class ParseErrorKind(Enum):
    """Why a response frame could not be turned into a number."""
    NO_MATCH = 'no_match'     # no numeric token after the last colon
    MALFORMED = 'malformed'   # token found but not convertible


@dataclass
class RotatorSettings:
    """Rotator motion settings as reported by the device. None where unknown."""
    max_speed: Optional[float]
    min_speed: Optional[float]
    acceleration: Optional[float]
    timeout: Optional[float]


@dataclass
class ShutterSettings:
    """Shutter motion settings as reported by the device. None where unknown."""
    max_speed: Optional[float]
    min_speed: Optional[float]
    acceleration: Optional[float]
    timeout: Optional[float]
    safe_voltage: Optional[float]
