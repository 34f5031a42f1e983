# File: BeaverDevice.py
"""
NexDome Beaver dome device implementation.

``BeaverDevice`` is the single context object for one controller: it owns the
command protocol (and through it the transport channel), the last known
azimuth, offsets and settings, and the rotator and shutter state machines.
Everything that talks to the dome receives the instance explicitly.

Device operations never raise on a communication failure. Each failure is
reported as a status message (logged, stored as ``last_message`` and sent to
any registered listeners) and the operation returns ``False`` or ``None``.
Only ``connect()`` raises, since it is a setup step.

Motion commands set the target state before the command is sent; the next
``update_status()`` tick reconciles it with the device status word.
"""

import logging
import threading
from dataclasses import asdict
from logging import Logger
from typing import Callable, Dict, List, Optional, Tuple, Type, Union

from beaver_serial import (
    CMD_ABORT_ALL,
    CMD_AT_HOME,
    CMD_AT_PARK,
    CMD_FIND_HOME,
    CMD_FIRMWARE_VERSION,
    CMD_GET_AZ,
    CMD_GET_HOME,
    CMD_GET_PARK,
    CMD_GOTO_AZ,
    CMD_GOTO_HOME,
    CMD_GOTO_PARK,
    CMD_MEASURE_HOME,
    CMD_SET_HOME,
    CMD_SET_PARK,
    CMD_SET_PARK_HERE,
    CMD_SHUTTER_ABORT,
    CMD_SHUTTER_CLOSE,
    CMD_SHUTTER_FIND_HOME,
    CMD_SHUTTER_IS_UP,
    CMD_SHUTTER_OPEN,
    CMD_SHUTTER_VOLTAGE,
    CMD_STATUS,
    CMD_SYNC_AZ,
    CommandProtocol,
    ProtocolError,
)
from beaver_state import RotatorStateMachine, ShutterStateMachine
from beaver_transport import BeaverSerialError, TransportError, create_transport
from beaver_types import (
    DomeStatus,
    RotatorSettings,
    RotatorState,
    ShutterSettings,
    ShutterState,
)


StatusListener = Callable[[int, str], None]
Settings = Union[RotatorSettings, ShutterSettings]

# (field, get template, set template), applied in this order
ROTATOR_SETTING_FIELDS: Tuple[Tuple[str, str, str], ...] = (
    ('max_speed', '!domerot getmaxspeed', '!domerot setmaxspeed %.2f'),
    ('min_speed', '!domerot getminspeed', '!domerot setminspeed %.2f'),
    ('acceleration', '!domerot getacceleration', '!domerot setacceleration %.2f'),
    ('timeout', '!domerot getmaxfullrotsecs', '!domerot setfullrotsecs %.2f'),
)

SHUTTER_SETTING_FIELDS: Tuple[Tuple[str, str, str], ...] = (
    ('max_speed', '!dome getshuttermaxspeed', '!dome setshuttermaxspeed %.2f'),
    ('min_speed', '!dome getshutterminspeed', '!dome setshutterminspeed %.2f'),
    ('acceleration', '!dome getshutteracceleration', '!dome setshutteracceleration %.2f'),
    ('timeout', '!dome getshuttertimeoutopenclose', '!dome setshuttertimeoutopenclose %.2f'),
    ('safe_voltage', '!dome getshuttersafevoltage', '!dome setshuttersafevoltage %.2f'),
)

FULL_CIRCLE = 360.0


class BeaverConnectionError(BeaverSerialError):
    """The transport could not be opened or the connect handshake failed."""
    pass


class BeaverDevice:
    """
    Beaver dome controller: device operations, caches and motion state.

    Thread Safety:
        Multi-command sequences (handshake, settings, abort, poll tick) run
        under ``self._lock`` so that the poller and command callers never
        interleave on the channel.

    Example:
        >>> device = BeaverDevice.from_config(BeaverConfig(), logger)
        >>> device.connect()
        >>> device.goto_azimuth(180.0)
        True
    """

    def __init__(self, protocol: CommandProtocol, logger: Optional[Logger] = None) -> None:
        """
        Create a disconnected device over a command protocol.

        Args:
            protocol: Protocol bound to the controller's transport channel
            logger: Optional logger instance. If None, creates module logger.
        """
        self._logger = logger or logging.getLogger(__name__)
        self._protocol = protocol
        self._lock = threading.RLock()

        self._connected = False
        self._connecting = False
        self._listeners: List[StatusListener] = []
        self._last_message = ''

        self._rotator = RotatorStateMachine(self._report)
        self._shutter = ShutterStateMachine(self._report)
        self._clear_caches()

    @classmethod
    def from_config(cls, config, logger: Optional[Logger] = None) -> 'BeaverDevice':
        """Build a device with the channel and retry policy from a BeaverConfig."""
        transport = create_transport(config, logger)
        protocol = CommandProtocol(transport, config.retry_policy(), logger)
        return cls(protocol, logger)

    def _clear_caches(self) -> None:
        self._azimuth: Optional[float] = None
        self._home_offset: Optional[float] = None
        self._park_offset: Optional[float] = None
        self._firmware_version: Optional[float] = None
        self._shutter_voltage: Optional[float] = None
        self._rotator_settings: Optional[RotatorSettings] = None
        self._shutter_settings: Optional[ShutterSettings] = None
        self._has_shutter = False

    # ----------------
    # Status reporting
    # ----------------

    def add_status_listener(self, callback: StatusListener) -> None:
        """Register ``callback(level, message)`` for status messages."""
        with self._lock:
            self._listeners.append(callback)

    def remove_status_listener(self, callback: StatusListener) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _report(self, level: int, message: str) -> None:
        """Log a status message and forward it to listeners."""
        self._logger.log(level, message)
        self._last_message = message

        for listener in list(self._listeners):
            try:
                listener(level, message)
            except Exception as ex:
                self._logger.warning(f"Status listener {listener} failed: {ex}")

    @property
    def last_message(self) -> str:
        """Most recent status message."""
        return self._last_message

    # ----------
    # Connection
    # ----------

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._connected and self._protocol.is_open

    @property
    def connecting(self) -> bool:
        return self._connecting

    def connect(self) -> None:
        """
        Open the channel and read the device state.

        The handshake reads the firmware version, azimuth, home and park
        offsets and rotator settings, checks for the shutter and reads the
        shutter settings when one is present. States start from Idle and
        Unknown; nothing is carried over from an earlier connection.

        Raises:
            BeaverConnectionError: If the channel cannot be opened or any
                handshake command fails. The channel is closed again.
        """
        with self._lock:
            if self._connected:
                self._logger.info("Already connected")
                return

            self._connecting = True
            try:
                try:
                    self._protocol.open()
                except TransportError as ex:
                    self._report(logging.ERROR, f"Failed to open connection: {ex}")
                    raise BeaverConnectionError(f"Cannot open channel: {ex}") from ex

                self._clear_caches()
                self._rotator = RotatorStateMachine(self._report)
                self._shutter = ShutterStateMachine(self._report)

                try:
                    self._handshake()
                except ProtocolError as ex:
                    self._protocol.close()
                    self._report(logging.ERROR, f"Handshake failed: {ex}")
                    raise BeaverConnectionError(f"Handshake failed: {ex}") from ex

                self._connected = True
                self._report(logging.INFO, "Beaver dome connected")

            finally:
                self._connecting = False

    def _handshake(self) -> None:
        send = self._protocol.send_command

        self._firmware_version = send(CMD_FIRMWARE_VERSION)
        self._logger.info(f"Detected firmware version {self._firmware_version:.0f}")

        self._azimuth = send(CMD_GET_AZ)
        self._logger.info(f"Dome reports currently at az: {self._azimuth:.1f}")

        self._home_offset = send(CMD_GET_HOME)
        self._logger.info(f"Dome reports home offset: {self._home_offset}")

        self._park_offset = send(CMD_GET_PARK)
        self._logger.info(f"Dome reports park az as: {self._park_offset:.1f}")

        self._rotator_settings = self._read_settings(ROTATOR_SETTING_FIELDS, RotatorSettings)

        self._has_shutter = self._check_shutter()
        if self._has_shutter:
            self._shutter_settings = self._read_settings(SHUTTER_SETTING_FIELDS, ShutterSettings)
        else:
            self._logger.info("No shutter detected")

    def disconnect(self) -> None:
        """Close the channel. Cached values stay readable until the next connect."""
        with self._lock:
            self._connected = False
            self._protocol.close()
            self._report(logging.INFO, "Beaver dome disconnected")

    # ---------------
    # Command helpers
    # ---------------

    def _send(self, action: str, template: str, *params: float) -> Optional[float]:
        """Send one command, reporting any failure.

        Returns:
            The response value, or None on failure
        """
        if not self.connected:
            self._report(logging.ERROR, f"{action} failed: not connected")
            return None

        try:
            return self._protocol.send_command(template, *params)
        except ProtocolError as ex:
            self._report(logging.ERROR, f"{action} failed: {ex}")
            return None

    def _require_connection(self, action: str) -> bool:
        if self.connected:
            return True
        self._report(logging.ERROR, f"{action} failed: not connected")
        return False

    def _read_settings(self, fields: Tuple[Tuple[str, str, str], ...],
                       settings_type: Type[Settings]) -> Settings:
        """Read each field in order. Raises ProtocolError on the first failure."""
        values = {name: self._protocol.send_command(get) for name, get, _ in fields}
        return settings_type(**values)

    def _write_settings(self, action: str, fields: Tuple[Tuple[str, str, str], ...],
                        settings: Settings, cached: Optional[Settings]) -> Tuple[bool, Optional[Settings]]:
        """
        Apply each field in order, stopping at the first failure.

        Fields written before a failure are not rolled back; the cache keeps
        them. A field never read or written is None in the cache.

        Returns:
            Tuple of (success, updated cache)
        """
        applied: Dict[str, Optional[float]] = (
            asdict(cached) if cached is not None else {name: None for name, _, _ in fields}
        )
        written = 0

        for name, _, set_template in fields:
            value = float(getattr(settings, name))
            if self._send(f"{action} ({name})", set_template, value) is None:
                break
            applied[name] = value
            written += 1

        if written == 0:
            return False, cached
        return written == len(fields), type(settings)(**applied)

    # -------
    # Rotator
    # -------

    @property
    def azimuth(self) -> Optional[float]:
        """Last azimuth read from the device."""
        return self._azimuth

    @property
    def rotator_state(self) -> RotatorState:
        return self._rotator.state

    @property
    def rotator_label(self) -> str:
        return self._rotator.label

    @property
    def home_offset(self) -> Optional[float]:
        return self._home_offset

    @property
    def park_offset(self) -> Optional[float]:
        return self._park_offset

    @property
    def firmware_version(self) -> Optional[float]:
        return self._firmware_version

    @property
    def rotator_settings(self) -> Optional[RotatorSettings]:
        return self._rotator_settings

    @property
    def is_slewing(self) -> bool:
        """True while the rotator is busy or the shutter is moving."""
        return self._rotator.is_busy or self._shutter.is_moving

    def get_azimuth(self) -> Optional[float]:
        """Query the current azimuth and cache it."""
        value = self._send("Get azimuth", CMD_GET_AZ)
        if value is not None:
            self._azimuth = value
        return value

    def goto_azimuth(self, azimuth: float) -> bool:
        """
        Start an absolute rotator move.

        The rotator is marked Moving before the command is sent.

        Args:
            azimuth: Target azimuth in degrees, 0 <= azimuth < 360

        Returns:
            True if the device accepted the command. False, with nothing
            sent, if azimuth is outside [0, 360) or not a number.
        """
        if not self._valid_azimuth("Goto azimuth", azimuth):
            return False
        with self._lock:
            if not self._require_connection("Goto azimuth"):
                return False
            self._rotator.begin(RotatorState.MOVING, 'Moving')
            return self._send(f"Goto azimuth {azimuth:.2f}", CMD_GOTO_AZ, azimuth) is not None

    def goto_relative(self, delta: float) -> bool:
        """
        Move by ``delta`` degrees from the last known azimuth.

        The target wraps into [0, 360), so 350 + 20 goes to 10 and
        10 - 20 goes to 350.
        """
        with self._lock:
            current = self._azimuth if self._azimuth is not None else self.get_azimuth()
            if current is None:
                return False

            target = (current + delta) % FULL_CIRCLE
            # Float rounding can land exactly on 360.0
            if target >= FULL_CIRCLE:
                target = 0.0
            return self.goto_azimuth(target)

    def sync_azimuth(self, azimuth: float) -> bool:
        """Redefine the current position as ``azimuth`` without moving."""
        if not self._valid_azimuth("Sync azimuth", azimuth):
            return False
        value = self._send(f"Sync azimuth {azimuth:.2f}", CMD_SYNC_AZ, azimuth)
        if value is None:
            return False
        self._azimuth = azimuth
        return True

    def set_home(self, azimuth: float) -> bool:
        """Store the home offset on the device."""
        if not self._valid_azimuth("Set home", azimuth):
            return False
        if self._send(f"Set home {azimuth:.2f}", CMD_SET_HOME, azimuth) is None:
            return False
        self._home_offset = azimuth
        return True

    def set_park(self, azimuth: float) -> bool:
        """Store the park position on the device."""
        if not self._valid_azimuth("Set park", azimuth):
            return False
        if self._send(f"Set park {azimuth:.2f}", CMD_SET_PARK, azimuth) is None:
            return False
        self._park_offset = azimuth
        return True

    def get_home_offset(self) -> Optional[float]:
        value = self._send("Get home offset", CMD_GET_HOME)
        if value is not None:
            self._home_offset = value
        return value

    def get_park_offset(self) -> Optional[float]:
        value = self._send("Get park position", CMD_GET_PARK)
        if value is not None:
            self._park_offset = value
        return value

    def get_firmware_version(self) -> Optional[float]:
        value = self._send("Get firmware version", CMD_FIRMWARE_VERSION)
        if value is not None:
            self._firmware_version = value
        return value

    def goto_home(self) -> bool:
        """Rotate to the home sensor. Marks the rotator Homing."""
        return self._motion("Goto home", CMD_GOTO_HOME, RotatorState.HOMING, 'Homing')

    def goto_park(self) -> bool:
        """Rotate to the park position. Marks the rotator Parking."""
        return self._motion("Goto park", CMD_GOTO_PARK, RotatorState.PARKING, 'Parking')

    def find_home(self) -> bool:
        """Coarse home calibration sweep."""
        return self._motion("Find home", CMD_FIND_HOME, RotatorState.MOVING, 'Finding Home')

    def measure_home(self) -> bool:
        """Precise home measurement sweep."""
        return self._motion("Measure home", CMD_MEASURE_HOME, RotatorState.MOVING, 'Measuring Home')

    def set_park_here(self) -> bool:
        """Make the current position the park position and mark it Parked."""
        return self._motion("Set park here", CMD_SET_PARK_HERE, RotatorState.PARKED, 'Parked')

    def unpark(self) -> bool:
        """Release the park state. No device command is needed."""
        with self._lock:
            if not self._require_connection("Unpark"):
                return False
            self._rotator.begin(RotatorState.IDLE, 'Idle @ park')
            return True

    def _motion(self, action: str, template: str, state: RotatorState, label: str) -> bool:
        with self._lock:
            if not self._require_connection(action):
                return False
            self._rotator.begin(state, label)
            return self._send(action, template) is not None

    def abort_all(self) -> bool:
        """
        Halt rotator and shutter motion.

        Clears a rotator Error and re-reads the azimuth.

        Returns:
            True if the abort was accepted and the azimuth re-read
        """
        with self._lock:
            if self._send("Abort", CMD_ABORT_ALL) is None:
                return False
            self._rotator.reset('Idle')
            return self.get_azimuth() is not None

    def is_at_home(self) -> bool:
        value = self._send("At home query", CMD_AT_HOME)
        return value == 1

    def is_parked(self) -> bool:
        value = self._send("At park query", CMD_AT_PARK)
        return value == 1

    def get_rotator_settings(self) -> Optional[RotatorSettings]:
        """Read the rotator settings, field by field."""
        with self._lock:
            if not self._require_connection("Get rotator settings"):
                return None
            try:
                self._rotator_settings = self._read_settings(ROTATOR_SETTING_FIELDS, RotatorSettings)
            except ProtocolError as ex:
                self._report(logging.ERROR, f"Get rotator settings failed: {ex}")
                return None
            return self._rotator_settings

    def set_rotator_settings(self, settings: RotatorSettings) -> bool:
        """
        Write the rotator settings in field order.

        The first failing field aborts the rest; earlier fields stay applied.
        """
        with self._lock:
            ok, self._rotator_settings = self._write_settings(
                "Set rotator settings", ROTATOR_SETTING_FIELDS, settings, self._rotator_settings
            )
            return ok

    def _valid_azimuth(self, action: str, azimuth: float) -> bool:
        # NaN fails the range test too
        if 0.0 <= azimuth < FULL_CIRCLE:
            return True
        self._report(logging.ERROR, f"{action} failed: azimuth {azimuth} outside [0, 360)")
        return False

    # -------
    # Shutter
    # -------

    @property
    def has_shutter(self) -> bool:
        """Result of the most recent shutter presence check."""
        return self._has_shutter

    @property
    def shutter_state(self) -> ShutterState:
        return self._shutter.state

    @property
    def shutter_label(self) -> str:
        return self._shutter.label

    @property
    def shutter_voltage(self) -> Optional[float]:
        return self._shutter_voltage

    @property
    def shutter_settings(self) -> Optional[ShutterSettings]:
        return self._shutter_settings

    def _check_shutter(self) -> bool:
        # An absent shutter is normal, so a failed check is not an error
        try:
            self._protocol.send_command(CMD_SHUTTER_IS_UP, quiet=True)
        except ProtocolError as ex:
            self._logger.debug(f"Shutter presence check failed: {ex}")
            return False
        return True

    def shutter_is_present(self) -> bool:
        """Check for the shutter and cache the result."""
        with self._lock:
            if not self.connected:
                return False
            present = self._check_shutter()
            if present != self._has_shutter:
                self._report(logging.INFO, f"Shutter {'detected' if present else 'not responding'}")
            self._has_shutter = present
            return present

    def shutter_open(self) -> bool:
        """Open the shutter. Marks it Opening."""
        return self._shutter_motion("Open shutter", CMD_SHUTTER_OPEN, ShutterState.OPENING, 'Opening')

    def shutter_close(self) -> bool:
        """Close the shutter. Marks it Closing."""
        return self._shutter_motion("Close shutter", CMD_SHUTTER_CLOSE, ShutterState.CLOSING, 'Closing')

    def shutter_find_home(self) -> bool:
        """Shutter calibration run. Marks it Moving."""
        return self._shutter_motion("Shutter find home", CMD_SHUTTER_FIND_HOME, ShutterState.MOVING, 'Moving')

    def shutter_abort(self) -> bool:
        return self._send("Abort shutter", CMD_SHUTTER_ABORT) is not None

    def _shutter_motion(self, action: str, template: str, state: ShutterState, label: str) -> bool:
        with self._lock:
            if not self._require_connection(action):
                return False
            if not self._has_shutter:
                self._report(logging.ERROR, f"{action} failed: no shutter")
                return False
            self._shutter.begin(state, label)
            return self._send(action, template) is not None

    def get_shutter_voltage(self) -> Optional[float]:
        value = self._send("Shutter voltage", CMD_SHUTTER_VOLTAGE)
        if value is not None:
            self._shutter_voltage = value
            self._logger.debug(f"Shutter voltage currently is: {value:.2f}")
        return value

    def get_shutter_settings(self) -> Optional[ShutterSettings]:
        """Read the shutter settings. None without a shutter."""
        with self._lock:
            if not self._require_connection("Get shutter settings") or not self._has_shutter:
                return None
            try:
                self._shutter_settings = self._read_settings(SHUTTER_SETTING_FIELDS, ShutterSettings)
            except ProtocolError as ex:
                self._report(logging.ERROR, f"Get shutter settings failed: {ex}")
                return None
            return self._shutter_settings

    def set_shutter_settings(self, settings: ShutterSettings) -> bool:
        """
        Write the shutter settings in field order.

        Succeeds without any command when no shutter is present.
        """
        with self._lock:
            if not self._has_shutter:
                self._logger.debug("No shutter, shutter settings not sent")
                return True
            ok, self._shutter_settings = self._write_settings(
                "Set shutter settings", SHUTTER_SETTING_FIELDS, settings, self._shutter_settings
            )
            return ok

    # -----------
    # Status poll
    # -----------

    def update_status(self) -> Optional[DomeStatus]:
        """
        One poll tick.

        Reads the status word, refreshes azimuth and shutter presence, then
        applies the status word to both state machines. A failed status read
        is reported once and leaves both states as they were. The shutter
        voltage is refreshed whenever a shutter is present.

        Returns:
            The decoded status word, or None if it could not be read
        """
        with self._lock:
            if not self.connected:
                return None

            status = None
            try:
                status = DomeStatus.from_value(self._protocol.send_command(CMD_STATUS))
                self._logger.debug(f"Dome status: {int(status):#06x}")
            except ProtocolError as ex:
                self._report(logging.ERROR, f"Status command error: {ex}")

            self.get_azimuth()
            self.shutter_is_present()

            if status is not None:
                self._rotator.apply_status(status)
                if self._has_shutter:
                    self._shutter.apply_status(status)

            if self._has_shutter:
                self.get_shutter_voltage()

            return status

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(transport={self._protocol.transport!r}, "
            f"connected={self._connected})"
        )
