# File: beaver_serial.py
"""
Command/response protocol for the NexDome Beaver controller.

Every request is a text command beginning with '!' and ending with '#'. Every
response is a '#' terminated frame whose payload is a single number carried
in the token after the last colon, e.g. ``!dome getaz:123.45#``.

Transient read failures are retried under a ``RetryPolicy``; write failures
and unparsable frames are not.

Example:
    >>> protocol = CommandProtocol(SerialTransport('/dev/ttyUSB0'), logger=logger)
    >>> protocol.open()
    >>> protocol.send_command(CMD_GOTO_AZ, 180.0)
    180.0
"""

import logging
import string
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from beaver_transport import (
    BeaverSerialError,
    TransportChannel,
    TransportError,
    TransportTimeout,
)
from beaver_types import ParseErrorKind


# Framing
COMMAND_PREFIX = '!'
TERMINATOR = '#'
TERMINATOR_BYTES = TERMINATOR.encode('ascii')
TOKEN_DELIMITER = ':'

# Retry defaults
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF = 0.1
DEFAULT_READ_TIMEOUT = 0.5

# Command templates. The terminator is appended when a Command is built.
CMD_FIRMWARE_VERSION = '!seletek tversion'
CMD_GET_AZ = '!dome getaz'
CMD_GOTO_AZ = '!dome gotoaz %.2f'
CMD_SYNC_AZ = '!dome setaz %.2f'
CMD_GET_HOME = '!domerot gethome'
CMD_SET_HOME = '!domerot sethome %.2f'
CMD_GET_PARK = '!domerot getpark'
CMD_SET_PARK = '!domerot setpark %.2f'
CMD_GOTO_HOME = '!dome gohome'
CMD_GOTO_PARK = '!dome gopark'
CMD_SET_PARK_HERE = '!dome setpark'
CMD_FIND_HOME = '!dome autocalrot 0'
CMD_MEASURE_HOME = '!dome autocalrot 1'
CMD_AT_HOME = '!dome athome'
CMD_AT_PARK = '!dome atpark'
CMD_STATUS = '!dome status'
CMD_ABORT_ALL = '!dome abort 1 1 1'
CMD_SHUTTER_OPEN = '!dome openshutter'
CMD_SHUTTER_CLOSE = '!dome closeshutter'
CMD_SHUTTER_ABORT = '!dome abort 0 0 1'
CMD_SHUTTER_IS_UP = '!dome shutterisup'
CMD_SHUTTER_VOLTAGE = '!dome getshutterbatvoltage'
CMD_SHUTTER_FIND_HOME = '!dome autocalshutter'


class ResponseParseError(BeaverSerialError):
    """A received frame carries no usable numeric value."""
    kind: Optional[ParseErrorKind] = None

    def __init__(self, message: str, frame: str = ''):
        super().__init__(message)
        self.frame = frame


class NoMatchError(ResponseParseError):
    """No numeric token follows the last colon."""
    kind = ParseErrorKind.NO_MATCH


class MalformedValueError(ResponseParseError):
    """A numeric-looking token could not be converted."""
    kind = ParseErrorKind.MALFORMED


class ProtocolError(BeaverSerialError):
    """Base class for failures of a single command exchange."""

    def __init__(self, message: str, command: str = ''):
        super().__init__(message)
        self.command = command


class TransportWriteError(ProtocolError):
    """The request could not be written. Never retried."""

    def __init__(self, command: str, cause: Exception):
        super().__init__(f"Write failed for {command}: {cause}", command)
        self.cause = cause


class TransportReadTimeout(ProtocolError):
    """Every attempt failed to read a response frame."""

    def __init__(self, command: str, attempts: int, cause: Optional[Exception] = None):
        super().__init__(f"No response to {command} after {attempts} attempts: {cause}", command)
        self.attempts = attempts
        self.cause = cause


class ProtocolParseError(ProtocolError):
    """A frame was received but could not be parsed. Never retried."""

    def __init__(self, command: str, kind: ParseErrorKind, frame: str):
        super().__init__(f"Unparsable response to {command}: {frame!r} ({kind.value})", command)
        self.kind = kind
        self.frame = frame


@dataclass(frozen=True)
class RetryPolicy:
    """Uniform retry behaviour for read failures.

    Attributes:
        max_attempts: Total write+read cycles, including the first.
        backoff: Seconds slept between attempts that failed on read.
        read_timeout: Seconds to wait for each response frame.
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff: float = DEFAULT_RETRY_BACKOFF
    read_timeout: float = DEFAULT_READ_TIMEOUT

    def __post_init__(self) -> None:
        if not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ValueError("max_attempts must be a positive integer")
        if self.backoff < 0:
            raise ValueError("backoff must not be negative")
        if self.read_timeout <= 0:
            raise ValueError("read_timeout must be positive")


@dataclass(frozen=True)
class Command:
    """Immutable request built from a template and its numeric parameters."""
    template: str
    params: Tuple[float, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.template or not isinstance(self.template, str):
            raise ValueError("Command template must be a non-empty string")

        if not self.template.startswith(COMMAND_PREFIX):
            raise ValueError(f"Command must start with '{COMMAND_PREFIX}'")

        if TERMINATOR in self.template:
            raise ValueError(f"Command template must not contain '{TERMINATOR}'")

        # Fail early on a template/parameter mismatch
        self.text

    @property
    def text(self) -> str:
        """Request string including the terminator."""
        try:
            body = self.template % tuple(self.params)
        except (TypeError, ValueError) as ex:
            raise ValueError(
                f"Parameters {self.params} do not fit template '{self.template}': {ex}"
            ) from ex
        return body + TERMINATOR

    def encode(self) -> bytes:
        return self.text.encode('ascii')


class ResponseParser:
    """Extracts the numeric payload from a response frame.

    The payload is the token after the last colon. Its leading run of digits
    and dots is converted to float; anything after that run is ignored.
    """

    NUMERIC_CHARS = frozenset(string.digits + '.')

    @classmethod
    def parse(cls, frame_text: str) -> float:
        """
        Parse a response frame into a float.

        Args:
            frame_text: Response text, with or without the trailing '#'

        Returns:
            The numeric payload

        Raises:
            NoMatchError: If no numeric token follows the last colon
            MalformedValueError: If the token has more than one decimal point
        """
        text = frame_text.strip()
        if text.endswith(TERMINATOR):
            text = text[:-1]

        index = text.rfind(TOKEN_DELIMITER)
        if index < 0:
            raise NoMatchError(f"No '{TOKEN_DELIMITER}' delimited token in {frame_text!r}", frame_text)

        token = cls._leading_numeric(text[index + 1:].strip())
        if not token or token[0] not in string.digits:
            raise NoMatchError(f"No numeric token in {frame_text!r}", frame_text)

        if token.count('.') > 1:
            raise MalformedValueError(f"Malformed number '{token}' in {frame_text!r}", frame_text)

        try:
            return float(token)
        except ValueError as ex:
            raise MalformedValueError(f"Cannot convert '{token}' in {frame_text!r}", frame_text) from ex

    @classmethod
    def _leading_numeric(cls, token: str) -> str:
        end = 0
        while end < len(token) and token[end] in cls.NUMERIC_CHARS:
            end += 1
        return token[:end]


class CommandProtocol:
    """
    Sends commands over a transport channel and returns their numeric result.

    Only one command is in flight at a time; the internal lock serialises
    callers sharing the channel. No state is retained between calls.
    """

    def __init__(
        self,
        transport: TransportChannel,
        retry_policy: Optional[RetryPolicy] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the protocol over an existing channel.

        Args:
            transport: Channel to write requests to and read responses from
            retry_policy: Retry behaviour; defaults to 3 attempts, 100 ms backoff
            logger: Optional logger instance. If None, creates module logger.
            sleep: Backoff sleep function, replaceable in tests
        """
        self._transport = transport
        self._policy = retry_policy or RetryPolicy()
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._lock = threading.RLock()

    def __enter__(self) -> 'CommandProtocol':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def transport(self) -> TransportChannel:
        return self._transport

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._transport.is_open

    def open(self) -> None:
        """Open the channel if needed.

        Raises:
            TransportError: If the channel cannot be opened.
        """
        with self._lock:
            if not self._transport.is_open:
                self._transport.open()

    def close(self) -> None:
        with self._lock:
            self._transport.close()

    def send_command(self, template: str, *params: float, quiet: bool = False) -> float:
        """
        Send one command and return the parsed response value.

        Args:
            template: Command template, e.g. CMD_GOTO_AZ
            *params: Values substituted into the template
            quiet: Log read failures at DEBUG instead of WARNING/ERROR,
                for presence checks where no answer is an expected outcome

        Returns:
            Numeric payload of the response

        Raises:
            ValueError: If the template or parameters are invalid
            TransportWriteError: If the request cannot be written
            TransportReadTimeout: If all attempts fail to read a frame
            ProtocolParseError: If a received frame cannot be parsed
        """
        command = Command(template, tuple(params))
        request = command.text
        attempts = self._policy.max_attempts
        last_error: Optional[TransportError] = None
        log_retry = self._logger.debug if quiet else self._logger.warning
        log_failure = self._logger.debug if quiet else self._logger.error

        with self._lock:
            for attempt in range(1, attempts + 1):
                self._logger.debug(f"CMD <{request}>")
                self._transport.reset_input()

                try:
                    self._transport.write(command.encode())
                except TransportError as ex:
                    self._logger.error(f"Serial write error on {request}: {ex}")
                    raise TransportWriteError(request, ex) from ex

                try:
                    raw = self._transport.read_until(TERMINATOR_BYTES, self._policy.read_timeout)
                except TransportError as ex:
                    last_error = ex
                    if attempt < attempts:
                        reason = "timed out" if isinstance(ex, TransportTimeout) else "failed"
                        log_retry(
                            f"Command {request} read {reason} (attempt {attempt}), retrying: {ex}"
                        )
                        self._sleep(self._policy.backoff)
                    continue

                frame = raw.decode('ascii', errors='replace')
                if frame.endswith(TERMINATOR):
                    frame = frame[:-len(TERMINATOR)]
                self._logger.debug(f"RES: {frame}")

                try:
                    value = ResponseParser.parse(frame)
                except ResponseParseError as ex:
                    self._logger.error(f"Failed to process response to {request}: {frame}")
                    raise ProtocolParseError(request, ex.kind, frame) from ex

                if attempt > 1:
                    self._logger.info(f"Command {request} succeeded on attempt {attempt}")
                return value

        log_failure(f"Serial read error: {request} failed after {attempts} attempts: {last_error}")
        raise TransportReadTimeout(request, attempts, last_error) from last_error
