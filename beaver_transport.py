# File: beaver_transport.py
"""
Byte-stream channels carrying the Beaver text protocol.

The command protocol only needs two blocking primitives from a channel: write
a byte sequence, and read until a terminator byte or a timeout. Two channels
are provided, a serial line (pyserial) and a UDP datagram socket, selected by
the ``connection`` setting of the device configuration.

Example:
    >>> channel = SerialTransport('/dev/ttyUSB0', 9600)
    >>> channel.open()
    >>> channel.write(b'!dome getaz#')
    >>> channel.read_until(b'#', 0.5)
    b'!dome getaz:123.45#'
"""

import logging
import socket
import time
from abc import ABC, abstractmethod
from typing import Optional

import serial


# Constants
DEFAULT_BAUDRATE = 9600
DEFAULT_TIMEOUT = 0.5
DEFAULT_HOST = '192.168.1.1'
DEFAULT_UDP_PORT = 10000
UDP_RECV_SIZE = 1024


class BeaverSerialError(Exception):
    """Base exception for Beaver dome communication errors."""
    pass


class TransportError(BeaverSerialError):
    """Channel level I/O failure."""
    pass


class TransportTimeout(TransportError):
    """No complete frame arrived before the read timeout."""
    pass


class TransportChannel(ABC):
    """Duplex byte channel used by the command protocol."""

    @abstractmethod
    def open(self) -> None:
        """Open the underlying device or socket.

        Raises:
            TransportError: If the channel cannot be opened.
        """

    @abstractmethod
    def close(self) -> None:
        """Close the channel. Safe to call when already closed."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the channel is usable."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write all of ``data``.

        Raises:
            TransportError: On any write failure.
        """

    @abstractmethod
    def read_until(self, terminator: bytes, timeout: float) -> bytes:
        """Read up to and including ``terminator``.

        Raises:
            TransportTimeout: If the terminator is not seen within ``timeout``.
            TransportError: On any other read failure.
        """

    def reset_input(self) -> None:
        """Discard unread input. Channels without buffering ignore this."""
        pass


class SerialTransport(TransportChannel):
    """Serial line channel backed by pyserial."""

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        logger: Optional[logging.Logger] = None
    ):
        if not port or not isinstance(port, str):
            raise ValueError("Port must be a non-empty string")

        if not isinstance(baudrate, int) or baudrate <= 0:
            raise ValueError("Baudrate must be a positive integer")

        self._logger = logger or logging.getLogger(__name__)
        self._port = port
        self._baudrate = baudrate
        self._serial: Optional[serial.Serial] = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(port='{self._port}', baudrate={self._baudrate})"

    def open(self) -> None:
        try:
            self._serial = serial.Serial(
                port=self._port,
                baudrate=self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=DEFAULT_TIMEOUT
            )

            if not self._serial.is_open:
                self._serial.open()

            self._logger.info(f"Serial connection opened: {self._port} @ {self._baudrate} baud")

        except (serial.SerialException, OSError, ValueError) as ex:
            self._serial = None
            self._logger.error(f"Failed to open serial connection on {self._port}: {ex}")
            raise TransportError(f"Serial connection failed: {ex}") from ex

    def close(self) -> None:
        if self._serial:
            try:
                if self._serial.is_open:
                    self._serial.close()
                    self._logger.info("Serial connection closed")
            except (serial.SerialException, OSError) as ex:
                self._logger.warning(f"Error closing serial connection: {ex}")
            finally:
                self._serial = None

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def write(self, data: bytes) -> None:
        if not self.is_open:
            raise TransportError("Serial port not connected")

        try:
            self._serial.write(data)
            self._serial.flush()
        except (serial.SerialException, OSError) as ex:
            raise TransportError(f"Serial write error: {ex}") from ex

    def read_until(self, terminator: bytes, timeout: float) -> bytes:
        if not self.is_open:
            raise TransportError("Serial port not connected")

        try:
            self._serial.timeout = timeout
            data = self._serial.read_until(terminator)
        except (serial.SerialException, OSError) as ex:
            raise TransportError(f"Serial read error: {ex}") from ex

        if not data.endswith(terminator):
            raise TransportTimeout(
                f"Timed out after {timeout}s waiting for {terminator!r} (got {data!r})"
            )

        return data

    def reset_input(self) -> None:
        if not self.is_open:
            return

        try:
            self._serial.reset_input_buffer()
        except (serial.SerialException, OSError) as ex:
            self._logger.warning(f"Error clearing input buffer: {ex}")


class UdpTransport(TransportChannel):
    """Datagram channel for network-attached controllers."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_UDP_PORT,
        logger: Optional[logging.Logger] = None
    ):
        if not host or not isinstance(host, str):
            raise ValueError("Host must be a non-empty string")

        if not isinstance(port, int) or not 0 < port < 65536:
            raise ValueError("Port must be an integer between 1 and 65535")

        self._logger = logger or logging.getLogger(__name__)
        self._host = host
        self._port = port
        self._socket: Optional[socket.socket] = None
        self._pending = b''

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(host='{self._host}', port={self._port})"

    def open(self) -> None:
        try:
            self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._socket.connect((self._host, self._port))
            self._pending = b''
            self._logger.info(f"UDP channel opened: {self._host}:{self._port}")
        except OSError as ex:
            self.close()
            self._logger.error(f"Failed to open UDP channel to {self._host}:{self._port}: {ex}")
            raise TransportError(f"UDP connection failed: {ex}") from ex

    def close(self) -> None:
        if self._socket:
            try:
                self._socket.close()
                self._logger.info("UDP channel closed")
            except OSError as ex:
                self._logger.warning(f"Error closing UDP channel: {ex}")
            finally:
                self._socket = None
                self._pending = b''

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    def write(self, data: bytes) -> None:
        if not self.is_open:
            raise TransportError("UDP channel not connected")

        try:
            self._socket.send(data)
        except OSError as ex:
            raise TransportError(f"UDP write error: {ex}") from ex

    def read_until(self, terminator: bytes, timeout: float) -> bytes:
        if not self.is_open:
            raise TransportError("UDP channel not connected")

        deadline = time.monotonic() + timeout
        buffer = self._pending

        while terminator not in buffer:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._pending = buffer
                raise TransportTimeout(
                    f"Timed out after {timeout}s waiting for {terminator!r} (got {buffer!r})"
                )

            try:
                self._socket.settimeout(remaining)
                buffer += self._socket.recv(UDP_RECV_SIZE)
            except socket.timeout:
                continue
            except OSError as ex:
                self._pending = b''
                raise TransportError(f"UDP read error: {ex}") from ex

        end = buffer.index(terminator) + len(terminator)
        self._pending = buffer[end:]
        return buffer[:end]

    def reset_input(self) -> None:
        self._pending = b''
        if not self.is_open:
            return

        # Drain datagrams still queued from an earlier timed-out exchange
        try:
            self._socket.settimeout(0)
            while self._socket.recv(UDP_RECV_SIZE):
                pass
        except (BlockingIOError, socket.timeout):
            pass
        except OSError as ex:
            self._logger.warning(f"Error draining UDP channel: {ex}")


def create_transport(config, logger: Optional[logging.Logger] = None) -> TransportChannel:
    """Build the channel selected by a device configuration.

    Args:
        config: Object exposing ``connection``, ``dev_port``, ``baudrate``,
            ``host`` and ``udp_port`` (normally a ``BeaverConfig``).
        logger: Optional logger passed to the channel.

    Raises:
        ValueError: If the connection type is not 'serial' or 'udp'.
    """
    connection = str(config.connection).lower()

    if connection == 'serial':
        return SerialTransport(config.dev_port, int(config.baudrate), logger)

    if connection == 'udp':
        return UdpTransport(config.host, int(config.udp_port), logger)

    raise ValueError(f"Unknown connection type: {config.connection}")
