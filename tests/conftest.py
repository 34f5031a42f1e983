"""
Shared pytest fixtures for Beaver dome driver tests.

This module provides common fixtures used across unit and integration tests,
including mock loggers, a scripted in-memory transport channel, and connected
device instances.
"""

import pytest
from unittest.mock import Mock, MagicMock, patch
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from beaver_transport import TransportChannel, TransportTimeout


def frame(command: str, value) -> bytes:
    """Build a device response frame echoing the command, e.g. b'!dome getaz:12.5#'."""
    return f"{command.rstrip('#')}:{value}#".encode('ascii')


class FakeTransport(TransportChannel):
    """In-memory transport answering from a script.

    Answers are keyed by the full request text including '#'. Queued answers
    are used first, then the standing answer set with ``set_response``. An
    answer is bytes to return, or an exception instance to raise. A request
    with no answer times out.
    """

    def __init__(self):
        self._open = False
        self.standing = {}
        self.queued = {}
        self.writes = []
        self.reads = 0
        self.write_error = None
        self.open_error = None
        self._last = None

    def set_response(self, command: str, answer) -> None:
        self.standing[command] = answer

    def set_value(self, command: str, value) -> None:
        self.set_response(command, frame(command, value))

    def queue(self, command: str, *answers) -> None:
        self.queued.setdefault(command, []).extend(answers)

    def commands(self):
        """Request texts written so far."""
        return [data.decode('ascii') for data in self.writes]

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self._open = True

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(data)
        self._last = data.decode('ascii')

    def read_until(self, terminator: bytes, timeout: float) -> bytes:
        self.reads += 1
        queue = self.queued.get(self._last)
        if queue:
            answer = queue.pop(0)
        elif self._last in self.standing:
            answer = self.standing[self._last]
        else:
            raise TransportTimeout(f"No answer for {self._last}")

        if isinstance(answer, Exception):
            raise answer
        return answer


HANDSHAKE_VALUES = {
    '!seletek tversion#': 1003,
    '!dome getaz#': 123.45,
    '!domerot gethome#': 10.0,
    '!domerot getpark#': 180.0,
    '!domerot getmaxspeed#': 800,
    '!domerot getminspeed#': 400,
    '!domerot getacceleration#': 100,
    '!domerot getmaxfullrotsecs#': 120,
    '!dome getshuttermaxspeed#': 700,
    '!dome getshutterminspeed#': 300,
    '!dome getshutteracceleration#': 90,
    '!dome getshuttertimeoutopenclose#': 60,
    '!dome getshuttersafevoltage#': 11.5,
    '!dome getshutterbatvoltage#': 12.6,
    '!dome status#': 0,
}


def script_device(transport: FakeTransport, has_shutter: bool = True) -> None:
    """Give the transport standing answers for the handshake and poll commands."""
    for command, value in HANDSHAKE_VALUES.items():
        transport.set_value(command, value)
    if has_shutter:
        transport.set_value('!dome shutterisup#', 1)


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns:
        Mock logger with standard logging methods.
    """
    logger = Mock()
    logger.debug = Mock()
    logger.info = Mock()
    logger.warning = Mock()
    logger.error = Mock()
    logger.critical = Mock()
    logger.log = Mock()
    return logger


@pytest.fixture
def fake_transport():
    """Scripted transport, already open."""
    transport = FakeTransport()
    transport.open()
    return transport


@pytest.fixture
def no_sleep():
    """Records backoff sleeps instead of sleeping."""
    return Mock()


@pytest.fixture
def protocol(fake_transport, mock_logger, no_sleep):
    """CommandProtocol over the fake transport with default retry policy."""
    from beaver_serial import CommandProtocol
    return CommandProtocol(fake_transport, logger=mock_logger, sleep=no_sleep)


@pytest.fixture
def device(protocol, fake_transport, mock_logger):
    """Connected BeaverDevice with a shutter; transport writes cleared after connect."""
    from BeaverDevice import BeaverDevice
    script_device(fake_transport, has_shutter=True)
    dev = BeaverDevice(protocol, mock_logger)
    dev.connect()
    fake_transport.writes.clear()
    return dev


@pytest.fixture
def device_without_shutter(protocol, fake_transport, mock_logger):
    """Connected BeaverDevice whose shutter presence check times out."""
    from BeaverDevice import BeaverDevice
    script_device(fake_transport, has_shutter=False)
    dev = BeaverDevice(protocol, mock_logger)
    dev.connect()
    fake_transport.writes.clear()
    return dev


@pytest.fixture
def mock_config():
    """Create mock server configuration object.

    Returns:
        Mock config with standard properties.
    """
    config = Mock()
    config.ip_address = ''
    config.port = 5555
    config.threads = 4
    config.location = 'Test Location'
    config.verbose_driver_exceptions = True
    config.log_level = 10  # DEBUG
    config.log_to_stdout = False
    config.max_size_mb = 5
    config.num_keep_logs = 10
    return config


# Utility fixtures

@pytest.fixture
def temp_toml_file(tmp_path):
    """Create a temporary server TOML config file for testing.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary config file.
    """
    config_content = """
title = "Test Config"

[network]
ip_address = ''
port = 5555
threads = 4

[server]
location = 'Test Location'
verbose_driver_exceptions = true

[logging]
log_level = 'DEBUG'
log_to_stdout = false
max_size_mb = 5
num_keep_logs = 10
"""
    config_file = tmp_path / "test_config.toml"
    config_file.write_text(config_content)
    return config_file


@pytest.fixture
def temp_device_toml_file(tmp_path):
    """Create a temporary BeaverConfig TOML file for testing."""
    config_content = """
[device]
connection = 'udp'
dev_port = '/dev/ttyACM0'
baudrate = 115200
host = '10.0.0.7'
udp_port = 10001

[driver]
poll_period = 2.0
read_timeout = 0.25
max_attempts = 5
retry_backoff = 0.2
"""
    config_file = tmp_path / "BeaverConfig.toml"
    config_file.write_text(config_content)
    return config_file


@pytest.fixture
def mock_serial_port():
    """Mock serial port for testing without hardware.

    Yields:
        MagicMock serial port instance.
    """
    with patch('serial.Serial') as mock:
        instance = MagicMock()
        instance.is_open = True
        instance.timeout = 0.5
        instance.write = Mock(return_value=0)
        instance.read_until = Mock(return_value=b'')
        instance.reset_input_buffer = Mock()
        instance.flush = Mock()
        instance.close = Mock()
        mock.return_value = instance
        yield instance
