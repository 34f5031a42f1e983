# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# BeaverConfig.py - Beaver dome persistent configuration file.  Adapted from
# Alpyca's config.py
#
# Author:   Reid W. Smythe <rwsmythe@gmail.com> (rws)
#
# Python Compatibility: Requires Python 3.7 or later
# GitHub: https://github.com/ASCOMInitiative/AlpycaDevice
#
# -----------------------------------------------------------------------------
# MIT License
#
# Copyright (c) 2022-2024 Bob Denny
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
# -----------------------------------------------------------------------------

import threading
from pathlib import Path
from typing import Any

import toml

from beaver_serial import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_RETRY_BACKOFF,
    RetryPolicy,
)
from beaver_transport import DEFAULT_BAUDRATE, DEFAULT_HOST, DEFAULT_UDP_PORT


class BeaverConfigError(Exception):
    """Custom exception for Beaver dome configuration errors"""
    pass


class BeaverConfig:
    """Device configuration with thread-safe TOML persistence.

    For docker-based installations, looks for /alpyca/BeaverConfig.toml
    first, with any settings there overriding ./BeaverConfig.toml.

    Attributes:
        connection: Channel type, 'serial' or 'udp'
        dev_port: Serial device path
        baudrate: Serial baud rate
        host: Controller address for UDP
        udp_port: Controller port for UDP
        poll_period: Seconds between status polls
        read_timeout: Seconds to wait for each response
        max_attempts: Write+read cycles per command
        retry_backoff: Seconds between failed reads
    """

    # Class constants
    DEFAULT_CONFIG_FILE = 'BeaverConfig.toml'
    OVERRIDE_CONFIG_PATH = '/alpyca/BeaverConfig.toml'

    def __init__(self, config_file: Any = None):
        """Initialize configuration by loading TOML files."""
        self._lock = threading.RLock()
        self._dict = {}
        self._dict2 = {}

        # Use pathlib for file paths
        self._config_file = Path(config_file) if config_file else Path.cwd() / self.DEFAULT_CONFIG_FILE
        self._override_file = Path(self.OVERRIDE_CONFIG_PATH)

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from TOML files.

        Raises:
            BeaverConfigError: If primary config file cannot be loaded.
        """
        with self._lock:
            # Load primary config file
            try:
                self._dict = toml.load(self._config_file)
            except (FileNotFoundError, toml.TomlDecodeError) as e:
                raise BeaverConfigError(
                    f"Failed to load primary config file {self._config_file}: {e}"
                ) from e

            # Load optional override file
            try:
                if self._override_file.exists():
                    self._dict2 = toml.load(self._override_file)
            except toml.TomlDecodeError as e:
                raise BeaverConfigError(
                    f"Failed to load override config file {self._override_file}: {e}"
                ) from e

    def _get_toml(self, sect: str, item: str, default: Any = None) -> Any:
        """Get configuration value, checking override file first.

        Args:
            sect: Configuration section name
            item: Configuration item name
            default: Returned when the item is in neither file

        Returns:
            Configuration value or default if not found
        """
        with self._lock:
            try:
                # Check override file first
                return self._dict2[sect][item]
            except KeyError:
                try:
                    # Fall back to primary config
                    return self._dict[sect][item]
                except KeyError:
                    return default

    def _put_toml(self, sect: str, item: str, setting: Any) -> None:
        """Set configuration value in the appropriate dictionary.

        Args:
            sect: Configuration section name
            item: Configuration item name
            setting: Value to set
        """
        with self._lock:
            # If override file exists or has been used, update it
            # Otherwise update primary config
            if self._dict2 or self._override_file.exists():
                if sect not in self._dict2:
                    self._dict2[sect] = {}
                self._dict2[sect][item] = setting
            else:
                if sect not in self._dict:
                    self._dict[sect] = {}
                self._dict[sect][item] = setting

    def save(self) -> None:
        """Save configuration to file, overwriting existing.

        Raises:
            BeaverConfigError: If configuration cannot be saved.
        """
        with self._lock:
            try:
                # Save to override file if it exists or has been used
                if self._dict2 or self._override_file.exists():
                    # Ensure directory exists
                    self._override_file.parent.mkdir(parents=True, exist_ok=True)
                    with self._override_file.open('w', encoding='utf-8') as f:
                        toml.dump(self._dict2, f)
                else:
                    # Save to primary config file
                    with self._config_file.open('w', encoding='utf-8') as f:
                        toml.dump(self._dict, f)
            except (OSError, PermissionError) as e:
                raise BeaverConfigError(f"Failed to save configuration: {e}") from e

    def reload(self) -> None:
        """Reload configuration from files.

        Raises:
            BeaverConfigError: If configuration files cannot be reloaded.
        """
        with self._lock:
            self._dict = {}
            self._dict2 = {}
            self._load_config()

    def retry_policy(self) -> RetryPolicy:
        """Build the command retry policy from the driver section."""
        return RetryPolicy(
            max_attempts=int(self.max_attempts),
            backoff=float(self.retry_backoff),
            read_timeout=float(self.read_timeout)
        )

    # Configuration section constants
    DEVICE_SECTION = 'device'
    DRIVER_SECTION = 'driver'

    # --------------
    # Device Section
    # --------------

    @property
    def connection(self) -> str:
        """Channel type: 'serial' or 'udp'."""
        return self._get_toml(self.DEVICE_SECTION, 'connection', 'serial')

    @connection.setter
    def connection(self, value: str) -> None:
        self._put_toml(self.DEVICE_SECTION, 'connection', value)

    @property
    def dev_port(self) -> str:
        """Serial device port."""
        return self._get_toml(self.DEVICE_SECTION, 'dev_port', '/dev/ttyUSB0')

    @dev_port.setter
    def dev_port(self, value: str) -> None:
        self._put_toml(self.DEVICE_SECTION, 'dev_port', value)

    @property
    def baudrate(self) -> int:
        """Serial baud rate."""
        return self._get_toml(self.DEVICE_SECTION, 'baudrate', DEFAULT_BAUDRATE)

    @baudrate.setter
    def baudrate(self, value: int) -> None:
        self._put_toml(self.DEVICE_SECTION, 'baudrate', value)

    @property
    def host(self) -> str:
        """Controller host for UDP connections."""
        return self._get_toml(self.DEVICE_SECTION, 'host', DEFAULT_HOST)

    @host.setter
    def host(self, value: str) -> None:
        self._put_toml(self.DEVICE_SECTION, 'host', value)

    @property
    def udp_port(self) -> int:
        """Controller port for UDP connections."""
        return self._get_toml(self.DEVICE_SECTION, 'udp_port', DEFAULT_UDP_PORT)

    @udp_port.setter
    def udp_port(self, value: int) -> None:
        self._put_toml(self.DEVICE_SECTION, 'udp_port', value)

    #-----------------
    # Driver Section
    #-----------------

    @property
    def poll_period(self) -> float:
        """Seconds between status polls."""
        return self._get_toml(self.DRIVER_SECTION, 'poll_period', 1.0)

    @poll_period.setter
    def poll_period(self, value: float) -> None:
        self._put_toml(self.DRIVER_SECTION, 'poll_period', value)

    @property
    def read_timeout(self) -> float:
        """Seconds to wait for a response frame."""
        return self._get_toml(self.DRIVER_SECTION, 'read_timeout', DEFAULT_READ_TIMEOUT)

    @read_timeout.setter
    def read_timeout(self, value: float) -> None:
        self._put_toml(self.DRIVER_SECTION, 'read_timeout', value)

    @property
    def max_attempts(self) -> int:
        """Write+read cycles per command."""
        return self._get_toml(self.DRIVER_SECTION, 'max_attempts', DEFAULT_MAX_ATTEMPTS)

    @max_attempts.setter
    def max_attempts(self, value: int) -> None:
        self._put_toml(self.DRIVER_SECTION, 'max_attempts', value)

    @property
    def retry_backoff(self) -> float:
        """Seconds slept after a failed read."""
        return self._get_toml(self.DRIVER_SECTION, 'retry_backoff', DEFAULT_RETRY_BACKOFF)

    @retry_backoff.setter
    def retry_backoff(self, value: float) -> None:
        self._put_toml(self.DRIVER_SECTION, 'retry_backoff', value)

    def __repr__(self) -> str:
        """Return string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"config_file='{self._config_file}', "
            f"override_file='{self._override_file}')"
        )
