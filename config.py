# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# config.py - Alpaca server configuration, read once at startup
# Part of the AlpycaDevice Alpaca skeleton/template device driver
#
# Author:   Robert B. Denny <rdenny@dc3.com> (rbd)
#           Enhanced by: Reid W. Smythe <rwsmythe@gmail.com> (rws)
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

import logging
import sys
import threading
from pathlib import Path
from typing import Any

import toml


class ConfigError(Exception):
    """Server configuration file missing or unreadable"""
    pass


def _config_dir() -> Path:
    # Beside the executable when frozen, else beside the startup script
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(sys.path[0])


class Config:
    """Read-only server settings for the network, server and logging sections.

    Settings in /alpyca/config.toml (docker installs) take precedence over
    the primary config.toml. Absent items fall back to built-in defaults.
    """

    DEFAULT_CONFIG_FILE = 'config.toml'
    OVERRIDE_CONFIG_PATH = '/alpyca/config.toml'

    NETWORK_SECTION = 'network'
    SERVER_SECTION = 'server'
    LOGGING_SECTION = 'logging'

    def get_config_dir(self) -> Path:
        return _config_dir()

    def __init__(self, config_file: Any = None):
        self._lock = threading.RLock()
        self._config_file = Path(config_file) if config_file else self.get_config_dir() / self.DEFAULT_CONFIG_FILE
        self._override_file = Path(self.OVERRIDE_CONFIG_PATH)
        self._layers = []
        self.reload()

    def reload(self) -> None:
        """(Re)read the override and primary files.

        Raises:
            ConfigError: If the primary file is missing, or either file
                is not valid TOML.
        """
        layers = []
        for path, required in ((self._override_file, False), (self._config_file, True)):
            if not required and not path.exists():
                continue
            try:
                layers.append(toml.load(path))
            except (FileNotFoundError, toml.TomlDecodeError) as e:
                raise ConfigError(f"Failed to load config file {path}: {e}") from e
        with self._lock:
            self._layers = layers

    def _get(self, sect: str, item: str, default: Any) -> Any:
        with self._lock:
            for layer in self._layers:
                if item in layer.get(sect, {}):
                    return layer[sect][item]
        return default

    # network

    @property
    def ip_address(self) -> str:
        """Interface to bind; empty for all."""
        return self._get(self.NETWORK_SECTION, 'ip_address', '')

    @property
    def port(self) -> int:
        return int(self._get(self.NETWORK_SECTION, 'port', 5555))

    @property
    def threads(self) -> int:
        """Waitress worker thread count."""
        return int(self._get(self.NETWORK_SECTION, 'threads', 4))

    # server

    @property
    def location(self) -> str:
        return self._get(self.SERVER_SECTION, 'location', '')

    @property
    def verbose_driver_exceptions(self) -> bool:
        return bool(self._get(self.SERVER_SECTION, 'verbose_driver_exceptions', True))

    # logging

    @property
    def log_level(self) -> int:
        """Logging level as an integer, from its name in the file; INFO if unknown."""
        level = logging.getLevelName(self._get(self.LOGGING_SECTION, 'log_level', 'INFO'))
        return level if isinstance(level, int) else logging.INFO

    @property
    def log_to_stdout(self) -> bool:
        return bool(self._get(self.LOGGING_SECTION, 'log_to_stdout', False))

    @property
    def max_size_mb(self) -> int:
        return int(self._get(self.LOGGING_SECTION, 'max_size_mb', 5))

    @property
    def num_keep_logs(self) -> int:
        return int(self._get(self.LOGGING_SECTION, 'num_keep_logs', 10))

    def __repr__(self) -> str:
        return f"Config(config_file='{self._config_file}', override_file='{self._override_file}')"
