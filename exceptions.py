# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# exceptions.py - Alpaca Exception Classes
# Part of the AlpycaDevice Alpaca skeleton/template device driver
#
# Author:   Robert B. Denny <rdenny@dc3.com> (rbd)
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
"""Alpaca error responses.

These are not Python exceptions. Each one carries an Alpaca error number and
message and is passed to :py:class:`shr.PropertyResponse` or
:py:class:`shr.MethodResponse`, which put them into the JSON reply. Creating
one (other than :py:class:`Success`) logs its message.
"""

import logging
import traceback
from typing import Optional

#: Set by ``app.main()``
logger: logging.Logger = None

#: Include tracebacks in driver exception messages, set from the server config
verbose_driver_exceptions = False


class Success:
    """Default err argument of the response classes"""

    def __init__(self):
        self.number: int = 0
        self.message: str = ''

    @property
    def Number(self) -> int:
        return self.number

    @property
    def Message(self) -> str:
        return self.message


class _AlpacaError:
    """Fixed-number Alpaca error. Subclasses set NUMBER and DEFAULT_MESSAGE."""

    NUMBER = 0x500
    DEFAULT_MESSAGE = ''

    def __init__(self, message: str = None):
        self.number = self.NUMBER
        self.message = f'{self.__class__.__name__}: {message or self.DEFAULT_MESSAGE}'
        if logger is not None:
            logger.error(self.message)

    @property
    def Number(self) -> int:
        return self.number

    @property
    def Message(self) -> str:
        return self.message


class ActionNotImplementedException(_AlpacaError):
    NUMBER = 0x40C
    DEFAULT_MESSAGE = 'The requested action is not implemented in this driver.'


class InvalidOperationException(_AlpacaError):
    NUMBER = 0x40B
    DEFAULT_MESSAGE = 'The requested operation can not be undertaken at this time.'


class InvalidValueException(_AlpacaError):
    NUMBER = 0x401
    DEFAULT_MESSAGE = 'Invalid value given.'


class NotConnectedException(_AlpacaError):
    NUMBER = 0x407
    DEFAULT_MESSAGE = 'The device is not connected.'


class NotImplementedException(_AlpacaError):
    NUMBER = 0x400
    DEFAULT_MESSAGE = 'Property or method not implemented.'


class ParkedException(_AlpacaError):
    NUMBER = 0x408
    DEFAULT_MESSAGE = 'Illegal operation while parked.'


class DriverException:
    """Driver failure, numbers 0x500 - 0xFFF.

    Args:
        number: Alpaca error number, forced to 0x500 if out of range
        message: What failed
        exc: Underlying Python exception, if any
    """

    def __init__(
        self,
        number: int = 0x500,
        message: str = 'Internal driver error - this should be more specific.',
        exc: Optional[BaseException] = None
    ):
        if number < 0x500 or number > 0xFFF:
            number = 0x500
        self.number = number

        cname = self.__class__.__name__
        if exc is not None:
            if verbose_driver_exceptions:
                self.fullmsg = f'{cname}: {message}\n{traceback.format_exc()}'
            else:
                self.fullmsg = f'{cname}: {message}\n{type(exc).__name__}: {exc}'
        else:
            self.fullmsg = f'{cname}: {message}'

        if logger is not None:
            logger.error(self.fullmsg)

    @property
    def Number(self) -> int:
        return self.number

    @property
    def Message(self) -> str:
        return self.fullmsg
