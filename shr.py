# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# shr.py - Device characteristics and support classes/functions/data
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
"""Shared Alpaca request and response support.

Responder classes decorate themselves with ``@before(PreProcessRequest(maxdev))``
and answer with ``PropertyResponse(...).json`` or ``MethodResponse(...).json``.
"""

import json
import logging
from threading import Lock
from typing import Any

from falcon import HTTPBadRequest, Request

from exceptions import Success

#: Set by ``app.main()`` through :py:func:`set_shr_logger`
logger: logging.Logger = None

_bad_title = 'Bad Alpaca Request'

_lock = Lock()
_stid = 0


def set_shr_logger(lgr: logging.Logger) -> None:
    global logger
    logger = lgr


class DeviceMetadata:
    """Metadata describing the Alpaca server, used by the management API"""
    Name = 'Beaver Dome Server'
    Version = '1.0.0'
    Description = 'Alpaca server for the NexDome Beaver dome controller'
    Manufacturer = 'Beaver Dome Driver Project'


def to_bool(value: str) -> bool:
    """Alpaca boolean form field to bool

    Raises:
        HTTPBadRequest: If the text is not 'true' or 'false' in any case
    """
    text = str(value).strip().lower()
    if text == 'true':
        return True
    if text == 'false':
        return False
    raise HTTPBadRequest(title=_bad_title, description=f'Bad boolean value "{value}"')


def getNextTransId() -> int:
    """Next server transaction ID, shared by all responders"""
    global _stid
    with _lock:
        _stid += 1
        return _stid


def get_request_field(name: str, req: Request, caseless: bool = False, default: str = None) -> str:
    """Get a query (GET) or form (PUT) field from an Alpaca request

    Args:
        name: Field name
        req: The request
        caseless: Match a PUT form field name ignoring case. Query
            parameter names are always matched ignoring case.
        default: Returned if the field is missing. If None a missing field
            is a bad request.

    Raises:
        HTTPBadRequest: If the field is missing and there is no default
    """
    bad_desc = f'Missing, empty, or misspelled parameter "{name}"'

    if req.method == 'GET':
        for param_name, value in req.params.items():
            if param_name.lower() == name.lower():
                return value
    else:
        formdata = req.get_media(default_when_empty={})
        if caseless:
            for field_name in formdata.keys():
                if field_name.lower() == name.lower():
                    return formdata[field_name]
        elif name in formdata and formdata[name] != '':
            return formdata[name]

    if default is None:
        raise HTTPBadRequest(title=_bad_title, description=bad_desc)
    return default


def _client_transaction_id(req: Request) -> int:
    try:
        return int(get_request_field('ClientTransactionID', req, True, '0'))
    except ValueError:
        return 0


class PropertyResponse:
    """JSON response for an Alpaca property (GET) request

    Args:
        value: Property value, ignored if err is not Success
        req: The request being answered
        err: An Alpaca error object from :py:mod:`exceptions`
    """

    def __init__(self, value: Any, req: Request, err=Success()):
        self.ServerTransactionID = getNextTransId()
        self.ClientTransactionID = _client_transaction_id(req)
        self.ErrorNumber = err.Number
        self.ErrorMessage = err.Message
        if err.Number == 0 and value is not None:
            self.Value = value
            if logger is not None:
                logger.debug(f'{req.remote_addr} <- {value}')

    @property
    def json(self) -> str:
        """The response as JSON text"""
        return json.dumps(self.__dict__)


class MethodResponse:
    """JSON response for an Alpaca method (PUT) request

    Args:
        req: The request being answered
        err: An Alpaca error object from :py:mod:`exceptions`
        value: Optional return value
    """

    def __init__(self, req: Request, err=Success(), value: Any = None):
        self.ServerTransactionID = getNextTransId()
        self.ClientTransactionID = _client_transaction_id(req)
        self.ErrorNumber = err.Number
        self.ErrorMessage = err.Message
        if err.Number == 0 and value is not None:
            self.Value = value
            if logger is not None:
                logger.debug(f'{req.remote_addr} <- {value}')

    @property
    def json(self) -> str:
        """The response as JSON text"""
        return json.dumps(self.__dict__)


class PreProcessRequest:
    """Falcon ``@before`` hook validating every device request

    Rejects device numbers above ``maxdev`` and ClientID or
    ClientTransactionID values that are not unsigned integers, with
    HTTP 400. Logs the request at debug level.
    """

    def __init__(self, maxdev: int):
        self.maxdev = maxdev

    def _check_devnum(self, params: dict) -> None:
        devnum = params['devnum']
        if devnum > self.maxdev:
            msg = f'Device number {devnum} does not exist. Maximum device number is {self.maxdev}.'
            if logger is not None:
                logger.error(msg)
            raise HTTPBadRequest(title='Non-existent device number', description=msg)

    @staticmethod
    def _check_uint(req: Request, name: str) -> None:
        value = get_request_field(name, req, True, '0')
        try:
            if int(value) >= 0:
                return
        except ValueError:
            pass
        msg = f'Request {name} "{value}" is not an unsigned integer'
        if logger is not None:
            logger.error(msg)
        raise HTTPBadRequest(title=_bad_title, description=msg)

    def __call__(self, req: Request, resp, resource, params: dict) -> None:
        self._check_devnum(params)
        self._check_uint(req, 'ClientID')
        self._check_uint(req, 'ClientTransactionID')
        if logger is not None:
            logger.debug(f'{req.remote_addr} -> {req.method} {req.path}')
