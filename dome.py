# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# dome.py - Alpaca API responders for the Beaver dome
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
"""Alpaca Dome (IDomeV3) responders.

``app.init_routes()`` routes ``/api/v1/dome/{devnum}/<classname>`` to each
responder class here. The device is injected by ``app.main()`` through the
``dome_dev`` module global.
"""

import json
import threading
from dataclasses import asdict, fields, is_dataclass
from enum import IntEnum

from falcon import Request, Response, before

from BeaverDevice import BeaverConnectionError
from beaver_types import RotatorSettings, RotatorState, ShutterSettings, ShutterState
from exceptions import (
    DriverException, InvalidValueException, NotConnectedException,
    NotImplementedException, ActionNotImplementedException
)
from shr import PropertyResponse, MethodResponse, PreProcessRequest, get_request_field, to_bool

#: Set by ``app.main()``
logger = None
dome_dev = None

# Highest device number served
maxdev = 0


class DomeMetadata:
    """ Metadata describing the Dome Device."""
    Name = 'Beaver Dome'
    Version = '1.0.0'
    Description = 'NexDome Beaver dome controller'
    DeviceType = 'Dome'
    DeviceID = '6f8d3c1e-5b2a-4e7c-9a41-0d2b7e3f9c55'
    Info = 'Alpaca driver for the NexDome Beaver rotator and shutter controller'
    MaxDeviceNumber = maxdev
    InterfaceVersion = 3


class ShutterStatus(IntEnum):
    """Alpaca ShutterState values"""
    shutterOpen = 0
    shutterClosed = 1
    shutterOpening = 2
    shutterClosing = 3
    shutterError = 4


# Shutter calibration has no direction, so it reports Opening
_SHUTTER_STATUS = {
    ShutterState.OPEN: ShutterStatus.shutterOpen,
    ShutterState.CLOSED: ShutterStatus.shutterClosed,
    ShutterState.OPENING: ShutterStatus.shutterOpening,
    ShutterState.CLOSING: ShutterStatus.shutterClosing,
    ShutterState.MOVING: ShutterStatus.shutterOpening,
}


def shutter_status(state: ShutterState) -> ShutterStatus:
    """Alpaca shutter status for a shutter state. Error, CommError and Unknown map to shutterError."""
    return _SHUTTER_STATUS.get(state, ShutterStatus.shutterError)


def _connect_worker():
    try:
        dome_dev.connect()
    except BeaverConnectionError as ex:
        logger.error(f'Dome connect failed: {ex}')


def _method(req: Request, resp: Response, name: str, action) -> None:
    """Run a facade operation that returns a success flag."""
    if not dome_dev.connected:
        resp.text = MethodResponse(req, NotConnectedException()).json
        return
    if action():
        resp.text = MethodResponse(req).json
    else:
        resp.text = MethodResponse(
            req, DriverException(0x500, f'Dome.{name} failed: {dome_dev.last_message}')).json


def _property(req: Request, resp: Response, name: str, getter) -> None:
    """Answer a property that needs a connected device."""
    if not dome_dev.connected:
        resp.text = PropertyResponse(None, req, NotConnectedException()).json
        return
    try:
        resp.text = PropertyResponse(getter(), req).json
    except Exception as ex:
        resp.text = PropertyResponse(None, req, DriverException(0x500, f'Dome.{name} failed', ex)).json


def _azimuth_field(req: Request, name: str):
    """Parse the Azimuth form field.

    Returns:
        The azimuth, or None if it is not a number in [0, 360)
    """
    text = get_request_field(name, req)
    try:
        value = float(text)
    except ValueError:
        return None
    return value if 0.0 <= value < 360.0 else None


# -------------------------
# Device-specific actions
# -------------------------

def _settings_from_json(settings_type):
    """Parameters parser: JSON object with every field of settings_type"""
    def parse(text: str):
        data = json.loads(text)
        return settings_type(**{f.name: float(data[f.name]) for f in fields(settings_type)})
    return parse


def _no_params(text: str):
    return None


# Name: (parameter parser, operation). An operation returns False or None
# on failure, True on success, or a value to return to the client.
ACTIONS = {
    'GetFirmwareVersion': (_no_params, lambda _: dome_dev.get_firmware_version()),
    'GetHomeOffset': (_no_params, lambda _: dome_dev.get_home_offset()),
    'SetHomeOffset': (float, lambda az: dome_dev.set_home(az)),
    'GetParkOffset': (_no_params, lambda _: dome_dev.get_park_offset()),
    'SetParkOffset': (float, lambda az: dome_dev.set_park(az)),
    'CalibrateHome': (_no_params, lambda _: dome_dev.find_home()),
    'MeasureHome': (_no_params, lambda _: dome_dev.measure_home()),
    'Unpark': (_no_params, lambda _: dome_dev.unpark()),
    'GetRotatorSettings': (_no_params, lambda _: dome_dev.get_rotator_settings()),
    'SetRotatorSettings': (_settings_from_json(RotatorSettings), lambda s: dome_dev.set_rotator_settings(s)),
    'ShutterFindHome': (_no_params, lambda _: dome_dev.shutter_find_home()),
    'AbortShutter': (_no_params, lambda _: dome_dev.shutter_abort()),
    'GetShutterVoltage': (_no_params, lambda _: dome_dev.get_shutter_voltage()),
    'GetShutterSettings': (_no_params, lambda _: dome_dev.get_shutter_settings()),
    'SetShutterSettings': (_settings_from_json(ShutterSettings), lambda s: dome_dev.set_shutter_settings(s)),
}


def _action_value(result) -> str:
    """Action result as the string value Alpaca returns"""
    if result is True:
        return ''
    if is_dataclass(result):
        return json.dumps(asdict(result))
    return f'{result:g}'


# --------------------
# ASCOM common members
# --------------------

@before(PreProcessRequest(maxdev))
class action:
    def on_put(self, req: Request, resp: Response, devnum: int):
        requested = get_request_field('Action', req)
        name = next((n for n in ACTIONS if n.lower() == requested.lower()), None)
        if name is None:
            resp.text = MethodResponse(req, ActionNotImplementedException(f'Action {requested} is not supported')).json
            return
        if not dome_dev.connected:
            resp.text = MethodResponse(req, NotConnectedException()).json
            return

        parse, operation = ACTIONS[name]
        params = get_request_field('Parameters', req, default='')
        try:
            arg = parse(params)
        except (ValueError, KeyError, TypeError) as ex:
            resp.text = MethodResponse(req, InvalidValueException(f'{name} parameters "{params}": {ex}')).json
            return

        result = operation(arg)
        if result is None or result is False:
            resp.text = MethodResponse(
                req, DriverException(0x500, f'Dome.Action {name} failed: {dome_dev.last_message}')).json
        else:
            resp.text = MethodResponse(req, value=_action_value(result)).json


@before(PreProcessRequest(maxdev))
class commandblind:
    def on_put(self, req: Request, resp: Response, devnum: int):
        resp.text = MethodResponse(req, NotImplementedException()).json


@before(PreProcessRequest(maxdev))
class commandbool:
    def on_put(self, req: Request, resp: Response, devnum: int):
        resp.text = MethodResponse(req, NotImplementedException()).json


@before(PreProcessRequest(maxdev))
class commandstring:
    def on_put(self, req: Request, resp: Response, devnum: int):
        resp.text = MethodResponse(req, NotImplementedException()).json


@before(PreProcessRequest(maxdev))
class connect:
    def on_put(self, req: Request, resp: Response, devnum: int):
        if not dome_dev.connected and not dome_dev.connecting:
            threading.Thread(target=_connect_worker, name='BeaverConnect', daemon=True).start()
        resp.text = MethodResponse(req).json


@before(PreProcessRequest(maxdev))
class connected:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(dome_dev.connected, req).json

    def on_put(self, req: Request, resp: Response, devnum: int):
        conn = to_bool(get_request_field('Connected', req))
        try:
            if conn:
                dome_dev.connect()
            else:
                dome_dev.disconnect()
            resp.text = MethodResponse(req).json
        except BeaverConnectionError as ex:
            resp.text = MethodResponse(req, DriverException(0x500, 'Dome.Connected failed', ex)).json


@before(PreProcessRequest(maxdev))
class connecting:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(dome_dev.connecting, req).json


@before(PreProcessRequest(maxdev))
class description:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(DomeMetadata.Description, req).json


@before(PreProcessRequest(maxdev))
class devicestate:
    def on_get(self, req: Request, resp: Response, devnum: int):
        def state():
            return [
                {'Name': 'AtHome', 'Value': dome_dev.rotator_state == RotatorState.AT_HOME},
                {'Name': 'AtPark', 'Value': dome_dev.rotator_state == RotatorState.PARKED},
                {'Name': 'Azimuth', 'Value': dome_dev.azimuth},
                {'Name': 'ShutterStatus', 'Value': int(shutter_status(dome_dev.shutter_state))},
                {'Name': 'Slewing', 'Value': dome_dev.is_slewing},
            ]
        _property(req, resp, 'DeviceState', state)


@before(PreProcessRequest(maxdev))
class disconnect:
    def on_put(self, req: Request, resp: Response, devnum: int):
        dome_dev.disconnect()
        resp.text = MethodResponse(req).json


@before(PreProcessRequest(maxdev))
class driverinfo:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(DomeMetadata.Info, req).json


@before(PreProcessRequest(maxdev))
class interfaceversion:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(DomeMetadata.InterfaceVersion, req).json


@before(PreProcessRequest(maxdev))
class driverversion:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(DomeMetadata.Version, req).json


@before(PreProcessRequest(maxdev))
class name:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(DomeMetadata.Name, req).json


@before(PreProcessRequest(maxdev))
class supportedactions:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(list(ACTIONS), req).json


# -------------------
# IDomeV3 properties
# -------------------

@before(PreProcessRequest(maxdev))
class altitude:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(None, req, NotImplementedException()).json


@before(PreProcessRequest(maxdev))
class athome:
    def on_get(self, req: Request, resp: Response, devnum: int):
        _property(req, resp, 'AtHome', lambda: dome_dev.rotator_state == RotatorState.AT_HOME)


@before(PreProcessRequest(maxdev))
class atpark:
    def on_get(self, req: Request, resp: Response, devnum: int):
        _property(req, resp, 'AtPark', lambda: dome_dev.rotator_state == RotatorState.PARKED)


@before(PreProcessRequest(maxdev))
class azimuth:
    def on_get(self, req: Request, resp: Response, devnum: int):
        _property(req, resp, 'Azimuth', lambda: dome_dev.azimuth)


@before(PreProcessRequest(maxdev))
class canfindhome:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(True, req).json


@before(PreProcessRequest(maxdev))
class canpark:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(True, req).json


@before(PreProcessRequest(maxdev))
class cansetaltitude:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(False, req).json


@before(PreProcessRequest(maxdev))
class cansetazimuth:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(True, req).json


@before(PreProcessRequest(maxdev))
class cansetpark:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(True, req).json


@before(PreProcessRequest(maxdev))
class cansetshutter:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(dome_dev.has_shutter, req).json


@before(PreProcessRequest(maxdev))
class canslave:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(False, req).json


@before(PreProcessRequest(maxdev))
class cansyncazimuth:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(True, req).json


@before(PreProcessRequest(maxdev))
class shutterstatus:
    def on_get(self, req: Request, resp: Response, devnum: int):
        if not dome_dev.has_shutter:
            resp.text = PropertyResponse(None, req, NotImplementedException('No shutter present')).json
            return
        _property(req, resp, 'ShutterStatus', lambda: int(shutter_status(dome_dev.shutter_state)))


@before(PreProcessRequest(maxdev))
class slaved:
    def on_get(self, req: Request, resp: Response, devnum: int):
        resp.text = PropertyResponse(False, req).json

    def on_put(self, req: Request, resp: Response, devnum: int):
        if to_bool(get_request_field('Slaved', req)):
            resp.text = MethodResponse(req, NotImplementedException('Slaving is not supported')).json
        else:
            resp.text = MethodResponse(req).json


@before(PreProcessRequest(maxdev))
class slewing:
    def on_get(self, req: Request, resp: Response, devnum: int):
        _property(req, resp, 'Slewing', lambda: dome_dev.is_slewing)


# ----------------
# IDomeV3 methods
# ----------------

@before(PreProcessRequest(maxdev))
class abortslew:
    def on_put(self, req: Request, resp: Response, devnum: int):
        _method(req, resp, 'AbortSlew', dome_dev.abort_all)


@before(PreProcessRequest(maxdev))
class closeshutter:
    def on_put(self, req: Request, resp: Response, devnum: int):
        if not dome_dev.has_shutter:
            resp.text = MethodResponse(req, NotImplementedException('No shutter present')).json
            return
        _method(req, resp, 'CloseShutter', dome_dev.shutter_close)


@before(PreProcessRequest(maxdev))
class findhome:
    def on_put(self, req: Request, resp: Response, devnum: int):
        _method(req, resp, 'FindHome', dome_dev.goto_home)


@before(PreProcessRequest(maxdev))
class openshutter:
    def on_put(self, req: Request, resp: Response, devnum: int):
        if not dome_dev.has_shutter:
            resp.text = MethodResponse(req, NotImplementedException('No shutter present')).json
            return
        _method(req, resp, 'OpenShutter', dome_dev.shutter_open)


@before(PreProcessRequest(maxdev))
class park:
    def on_put(self, req: Request, resp: Response, devnum: int):
        _method(req, resp, 'Park', dome_dev.goto_park)


@before(PreProcessRequest(maxdev))
class setpark:
    def on_put(self, req: Request, resp: Response, devnum: int):
        _method(req, resp, 'SetPark', dome_dev.set_park_here)


@before(PreProcessRequest(maxdev))
class slewtoaltitude:
    def on_put(self, req: Request, resp: Response, devnum: int):
        resp.text = MethodResponse(req, NotImplementedException()).json


@before(PreProcessRequest(maxdev))
class slewtoazimuth:
    def on_put(self, req: Request, resp: Response, devnum: int):
        az = _azimuth_field(req, 'Azimuth')
        if az is None:
            resp.text = MethodResponse(req, InvalidValueException(
                f'Azimuth {get_request_field("Azimuth", req)} not in [0, 360)')).json
            return
        _method(req, resp, 'SlewToAzimuth', lambda: dome_dev.goto_azimuth(az))


@before(PreProcessRequest(maxdev))
class synctoazimuth:
    def on_put(self, req: Request, resp: Response, devnum: int):
        az = _azimuth_field(req, 'Azimuth')
        if az is None:
            resp.text = MethodResponse(req, InvalidValueException(
                f'Azimuth {get_request_field("Azimuth", req)} not in [0, 360)')).json
            return
        _method(req, resp, 'SyncToAzimuth', lambda: dome_dev.sync_azimuth(az))
