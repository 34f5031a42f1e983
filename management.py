# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# management.py - Alpaca management API responders
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

from falcon import Request, Response

import dome
from shr import PropertyResponse, DeviceMetadata

#: Server location text, set by ``app.main()`` from the server config
location = ''


class apiversions:
    def on_get(self, req: Request, resp: Response):
        apis = [1]
        resp.text = PropertyResponse(apis, req).json


class description:
    def on_get(self, req: Request, resp: Response):
        desc = {
            'ServerName': DeviceMetadata.Name,
            'Manufacturer': DeviceMetadata.Manufacturer,
            'ManufacturerVersion': DeviceMetadata.Version,
            'Location': location
        }
        resp.text = PropertyResponse(desc, req).json


class configureddevices:
    def on_get(self, req: Request, resp: Response):
        confarray = [
            {
                'DeviceName': dome.DomeMetadata.Name,
                'DeviceType': dome.DomeMetadata.DeviceType,
                'DeviceNumber': devnum,
                'UniqueID': dome.DomeMetadata.DeviceID
            }
            for devnum in range(dome.maxdev + 1)
        ]
        resp.text = PropertyResponse(confarray, req).json
