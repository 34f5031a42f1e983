# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# app.py - Application module
#
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
# Edit History:
# 16-Dec-2022   rbd 0.1 Initial edit for Alpaca sample/template
# 30-Dec-2022   rbd 0.1 Device number in /setup routing template. Last chance
#               exception handler, Falcon responder uncaught exeption handler.
# 13-Sep-2024   rbd 1.0 Add support for enum classes within the responder modules
#               GitHub issue #12
#               Beaver dome: device context built here and injected into the
#               dome responders; status poller started before serving.
#
import sys
import traceback
import inspect
from enum import IntEnum

from waitress import serve as waitress_serve

# -- isort wants the above line to be blank --
import exceptions
from falcon import Request, Response, App, HTTPInternalServerError
import management
import log
from config import Config
from BeaverConfig import BeaverConfig
from BeaverDevice import BeaverDevice
from beaver_poller import StatusPoller
from shr import set_shr_logger

##############################
# FOR EACH ASCOM DEVICE TYPE #
##############################
import dome

# Global references for shutdown
server_cfg = None
_poller = None

#--------------
API_VERSION = 1
#--------------


#-----------------------
# Magic routing function
# ----------------------
def init_routes(app: App, devname: str, module):
    """Initialize Falcon routing from URI to responder classes

    Inspects a module and routes the Alpaca URI for each responder class
    it defines, building the URI template from the class name. Only
    classes defined in the module that have an ``on_get`` or ``on_put``
    responder are routed, so enum and metadata classes may live there too.
    The device number is captured as a non-negative int; Falcon answers
    ``400 Bad Request`` for anything else.

    Args:
        app (App): The instance of the Falcon processor app
        devname (str): The name of the device (e.g. 'dome')
        module (module): Module object containing responder classes
    """
    memlist = inspect.getmembers(module, inspect.isclass)
    for cname, ctype in memlist:
        if ctype.__module__ != module.__name__ or issubclass(ctype, IntEnum):
            continue
        if not (hasattr(ctype, 'on_get') or hasattr(ctype, 'on_put')):
            continue
        app.add_route(f'/api/v{API_VERSION}/{devname}/{{devnum:int(min=0)}}/{cname.lower()}', ctype())  # type() creates instance!


def custom_excepthook(exc_type, exc_value, exc_traceback):
    """Last-chance exception handler

    Caution:
        Hook this as last-chance only after the config info
        has been initiized and the logger is set up!

    Assures that any unhandled exceptions are logged to our logfile.
    Also used by :py:func:`~app.falcon_uncaught_exception_handler`.
    A config option provides for a full traceback to be logged.
    """
    # Do not print exception when user cancels the program
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    log.logger.error(f'An uncaught {exc_type.__name__} exception occurred:')
    log.logger.error(exc_value)

    if server_cfg is not None and server_cfg.verbose_driver_exceptions and exc_traceback:
        format_exception = traceback.format_tb(exc_traceback)
        for line in format_exception:
            log.logger.error(repr(line))


def falcon_uncaught_exception_handler(req: Request, resp: Response, ex: BaseException, params):
    """Handle Uncaught Exceptions while in a Falcon Responder

        Logs the exception to our log file instead of it being lost to
        stdout, then responds with a 500 Internal Server Error.
    """
    exc = sys.exc_info()
    custom_excepthook(exc[0] or type(ex), exc[1] or ex, exc[2] or ex.__traceback__)
    raise HTTPInternalServerError(title='Internal Server Error',
                                  description='Alpaca endpoint responder failed. See logfile.')


def create_app() -> App:
    """Build the Falcon app with the device and management routes"""
    # falcon.App instances are callable WSGI apps
    falc_app = App()

    #########################
    # FOR EACH ASCOM DEVICE #
    #########################
    init_routes(falc_app, 'dome', dome)

    # Alpaca support endpoints
    falc_app.add_route('/management/apiversions', management.apiversions())
    falc_app.add_route(f'/management/v{API_VERSION}/description', management.description())
    falc_app.add_route(f'/management/v{API_VERSION}/configureddevices', management.configureddevices())

    # Falcon keeps its own, more specific, HTTPError handler
    falc_app.add_error_handler(Exception, falcon_uncaught_exception_handler)
    return falc_app


# ===========
# APP STARTUP
# ===========
def main():
    """ Application startup"""
    global server_cfg
    global _poller

    server_cfg = Config()
    logger = log.init_logging(server_cfg)
    # Share this logger throughout
    log.logger = logger
    exceptions.logger = logger
    exceptions.verbose_driver_exceptions = server_cfg.verbose_driver_exceptions
    set_shr_logger(logger)
    management.location = server_cfg.location

    #########################
    # FOR EACH ASCOM DEVICE #
    #########################
    dome.logger = logger
    device_cfg = BeaverConfig()
    dome.dome_dev = BeaverDevice.from_config(device_cfg, logger)

    # -----------------------------
    # Last-Chance Exception Handler
    # -----------------------------
    sys.excepthook = custom_excepthook

    # -------------
    # STATUS POLLER
    # -------------
    _poller = StatusPoller(dome.dome_dev, logger, float(device_cfg.poll_period))
    _poller.start()

    # ----------------------------------
    # MAIN HTTP/REST API ENGINE (FALCON)
    # ----------------------------------
    falc_app = create_app()

    host = server_cfg.ip_address if server_cfg.ip_address else '0.0.0.0'
    port = server_cfg.port
    threads = server_cfg.threads
    logger.info(f'==STARTUP== Serving Alpaca API on {host}:{port} with {threads} worker threads. Time stamps are UTC.')

    try:
        waitress_serve(falc_app, host=host, port=port, threads=threads)
    finally:
        _poller.stop()
        dome.dome_dev.disconnect()


# ========================
if __name__ == '__main__':
    main()
# ========================
