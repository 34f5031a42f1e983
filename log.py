# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# log.py - Shared global logging object
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

import logging
import logging.handlers
import sys
import time

LOGGER_NAME = 'beaver'
LOG_FILE = 'beaver.log'
LOG_FORMAT = '%(asctime)s.%(msecs)03d %(levelname)s %(threadName)s %(message)s'
DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'

#: Shared logger, set by ``app.main()`` after :py:func:`init_logging`
logger: logging.Logger = None


def init_logging(cfg, log_file: str = LOG_FILE) -> logging.Logger:
    """Create the shared logger with a rotating file and optional stdout.

    Time stamps are UTC with milliseconds. The log file is rolled over on
    every startup so each run starts a fresh file.

    Args:
        cfg: Server :py:class:`config.Config` (log_level, log_to_stdout,
            max_size_mb, num_keep_logs)
        log_file: Path of the rotating log file

    Returns:
        The configured logger. Callers must also assign it to ``log.logger``.
    """
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    formatter.converter = time.gmtime

    new_logger = logging.getLogger(LOGGER_NAME)
    new_logger.setLevel(cfg.log_level)
    new_logger.propagate = False
    for handler in list(new_logger.handlers):
        new_logger.removeHandler(handler)
        handler.close()

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        mode='w',
        delay=True,
        maxBytes=int(cfg.max_size_mb) * 1000000,
        backupCount=int(cfg.num_keep_logs)
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(cfg.log_level)
    new_logger.addHandler(file_handler)
    file_handler.doRollover()

    if cfg.log_to_stdout:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(cfg.log_level)
        new_logger.addHandler(stream_handler)

    return new_logger
