#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# FileServe - Serve local directories over HTTP
# Copyright (C) 2024-2025 FileServe contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import os
import logging

# Error reporting is disabled unless FILESERVE_SENTRY_DSN is set.
import sentry_sdk

from signalslot import Signal

from sentry_sdk.integrations.logging import SentryHandler, LoggingIntegration
from sentry_sdk.integrations import atexit as sentryAtexit

PUBLIC_VERSION = '1.4.0'

SENTRY_DSN_ENV = 'FILESERVE_SENTRY_DSN'
LOGGING_LEVEL_ENV = 'FILESERVE_LOGGING_LEVEL'

# Map string levels to logging constants for standard level names
LOG_LEVEL_MAPPING = {'DEBUG': logging.DEBUG, 'INFO': logging.INFO, 'WARNING': logging.WARNING, 'ERROR': logging.ERROR}

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def configureGlobalLogLevel(logLevel):
    """
    Configure the global logging level for the application.
    This affects all loggers created via getLogger().

    Args:
        logLevel: Logging level (logging.DEBUG, logging.INFO, etc.)
    """
    rootLogger = logging.getLogger()
    rootLogger.setLevel(logLevel)

    formatter = logging.Formatter(LOG_FORMAT)

    # Add console handler if none exists
    if not rootLogger.handlers:
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(logLevel)
        consoleHandler.setFormatter(formatter)
        rootLogger.addHandler(consoleHandler)
    else:
        # Update existing handlers
        for handler in rootLogger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, SentryHandler):
                handler.setLevel(logLevel)
                handler.setFormatter(formatter)


def disableLogging():
    """Silence every logger, used by --quiet."""
    logging.disable(logging.CRITICAL)


if os.getenv(LOGGING_LEVEL_ENV):
    _envLevel = LOG_LEVEL_MAPPING.get(os.getenv(LOGGING_LEVEL_ENV).upper())
    if _envLevel is not None:
        configureGlobalLogLevel(_envLevel)


def getLogger(name, version=PUBLIC_VERSION):
    """
    Get a logger, attaching a Sentry handler when FILESERVE_SENTRY_DSN is configured.
    Uses Sentry's own initialization state to avoid duplicate setup.

    Args:
        name: Logger name
        version: Version string for logging context
    """
    try:
        sentryDsn = os.getenv(SENTRY_DSN_ENV)
        logger = logging.getLogger(name)

        if not sentryDsn:
            return logger

        if not sentry_sdk.get_client().is_active():
            # Suppress "sentry is attempting to send pending events..." message
            sentryAtexit.default_callback = lambda pending, timeout: None

            sentry_sdk.init(
                dsn=sentryDsn,
                release=version,
                default_integrations=False,
                integrations=[
                    LoggingIntegration(),
                    sentryAtexit.AtexitIntegration(),
                ],
            )
            logger.debug('Sentry initialized')

        # Add Sentry handler if not already present
        if not any(isinstance(h, SentryHandler) for h in logger.handlers):
            syslog = SentryHandler()
            syslog.setFormatter(logging.Formatter('%(asctime)s version[%(version)s] : %(message)s'))
            logger.addHandler(syslog)

        return logging.LoggerAdapter(logger, {'version': version or 'unknown'})

    except Exception as e:
        fallbackLogger = logging.getLogger(name)

        # If Sentry setup fails, log the error and continue with standard logging
        fallbackLogger.warning(f"Failed to initialize Sentry: {e}")

        return fallbackLogger


class Event:
    """
    A server event observers can subscribe to, backed by a signalslot Signal.

    Observers must accept keyword arguments, signals are emitted with keywords only.
    """

    def __init__(self, key):
        self.key = key
        self.signal = Signal(name=key)

    def __repr__(self):
        return f"Event({self.key!r})"

    def subscribe(self, observer):
        if observer not in self.signal.slots:
            self.signal.connect(observer)

    def unsubscribe(self, observer):
        if observer in self.signal.slots:
            self.signal.disconnect(observer)

    def trigger(self, **kwargs):
        self.signal.emit(**kwargs)


# Event pattern: RESTful + /[action] (create, update, get, delete, others...)
class FileServerEvent:
    uploadCompleted = Event('/upload/file/create')
    archiveStreamed = Event('/archive/stream/get')
