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
import sys
import signal

from fileserve.Kernel import getLogger
from fileserve.CLI import buildConfig, checkMounts, configureCLIParser, configureLogging, loadEnvFile, showVersion
from fileserve.Routes import parseRoute
from fileserve.Server import DuplicateRouteError, createServer
from fileserve.Utils import flushPrint

logger = getLogger(__name__)


def setupGracefulShutdown():
    """Setup signal handlers for graceful shutdown on multiple Ctrl+C"""
    context = {'shutdownInProgress': False}

    def signalHandler(signum, frame):
        if context['shutdownInProgress']:
            # Second Ctrl+C - force immediate exit
            os._exit(0)
        else:
            context['shutdownInProgress'] = True
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, signalHandler)


def runServer(config):
    """Check the mounts, then serve until interrupted. Returns the exit code."""
    if not config.routes:
        config.routes = [parseRoute('.')]

    problems = checkMounts(config.routes)
    if problems:
        for problem in problems:
            flushPrint(f"Error: {problem}")
        return 1

    try:
        server = createServer(config)
    except DuplicateRouteError as e:
        flushPrint(f"Error: {e}")
        return 1
    except (OSError, ValueError) as e:
        flushPrint(f"Error: Unable to start server on {config.addr!r}: {e}")
        return 1

    scheme = ' (HTTPS)' if server.isTLS else ''
    logger.info(f"fileserve{scheme} listening on {server.serverURL}")

    try:
        server.start()
    except KeyboardInterrupt:
        flushPrint('\nExiting on user request (Ctrl+C)...')
    finally:
        server.server_close()

    return 0


def main(argv=None):
    """The main entry point"""
    loadEnvFile()

    parser = configureCLIParser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.version:
        showVersion()
        return 0

    config = buildConfig(args, parser)
    configureLogging(args.logLevel, config.quiet)

    setupGracefulShutdown()

    return runServer(config)


if __name__ == '__main__':
    try:
        sys.exit(main() or 0)
    except KeyboardInterrupt:
        flushPrint('\nExiting on user request (Ctrl+C)...')
        sys.exit(0)
    except Exception as e:
        logger.exception(e)
        sys.exit(1)
