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

import argparse
import json
import os
import logging
import logging.config
import platform

from fileserve.Kernel import PUBLIC_VERSION, LOGGING_LEVEL_ENV, LOG_LEVEL_MAPPING, getLogger, configureGlobalLogLevel, disableLogging
from fileserve.Routes import Routes
from fileserve.Settings import DEFAULT_ADDR, newConfig
from fileserve.Utils import flushPrint, getEnv

ENV_FILE_NAME = '.env'

logger = getLogger(__name__)


def loadEnvFile(envFilePath=None):
    """
    Load KEY=VALUE lines of a .env file (default: in the working directory) into os.environ.
    Variables already defined in os.environ are left alone.

    Returns:
        int: Number of variables set
    """
    envFilePath = envFilePath or os.path.join(os.getcwd(), ENV_FILE_NAME)

    if not os.path.isfile(envFilePath):
        return 0

    loadedCount = 0

    try:
        with open(envFilePath, 'r', encoding='utf-8') as f:
            for lineNum, line in enumerate(f, 1):
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith('#'):
                    continue

                if '=' not in line:
                    logger.warning(f'.env line {lineNum}: Invalid format (missing =): {line}')
                    continue

                key, _, value = line.partition('=')
                key = key.strip()
                value = value.strip()

                if not key:
                    logger.warning(f'.env line {lineNum}: Empty key')
                    continue

                if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                    value = value[1:-1]

                # Environment takes precedence
                if key not in os.environ:
                    os.environ[key] = value
                    loadedCount += 1
                else:
                    logger.debug(f'.env: Skipped {key} (already set in environment)')

    except (OSError, UnicodeDecodeError) as e:
        logger.error(f'Failed to load {envFilePath}: {e}')
        return loadedCount

    logger.debug(f'Loaded {loadedCount} environment variables from {envFilePath}')
    return loadedCount


def configureLogging(logLevel=None, quiet=False):
    """
    Configure logging for the process.

    Priority: --quiet, then logLevel (--log-level), then FILESERVE_LOGGING_LEVEL.
    A level is a name (DEBUG, INFO, WARNING, ERROR) or the path of a
    logging.config.dictConfig JSON file. Without any of them request logs are
    shown at INFO.
    """

    def suppressNoisyLogger():
        logging.getLogger('sentry_sdk').setLevel(logging.INFO)

    if quiet:
        disableLogging()
        return None

    if logLevel is None:
        logLevel = getEnv(LOGGING_LEVEL_ENV, None)

    if logLevel is None:
        configureGlobalLogLevel(logging.INFO)
        suppressNoisyLogger()
        return None

    if os.path.isfile(logLevel):
        try:
            with open(logLevel, 'r') as configFile:
                configDict = json.load(configFile)

            logging.config.dictConfig(configDict)
            logger.info(f"Logging configured from file: {logLevel}")
            suppressNoisyLogger()
            return logLevel

        except (json.JSONDecodeError, OSError, ValueError, KeyError) as e:
            flushPrint(f"Failed to load logging config from {logLevel}: {e}")
            flushPrint("Falling back to default logging level configuration")

    if logLevel.upper() in LOG_LEVEL_MAPPING:
        configureGlobalLogLevel(LOG_LEVEL_MAPPING[logLevel.upper()])
        logger.debug(f"Logging level set to {logLevel}")
    else:
        configureGlobalLogLevel(logging.WARNING)
        logger.warning(f"Invalid logging level '{logLevel}', using WARNING as default")

    suppressNoisyLogger()

    return logLevel


def showVersion():
    flushPrint(f"FileServe v{PUBLIC_VERSION}")
    uname = platform.uname()
    flushPrint(f"Python {platform.python_version()} on {uname.system} {uname.release} {uname.machine}")


def validatePort(portStr):
    """Validate port number for argparse, 0 keeps the port of --addr"""
    try:
        port = int(portStr)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {portStr}")

    if not (0 <= port <= 65535):
        raise argparse.ArgumentTypeError(f"Port {port} is out of valid range (0-65535)")
    return port


def validateLogLevel(logLevel):
    """Validate log level for argparse"""
    # Config files are validated when loaded
    if os.path.exists(logLevel):
        return logLevel

    if logLevel.upper() not in LOG_LEVEL_MAPPING:
        raise argparse.ArgumentTypeError(
            f"Invalid log level: {logLevel}. Must be one of {', '.join(LOG_LEVEL_MAPPING)} or a config file path"
        )
    return logLevel


def configureCLIParser():
    """
    Build the command line parser.

    Flag defaults come from the environment (ADDR, PORT, UPLOADS, QUIET,
    SSL_CERTIFICATE, SSL_KEY), so they are resolved in buildConfig().
    """
    routeHelp = Routes().help()

    parser = argparse.ArgumentParser(
        prog='fileserve',
        description='Serve local directories over HTTP, with listings, archive downloads and optional uploads.',
    )

    parser.add_argument('routes', metavar='ROUTE=PATH', nargs='*', help=routeHelp)
    parser.add_argument(
        '-r',
        '--route',
        action='append',
        default=[],
        metavar='ROUTE=PATH',
        help=f'{routeHelp}; repeatable',
        dest='routeFlags',
    )
    parser.add_argument(
        '-a',
        '--addr',
        metavar='ADDR',
        help=f'address to listen on, environment variable ADDR (default: "{DEFAULT_ADDR}")',
    )
    parser.add_argument(
        '-p',
        '--port',
        type=validatePort,
        metavar='PORT',
        help='port to listen on, overrides the port of --addr, environment variable PORT',
    )
    parser.add_argument(
        '-u',
        '--uploads',
        action='store_true',
        default=None,
        help='allow uploads, environment variable UPLOADS',
    )
    parser.add_argument(
        '--ssl-cert',
        metavar='FILE',
        help='path to SSL server certificate, environment variable SSL_CERTIFICATE',
        dest='sslCertificate',
    )
    parser.add_argument(
        '--ssl-key',
        metavar='FILE',
        help='path to SSL private key, environment variable SSL_KEY',
        dest='sslKey',
    )
    parser.add_argument(
        '-q',
        '--quiet',
        action='store_true',
        default=None,
        help='disable all log output, environment variable QUIET',
    )
    parser.add_argument(
        '--log-level',
        type=validateLogLevel,
        metavar='LEVEL',
        help=f'{", ".join(LOG_LEVEL_MAPPING)} or a logging config JSON file, environment variable {LOGGING_LEVEL_ENV}',
        dest='logLevel',
    )
    parser.add_argument('--version', action='store_true', help='show version information and exit')

    return parser


def buildConfig(args, parser=None):
    """
    Merge parsed arguments over the environment defaults.

    Route definitions are taken in command line order: --route flags, then positionals.

    Returns:
        ServerConfig
    """
    config = newConfig()

    if args.addr:
        config.addr = args.addr
    if args.port is not None:
        config.port = args.port
    if args.uploads:
        config.allowUploads = True
    if args.quiet:
        config.quiet = True
    if args.sslCertificate:
        config.sslCertificate = args.sslCertificate
    if args.sslKey:
        config.sslKey = args.sslKey

    routes = Routes()
    for text in list(args.routeFlags) + list(args.routes):
        try:
            routes.add(text)
        except ValueError as e:
            if parser is None:
                raise
            parser.error(str(e))

    config.routes = list(routes)
    logger.debug(f"Routes: {routes}")

    return config


def checkMounts(mounts):
    """
    Verify every mount path is an existing directory.

    Returns:
        list: Problem descriptions, empty when all mounts are usable
    """
    problems = []

    for mount in mounts:
        if not os.path.exists(mount.path):
            problems.append(f"Path {mount.path!r} for route {mount.route!r} does not exist")
        elif not os.path.isdir(mount.path):
            problems.append(f"Path {mount.path!r} for route {mount.route!r} is not a directory")

    return problems
