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
import io
import logging
import os
import shutil
import tempfile
import unittest

from contextlib import redirect_stderr
from unittest.mock import patch

import Core

from fileserve.CLI import (
    buildConfig, checkMounts, configureCLIParser, configureLogging, loadEnvFile, validateLogLevel, validatePort
)
from fileserve.Settings import DEFAULT_ADDR, Mount, ServerConfig, resolveAddress

CLEAN_ENV_KEYS = ('ADDR', 'PORT', 'UPLOADS', 'QUIET', 'SSL_CERTIFICATE', 'SSL_KEY')


def cleanEnv(**values):
    """Environment without any of the flag variables, plus values."""
    env = {k: v for k, v in os.environ.items() if k not in CLEAN_ENV_KEYS}
    env.update(values)
    return env


class ParserTest(unittest.TestCase):

    def setUp(self):
        self.parser = configureCLIParser()

    def parse(self, *argv):
        with redirect_stderr(io.StringIO()):
            return self.parser.parse_args(list(argv))

    def testDefaults(self):
        args = self.parse()

        self.assertEqual(args.routes, [])
        self.assertEqual(args.routeFlags, [])
        self.assertIsNone(args.addr)
        self.assertIsNone(args.port)
        self.assertIsNone(args.uploads)
        self.assertIsNone(args.quiet)
        self.assertIsNone(args.logLevel)
        self.assertFalse(args.version)

    def testAllFlags(self):
        args = self.parse(
            'docs=/srv/docs', '-r', 'media=/srv/media', '--route', '/srv/other', '-a', '127.0.0.1:9000', '-p', '9001',
            '-u', '--ssl-cert', 'cert.pem', '--ssl-key', 'key.pem', '-q', '--log-level', 'debug'
        )

        self.assertEqual(args.routes, ['docs=/srv/docs'])
        self.assertEqual(args.routeFlags, ['media=/srv/media', '/srv/other'])
        self.assertEqual(args.addr, '127.0.0.1:9000')
        self.assertEqual(args.port, 9001)
        self.assertTrue(args.uploads)
        self.assertEqual(args.sslCertificate, 'cert.pem')
        self.assertEqual(args.sslKey, 'key.pem')
        self.assertTrue(args.quiet)
        self.assertEqual(args.logLevel, 'debug')

    def testInvalidPort(self):
        for port in ('abc', '-1', '70000'):
            with self.subTest(port=port):
                with self.assertRaises(SystemExit):
                    self.parse('-p', port)

    def testInvalidLogLevel(self):
        with self.assertRaises(SystemExit):
            self.parse('--log-level', 'chatty')


class ValidatorTest(unittest.TestCase):

    def testValidatePort(self):
        self.assertEqual(validatePort('0'), 0)
        self.assertEqual(validatePort('65535'), 65535)

        with self.assertRaises(argparse.ArgumentTypeError):
            validatePort('65536')

    def testValidateLogLevel(self):
        self.assertEqual(validateLogLevel('WARNING'), 'WARNING')
        self.assertEqual(validateLogLevel('info'), 'info')

        with self.assertRaises(argparse.ArgumentTypeError):
            validateLogLevel('verbose')


class BuildConfigTest(unittest.TestCase):

    def setUp(self):
        self.parser = configureCLIParser()

    def build(self, *argv, env=None):
        with patch.dict(os.environ, cleanEnv(**(env or {})), clear=True):
            return buildConfig(self.parser.parse_args(list(argv)))

    def testDefaults(self):
        config = self.build()

        self.assertEqual(config.addr, DEFAULT_ADDR)
        self.assertEqual(config.port, 0)
        self.assertFalse(config.allowUploads)
        self.assertFalse(config.quiet)
        self.assertFalse(config.isTLS)
        self.assertEqual(config.routes, [])

    def testEnvironmentDefaults(self):
        config = self.build(
            env={'ADDR': '127.0.0.1:7000', 'PORT': '7001', 'UPLOADS': 'true', 'QUIET': '1',
                 'SSL_CERTIFICATE': 'c.pem', 'SSL_KEY': 'k.pem'}
        )

        self.assertEqual(config.addr, '127.0.0.1:7000')
        self.assertEqual(config.port, 7001)
        self.assertTrue(config.allowUploads)
        self.assertTrue(config.quiet)
        self.assertTrue(config.isTLS)

    def testFlagsOverrideEnvironment(self):
        config = self.build(
            '-a', ':9000', '-p', '9001', '--ssl-cert', 'flag.pem',
            env={'ADDR': ':7000', 'PORT': '7001', 'SSL_CERTIFICATE': 'env.pem'}
        )

        self.assertEqual(config.addr, ':9000')
        self.assertEqual(config.port, 9001)
        self.assertEqual(config.sslCertificate, 'flag.pem')
        # Only one of the pair set
        self.assertFalse(config.isTLS)

    def testInvalidEnvironmentValueIgnored(self):
        self.assertEqual(self.build(env={'PORT': 'eighty'}).port, 0)

    def testRouteOrder(self):
        config = self.build('positional=/srv/a', '-r', 'flagged=/srv/b')

        self.assertEqual([m.route for m in config.routes], ['/flagged/', '/positional/'])
        self.assertEqual(config.routes[0].path, os.path.abspath('/srv/b'))

    def testRouteDefaultsToBaseName(self):
        config = self.build('/srv/photos')
        self.assertEqual(config.routes[0].route, '/photos/')

    def testInvalidRoute(self):
        args = self.parser.parse_args(['docs='])

        with self.assertRaises(ValueError):
            buildConfig(args)

        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                buildConfig(args, self.parser)


class ResolveAddressTest(unittest.TestCase):

    def testForms(self):
        testCases = [
            ((':8080', 0), ('', 8080)),
            (('127.0.0.1:9000', 0), ('127.0.0.1', 9000)),
            (('localhost', 0), ('localhost', 8080)),
            (('[::1]:8081', 0), ('::1', 8081)),
            ((':8080', 9090), ('', 9090)),
            (('', 0), ('', 8080)),
        ]

        for (addr, port), expected in testCases:
            with self.subTest(addr=addr, port=port):
                self.assertEqual(resolveAddress(addr, port), expected)

    def testInvalid(self):
        for addr, port in ((':http', 0), (':70000', 0), (':8080', 70000)):
            with self.subTest(addr=addr, port=port):
                with self.assertRaises(ValueError):
                    resolveAddress(addr, port)


class EnvFileTest(unittest.TestCase):

    def setUp(self):
        self.tempDir = tempfile.mkdtemp()
        self.envPath = os.path.join(self.tempDir, '.env')

    def tearDown(self):
        shutil.rmtree(self.tempDir, ignore_errors=True)

    def testLoadWithoutOverriding(self):
        with open(self.envPath, 'w', encoding='utf-8') as f:
            f.write('# comment\n\nFILESERVE_TEST_A=from file\nFILESERVE_TEST_B="quoted"\nnot a pair\n=empty\n')

        with patch.dict(os.environ, {'FILESERVE_TEST_A': 'from environment'}):
            os.environ.pop('FILESERVE_TEST_B', None)
            loaded = loadEnvFile(self.envPath)

            self.assertEqual(loaded, 1)
            self.assertEqual(os.environ['FILESERVE_TEST_A'], 'from environment')
            self.assertEqual(os.environ['FILESERVE_TEST_B'], 'quoted')

    def testMissingFile(self):
        self.assertEqual(loadEnvFile(self.envPath), 0)


class CheckMountsTest(unittest.TestCase):

    def testProblems(self):
        tempDir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tempDir, True)

        filePath = os.path.join(tempDir, 'file.txt')
        with open(filePath, 'w') as f:
            f.write('x')

        self.assertEqual(checkMounts([Mount('/ok/', tempDir)]), [])

        problems = checkMounts([Mount('/missing/', os.path.join(tempDir, 'missing')), Mount('/file/', filePath)])
        self.assertEqual(len(problems), 2)
        self.assertIn('does not exist', problems[0])
        self.assertIn('is not a directory', problems[1])


class ConfigureLoggingTest(unittest.TestCase):

    def setUp(self):
        self.rootLogger = logging.getLogger()
        self.originalLevel = self.rootLogger.level

    def tearDown(self):
        logging.disable(logging.NOTSET)
        self.rootLogger.setLevel(self.originalLevel)

    def testLevelName(self):
        self.assertEqual(configureLogging('debug'), 'debug')
        self.assertEqual(self.rootLogger.level, logging.DEBUG)

    def testDefaultIsInfo(self):
        with patch.dict(os.environ, {}):
            os.environ.pop('FILESERVE_LOGGING_LEVEL', None)
            configureLogging()
        self.assertEqual(self.rootLogger.level, logging.INFO)

    def testInvalidFallsBackToWarning(self):
        configureLogging('chatty')
        self.assertEqual(self.rootLogger.level, logging.WARNING)

    def testQuiet(self):
        configureLogging('DEBUG', quiet=True)
        self.assertFalse(logging.getLogger('fileserve').isEnabledFor(logging.CRITICAL))


class CoreTest(unittest.TestCase):

    def testVersion(self):
        with patch('fileserve.CLI.flushPrint') as printMock:
            self.assertEqual(Core.main(['--version']), 0)
        self.assertIn('FileServe v', printMock.call_args_list[0][0][0])

    def testMissingMountPath(self):
        config = ServerConfig(addr='127.0.0.1:0', routes=[Mount('/x/', '/nonexistent/fileserve/path')])

        with patch('Core.flushPrint') as printMock:
            self.assertEqual(Core.runServer(config), 1)
        self.assertIn('does not exist', printMock.call_args[0][0])

    def testDuplicateRoute(self):
        config = ServerConfig(addr='127.0.0.1:0', routes=[Mount('/x/', os.getcwd()), Mount('/x/', os.getcwd())])

        with patch('Core.flushPrint') as printMock:
            self.assertEqual(Core.runServer(config), 1)
        self.assertIn('mounted more than once', printMock.call_args[0][0])

    def testInvalidAddress(self):
        config = ServerConfig(addr='127.0.0.1:notaport', routes=[Mount('/x/', os.getcwd())])

        with patch('Core.flushPrint'):
            self.assertEqual(Core.runServer(config), 1)


if __name__ == '__main__':
    unittest.main()
