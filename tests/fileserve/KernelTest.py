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

import logging
import os
import unittest

from unittest.mock import patch

from signalslot.exceptions import SlotMustAcceptKeywords

from fileserve.Kernel import Event, FileServerEvent, SENTRY_DSN_ENV, getLogger


class EventTest(unittest.TestCase):
    """
    Test case for the signalslot-based server events.
    """

    def setUp(self):
        self.event = Event('/test/event/create')
        self.log = []

    def observer(self, **kwargs):
        self.log.append(kwargs)

    def testSubscribeAndTrigger(self):
        self.event.subscribe(self.observer)
        # Subscribing twice does not deliver twice
        self.event.subscribe(self.observer)

        self.event.trigger(path='/tmp/x', size=3)
        self.assertEqual(self.log, [{'path': '/tmp/x', 'size': 3}])

        self.event.unsubscribe(self.observer)
        self.event.trigger(path='/tmp/y', size=4)
        self.assertEqual(len(self.log), 1)

    def testTriggerWithoutObservers(self):
        self.event.trigger(path='/tmp/x')

    def testUnsubscribeUnknownObserver(self):
        self.event.unsubscribe(self.observer)
        self.assertEqual(self.event.signal.slots, [])

    def testObserverMustAcceptKeywords(self):

        def positionalOnly(path):
            pass

        with self.assertRaises(SlotMustAcceptKeywords):
            self.event.subscribe(positionalOnly)

    def testServerEvents(self):
        self.assertEqual(FileServerEvent.uploadCompleted.key, '/upload/file/create')
        self.assertEqual(FileServerEvent.archiveStreamed.key, '/archive/stream/get')
        self.assertIsNot(FileServerEvent.uploadCompleted.signal, FileServerEvent.archiveStreamed.signal)


class GetLoggerTest(unittest.TestCase):

    def testPlainLoggerWithoutDSN(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop(SENTRY_DSN_ENV, None)
            logger = getLogger('fileserve.tests.plain')

        self.assertIsInstance(logger, logging.Logger)
        self.assertEqual(logger.name, 'fileserve.tests.plain')


if __name__ == '__main__':
    unittest.main()
