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

from fileserve.Kernel import getLogger
from fileserve.Settings import Mount

DEFAULT_SEPARATOR = '='
HELP_TEXT = "a route definition ROUTE{}PATH (ROUTE defaults to basename of PATH if omitted)"

logger = getLogger(__name__)


def normalizeRoute(route):
    """ "docs", "/docs" and "docs/" all become "/docs/"; an empty route is "/". """
    route = route.strip('/')
    return f'/{route}/' if route else '/'


def parseRoute(text, separator=DEFAULT_SEPARATOR):
    """
    Parse a route definition.

    Args:
        text: "ROUTE=PATH" or just "PATH"
        separator: Separator between ROUTE and PATH

    Returns:
        Mount: route normalised to "/route/", path absolute

    Raises:
        ValueError: If the definition has an empty PATH
    """
    separator = separator or DEFAULT_SEPARATOR

    route, sep, path = text.partition(separator)
    if not sep:
        route, path = '', text

    if not path:
        raise ValueError(f"Route definition {text!r} has no path")

    path = os.path.abspath(path)
    if not route:
        route = os.path.basename(path)

    return Mount(route=normalizeRoute(route), path=path)


class Routes:
    """Ordered collection of route definitions given on the command line."""

    def __init__(self, separator=DEFAULT_SEPARATOR):
        self.separator = separator or DEFAULT_SEPARATOR
        self.values = []
        self.texts = []

    def add(self, text):
        mount = parseRoute(text, self.separator)
        self.values.append(mount)
        self.texts.append(text)
        logger.debug(f"Route {text!r} parsed as {mount.route} -> {mount.path}")
        return mount

    # Usable as argparse type=, which turns the ValueError into a usage error
    def __call__(self, text):
        return self.add(text)

    def help(self):
        return HELP_TEXT.format(self.separator)

    def __len__(self):
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def __str__(self):
        return ', '.join(self.texts)
