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


def resolvePath(route, root, urlPath):
    """
    Map a request URL path below route onto the filesystem below root.

    The remainder is cleaned as a rooted path before it is joined, so ".." can
    never climb above root. No filesystem access happens here.

    Args:
        route: Mount route, e.g. "/docs/"
        root: Absolute directory of the mount
        urlPath: Decoded request path, e.g. "/docs/a/b.txt"

    Returns:
        str: Path inside root
    """
    if not urlPath.startswith('/'):
        urlPath = '/' + urlPath

    # Both "/docs/x" and "docs/" style routes are tolerated
    if route and urlPath.startswith(route):
        urlPath = urlPath[len(route):]
    elif route and urlPath.startswith('/' + route):
        urlPath = urlPath[len(route) + 1:]

    rest = urlPath.replace('/', os.sep)

    cleaned = os.path.normpath(os.sep + rest)
    cleaned = os.path.splitdrive(cleaned)[1].lstrip(os.sep)
    if os.altsep:
        cleaned = cleaned.lstrip(os.altsep)

    if not cleaned or cleaned == os.curdir:
        return root

    return os.path.join(root, cleaned)
