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

import locale
import os
import sys

import bitmath
import chardet

from fileserve.Kernel import getLogger

ONE_KB = int(bitmath.KiB(1).bytes)
ONE_MB = int(bitmath.MiB(1).bytes)
ONE_GB = int(bitmath.GiB(1).bytes)

TRUE_VALUES = ('true', '1', 'yes', 'on')

logger = getLogger(__name__)


_UNICODE_TRY_ENCODINGS = tuple(e for e in (locale.getlocale()[1], 'utf-8') if e)


def _unicode(s, encodings=None, throw=True, confidence=0.8):
    """
    Force to UNICODE string.

    @param s String.
    @param encodings Native encodings for decode. It will be tried to decode
                     string, try and error.
    @param throw Raise exception if it fails to convert string.
    @param confidence
    @return UNICODE type string.
    """
    if isinstance(s, str):
        return s

    if not isinstance(s, bytes):
        return str(s)

    encodings = list(encodings or [])

    try:
        result = chardet.detect(s)

        if result['confidence'] > confidence:
            if result['encoding']:
                encodings.append(result['encoding'])
            encodings.extend(_UNICODE_TRY_ENCODINGS)
        else:
            encodings.extend(_UNICODE_TRY_ENCODINGS)
            if result['encoding']:
                encodings.append(result['encoding'])

    except Exception as e:
        logger.debug(f"chardet failed on {s!r}: {e}")
        encodings.extend(_UNICODE_TRY_ENCODINGS)

    error = None
    for encoding in encodings:
        try:
            return s.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            error = e

    if throw and error:
        raise error

    return s.decode('utf-8', errors='replace')


def displayName(name):
    """
    Make a file name from the OS printable.

    Names that are not valid in the filesystem encoding come back from os.listdir()
    with surrogate escapes; their raw bytes are decoded by guessing the encoding.
    """
    try:
        name.encode('utf-8')
        return name
    except UnicodeEncodeError:
        return _unicode(os.fsencode(name), throw=False)


# https://github.com/chriskiehl/Gooey/issues/701
# flush is required if this is in .exe file.
def flushPrint(text):
    try:
        print(text, flush=True)
    except UnicodeEncodeError as e:
        logger.debug(f"UnicodeEncodeError during print, using fallback encoding: {e}, {sys.stdout.encoding=}")

        buf = getattr(sys.stdout, "buffer", None)
        if buf is not None:
            buf.write(text.encode("utf-8", errors="replace"))
            buf.write(b"\n")
            buf.flush()
        else:
            print(text.encode(sys.stdout.encoding, errors='replace').decode(sys.stdout.encoding), flush=True)


def _roundDiv(size, unit):
    # Integer division rounding half away from zero, exact for any int.
    quotient = (abs(size) * 2 + unit) // (unit * 2)
    return quotient if size >= 0 else -quotient


def formatSize(size):
    """
    Human readable size with 1024-based units, rounded to the nearest whole unit.

    123 -> "123", 1234 -> "1K", 1234567 -> "1M", 1234567890 -> "1G"
    """
    size = int(size)

    if size < ONE_KB:
        return str(size)
    elif size < ONE_MB:
        return f"{_roundDiv(size, ONE_KB)}K"
    elif size < ONE_GB:
        return f"{_roundDiv(size, ONE_MB)}M"
    else:
        return f"{_roundDiv(size, ONE_GB)}G"


def getEnv(envVar, default):
    """Safely get value from environment variable with automatic type detection based on default"""
    try:
        value = os.getenv(envVar)
        if value is not None:
            if default is None:
                return value

            # Automatically detect type based on default value
            if isinstance(default, bool):
                return value.strip().lower() in TRUE_VALUES
            elif isinstance(default, int):
                return int(value)
            elif isinstance(default, float):
                return float(value)
            elif isinstance(default, str):
                return str(value)
            else:
                return type(default)(value)
        return default
    except (ValueError, TypeError):
        logger.warning(f"Ignoring invalid value for {envVar}: {os.getenv(envVar)!r}")
        return default
