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
import shutil

from dataclasses import dataclass
from typing import Optional

# For parsing multipart/form-data (cgi was removed in Python 3.13)
from werkzeug.formparser import parse_form_data
from werkzeug.http import parse_options_header
from werkzeug.serving import DechunkedInput

from fileserve.Kernel import getLogger, FileServerEvent
from fileserve.Settings import TRANSFER_CHUNK_SIZE

UPLOAD_FIELD = 'file'
UPLOAD_FILE_MODE = 0o600

logger = getLogger(__name__)


class UploadError(Exception):
    """The upload body could not be parsed or written."""


@dataclass
class UploadResult:
    path: Optional[str] = None # None when nothing was uploaded
    size: int = 0

    @property
    def stored(self):
        return self.path is not None


def uploadFileName(fileName):
    """
    Base name of a client supplied file name, '/' and '\\' both count as separators.

    Returns:
        str or None: None when nothing usable is left ("", ".", "..")
    """
    if not fileName:
        return None

    name = fileName.replace('\\', '/').rsplit('/', 1)[-1]
    if name in ('', '.', '..') or '\x00' in name:
        return None

    return name


def _isChunked(headers):
    return 'chunked' in headers.get('Transfer-Encoding', '').lower()


def _buildEnviron(exchange):
    headers = exchange.headers
    environ = {
        'REQUEST_METHOD': exchange.command,
        'CONTENT_TYPE': headers.get('Content-Type', ''),
    }

    if _isChunked(headers):
        # Same decoding werkzeug's own request handler applies; the decoder ends the body
        environ['wsgi.input'] = DechunkedInput(exchange.rfile)
        environ['wsgi.input_terminated'] = True
    else:
        environ['CONTENT_LENGTH'] = headers.get('Content-Length', '0')
        environ['wsgi.input'] = exchange.rfile

    return environ


def acceptUpload(exchange, targetDir) -> UploadResult:
    """
    Store the multipart field "file" of the request in targetDir.

    File parts are spooled to temporary storage by the parser, then copied to
    the target in chunks. An existing file of the same name is truncated.

    Args:
        exchange: The BaseHTTPRequestHandler of the request
        targetDir: Directory receiving the file

    Returns:
        UploadResult: path is None when the field was absent or had no usable name

    Raises:
        UploadError: Body is not multipart/form-data, or the file cannot be written
    """
    mimetype, options = parse_options_header(exchange.headers.get('Content-Type', ''))
    if mimetype != 'multipart/form-data' or not options.get('boundary'):
        raise UploadError(f"Expected multipart/form-data, got {mimetype or 'no content type'!r}")

    try:
        stream, form, files = parse_form_data(_buildEnviron(exchange), silent=False)
    except Exception as e:
        raise UploadError(f"Failed to parse upload body: {e}") from e

    try:
        fileStorage = files.get(UPLOAD_FIELD)
        name = uploadFileName(fileStorage.filename) if fileStorage else None

        if not name:
            logger.debug(f"No file in upload to {targetDir}")
            return UploadResult()

        outPath = os.path.join(targetDir, name)

        try:
            fd = os.open(outPath, os.O_CREAT | os.O_WRONLY | os.O_TRUNC | getattr(os, 'O_BINARY', 0), UPLOAD_FILE_MODE)
            with os.fdopen(fd, 'wb') as out:
                shutil.copyfileobj(fileStorage.stream, out, TRANSFER_CHUNK_SIZE)
                size = out.tell()
        except OSError as e:
            raise UploadError(f"Failed to write {outPath}: {e}") from e

    finally:
        for _, storage in files.items(multi=True):
            storage.close()

    logger.info(f"Stored upload {outPath} ({size} bytes)")
    FileServerEvent.uploadCompleted.trigger(path=outPath, size=size)

    return UploadResult(path=outPath, size=size)
