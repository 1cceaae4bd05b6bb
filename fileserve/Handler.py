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

import mimetypes
import os
import shutil
import stat
import unicodedata

from enum import Enum
from http import HTTPStatus
from urllib.parse import parse_qs, quote, unquote, urlsplit

from fileserve.Kernel import getLogger
from fileserve.Archives import ARCHIVE_FORMATS
from fileserve.Listing import LISTING_CONTENT_TYPE, archiveURL, listDirectory, listingTitle, renderListing
from fileserve.Paths import resolvePath
from fileserve.Settings import TRANSFER_CHUNK_SIZE
from fileserve.Upload import acceptUpload

DEFAULT_CONTENT_TYPE = 'application/octet-stream'
DISCONNECT_ERRORS = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)

logger = getLogger(__name__)


class Action(Enum):
    NOT_FOUND = 'NOT_FOUND'
    FORBIDDEN = 'FORBIDDEN'
    FAILURE = 'FAILURE'
    ARCHIVE_ZIP = 'ARCHIVE_ZIP'
    ARCHIVE_TAR_GZ = 'ARCHIVE_TAR_GZ'
    UPLOAD = 'UPLOAD'
    LISTING = 'LISTING'
    RAW_FILE = 'RAW_FILE'


ARCHIVE_ACTIONS = {'zip': Action.ARCHIVE_ZIP, 'tar.gz': Action.ARCHIVE_TAR_GZ}


def decideAction(statError, isDir, method, query, allowUpload, formats=ARCHIVE_FORMATS):
    """
    Pick what a request gets, in precedence order.

    Args:
        statError: Exception raised by os.stat() on the resolved path, or None
        isDir: Whether the resolved path is a directory
        method: HTTP method
        query: Parsed query, {key: [values]}
        allowUpload: Uploads enabled on the mount
        formats: ArchiveFormats, checked in order

    Returns:
        Action
    """
    if statError is not None:
        # ValueError: the path cannot even be asked for (embedded NUL)
        if isinstance(statError, (FileNotFoundError, NotADirectoryError, ValueError)):
            return Action.NOT_FOUND
        if isinstance(statError, PermissionError):
            return Action.FORBIDDEN
        return Action.FAILURE

    for archiveFormat in formats:
        values = query.get(archiveFormat.key)
        if values and values[0]:
            return ARCHIVE_ACTIONS[archiveFormat.key]

    if allowUpload and isDir and method == 'POST':
        return Action.UPLOAD

    if isDir:
        return Action.LISTING

    return Action.RAW_FILE


def sendStatus(exchange, status, headers=None):
    """Send status with its reason phrase as a text/plain body."""
    status = HTTPStatus(status)
    body = status.phrase.encode('utf-8')

    exchange.send_response(status)
    exchange.send_header('Content-Type', 'text/plain; charset=utf-8')
    exchange.send_header('Content-Length', str(len(body)))
    for key, value in (headers or {}).items():
        exchange.send_header(key, value)
    exchange.end_headers()

    if exchange.command != 'HEAD':
        exchange.wfile.write(body)


def sendRedirect(exchange, location, status):
    exchange.send_response(status)
    exchange.send_header('Location', location)
    exchange.send_header('Content-Length', '0')
    exchange.end_headers()


def _quotedFileName(name):
    # Control characters would end the header line
    name = ''.join(c for c in name if ' ' <= c != '\x7f')
    return name.replace('\\', '\\\\').replace('"', '\\"')


def contentDisposition(fileName):
    """
    Attachment header value for fileName.

    http.server encodes headers as latin-1, so a name outside ASCII gets an ASCII
    fallback in filename and the exact name, UTF-8 percent-encoded, in filename*.
    """
    try:
        fileName.encode('ascii')
    except UnicodeEncodeError:
        simple = unicodedata.normalize('NFKD', fileName).encode('ascii', 'ignore').decode('ascii')
        # fsencode keeps names that are not valid UTF-8 on disk
        quoted = quote(os.fsencode(fileName), safe="!#$&+-.^_`|~")
        return f"attachment; filename=\"{_quotedFileName(simple)}\"; filename*=UTF-8''{quoted}"

    return f'attachment; filename="{_quotedFileName(fileName)}"'


def sendBytes(exchange, payload: bytes, ctype: str = 'text/plain; charset=utf-8'):
    exchange.send_response(HTTPStatus.OK)
    exchange.send_header('Content-Type', ctype)
    exchange.send_header('Content-Length', str(len(payload)))
    exchange.end_headers()

    if exchange.command != 'HEAD':
        exchange.wfile.write(payload)


class ResponseSink:
    """
    Write-only stream over the response body of an archive download.

    The status line and headers go out right before the first body byte, so a
    failure before that can still become a 500.
    """

    def __init__(self, exchange, contentType, fileName):
        self.exchange = exchange
        self.contentType = contentType
        self.fileName = fileName
        self.headersSent = False
        self.written = 0

    @property
    def started(self):
        return self.written > 0

    def startResponse(self):
        self.headersSent = True
        self.exchange.send_response(HTTPStatus.OK)
        self.exchange.send_header('Content-Type', self.contentType)
        self.exchange.send_header('Content-Disposition', contentDisposition(self.fileName))
        # Length is unknown, the end of the body is the end of the connection
        self.exchange.send_header('Connection', 'close')
        self.exchange.end_headers()

    def write(self, data):
        if not data:
            return 0

        if not self.headersSent:
            self.startResponse()

        self.exchange.wfile.write(data)
        self.written += len(data)
        return len(data)

    def flush(self):
        if self.started:
            self.exchange.wfile.flush()


class FileHandler:
    """Serves one mount: listings, archives, uploads and raw files below a directory."""

    def __init__(self, route, path, allowUpload=False, archiveFormats=ARCHIVE_FORMATS):
        self.route = route
        self.path = os.path.abspath(path)
        self.allowUpload = allowUpload
        self.archiveFormats = tuple(archiveFormats)

        self.archiveFormatMap = {ARCHIVE_ACTIONS[f.key]: f for f in self.archiveFormats}

        self.actionMap = {
            Action.NOT_FOUND: self._handleNotFound,
            Action.FORBIDDEN: self._handleForbidden,
            Action.FAILURE: self._handleFailure,
            Action.ARCHIVE_ZIP: self._handleArchive,
            Action.ARCHIVE_TAR_GZ: self._handleArchive,
            Action.UPLOAD: self._handleUpload,
            Action.LISTING: self._handleListing,
            Action.RAW_FILE: self._handleRawFile,
        }

    def __repr__(self):
        return f"FileHandler({self.route!r} -> {self.path!r}, allowUpload={self.allowUpload})"

    def serve(self, exchange):
        host, port = exchange.client_address[:2]
        logger.info(f"[{self.path}] {host}:{port} {exchange.command} {exchange.path}")

        parts = urlsplit(exchange.path)
        urlPath = unquote(parts.path, errors='surrogateescape')
        query = parse_qs(parts.query, keep_blank_values=True)

        osPath = resolvePath(self.route, self.path, urlPath)

        statError = None
        isDir = False
        try:
            isDir = stat.S_ISDIR(os.stat(osPath).st_mode)
        except (OSError, ValueError) as e:
            statError = e
            logger.debug(f"stat {osPath!r} failed: {e}")

        action = decideAction(statError, isDir, exchange.command, query, self.allowUpload, self.archiveFormats)

        try:
            self.actionMap[action](exchange, osPath, urlPath, parts.query, action)
        except DISCONNECT_ERRORS as e:
            logger.info(f"[{self.path}] {host}:{port} disconnected during {action.name}: {e}")
            exchange.close_connection = True

    # Error states
    def _handleNotFound(self, exchange, osPath, urlPath, query, action):
        sendStatus(exchange, HTTPStatus.NOT_FOUND)

    def _handleForbidden(self, exchange, osPath, urlPath, query, action):
        sendStatus(exchange, HTTPStatus.FORBIDDEN)

    def _handleFailure(self, exchange, osPath, urlPath, query, action):
        sendStatus(exchange, HTTPStatus.INTERNAL_SERVER_ERROR)

    def _handleArchive(self, exchange, osPath, urlPath, query, action):
        archiveFormat = self.archiveFormatMap[action]
        sink = ResponseSink(exchange, archiveFormat.contentType, archiveFormat.fileName(osPath))

        if exchange.command == 'HEAD':
            sink.startResponse()
            return

        try:
            archiveFormat.stream(sink, osPath)
        except DISCONNECT_ERRORS:
            raise
        except Exception as e:
            logger.exception(f"Failed to stream {archiveFormat.key} of {osPath}: {e}")
            if sink.headersSent:
                # Response already under way, nothing left to report to the client
                exchange.close_connection = True
            else:
                sendStatus(exchange, HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        if not sink.headersSent:
            sink.startResponse()

        exchange.close_connection = True

    def _handleUpload(self, exchange, osPath, urlPath, query, action):
        try:
            acceptUpload(exchange, osPath)
        except DISCONNECT_ERRORS:
            raise
        except Exception as e:
            logger.exception(f"Failed to accept upload into {osPath}: {e}")
            # The rest of the body may still be unread
            exchange.close_connection = True
            sendStatus(exchange, HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        sendRedirect(exchange, exchange.path, HTTPStatus.SEE_OTHER)

    def _handleListing(self, exchange, osPath, urlPath, query, action):
        try:
            entries = listDirectory(osPath, urlPath)
        except OSError as e:
            logger.exception(f"Failed to list {osPath}: {e}")
            sendStatus(exchange, HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        # tar.gz link above zip
        archiveURLs = [(f.key, archiveURL(urlPath, query, f.key)) for f in reversed(self.archiveFormats)]
        page = renderListing(listingTitle(self.path, osPath), entries, archiveURLs, self.allowUpload)

        sendBytes(exchange, page.encode('utf-8', errors='replace'), LISTING_CONTENT_TYPE)

    def _handleRawFile(self, exchange, osPath, urlPath, query, action):
        try:
            f = open(osPath, 'rb')
        except PermissionError:
            sendStatus(exchange, HTTPStatus.FORBIDDEN)
            return
        except OSError as e:
            logger.exception(f"Failed to open {osPath}: {e}")
            sendStatus(exchange, HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        with f:
            fileStat = os.fstat(f.fileno())
            ctype = mimetypes.guess_type(osPath)[0] or DEFAULT_CONTENT_TYPE

            exchange.send_response(HTTPStatus.OK)
            exchange.send_header('Content-Type', ctype)
            exchange.send_header('Content-Length', str(fileStat.st_size))
            exchange.send_header('Last-Modified', exchange.date_time_string(fileStat.st_mtime))
            exchange.end_headers()

            if exchange.command != 'HEAD':
                shutil.copyfileobj(f, exchange.wfile, TRANSFER_CHUNK_SIZE)
