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

import posixpath
import socket
import ssl
import sys
import threading

from dataclasses import dataclass, replace
from enum import Enum
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import unquote, urlsplit

from fileserve.Kernel import PUBLIC_VERSION, getLogger
from fileserve.Handler import DISCONNECT_ERRORS, FileHandler, sendRedirect, sendStatus
from fileserve.Listing import quoteURLPath
from fileserve.Routes import parseRoute
from fileserve.Settings import DEFAULT_ROOT_ROUTE, resolveAddress

logger = getLogger(__name__)


class DuplicateRouteError(ValueError):
    """Two mounts claim the same route."""


class RouteKind(Enum):
    HANDLER = 'HANDLER'
    REDIRECT = 'REDIRECT'
    NOT_FOUND = 'NOT_FOUND'


@dataclass(frozen=True)
class Route:
    """Outcome of matching a request path against the route table."""
    kind: RouteKind
    handler: Optional[FileHandler] = None
    location: Optional[str] = None
    status: Optional[HTTPStatus] = None


def cleanURLPath(path):
    """Lexically clean a URL path, keeping a trailing slash."""
    if not path:
        return '/'

    if not path.startswith('/'):
        path = '/' + path

    cleaned = posixpath.normpath(path)
    # normpath keeps exactly two leading slashes
    cleaned = '/' + cleaned.lstrip('/')

    if path.endswith('/') and cleaned != '/':
        cleaned += '/'

    return cleaned


class RouteTable:
    """
    Maps URL paths to mount handlers.

    Routes ending in '/' own their whole subtree, other routes match exactly, and
    the longest matching route wins. Read-only once built.
    """

    def __init__(self, mounts, rootRoute=DEFAULT_ROOT_ROUTE):
        mounts = list(mounts) or [parseRoute('.')]

        self.handlers = {}
        self.redirects = {}

        for mount in mounts:
            if mount.route in self.handlers:
                raise DuplicateRouteError(f"Route {mount.route!r} is mounted more than once")

            self.handlers[mount.route] = FileHandler(mount.route, mount.path, mount.allowUpload)
            logger.info(f"serving local path {mount.path!r} on {mount.route!r}")

        self.firstRoute = mounts[0].route
        self.rootRoute = rootRoute

        if rootRoute and rootRoute not in self.handlers:
            self.redirects[rootRoute] = self.firstRoute
            logger.info(f"redirecting to {self.firstRoute!r} from {rootRoute!r}")

        self.patterns = sorted(list(self.handlers) + list(self.redirects), key=len, reverse=True)

    @property
    def mounts(self):
        return [(route, handler.path) for route, handler in self.handlers.items()]

    def _routeFor(self, pattern):
        if pattern in self.handlers:
            return Route(RouteKind.HANDLER, handler=self.handlers[pattern])

        return Route(RouteKind.REDIRECT, location=self.redirects[pattern], status=HTTPStatus.TEMPORARY_REDIRECT)

    def _isRegistered(self, pattern):
        return pattern in self.handlers or pattern in self.redirects

    def match(self, path, query='') -> Route:
        """
        Decide what a decoded request path is dispatched to.

        Args:
            path: Decoded URL path
            query: Raw query string, kept on redirects

        Returns:
            Route
        """
        suffix = f"?{query}" if query else ''

        cleaned = cleanURLPath(path)
        if cleaned != path:
            return Route(RouteKind.REDIRECT, location=quoteURLPath(cleaned) + suffix, status=HTTPStatus.MOVED_PERMANENTLY)

        if not self._isRegistered(path) and self._isRegistered(path + '/'):
            return Route(RouteKind.REDIRECT, location=quoteURLPath(path + '/') + suffix, status=HTTPStatus.MOVED_PERMANENTLY)

        for pattern in self.patterns:
            if pattern == path or (pattern.endswith('/') and path.startswith(pattern)):
                return self._routeFor(pattern)

        return Route(RouteKind.NOT_FOUND)


class DispatchHandler(BaseHTTPRequestHandler):
    """Hands every request to the route table of its server."""

    protocol_version = 'HTTP/1.1'
    server_version = f"FileServe/{PUBLIC_VERSION}"

    responseStarted = False

    def _hasBody(self):
        if 'Transfer-Encoding' in self.headers:
            return True

        try:
            return int(self.headers.get('Content-Length') or 0) > 0
        except ValueError:
            return True

    def _dispatch(self):
        self.responseStarted = False

        parts = urlsplit(self.path)
        urlPath = unquote(parts.path, errors='surrogateescape')

        route = self.server.routeTable.match(urlPath, parts.query)

        try:
            if route.kind == RouteKind.HANDLER:
                route.handler.serve(self)
            elif route.kind == RouteKind.REDIRECT:
                sendRedirect(self, route.location, route.status)
            else:
                sendStatus(self, HTTPStatus.NOT_FOUND)
        except DISCONNECT_ERRORS as e:
            logger.info(f"{self.client_address[0]} disconnected: {e}")
            self.close_connection = True
            return
        except Exception as e:
            logger.exception(e)
            self.close_connection = True
            # A second status line would land inside the body already sent
            if not self.responseStarted:
                self.send_error(500, str(e))
            return

        # An unread request body would be taken for the next request
        if self._hasBody():
            self.close_connection = True

    # Override utility methods
    def send_response(self, code, message=None):
        self.responseStarted = True
        super().send_response(code, message)

    do_GET = _dispatch
    do_HEAD = _dispatch
    do_POST = _dispatch
    do_PUT = _dispatch
    do_DELETE = _dispatch

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


class FileServer(ThreadingHTTPServer):
    """Threaded HTTP(S) server, one thread per connection."""

    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, serverAddress, routeTable, sslContext=None, requestHandlerClass=None):
        self.routeTable = routeTable
        self.sslContext = sslContext
        self._thread = None

        if requestHandlerClass is None:
            requestHandlerClass = DispatchHandler

        if ':' in serverAddress[0]:
            self.address_family = socket.AF_INET6

        super().__init__(serverAddress, requestHandlerClass)

    @property
    def isTLS(self):
        return self.sslContext is not None

    @property
    def serverURL(self):
        host, port = self.server_address[:2]
        if host in ('', '0.0.0.0', '::'):
            host = 'localhost'
        elif ':' in host:
            host = f'[{host}]'

        scheme = 'https' if self.isTLS else 'http'
        return f"{scheme}://{host}:{port}"

    def get_request(self):
        sock, address = super().get_request()

        if self.sslContext is not None:
            # Handshake runs on first read, in the connection thread
            sock = self.sslContext.wrap_socket(sock, server_side=True, do_handshake_on_connect=False)

        return sock, address

    def handle_error(self, request, client_address):
        error = sys.exc_info()[1]

        if isinstance(error, DISCONNECT_ERRORS + (ssl.SSLError,)):
            logger.info(f"Connection from {client_address[0]} ended: {error}")
        else:
            logger.exception(error)

    def start(self, background=False):
        """Serve until stop(); with background=True serve from a daemon thread and return it."""
        if not background:
            self.serve_forever()
            return None

        self._thread = threading.Thread(target=self.serve_forever, name='FileServer', daemon=True)
        self._thread.start()
        return self._thread

    def stop(self):
        self.shutdown()
        self.server_close()

        if self._thread is not None:
            self._thread.join()
            self._thread = None


def createSSLContext(certificate, key):
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile=certificate, keyfile=key)
    return context


def createServer(config, requestHandlerClass=None):
    """
    Build a FileServer for a ServerConfig.

    Mounts get uploads enabled when config.allowUploads is set. Without routes
    the working directory is served.

    Raises:
        DuplicateRouteError: Two mounts share a route
        ValueError: Invalid address
        OSError: Bind failure or unreadable TLS files
    """
    mounts = list(config.routes) or [parseRoute('.')]
    if config.allowUploads:
        mounts = [replace(m, allowUpload=True) for m in mounts]

    routeTable = RouteTable(mounts, config.rootRoute or DEFAULT_ROOT_ROUTE)

    sslContext = None
    if config.isTLS:
        sslContext = createSSLContext(config.sslCertificate, config.sslKey)

    serverAddress = resolveAddress(config.addr, config.port)
    return FileServer(serverAddress, routeTable, sslContext, requestHandlerClass)
