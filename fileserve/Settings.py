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

from dataclasses import dataclass, field
from typing import List

from fileserve.Kernel import getLogger
from fileserve.Utils import getEnv

DEFAULT_ADDR = ':8080'
DEFAULT_ROOT_ROUTE = '/'

# Transfer chunk size (256 KiB) - used for raw files, archives and uploads
TRANSFER_CHUNK_SIZE = int(os.getenv('TRANSFER_CHUNK_SIZE', 256 * 1024))

# Environment variables read as flag defaults
ADDR_ENV = 'ADDR'
PORT_ENV = 'PORT'
UPLOADS_ENV = 'UPLOADS'
QUIET_ENV = 'QUIET'
SSL_CERTIFICATE_ENV = 'SSL_CERTIFICATE'
SSL_KEY_ENV = 'SSL_KEY'

logger = getLogger(__name__)


@dataclass(frozen=True)
class Mount:
    """A URL route bound to a local directory."""
    route: str
    path: str
    allowUpload: bool = False

    def __post_init__(self):
        if not self.route:
            raise ValueError("Mount route must not be empty")

        object.__setattr__(self, 'path', os.path.abspath(self.path))


@dataclass
class ServerConfig:
    addr: str = DEFAULT_ADDR
    port: int = 0 # 0 keeps the port of addr
    allowUploads: bool = False
    rootRoute: str = DEFAULT_ROOT_ROUTE
    sslCertificate: str = ''
    sslKey: str = ''
    quiet: bool = False
    routes: List[Mount] = field(default_factory=list)

    @property
    def isTLS(self) -> bool:
        return bool(self.sslCertificate and self.sslKey)


def newConfig():
    """Build a ServerConfig with defaults taken from the environment."""
    return ServerConfig(
        addr=getEnv(ADDR_ENV, '') or DEFAULT_ADDR,
        port=getEnv(PORT_ENV, 0),
        allowUploads=getEnv(UPLOADS_ENV, False),
        sslCertificate=getEnv(SSL_CERTIFICATE_ENV, ''),
        sslKey=getEnv(SSL_KEY_ENV, ''),
        quiet=getEnv(QUIET_ENV, False),
    )


def resolveAddress(addr, port=0):
    """
    Resolve the listening address.

    Args:
        addr: "host:port", ":port" or "host" (port 8080 then)
        port: When non-zero, overrides the port of addr

    Returns:
        tuple: (host, port) suitable for socketserver; an empty host binds all interfaces

    Raises:
        ValueError: If addr or port is malformed
    """
    addr = (addr or DEFAULT_ADDR).strip()

    host, sep, portStr = addr.rpartition(':')
    if not sep:
        host, portStr = addr, DEFAULT_ADDR.lstrip(':')

    # [::1]:8080 style IPv6 literals
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]

    try:
        addrPort = int(portStr)
    except ValueError:
        raise ValueError(f"Invalid port in address {addr!r}")

    if port:
        addrPort = int(port)

    if not (0 <= addrPort <= 65535):
        raise ValueError(f"Port {addrPort} is out of valid range (0-65535)")

    return host, addrPort
