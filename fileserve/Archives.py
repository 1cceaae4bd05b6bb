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

import gzip
import os
import shutil
import stat
import tarfile
import zipfile

from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, Tuple

from fileserve.Kernel import getLogger, FileServerEvent
from fileserve.Settings import TRANSFER_CHUNK_SIZE

logger = getLogger(__name__)


def _raiseWalkError(error):
    raise error


def iterArchiveFiles(root: str) -> Iterator[Tuple[str, str, os.stat_result]]:
    """
    Yield (arcname, path, stat) for every regular file below root.

    Arcnames are relative to root and always '/'-separated. Symlinks to files are
    followed, symlinked directories are not descended, FIFOs, sockets and devices
    are skipped. A root that is a regular file yields itself under its base name.
    Walk errors propagate.
    """
    rootStat = os.stat(root)
    if not stat.S_ISDIR(rootStat.st_mode):
        if stat.S_ISREG(rootStat.st_mode):
            yield os.path.basename(root), root, rootStat
        return

    for dirPath, dirNames, fileNames in os.walk(root, onerror=_raiseWalkError):
        for name in fileNames:
            path = os.path.join(dirPath, name)

            try:
                fileStat = os.stat(path)
            except FileNotFoundError:
                if os.path.islink(path):
                    logger.debug("Skip dangling symlink %s", path)
                    continue
                raise

            if not stat.S_ISREG(fileStat.st_mode):
                logger.debug("Skip non-regular file %s", path)
                continue

            arcname = os.path.relpath(path, root).replace(os.sep, '/')
            yield arcname, path, fileStat


def _closeLogged(closable, what):
    # Close errors are reported but never replace an error already raised
    if closable is None:
        return

    try:
        closable.close()
    except Exception as e:
        logger.error(f"Failed to close {what}: {e}")


def streamTarGz(sink: BinaryIO, root: str):
    """
    Stream root as a gzip compressed tar archive into sink.

    Files are read one at a time and sink is flushed after each of them, so
    nothing bigger than a copy buffer is held in memory. Nothing is written to
    sink before the first file is open; a failure up to there leaves sink untouched.

    Raises:
        OSError: Walk, read or write failure. A started archive is still terminated.
    """
    gzipWriter = None
    tarWriter = None

    def openWriters():
        nonlocal gzipWriter, tarWriter
        gzipWriter = gzip.GzipFile(fileobj=sink, mode='wb')
        tarWriter = tarfile.open(fileobj=gzipWriter, mode='w|', format=tarfile.PAX_FORMAT)

    try:
        for arcname, path, fileStat in iterArchiveFiles(root):
            info = tarfile.TarInfo(arcname)
            info.type = tarfile.REGTYPE
            info.size = fileStat.st_size
            info.mode = stat.S_IMODE(fileStat.st_mode)
            info.mtime = int(fileStat.st_mtime)

            with open(path, 'rb') as f:
                if tarWriter is None:
                    openWriters()
                tarWriter.addfile(info, f)

            gzipWriter.flush()
            sink.flush()

        # Empty trees still get a valid, empty archive
        if tarWriter is None:
            openWriters()

    finally:
        # Trailer first, then the compression layer
        _closeLogged(tarWriter, f"tar stream of {root}")
        _closeLogged(gzipWriter, f"gzip stream of {root}")

    FileServerEvent.archiveStreamed.trigger(path=root, format=TAR_GZ.key)


def streamZip(sink: BinaryIO, root: str):
    """
    Stream root as a deflated zip archive into sink.

    Unseekable sinks get data descriptors after each entry; ZIP64 records are
    written where sizes need them. Timestamps before 1980 are clamped.

    Raises:
        OSError: Walk, read or write failure. A started archive is still terminated.
    """
    zipWriter = None

    try:
        for arcname, path, fileStat in iterArchiveFiles(root):
            info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
            info.compress_type = zipfile.ZIP_DEFLATED

            with open(path, 'rb') as src:
                if zipWriter is None:
                    zipWriter = zipfile.ZipFile(sink, mode='w', compression=zipfile.ZIP_DEFLATED, allowZip64=True)

                with zipWriter.open(info, mode='w') as dest:
                    shutil.copyfileobj(src, dest, TRANSFER_CHUNK_SIZE)

            sink.flush()

        if zipWriter is None:
            zipWriter = zipfile.ZipFile(sink, mode='w', compression=zipfile.ZIP_DEFLATED, allowZip64=True)

    finally:
        _closeLogged(zipWriter, f"zip stream of {root}")

    FileServerEvent.archiveStreamed.trigger(path=root, format=ZIP.key)


@dataclass(frozen=True)
class ArchiveFormat:
    """An archive representation selectable by a query key."""
    key: str
    contentType: str
    extension: str
    stream: Callable[[BinaryIO, str], None]

    def fileName(self, root):
        return f"{os.path.basename(os.path.normpath(root))}{self.extension}"


ZIP = ArchiveFormat(key='zip', contentType='application/zip', extension='.zip', stream=streamZip)
TAR_GZ = ArchiveFormat(key='tar.gz', contentType='application/x-tar+gzip', extension='.tar.gz', stream=streamTarGz)

# Checked in this order when a request carries more than one key
ARCHIVE_FORMATS = (ZIP, TAR_GZ)
