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

import html
import os
import posixpath

from dataclasses import dataclass
from typing import List
from urllib.parse import parse_qsl, quote, urlencode

from fileserve.Kernel import getLogger
from fileserve.Utils import displayName, formatSize

LISTING_CONTENT_TYPE = 'text/html; charset=utf-8'
ARCHIVE_QUERY_VALUE = 'true'

logger = getLogger(__name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<meta name="google" content="notranslate"/>
<head>
	<meta charset="utf-8">
	<title>{title}</title>
	<meta name="viewport" content="width=device-width, initial-scale=1">
	<style>body{{font-family: sans-serif;}}td{{padding:.5em;}}a{{display:block;}}tbody tr:nth-child(odd){{background:#eee;}}.number{{text-align:right}}.text{{text-align:left;word-break:break-all;}}table{{width:100%;max-width:100%;}}</style>
</head>
<body>
<h1>{title}</h1>
{table}
</body>
</html>
"""

TABLE_TEMPLATE = """<table>
	<thead>
		<th></th>
		<th colspan=2 class=number>Size (bytes)</th>
	</thead>
	<tbody>
{rows}
	</tbody>
</table>"""

ARCHIVE_ROW = '\t<tr><td colspan=3><a href="{url}">.{key} of all files</a></td></tr>'
FILE_ROW = ('\t<tr>\n\t\t<td class=text><a href="{url}">{name}</a></td>\n'
            '\t\t<td class=number>{humanSize}</td>\n\t\t<td class=number>({size})</td>\n\t</tr>')
DIR_ROW = '\t<tr>\n\t\t<td colspan=3 class=text><a href="{url}">{name}</a></td>\n\t</tr>'
UPLOAD_ROW = ('\t<tr><td colspan=3><form method="post" enctype="multipart/form-data">'
              '<input required name="file" type="file"/><input value="Upload" type="submit"/></form></td></tr>')


@dataclass
class DirectoryEntry:
    name: str
    displayName: str
    isDir: bool
    size: int
    humanSize: str
    url: str


def quoteURLPath(urlPath):
    # Names that are not valid UTF-8 on disk are linked through their raw bytes
    return quote(os.fsencode(urlPath), safe='/')


def sortEntries(entries):
    """Directories first, then ascending by name."""
    return sorted(entries, key=lambda e: (not e.isDir, e.name))


def listDirectory(path, urlPath) -> List[DirectoryEntry]:
    """
    Read one directory level and build sorted listing entries.

    Args:
        path: Directory on disk
        urlPath: Decoded request path the listing is served under

    Raises:
        OSError: If the directory itself cannot be read
    """
    entries = []

    with os.scandir(path) as it:
        for dirEntry in it:
            try:
                entryStat = dirEntry.stat()
                isDir = dirEntry.is_dir()
            except OSError as e:
                # Dangling symlinks and the like are listed with their own metadata
                logger.debug(f"Falling back to lstat for {dirEntry.path}: {e}")
                entryStat = dirEntry.stat(follow_symlinks=False)
                isDir = False

            name = dirEntry.name
            childPath = posixpath.join(urlPath or '/', name)
            if isDir:
                childPath += '/'

            entries.append(
                DirectoryEntry(
                    name=name,
                    displayName=displayName(name) + (os.sep if isDir else ''),
                    isDir=isDir,
                    size=entryStat.st_size,
                    humanSize=formatSize(entryStat.st_size),
                    url=quoteURLPath(childPath),
                )
            )

    return sortEntries(entries)


def archiveURL(urlPath, query, key, value=ARCHIVE_QUERY_VALUE):
    """Request URL with key=value merged into its query string, keys sorted."""
    params = dict(parse_qsl(query or '', keep_blank_values=True))
    params[key] = value
    return f"{quoteURLPath(urlPath or '/')}?{urlencode(sorted(params.items()))}"


def listingTitle(mountRoot, path):
    relPath = os.path.relpath(path, mountRoot)
    return displayName(os.path.normpath(os.path.join(os.path.basename(mountRoot), relPath)))


def renderListing(title, entries, archiveURLs=None, allowUpload=False) -> str:
    """
    Render the HTML page of a directory listing.

    Args:
        title: Page title
        entries: Sorted DirectoryEntry list
        archiveURLs: [(archiveKey, url)] shown when entries is non-empty
        allowUpload: Append the upload form
    """
    table = ''

    if entries or allowUpload:
        rows = []

        if entries:
            for key, url in archiveURLs or []:
                rows.append(ARCHIVE_ROW.format(url=html.escape(url), key=html.escape(key)))

        for entry in entries:
            if entry.isDir:
                rows.append(DIR_ROW.format(url=html.escape(entry.url), name=html.escape(entry.displayName)))
            else:
                rows.append(
                    FILE_ROW.format(
                        url=html.escape(entry.url),
                        name=html.escape(entry.displayName),
                        humanSize=html.escape(entry.humanSize),
                        size=entry.size,
                    )
                )

        if allowUpload:
            rows.append(UPLOAD_ROW)

        table = TABLE_TEMPLATE.format(rows='\n'.join(rows))

    return PAGE_TEMPLATE.format(title=html.escape(title), table=table)
