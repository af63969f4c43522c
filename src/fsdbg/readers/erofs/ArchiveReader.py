# fsdbg - inspect and verify boot archive images
#
# This file is part of fsdbg.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
# SPDX-License-Identifier: GPL-3.0-only

# EROFS is a read only file system, used for the root file system of
# live images. The image is not parsed here, instead dump.erofs from
# erofs-utils is used to list the contents.
#
# Depending on the version of erofs-utils the listing either contains
# "ls -l" style lines:
#
#   drwxr-xr-x   2 root root    4096 Jan  1 00:00 usr
#   lrwxrwxrwx   1 root root       7 Jan  1 00:00 bin -> usr/bin
#
# or only path names.

import pathlib
import shutil
import subprocess

from dataclasses import dataclass
from typing import Optional

from fsdbg.ArchiveEntry import ArchiveEntry, mode_from_string
from fsdbg.ArchiveReader import ArchiveReader
from fsdbg.EntryIndex import normalize_path
from fsdbg.FsdbgException import ExternalToolError, UnsupportedFormatError, \
    ArchiveNotFoundError
from fsdbg.log import log


def parse_dump_output(output):
    '''Parse the output of "dump.erofs --ls -r" into entries'''
    entries = []
    for line in output.splitlines():
        line = line.strip()
        if line == '':
            continue

        parts = line.split()
        if len(parts) >= 9:
            mode = mode_from_string(parts[0])
            name = ' '.join(parts[8:])
            link_target = None
            if parts[0].startswith('l') and ' -> ' in name:
                name, link_target = name.split(' -> ', 1)

            try:
                size = int(parts[4])
            except ValueError:
                size = 0
            try:
                nlink = int(parts[1])
            except ValueError:
                nlink = 0

            entries.append(ArchiveEntry(
                path=normalize_path(name),
                size=size,
                mode=mode,
                link_target=link_target,
                nlink=nlink,
                uid=_numeric_id(parts[2]),
                gid=_numeric_id(parts[3]),
            ))
        else:
            # plain path names, only directories can be recognized
            if line.endswith('/'):
                mode = mode_from_string('drwxr-xr-x')
            else:
                mode = mode_from_string('-rw-r--r--')
            entries.append(ArchiveEntry(path=normalize_path(line.rstrip('/')),
                                        size=0, mode=mode))
    return entries


def _numeric_id(value):
    if value.isdigit():
        return int(value)
    return 0


@dataclass
class ErofsInfo:
    uuid: Optional[str] = None
    total_blocks: int = 0
    inode_count: int = 0


def parse_erofs_info(output):
    '''Parse the superblock summary printed by dump.erofs'''
    info = ErofsInfo()
    for line in output.splitlines():
        if ':' not in line:
            continue
        key, value = line.split(':', 1)
        value = value.strip()
        if 'Filesystem UUID' in key:
            info.uuid = value
        elif 'Filesystem total blocks' in key:
            info.total_blocks = _leading_int(value)
        elif 'Filesystem inode count' in key:
            info.inode_count = _leading_int(value)
    return info


def _leading_int(value):
    fields = value.split()
    if fields and fields[0].isdigit():
        return int(fields[0])
    return 0


def run_dump_erofs(program, args, path):
    if shutil.which(program) is None:
        raise ExternalToolError(program,
            "program not found, install erofs-utils", path)

    p = subprocess.Popen([program] + args + [str(path)], stdin=subprocess.DEVNULL,
                         stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    (standard_out, standard_error) = p.communicate()

    if p.returncode != 0:
        raise ExternalToolError(program,
            standard_error.decode('utf-8', errors='replace').strip(), path)
    return standard_out.decode('utf-8', errors='replace')


class ErofsArchiveReader(ArchiveReader):
    extensions = ['.erofs']
    signatures = [
        (1024, b'\xe2\xe1\xf5\xe0')
    ]
    pretty_name = 'erofs'

    def parse(self):
        path = getattr(self.infile, 'name', None)
        if not isinstance(path, str):
            raise UnsupportedFormatError("EROFS images can only be read from a file")

        output = run_dump_erofs(self.configuration.dump_erofs, ['--ls', '-r'], path)
        for entry in parse_dump_output(output):
            self.index.insert(entry)
        log.debug(f'erofs: read {len(self.index)} entries from {path}')


def erofs_info(path, configuration):
    path = pathlib.Path(path)
    if not path.exists():
        raise ArchiveNotFoundError(path)
    output = run_dump_erofs(configuration.dump_erofs, [], path)
    return parse_erofs_info(output)
