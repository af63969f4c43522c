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

# ISO 9660 images (ECMA 119) are read with pycdlib. Live images use
# Rock Ridge extensions for long names, permissions and symbolic links.
# If an image has no Rock Ridge extensions the plain ISO 9660 names are
# used, with the version number (";1") removed.

import collections
import pathlib
import stat

from dataclasses import dataclass
from typing import Optional

import pycdlib
from pycdlib.pycdlibexception import PyCdlibException

from fsdbg.ArchiveEntry import ArchiveEntry
from fsdbg.ArchiveReader import ArchiveReader
from fsdbg.FsdbgException import InvalidFormatError, ArchiveNotFoundError
from fsdbg.log import log


@dataclass
class IsoInfo:
    volume_id: Optional[str] = None
    system_id: Optional[str] = None
    volume_size: int = 0
    block_size: int = 2048
    rock_ridge: bool = False
    el_torito: bool = False


def _identifier(value):
    if isinstance(value, bytes):
        value = value.decode('utf-8', errors='replace')
    return value.strip(' \x00')


def iso9660_name(file_identifier, is_dir):
    '''Strip the version number and an empty extension from a plain
    ISO 9660 file identifier'''
    name = file_identifier.decode('utf-8', errors='replace')
    if is_dir:
        return name
    name = name.split(';', 1)[0]
    if name.endswith('.'):
        name = name[:-1]
    return name


def open_iso(infile):
    iso = pycdlib.PyCdlib()
    try:
        iso.open_fp(infile)
    except PyCdlibException as e:
        raise InvalidFormatError(f"invalid ISO 9660 image: {e}") from e
    return iso


def read_iso_info(iso):
    pvd = iso.pvd
    return IsoInfo(
        volume_id=_identifier(pvd.volume_identifier),
        system_id=_identifier(pvd.system_identifier),
        volume_size=pvd.space_size,
        block_size=pvd.log_block_size,
        rock_ridge=bool(iso.has_rock_ridge()),
        el_torito=iso.eltorito_boot_catalog is not None,
    )


class Iso9660ArchiveReader(ArchiveReader):
    extensions = ['.iso']
    signatures = [
        (32769, b'CD001')
    ]
    pretty_name = 'iso9660'

    def parse(self):
        iso = open_iso(self.infile)
        try:
            self.info = read_iso_info(iso)
            self.rock_ridge = self.info.rock_ridge
            log.debug(f'iso9660: volume {self.info.volume_id}, rock ridge {self.rock_ridge}')
            self.walk(iso)
        except PyCdlibException as e:
            raise InvalidFormatError(f"invalid ISO 9660 image: {e}") from e
        finally:
            iso.close()

    def list_children(self, iso, path):
        if self.rock_ridge:
            return iso.list_children(rr_path=path)
        return iso.list_children(iso_path=path)

    def walk(self, iso):
        # breadth first, so the top level directories come first
        directories = collections.deque(['/'])
        while directories:
            parent = directories.popleft()
            for record in self.list_children(iso, parent):
                if record.is_dot() or record.is_dotdot():
                    continue
                entry = self.make_entry(record, parent)
                self.index.insert(entry)
                if entry.is_dir:
                    directories.append('/' + entry.path)

    def make_entry(self, record, parent):
        is_dir = record.is_dir()
        rock_ridge = record.rock_ridge if self.rock_ridge else None

        if rock_ridge is not None:
            name = rock_ridge.name().decode('utf-8', errors='replace')
        else:
            name = iso9660_name(record.file_ident, is_dir)

        mode = None
        nlink = 1
        uid = 0
        gid = 0
        if rock_ridge is not None:
            px_record = rock_ridge.dr_entries.px_record or rock_ridge.ce_entries.px_record
            if px_record is not None:
                mode = px_record.posix_file_mode
                nlink = px_record.posix_file_links
                uid = px_record.posix_user_id
                gid = px_record.posix_group_id

        link_target = None
        is_symlink = rock_ridge is not None and rock_ridge.is_symlink()
        if is_symlink:
            link_target = rock_ridge.symlink_path().decode('utf-8', errors='replace')

        if mode is None:
            if is_dir:
                mode = stat.S_IFDIR | 0o555
            elif is_symlink:
                mode = stat.S_IFLNK | 0o777
            else:
                mode = stat.S_IFREG | 0o444

        if parent == '/':
            path = name
        else:
            path = f'{parent[1:]}/{name}'

        return ArchiveEntry(
            path=path,
            size=0 if is_dir else record.get_data_length(),
            mode=mode,
            link_target=link_target,
            uid=uid,
            gid=gid,
            nlink=nlink,
        )


def iso_info(path):
    path = pathlib.Path(path)
    try:
        infile = path.open('rb')
    except FileNotFoundError as e:
        raise ArchiveNotFoundError(path) from e
    with infile:
        iso = open_iso(infile)
        try:
            return read_iso_info(iso)
        finally:
            iso.close()
