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

import enum
import importlib
import inspect
import os
import pathlib
import pkgutil

from . import readers
from .ArchiveReader import ArchiveReader
from .FsdbgException import ArchiveNotFoundError, IoFailureError, \
    UnsupportedFormatError
from .log import log


class ArchiveFormat(enum.Enum):
    CPIO = 'cpio'
    CPIO_GZIP = 'cpio (gzip)'
    CPIO_XZ = 'cpio (xz)'
    CPIO_ZSTD = 'cpio (zstd)'
    EROFS = 'erofs'
    ISO = 'iso9660'

    def __str__(self):
        return self.value

    @property
    def reader_name(self):
        '''pretty_name of the ArchiveReader for this format'''
        if self in (ArchiveFormat.CPIO, ArchiveFormat.CPIO_GZIP,
                    ArchiveFormat.CPIO_XZ, ArchiveFormat.CPIO_ZSTD):
            return 'cpio'
        return self.value


# signatures, in the order they are tried, with their offset
signatures = [
    (ArchiveFormat.CPIO_GZIP, 0, b'\x1f\x8b'),
    (ArchiveFormat.CPIO_XZ, 0, b'\xfd\x37\x7a\x58\x5a\x00'),
    (ArchiveFormat.CPIO_ZSTD, 0, b'\x28\xb5\x2f\xfd'),
    (ArchiveFormat.CPIO, 0, b'070701'),
    (ArchiveFormat.CPIO, 0, b'070702'),
    (ArchiveFormat.ISO, 0x8001, b'CD001'),
    (ArchiveFormat.EROFS, 1024, b'\xe2\xe1\xf5\xe0'),
]

extensions = {
    '.cpio': ArchiveFormat.CPIO,
    '.img': ArchiveFormat.CPIO,
    '.erofs': ArchiveFormat.EROFS,
    '.iso': ArchiveFormat.ISO,
}

# number of bytes needed to check every signature
max_signature_length = max(offset + len(magic) for _, offset, magic in signatures)


def match_signature(data):
    for archive_format, offset, magic in signatures:
        if data[offset:offset + len(magic)] == magic:
            return archive_format
    return None


def detect_format(path):
    '''Determine the format of the archive at path, first by looking
    at the signatures and then by looking at the extension.'''
    path = pathlib.Path(path)
    try:
        with path.open('rb') as infile:
            data = infile.read(max_signature_length)
    except FileNotFoundError as e:
        raise ArchiveNotFoundError(path) from e
    except OSError as e:
        raise IoFailureError(e.strerror or str(e), path) from e

    archive_format = match_signature(data)
    if archive_format is not None:
        log.debug(f'detect_format: {path}: signature match {archive_format}')
        return archive_format

    archive_format = extensions.get(path.suffix.lower())
    if archive_format is not None:
        log.debug(f'detect_format: {path}: extension match {archive_format}')
        return archive_format

    raise UnsupportedFormatError("unsupported archive format", path)


def _get_readers_recursive(readers_root, parent_module_path):
    abs_module_path = readers_root / parent_module_path
    for m in pkgutil.iter_modules([str(abs_module_path)]):
        full_module_path = parent_module_path / m.name
        if (readers_root / full_module_path).is_dir():
            try:
                full_module_name = '.'.join(full_module_path.parts)
                module_name = f'.{full_module_name}.ArchiveReader'
                module = importlib.import_module(module_name, package='fsdbg.readers')
                for name, member in inspect.getmembers(module):
                    if inspect.isclass(member) and issubclass(member, ArchiveReader) \
                        and member != ArchiveReader:
                        yield member
            except ModuleNotFoundError as e:
                # for example when pycdlib is not installed
                log.debug(f'get_readers: cannot load {module_name}: {e}')
            yield from _get_readers_recursive(readers_root, full_module_path)


def get_readers():
    archive_readers = _get_readers_recursive(
            pathlib.Path(os.path.dirname(readers.__file__)), pathlib.Path('.'))
    return list(archive_readers)


def reader_for_format(archive_format):
    for reader in get_readers():
        if reader.pretty_name == archive_format.reader_name:
            return reader
    raise UnsupportedFormatError(f"no reader available for {archive_format}")


def open_archive(path, configuration=None):
    '''Detect the format of the archive at path, read it and return
    the frozen index.'''
    archive_format = detect_format(path)
    reader = reader_for_format(archive_format)
    return reader.open(path, configuration)
