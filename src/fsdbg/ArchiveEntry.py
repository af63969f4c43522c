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
import stat

from dataclasses import dataclass
from typing import Optional


class FileType(enum.Enum):
    REGULAR = 'regular'
    DIRECTORY = 'directory'
    SYMLINK = 'symlink'
    CHAR_DEVICE = 'char device'
    BLOCK_DEVICE = 'block device'
    FIFO = 'fifo'
    SOCKET = 'socket'
    UNKNOWN = 'unknown'

    @classmethod
    def from_mode(cls, mode):
        '''Derive the file type from the S_IFMT bits of mode'''
        return _file_types.get(stat.S_IFMT(mode), cls.UNKNOWN)


_file_types = {
    stat.S_IFREG: FileType.REGULAR,
    stat.S_IFDIR: FileType.DIRECTORY,
    stat.S_IFLNK: FileType.SYMLINK,
    stat.S_IFCHR: FileType.CHAR_DEVICE,
    stat.S_IFBLK: FileType.BLOCK_DEVICE,
    stat.S_IFIFO: FileType.FIFO,
    stat.S_IFSOCK: FileType.SOCKET,
}

# ls(1) type characters, used for tools that only print mode strings
_type_characters = {
    '-': stat.S_IFREG,
    'd': stat.S_IFDIR,
    'l': stat.S_IFLNK,
    'c': stat.S_IFCHR,
    'b': stat.S_IFBLK,
    'p': stat.S_IFIFO,
    's': stat.S_IFSOCK,
}


def mode_from_string(mode_string):
    '''Convert an ls style mode string such as "drwxr-xr-x" or
    "-rwsr-xr-x" back into mode bits. Unknown type characters leave
    the type bits empty.
    '''
    if len(mode_string) < 10:
        return 0
    mode = _type_characters.get(mode_string[0], 0)

    # (position, read bit, write bit, execute bit, special bit, special char)
    triplets = [
        (1, stat.S_IRUSR, stat.S_IWUSR, stat.S_IXUSR, stat.S_ISUID, 's'),
        (4, stat.S_IRGRP, stat.S_IWGRP, stat.S_IXGRP, stat.S_ISGID, 's'),
        (7, stat.S_IROTH, stat.S_IWOTH, stat.S_IXOTH, stat.S_ISVTX, 't'),
    ]
    for pos, read_bit, write_bit, exec_bit, special_bit, special_char in triplets:
        if mode_string[pos] == 'r':
            mode |= read_bit
        if mode_string[pos+1] == 'w':
            mode |= write_bit
        execute = mode_string[pos+2]
        if execute in ('x', special_char):
            mode |= exec_bit
        if execute in (special_char, special_char.upper()):
            mode |= special_bit
    return mode


@dataclass(frozen=True)
class ArchiveEntry:
    '''A single file system object recorded in an archive.

    The path is stored normalized (no leading "./" or "/"). The type of
    the entry is only ever derived from mode, link_target is set if and
    only if the entry is a symbolic link.
    '''
    path: str
    size: int
    mode: int
    link_target: Optional[str] = None
    uid: int = 0
    gid: int = 0
    nlink: int = 0
    mtime: int = 0
    dev_major: int = 0
    dev_minor: int = 0
    rdev_major: int = 0
    rdev_minor: int = 0

    def __post_init__(self):
        if self.file_type == FileType.SYMLINK:
            if self.link_target is None:
                object.__setattr__(self, 'link_target', '')
        elif self.link_target is not None:
            object.__setattr__(self, 'link_target', None)

    @property
    def file_type(self):
        return FileType.from_mode(self.mode)

    @property
    def is_dir(self):
        return self.file_type == FileType.DIRECTORY

    @property
    def is_file(self):
        return self.file_type == FileType.REGULAR

    @property
    def is_symlink(self):
        return self.file_type == FileType.SYMLINK

    @property
    def permissions(self):
        '''permission bits, including setuid, setgid and sticky'''
        return stat.S_IMODE(self.mode)

    @property
    def is_executable(self):
        return self.permissions & 0o111 != 0

    @property
    def mode_string(self):
        '''ls style mode string, for example "drwxr-xr-x"'''
        mode_string = stat.filemode(self.mode)
        if mode_string[0] == '?':
            return '-' + mode_string[1:]
        return mode_string

    @property
    def top_level(self):
        return self.path.split('/', 1)[0]
