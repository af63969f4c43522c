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

# A description of the CPIO format can be found in section 5 of the
# cpio manpage on Linux:
# man 5 cpio
#
# Only the "new" portable ASCII format (magic 070701) and its variant
# with checksums (magic 070702) are supported. This is the format that
# the Linux kernel expects for an initramfs. The old binary and the
# old portable ASCII (odc) formats are not supported.
#
# Every record consists of a 110 byte header (the magic followed by
# thirteen 8 character hexadecimal fields: inode, mode, uid, gid, nlink,
# mtime, filesize, devmajor, devminor, rdevmajor, rdevminor, namesize
# and check), the NUL terminated file name, padding so that header and
# name together are a multiple of 4 bytes, the file data and padding to
# make the data length a multiple of 4 bytes. The archive ends with a
# record named "TRAILER!!!".
#
# Archives are not partially parsed: any error means that the whole
# archive is rejected, as a truncated initramfs is of no use.

import gzip
import lzma
import string
import zlib

from dataclasses import dataclass

import zstandard

from fsdbg.ArchiveEntry import ArchiveEntry, FileType
from fsdbg.ArchiveReader import ArchiveReader, check_condition
from fsdbg.EntryIndex import normalize_path
from fsdbg.FsdbgException import InvalidFormatError, UnexpectedEndOfStreamError
from fsdbg.log import log

HEADER_SIZE = 110
FIELD_SIZE = 8
ALIGNMENT = 4

CPIO_MAGICS = (b'070701', b'070702')
TRAILER_NAME = 'TRAILER!!!'

# header fields in the order they appear after the magic
HEADER_FIELDS = ['ino', 'mode', 'uid', 'gid', 'nlink', 'mtime', 'filesize',
                 'dev_major', 'dev_minor', 'rdev_major', 'rdev_minor',
                 'namesize', 'check']

GZIP_MAGIC = b'\x1f\x8b'
XZ_MAGIC = b'\xfd\x37\x7a\x58\x5a\x00'
ZSTD_MAGIC = b'\x28\xb5\x2f\xfd'


@dataclass
class CpioHeader:
    magic: bytes
    ino: int
    mode: int
    uid: int
    gid: int
    nlink: int
    mtime: int
    filesize: int
    dev_major: int
    dev_minor: int
    rdev_major: int
    rdev_minor: int
    namesize: int
    check: bytes

    @property
    def name_padding(self):
        return padding_for(HEADER_SIZE + self.namesize)

    @property
    def data_padding(self):
        return padding_for(self.filesize)

    @property
    def record_size(self):
        return HEADER_SIZE + self.namesize + self.name_padding + \
               self.filesize + self.data_padding


def padding_for(length):
    '''number of bytes needed to round length up to a multiple of 4'''
    return (ALIGNMENT - (length % ALIGNMENT)) % ALIGNMENT


def parse_hex_field(data, name):
    '''Parse an 8 character hexadecimal header field as an unsigned
    32 bit integer.'''
    try:
        text = data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise InvalidFormatError(f"invalid cpio header: field {name} is not valid UTF-8") from e

    # int() also accepts signs, underscores, whitespace and 0x prefixes,
    # none of which are allowed in a cpio header
    check_condition(len(text) == FIELD_SIZE and all(c in string.hexdigits for c in text),
                    f"invalid cpio header: field {name} is not hexadecimal: {text!r}")
    return int(text, 16)


def decode_header(header):
    '''Decode a 110 byte "new ASCII" cpio header'''
    check_condition(len(header) == HEADER_SIZE,
                    f"invalid cpio header: expected {HEADER_SIZE} bytes, got {len(header)}")

    magic = bytes(header[:6])
    if magic not in CPIO_MAGICS:
        raise InvalidFormatError(
            "invalid cpio magic: expected 070701/070702, got %s" % magic.decode('utf-8', errors='replace'))

    values = {}
    for i, name in enumerate(HEADER_FIELDS):
        start = 6 + i * FIELD_SIZE
        field = header[start:start + FIELD_SIZE]
        if name == 'check':
            # only meaningful for 070702 archives, not verified
            values[name] = bytes(field)
        else:
            values[name] = parse_hex_field(field, name)
    return CpioHeader(magic=magic, **values)


class CpioArchiveReader(ArchiveReader):
    extensions = ['.cpio', '.img']
    signatures = [
        (0, b'070701'),
        (0, b'070702'),
    ]
    pretty_name = 'cpio'

    def parse(self):
        self.compression = self.detect_compression()
        log.debug(f'cpio: compression {self.compression}')

        stream = self.open_stream()
        try:
            self.parse_records(stream)
        except EOFError as e:
            raise UnexpectedEndOfStreamError(f"compressed stream ended prematurely: {e}") from e
        except (gzip.BadGzipFile, zlib.error, lzma.LZMAError, zstandard.ZstdError) as e:
            raise InvalidFormatError(f"cannot decompress {self.compression} data: {e}") from e

    def peek_magic(self, length):
        '''Return the first length bytes of the input without consuming
        them. Buffered streams are peeked, other streams should be seekable.'''
        if hasattr(self.infile, 'peek'):
            return self.infile.peek(length)[:length]
        start = self.infile.tell()
        magic = self.infile.read(length)
        self.infile.seek(start)
        return magic

    def detect_compression(self):
        magic = self.peek_magic(len(XZ_MAGIC))
        if magic.startswith(GZIP_MAGIC):
            return 'gzip'
        if magic.startswith(XZ_MAGIC):
            return 'xz'
        if magic.startswith(ZSTD_MAGIC):
            return 'zstd'
        return None

    def open_stream(self):
        if self.compression == 'gzip':
            return gzip.GzipFile(fileobj=self.infile, mode='rb')
        if self.compression == 'xz':
            return lzma.LZMAFile(self.infile, mode='rb')
        if self.compression == 'zstd':
            return zstandard.ZstdDecompressor().stream_reader(self.infile)
        return self.infile

    def parse_records(self, stream):
        self.stream = stream
        while True:
            entry = self.read_record()
            if entry is None:
                break
            self.index.insert(entry)
        log.debug(f'cpio: read {len(self.index)} entries')

    def read_record(self):
        '''Read one complete record and return its entry, or None when
        the trailer has been read.'''
        header = self.read_exact(HEADER_SIZE, 'cpio header')
        h = decode_header(header)

        name_bytes = self.read_exact(h.namesize, 'file name')
        if name_bytes.endswith(b'\x00'):
            name_bytes = name_bytes[:-1]
        name = name_bytes.decode('utf-8', errors='replace')

        self.read_exact(h.name_padding, 'file name padding')

        if name == TRAILER_NAME:
            return None

        # file data is only kept for symbolic links, where it is the target
        link_target = None
        if FileType.from_mode(h.mode) == FileType.SYMLINK:
            data = self.read_exact(h.filesize, f"data of {name}")
            link_target = data.decode('utf-8', errors='replace')
            log.debug(f'cpio: symlink {name} -> {link_target}')
        else:
            self.skip_exact(h.filesize, f"data of {name}")
        self.read_exact(h.data_padding, f"data padding of {name}")

        return ArchiveEntry(
            path=normalize_path(name),
            size=h.filesize,
            mode=h.mode,
            link_target=link_target,
            uid=h.uid,
            gid=h.gid,
            nlink=h.nlink,
            mtime=h.mtime,
            dev_major=h.dev_major,
            dev_minor=h.dev_minor,
            rdev_major=h.rdev_major,
            rdev_minor=h.rdev_minor,
        )
