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

import io
import pathlib

from .configuration import FsdbgConfig
from .EntryIndex import EntryIndex
from .FsdbgException import FsdbgException, InvalidFormatError, \
    IoFailureError, ArchiveNotFoundError, UnexpectedEndOfStreamError


class ArchiveReader:
    """The ArchiveReader class reads an archive or file system image and
    records every entry it contains in an EntryIndex, without extracting
    any data.

    You can make an ArchiveReader by deriving a class from ArchiveReader
    and defining:

    extensions:
        a list of file extensions that are used as a fallback when the
        format cannot be recognized by its signature. Default is empty.

    signatures:
        a list of tuples of the form (offset, bytestring), e.g.
        (1024, b'\\xe2\\xe1\\xf5\\xe0'). Default is empty.

    pretty_name:
        a name of the format, used in logs and in the output of the
        command line tool. There is no default.

    and overriding the parse() method, which should call
    self.index.insert() for every entry found.
    """
    extensions = []
    signatures = []
    pretty_name = None

    def __init__(self, infile, configuration=None):
        '''Creates an ArchiveReader that reads from the binary file
        object infile, from its current position.'''
        self.infile = infile
        if configuration is None:
            configuration = FsdbgConfig()
        self.configuration = configuration
        self.index = EntryIndex()
        # parsers that decompress their input read from a different stream
        self.stream = infile

    def parse(self):
        """Override this method to implement parsing the archive data. If
        the archive cannot be parsed, raise a FsdbgException.
        """
        raise FsdbgException("%s: undefined parse method" % self.__class__.__name__)

    def read(self):
        '''Parses the archive and returns the completed, read-only index.
        Normally you do not need to override this.'''
        try:
            self.parse()
        except OSError as e:
            name = getattr(self.infile, 'name', None)
            if not isinstance(name, str):
                name = None
            raise IoFailureError(e.strerror or str(e), name) from e
        self.index.freeze()
        return self.index

    def read_exact(self, length, what):
        '''Read exactly length bytes from the input, or raise an error
        mentioning what was being read.'''
        data = self.stream.read(length)
        # decompressing streams are allowed to return short reads
        while len(data) < length:
            extra = self.stream.read(length - len(data))
            if not extra:
                raise UnexpectedEndOfStreamError(
                    f"unexpected end of stream reading {what}: wanted {length} bytes, got {len(data)}")
            data += extra
        return data

    def skip_exact(self, length, what):
        '''Skip exactly length bytes of the input without keeping them.'''
        # read data in blocks of 10 MiB
        read_size = 10485760
        bytes_left = length
        while bytes_left > 0:
            chunk = self.read_exact(min(bytes_left, read_size), what)
            bytes_left -= len(chunk)

    @classmethod
    def open(cls, path, configuration=None):
        '''Open the archive at path and return its index'''
        path = pathlib.Path(path)
        try:
            infile = path.open('rb')
        except FileNotFoundError as e:
            raise ArchiveNotFoundError(path) from e
        except OSError as e:
            raise IoFailureError(e.strerror or str(e), path) from e
        with infile:
            return cls(infile, configuration).read()

    @classmethod
    def from_bytes(cls, data, configuration=None):
        '''Parse an archive that is completely in memory'''
        return cls(io.BytesIO(data), configuration).read()

    @classmethod
    def is_valid_extension(cls, ext):
        return ext in cls.extensions


def check_condition(condition, message):
    '''semantic check function to see if condition is True.
    Raises an InvalidFormatError with message if not.
    '''
    if not condition:
        raise InvalidFormatError(message)
