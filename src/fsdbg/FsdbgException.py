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


class ErrorCode(enum.IntEnum):
    '''Error codes for structured error reporting, printed as E001..E010'''
    FILE_NOT_FOUND = 1
    INVALID_FORMAT = 2
    SYMLINK_BROKEN = 3
    MISSING_REQUIRED = 4
    IO_ERROR = 5
    EXTERNAL_TOOL_FAILED = 6
    PARSE_ERROR = 7
    VERIFICATION_FAILED = 8
    UNSUPPORTED_FORMAT = 9
    INVALID_ARGUMENT = 10

    def __str__(self):
        return 'E%03d' % self.value


class FsdbgException(Exception):
    code = ErrorCode.PARSE_ERROR

    def __init__(self, message, path=None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self):
        if self.path is not None:
            return f'[{self.code}] {self.message} ({self.path})'
        return f'[{self.code}] {self.message}'


class InvalidFormatError(FsdbgException):
    code = ErrorCode.INVALID_FORMAT


class UnexpectedEndOfStreamError(FsdbgException):
    code = ErrorCode.PARSE_ERROR


class IoFailureError(FsdbgException):
    code = ErrorCode.IO_ERROR


class ArchiveNotFoundError(IoFailureError):
    code = ErrorCode.FILE_NOT_FOUND

    def __init__(self, path):
        super().__init__('File not found', path)


class ExternalToolError(FsdbgException):
    code = ErrorCode.EXTERNAL_TOOL_FAILED

    def __init__(self, tool, message, path=None):
        super().__init__(f'{tool} failed: {message}', path)
        self.tool = tool


class UnsupportedFormatError(FsdbgException):
    code = ErrorCode.UNSUPPORTED_FORMAT


class InvalidArgumentError(FsdbgException):
    code = ErrorCode.INVALID_ARGUMENT
