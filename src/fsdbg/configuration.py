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

# The configuration file is in YAML format, for example:
#
# tools:
#   dump_erofs: /usr/sbin/dump.erofs
# diff:
#   max_listed: 100
# list:
#   max_rows: 0

from yaml import load
from yaml import YAMLError
try:
    from yaml import CLoader as Loader
except ImportError:
    from yaml import Loader

from .FsdbgException import InvalidArgumentError


class FsdbgConfig:
    def __init__(self):
        self._dump_erofs = 'dump.erofs'
        self._max_listed = 50
        self._max_rows = 0

    @property
    def dump_erofs(self):
        '''name or path of the dump.erofs program from erofs-utils'''
        return self._dump_erofs

    @dump_erofs.setter
    def dump_erofs(self, program):
        self._dump_erofs = program

    @property
    def max_listed(self):
        '''maximum number of paths listed per side by the diff command'''
        return self._max_listed

    @max_listed.setter
    def max_listed(self, value):
        self._max_listed = value

    @property
    def max_rows(self):
        '''maximum number of rows printed by the list command, 0 means all'''
        return self._max_rows

    @max_rows.setter
    def max_rows(self, value):
        self._max_rows = value

    @classmethod
    def from_dict(cls, config):
        c = cls()
        if config is None:
            return c
        if not isinstance(config, dict):
            raise InvalidArgumentError("configuration is not a mapping")

        tools = _section(config, 'tools')
        if 'dump_erofs' in tools:
            c.dump_erofs = str(tools['dump_erofs'])

        diff = _section(config, 'diff')
        if 'max_listed' in diff:
            c.max_listed = _non_negative_int(diff['max_listed'], 'diff.max_listed')

        listing = _section(config, 'list')
        if 'max_rows' in listing:
            c.max_rows = _non_negative_int(listing['max_rows'], 'list.max_rows')
        return c

    @classmethod
    def from_yaml(cls, config_file):
        '''Read a configuration from an open text file'''
        try:
            config = load(config_file, Loader=Loader)
        except (YAMLError, UnicodeDecodeError) as e:
            raise InvalidArgumentError(f"cannot parse configuration file: {e}") from e
        return cls.from_dict(config)


def _section(config, name):
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise InvalidArgumentError(f"{name} is not a mapping")
    return section


def _non_negative_int(value, name):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{name} should be a non-negative integer")
    return value
