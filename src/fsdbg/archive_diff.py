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

from dataclasses import dataclass, field


@dataclass
class ArchiveDiff:
    only_in_first: list = field(default_factory=list)
    only_in_second: list = field(default_factory=list)
    in_both: int = 0
    # (path, type in first, type in second)
    type_changed: list = field(default_factory=list)

    @property
    def identical(self):
        return not (self.only_in_first or self.only_in_second or self.type_changed)


def diff_indexes(first, second):
    '''Compare the paths of two indexes. Only the presence of paths
    and their file types are compared, not the contents.'''
    first_paths = first.paths()
    second_paths = second.paths()
    common = first_paths & second_paths

    type_changed = []
    for path in sorted(common):
        first_type = first.get(path).file_type
        second_type = second.get(path).file_type
        if first_type != second_type:
            type_changed.append((path, first_type, second_type))

    return ArchiveDiff(
        only_in_first=sorted(first_paths - second_paths),
        only_in_second=sorted(second_paths - first_paths),
        in_both=len(common),
        type_changed=type_changed,
    )
