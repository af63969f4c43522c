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

# The entry index keeps all entries of an archive in archive order,
# together with a dictionary from normalized path to entry for lookups.
# Archives are not consistent in how they record paths ("./bin/sh",
# "/bin/sh" and "bin/sh" all occur in the wild) so all lookups are done
# on normalized paths.

from dataclasses import dataclass

from .ArchiveEntry import FileType


def normalize_path(path):
    '''Strip any leading "./" and "/" from path. The archive root
    itself ("." or "/") normalizes to the empty string.
    '''
    while True:
        if path.startswith('./'):
            path = path[2:]
        elif path.startswith('/'):
            path = path[1:]
        else:
            break
    if path == '.':
        return ''
    return path


def resolve_symlink_target(link_path, target):
    '''Lexically resolve the target of the symbolic link at link_path.

    Absolute targets are relative to the root of the archive, never to
    the host file system. Relative targets are resolved against the
    directory containing the link. ".." at the root is ignored. No other
    symbolic links are followed.
    '''
    if target.startswith('/'):
        return target.lstrip('/')

    link_path = normalize_path(link_path)
    if '/' in link_path:
        components = link_path.rsplit('/', 1)[0].split('/')
    else:
        components = []

    for part in target.split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            if components:
                components.pop()
            continue
        components.append(part)

    return '/'.join(components)


@dataclass
class ArchiveStats:
    files: int = 0
    directories: int = 0
    symlinks: int = 0
    other: int = 0
    total_size: int = 0


class EntryView:
    '''Restartable, lazily filtered view of the entries of an index,
    in archive order.'''

    def __init__(self, entries, file_type):
        self._entries = entries
        self._file_type = file_type

    def __iter__(self):
        return (e for e in self._entries if e.file_type == self._file_type)

    def __len__(self):
        return sum(1 for _ in self)


class EntryIndex:
    def __init__(self):
        self._entries = []
        self._entry_map = {}
        self._frozen = False

    @classmethod
    def from_entries(cls, entries):
        index = cls()
        for entry in entries:
            index.insert(entry)
        index.freeze()
        return index

    def insert(self, entry):
        '''Add entry to the index. Later entries with the same
        normalized path replace earlier ones for lookups, but all
        entries are kept for enumeration.'''
        if self._frozen:
            raise TypeError('entry index is read-only once it is complete')
        normalized = normalize_path(entry.path)
        if normalized != '':
            self._entry_map[normalized] = entry
        self._entries.append(entry)

    def freeze(self):
        self._frozen = True
        self._entries = tuple(self._entries)

    @property
    def frozen(self):
        return self._frozen

    def entries(self):
        return self._entries

    def exists(self, path):
        return normalize_path(path) in self._entry_map

    def get(self, path):
        return self._entry_map.get(normalize_path(path))

    def files(self):
        return EntryView(self._entries, FileType.REGULAR)

    def directories(self):
        return EntryView(self._entries, FileType.DIRECTORY)

    def symlinks(self):
        return EntryView(self._entries, FileType.SYMLINK)

    def paths(self):
        return set(self._entry_map)

    def resolve_symlink_target(self, entry):
        if not entry.is_symlink:
            return None
        return resolve_symlink_target(entry.path, entry.link_target)

    def symlink_target_exists(self, entry):
        '''Check if the immediate target of a symbolic link is recorded
        in this archive. Returns False for entries that are not
        symbolic links.'''
        resolved = self.resolve_symlink_target(entry)
        if resolved is None:
            return False
        return self.exists(resolved)

    def broken_symlinks(self):
        return [e for e in self.symlinks() if not self.symlink_target_exists(e)]

    def stats(self):
        stats = ArchiveStats()
        for entry in self._entries:
            if entry.file_type == FileType.REGULAR:
                stats.files += 1
                stats.total_size += entry.size
            elif entry.file_type == FileType.DIRECTORY:
                stats.directories += 1
            elif entry.file_type == FileType.SYMLINK:
                stats.symlinks += 1
            else:
                stats.other += 1
        return stats

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __contains__(self, path):
        return self.exists(path)
