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

# A checklist describes what an archive is expected to contain (and
# what it should not contain) and is written in YAML, for example:
#
# name: Live Initramfs
# directories: [bin, dev, proc]
# binaries: [bin/busybox]
# symlinks:
#   bin/sh: busybox
# forbidden: [usr/bin/sudo]
# check_all_symlinks: true
#
# Builtin checklists are stored in the "checklists" directory next to
# this file.

import enum
import os
import pathlib

from dataclasses import dataclass, field
from typing import Optional

from yaml import load
from yaml import YAMLError
try:
    from yaml import CLoader as Loader
except ImportError:
    from yaml import Loader

from .EntryIndex import normalize_path
from .FsdbgException import InvalidArgumentError, ArchiveNotFoundError, \
    IoFailureError
from .log import log

CHECKLIST_DIRECTORY = pathlib.Path(os.path.dirname(__file__)) / 'checklists'

UNIT_DIRECTORY = 'usr/lib/systemd/system'
UDEV_RULES_DIRECTORY = 'usr/lib/udev/rules.d'
MODULE_SUFFIXES = ['.ko', '.ko.xz', '.ko.gz', '.ko.zst']

# alternative names for builtin checklists
ALIASES = {
    'live': 'live-initramfs',
    'install': 'install-initramfs',
}

LIST_KEYS = ['directories', 'binaries', 'files', 'units', 'libraries',
             'kernel_modules', 'udev_rules', 'licenses', 'forbidden']


class CheckCategory(enum.Enum):
    # the order of the members is the order in which reports are printed
    BINARY = 'Binaries'
    UNIT = 'Systemd Units'
    SYMLINK = 'Symlinks'
    ETC_FILE = '/etc Files'
    UDEV_RULE = 'Udev Rules'
    DIRECTORY = 'Directories'
    LIBRARY = 'Libraries'
    KERNEL_MODULE = 'Kernel Modules'
    LICENSE = 'Licenses'
    FORBIDDEN = 'FORBIDDEN (must NOT exist)'
    OTHER = 'Other'

    def __str__(self):
        return self.value


@dataclass
class CheckResult:
    item: str
    passed: bool
    message: Optional[str] = None
    category: CheckCategory = CheckCategory.OTHER

    @classmethod
    def passing(cls, item, category):
        return cls(item, True, None, category)

    @classmethod
    def failing(cls, item, category, message):
        return cls(item, False, message, category)


@dataclass
class VerificationReport:
    checklist_name: str
    results: list = field(default_factory=list)

    def add(self, result):
        self.results.append(result)

    @property
    def passed(self):
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self):
        return sum(1 for r in self.results if not r.passed)

    @property
    def total(self):
        return len(self.results)

    @property
    def is_success(self):
        return all(r.passed for r in self.results)

    def by_category(self):
        '''Group the results per category. Categories without results
        are left out, results keep the order in which they were added.'''
        groups = []
        for category in CheckCategory:
            results = [r for r in self.results if r.category == category]
            if results:
                groups.append((category, results))
        return groups


def _string_list(value, key):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidArgumentError(f"checklist: '{key}' should be a list of strings")
    return [normalize_path(v) for v in value]


class Checklist:
    def __init__(self, name):
        self.name = name
        self.directories = []
        self.binaries = []
        self.files = []
        self.units = []
        self.libraries = []
        self.kernel_modules = []
        self.udev_rules = []
        self.licenses = []
        self.forbidden = []
        # path -> expected target, None if any target is fine
        self.symlinks = {}
        self.check_all_symlinks = False

    @classmethod
    def from_dict(cls, checklist, default_name='Checklist'):
        if checklist is None:
            checklist = {}
        if not isinstance(checklist, dict):
            raise InvalidArgumentError("checklist is not a mapping")

        known_keys = set(LIST_KEYS) | {'name', 'symlinks', 'check_all_symlinks'}
        unknown_keys = sorted(str(k) for k in checklist if k not in known_keys)
        if unknown_keys:
            raise InvalidArgumentError(f"checklist: unknown keys: {', '.join(unknown_keys)}")

        name = checklist.get('name', default_name)
        if not isinstance(name, str):
            raise InvalidArgumentError("checklist: 'name' should be a string")
        c = cls(name)

        for key in LIST_KEYS:
            setattr(c, key, _string_list(checklist.get(key), key))

        symlinks = checklist.get('symlinks')
        if symlinks is None:
            pass
        elif isinstance(symlinks, list):
            for link in _string_list(symlinks, 'symlinks'):
                c.symlinks[link] = None
        elif isinstance(symlinks, dict):
            for link, target in symlinks.items():
                if not isinstance(link, str) or not isinstance(target, str):
                    raise InvalidArgumentError(
                        "checklist: 'symlinks' should map paths to link targets")
                c.symlinks[normalize_path(link)] = target
        else:
            raise InvalidArgumentError("checklist: 'symlinks' should be a list or a mapping")

        check_all_symlinks = checklist.get('check_all_symlinks', False)
        if not isinstance(check_all_symlinks, bool):
            raise InvalidArgumentError("checklist: 'check_all_symlinks' should be true or false")
        c.check_all_symlinks = check_all_symlinks
        return c

    @classmethod
    def from_yaml(cls, checklist_file, default_name='Checklist'):
        '''Read a checklist from an open text file'''
        try:
            checklist = load(checklist_file, Loader=Loader)
        except (YAMLError, UnicodeDecodeError) as e:
            raise InvalidArgumentError(f"cannot parse checklist: {e}") from e
        return cls.from_dict(checklist, default_name)

    @classmethod
    def from_path(cls, path):
        path = pathlib.Path(path)
        try:
            checklist_file = path.open('r')
        except FileNotFoundError as e:
            raise ArchiveNotFoundError(path) from e
        except OSError as e:
            raise IoFailureError(e.strerror or str(e), path) from e
        with checklist_file:
            return cls.from_yaml(checklist_file, default_name=path.stem)

    @classmethod
    def builtin(cls, name):
        '''Load a builtin checklist by name, for example "live-initramfs"'''
        name = name.lower().replace('_', '-')
        name = ALIASES.get(name, name)
        checklist_path = CHECKLIST_DIRECTORY / f'{name}.yaml'
        if name not in builtin_checklists():
            raise InvalidArgumentError(
                f"unknown checklist {name}, available: {', '.join(builtin_checklists())}")
        return cls.from_path(checklist_path)


def builtin_checklists():
    return sorted(p.stem for p in CHECKLIST_DIRECTORY.glob('*.yaml'))


def _check_exists(index, report, path, category, item=None):
    if item is None:
        item = path
    if index.exists(path):
        report.add(CheckResult.passing(item, category))
    else:
        report.add(CheckResult.failing(item, category, 'Missing'))


def _in_directory(directory, name):
    # names with a directory component are paths in the archive
    if '/' in name:
        return name
    return f'{directory}/{name}'


def _check_directory(index, report, path):
    entry = index.get(path)
    if entry is None:
        report.add(CheckResult.failing(path, CheckCategory.DIRECTORY, 'Missing'))
    elif not entry.is_dir:
        report.add(CheckResult.failing(path, CheckCategory.DIRECTORY,
                                       f'Exists but is a {entry.file_type.value}'))
    else:
        report.add(CheckResult.passing(path, CheckCategory.DIRECTORY))


def _check_binary(index, report, path):
    entry = index.get(path)
    if entry is None:
        report.add(CheckResult.failing(path, CheckCategory.BINARY, 'Missing'))
    elif not entry.is_file:
        report.add(CheckResult.failing(path, CheckCategory.BINARY,
                                       'Exists but is not a regular file'))
    elif not entry.is_executable:
        report.add(CheckResult.failing(path, CheckCategory.BINARY,
                                       f'Not executable (mode {entry.permissions:04o})'))
    else:
        report.add(CheckResult.passing(f'{path} (executable)', CheckCategory.BINARY))


def _check_kernel_module(index, report, module):
    item = f'module: {module}'
    for entry in index.entries():
        if 'lib/modules/' not in entry.path:
            continue
        if any(entry.path.endswith(f'/{module}{suffix}') for suffix in MODULE_SUFFIXES):
            report.add(CheckResult.passing(item, CheckCategory.KERNEL_MODULE))
            return
    report.add(CheckResult.failing(item, CheckCategory.KERNEL_MODULE,
                                   'Not found (check kernel config if built-in)'))


def _check_symlink(index, report, path, expected_target):
    if expected_target is None:
        item = path
    else:
        item = f'{path} -> {expected_target}'

    entry = index.get(path)
    if entry is None:
        report.add(CheckResult.failing(item, CheckCategory.SYMLINK, 'Missing'))
    elif not entry.is_symlink:
        report.add(CheckResult.failing(item, CheckCategory.SYMLINK,
                                       'Exists but is not a symlink'))
    elif expected_target is not None and entry.link_target != expected_target:
        report.add(CheckResult.failing(item, CheckCategory.SYMLINK,
                                       f"Points to '{entry.link_target}' instead"))
    elif expected_target is None and not index.symlink_target_exists(entry):
        report.add(CheckResult.failing(f'{path} -> {entry.link_target}', CheckCategory.SYMLINK,
                                       'Target does not exist in archive'))
    else:
        report.add(CheckResult.passing(f'{path} -> {entry.link_target}', CheckCategory.SYMLINK))


def _check_forbidden(index, report, path):
    if index.exists(path):
        report.add(CheckResult.failing(path, CheckCategory.FORBIDDEN,
                                       'Present (must NOT exist)'))
    else:
        report.add(CheckResult.passing(path, CheckCategory.FORBIDDEN))


def _check_all_symlinks(index, report, already_checked):
    checked = 0
    broken = 0
    for entry in index.symlinks():
        if entry.path in already_checked:
            continue
        checked += 1
        if not index.symlink_target_exists(entry):
            broken += 1
            report.add(CheckResult.failing(f'{entry.path} -> {entry.link_target}',
                                           CheckCategory.SYMLINK,
                                           'Target does not exist in archive'))
    if broken == 0:
        report.add(CheckResult.passing(f'all symlinks resolve ({checked} checked)',
                                       CheckCategory.SYMLINK))


def verify(index, checklist):
    '''Verify the contents of an index against a checklist and return
    a VerificationReport with one result per checked item.'''
    report = VerificationReport(checklist.name)

    for path in checklist.directories:
        _check_directory(index, report, path)
    for path in checklist.binaries:
        _check_binary(index, report, path)
    for path in checklist.files:
        if path.startswith('etc/'):
            _check_exists(index, report, path, CheckCategory.ETC_FILE)
        else:
            _check_exists(index, report, path, CheckCategory.OTHER)
    for unit in checklist.units:
        _check_exists(index, report, _in_directory(UNIT_DIRECTORY, unit),
                      CheckCategory.UNIT, item=unit)
    for path in checklist.libraries:
        _check_exists(index, report, path, CheckCategory.LIBRARY)
    for module in checklist.kernel_modules:
        _check_kernel_module(index, report, module)
    for rule in checklist.udev_rules:
        _check_exists(index, report, _in_directory(UDEV_RULES_DIRECTORY, rule),
                      CheckCategory.UDEV_RULE, item=rule)
    for path in checklist.licenses:
        _check_exists(index, report, path, CheckCategory.LICENSE)
    for path, target in checklist.symlinks.items():
        _check_symlink(index, report, path, target)
    for path in checklist.forbidden:
        _check_forbidden(index, report, path)

    if checklist.check_all_symlinks:
        _check_all_symlinks(index, report, set(checklist.symlinks))

    log.debug(f'verify: {checklist.name}: {report.passed}/{report.total} checks passed')
    return report
