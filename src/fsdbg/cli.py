#!/usr/bin/env python3

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

import functools
import pathlib
import sys

import click
import rich.console
import rich.markup
import rich.table
import rich.tree

from . import FSDBG_VERSION
from .archive_diff import diff_indexes
from .checklist import Checklist, verify as verify_checklist
from .configuration import FsdbgConfig
from .FsdbgException import FsdbgException, InvalidArgumentError
from .log import log, setup_logging
from .readers.erofs.ArchiveReader import erofs_info
from .readers.iso9660.ArchiveReader import iso_info
from .signatures import ArchiveFormat, detect_format, open_archive

# exit codes
EXIT_FAILED = 1
EXIT_ERROR = 2

FILE_TYPE_CHOICES = {
    'file': 'regular',
    'dir': 'directory',
    'symlink': 'symlink',
}


def report_errors(func):
    '''Print a FsdbgException as "Error: [E00x] message" and exit
    with EXIT_ERROR'''
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except FsdbgException as e:
            log.debug(f'cli: {e!r}')
            click.echo(f'Error: {e}', err=True)
            sys.exit(EXIT_ERROR)
    return wrapper


def plain(console, text=''):
    # archive paths can contain '[', which rich would read as markup
    console.print(text, markup=False, highlight=False, soft_wrap=True)


@click.group()
@click.version_option(FSDBG_VERSION, prog_name='fsdbg')
@click.option('-c', '--config', 'config_file', type=click.File('r'),
              help='YAML configuration file')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def app(ctx, config_file, verbose):
    '''Inspect and verify initramfs archives and boot images.'''
    setup_logging(verbose)

    configuration = FsdbgConfig()
    if config_file is not None:
        # read the configuration file. This is in YAML format
        try:
            configuration = FsdbgConfig.from_yaml(config_file)
        except InvalidArgumentError as e:
            print(f"Cannot open configuration file ({e.message}), exiting", file=sys.stderr)
            sys.exit(EXIT_FAILED)
    ctx.obj = configuration


def build_info_table(path, archive_format, index, configuration):
    stats = index.stats()
    info_table = rich.table.Table('', '', title='Archive', show_lines=True,
                                  show_header=False)
    info_table.add_row('Archive', rich.markup.escape(str(path)))
    info_table.add_row('Format', str(archive_format))
    info_table.add_row('Entries', f'{stats.files} files, {stats.directories} directories, '
                                  f'{stats.symlinks} symlinks, {stats.other} other')
    if archive_format == ArchiveFormat.EROFS or archive_format == ArchiveFormat.ISO:
        info_table.add_row('Total size', f'{stats.total_size} bytes')
    else:
        info_table.add_row('Total size', f'{stats.total_size} bytes (uncompressed)')

    if archive_format == ArchiveFormat.ISO:
        info = iso_info(path)
        info_table.add_row('Volume ID', rich.markup.escape(info.volume_id or ''))
        info_table.add_row('System ID', rich.markup.escape(info.system_id or ''))
        info_table.add_row('Volume size', f'{info.volume_size} blocks of {info.block_size} bytes')
        info_table.add_row('Rock Ridge', 'yes' if info.rock_ridge else 'no')
        info_table.add_row('El Torito', 'yes' if info.el_torito else 'no')
    elif archive_format == ArchiveFormat.EROFS:
        info = erofs_info(path, configuration)
        info_table.add_row('UUID', info.uuid or '')
        info_table.add_row('Total blocks', str(info.total_blocks))
        info_table.add_row('Inodes', str(info.inode_count))
    return info_table


def build_top_level_tree(index):
    '''Build a tree of the first entry seen for every top level name,
    in archive order'''
    tree = rich.tree.Tree('Top-level structure')
    shown = set()
    for entry in index.entries():
        top = entry.top_level
        if top == '' or top in shown:
            continue
        shown.add(top)
        if entry.is_symlink:
            label = f'{entry.path} -> {entry.link_target}'
        elif entry.is_dir or entry.path != top:
            label = f'{top}/'
        else:
            label = top
        tree.add(rich.markup.escape(label))
    return tree


# fsdbg inspect <archive>
@app.command(short_help='Show a summary of an archive')
@click.argument('archive', type=click.Path(path_type=pathlib.Path))
@click.pass_obj
@report_errors
def inspect(configuration, archive):
    '''Shows the format, the number of entries and the top level
    structure of ARCHIVE.
    '''
    archive_format = detect_format(archive)
    index = open_archive(archive, configuration)

    console = rich.console.Console()
    console.print(build_info_table(archive, archive_format, index, configuration))
    console.print(build_top_level_tree(index))


# fsdbg list <archive>
@app.command(name='list', short_help='List the entries of an archive')
@click.argument('archive', type=click.Path(path_type=pathlib.Path))
@click.option('-t', '--type', 'file_type', type=click.Choice(sorted(FILE_TYPE_CHOICES)),
              help='Only list entries of this type')
@click.pass_obj
@report_errors
def list_entries(configuration, archive, file_type):
    '''Lists all entries of ARCHIVE, in archive order.
    '''
    index = open_archive(archive, configuration)

    table = rich.table.Table(title=rich.markup.escape(str(archive)), row_styles=['dim', ''])
    table.add_column('Mode')
    table.add_column('UID', justify='right')
    table.add_column('GID', justify='right')
    table.add_column('Size', justify='right')
    table.add_column('Path')

    rows = 0
    for entry in index.entries():
        if entry.path == '':
            continue
        if file_type is not None and entry.file_type.value != FILE_TYPE_CHOICES[file_type]:
            continue
        if configuration.max_rows and rows >= configuration.max_rows:
            break
        if entry.is_symlink:
            name = f'{entry.path} -> {entry.link_target}'
        else:
            name = entry.path
        table.add_row(entry.mode_string, str(entry.uid), str(entry.gid),
                      str(entry.size), rich.markup.escape(name))
        rows += 1

    console = rich.console.Console()
    console.print(table)


def print_result(console, result):
    status = '[PASS]' if result.passed else '[FAIL]'
    if result.message:
        plain(console, f'  {status} {result.item} - {result.message}')
    else:
        plain(console, f'  {status} {result.item}')


def print_report(console, report, verbose):
    plain(console, f'=== Verification: {report.checklist_name} ===')
    plain(console)

    all_pass_categories = []
    for category, results in report.by_category():
        failures = [r for r in results if not r.passed]
        pass_count = len(results) - len(failures)

        if not failures:
            all_pass_categories.append(f'{category} ({len(results)})')
            if not verbose:
                continue

        plain(console, f'{category}:')
        if verbose:
            for result in results:
                if result.passed:
                    print_result(console, result)
        for result in failures:
            print_result(console, result)
        if not verbose and pass_count > 0:
            plain(console, f'  ({pass_count} passed)')
        plain(console)

    if not verbose and all_pass_categories:
        plain(console, f'All passed: {", ".join(all_pass_categories)}')
        plain(console)

    status = 'PASS' if report.is_success else 'FAIL'
    plain(console, f'Result: {status} ({report.passed}/{report.total} checks passed)')


# fsdbg verify <archive>
@app.command(short_help='Verify an archive against a checklist')
@click.argument('archive', type=click.Path(path_type=pathlib.Path))
@click.option('-t', '--type', 'checklist_name', help='Name of a builtin checklist')
@click.option('-f', '--file', 'checklist_file', type=click.Path(path_type=pathlib.Path),
              help='Checklist file (YAML)')
@click.option('-v', '--verbose', is_flag=True, help='Also show passed checks')
@click.pass_obj
@report_errors
def verify(configuration, archive, checklist_name, checklist_file, verbose):
    '''Verifies that ARCHIVE contains what a checklist expects. Exits
    with 1 if any check failed.
    '''
    if (checklist_name is None) == (checklist_file is None):
        raise InvalidArgumentError("use either --type or --file")
    if checklist_file is not None:
        checklist = Checklist.from_path(checklist_file)
    else:
        checklist = Checklist.builtin(checklist_name)

    index = open_archive(archive, configuration)
    report = verify_checklist(index, checklist)

    console = rich.console.Console()
    print_report(console, report, verbose)
    if not report.is_success:
        sys.exit(EXIT_FAILED)


# fsdbg check-symlinks <archive>
@app.command(name='check-symlinks', short_help='Check that all symlinks resolve')
@click.argument('archive', type=click.Path(path_type=pathlib.Path))
@click.pass_obj
@report_errors
def check_symlinks(configuration, archive):
    '''Checks that the target of every symbolic link in ARCHIVE is
    in ARCHIVE as well. Exits with 1 if any link is broken.
    '''
    index = open_archive(archive, configuration)
    broken = index.broken_symlinks()
    valid = len(index.symlinks()) - len(broken)

    console = rich.console.Console()
    plain(console, f'=== Symlink Verification: {archive} ===')
    plain(console)
    plain(console, f'Valid symlinks: {valid}')
    plain(console, f'Broken symlinks: {len(broken)}')
    plain(console)
    if broken:
        for entry in broken:
            plain(console, f'  [BROKEN] {entry.path} -> {entry.link_target}')
        plain(console)
        plain(console, 'Result: FAIL')
        sys.exit(EXIT_FAILED)
    plain(console, 'Result: PASS')


def print_path_list(console, title, marker, paths, max_listed):
    plain(console)
    plain(console, title)
    if max_listed:
        shown = paths[:max_listed]
    else:
        shown = paths
    for path in shown:
        plain(console, f'  {marker} {path}')
    if len(paths) > len(shown):
        plain(console, f'  ... and {len(paths) - len(shown)} more')


# fsdbg diff <archive1> <archive2>
@app.command(short_help='Compare the contents of two archives')
@click.argument('archive1', type=click.Path(path_type=pathlib.Path))
@click.argument('archive2', type=click.Path(path_type=pathlib.Path))
@click.pass_obj
@report_errors
def diff(configuration, archive1, archive2):
    '''Compares the paths in ARCHIVE1 and ARCHIVE2.
    '''
    format1 = detect_format(archive1)
    format2 = detect_format(archive2)
    archive_diff = diff_indexes(open_archive(archive1, configuration),
                                open_archive(archive2, configuration))

    console = rich.console.Console()
    plain(console, '=== Diff ===')
    plain(console, f'Archive 1: {archive1} ({format1})')
    plain(console, f'Archive 2: {archive2} ({format2})')
    plain(console)
    plain(console, f'Files in both: {archive_diff.in_both}')
    plain(console, f'Only in archive 1: {len(archive_diff.only_in_first)}')
    plain(console, f'Only in archive 2: {len(archive_diff.only_in_second)}')
    plain(console, f'Type changed: {len(archive_diff.type_changed)}')

    if archive_diff.only_in_first:
        print_path_list(console, f'Only in {archive1}:', '-',
                        archive_diff.only_in_first, configuration.max_listed)
    if archive_diff.only_in_second:
        print_path_list(console, f'Only in {archive2}:', '+',
                        archive_diff.only_in_second, configuration.max_listed)
    if archive_diff.type_changed:
        changes = [f'{path} ({first.value} -> {second.value})'
                   for path, first, second in archive_diff.type_changed]
        print_path_list(console, 'Type changed:', '~', changes, configuration.max_listed)


if __name__ == "__main__":
    app()
