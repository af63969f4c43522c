import stat

import pytest

from util import *

from fsdbg.EntryIndex import resolve_symlink_target

S_REG = stat.S_IFREG | 0o755
S_DIR = stat.S_IFDIR | 0o755
S_LNK = stat.S_IFLNK | 0o777


@pytest.mark.parametrize('link, target, resolved', [
    ('a/b/link', '/x/y', 'x/y'),
    ('a/b/link', '../c', 'a/c'),
    ('a/b/link', '../../c', 'c'),
    ('a/b/link', '../../../../c', 'c'),
    ('a/b/link', './c', 'a/b/c'),
    ('a/b/link', 'c//d/', 'a/b/c/d'),
    ('bin/sh', 'busybox', 'bin/busybox'),
    ('sh', 'busybox', 'busybox'),
    ('./bin/sh', 'busybox', 'bin/busybox'),
    ('/bin/sh', 'busybox', 'bin/busybox'),
    ('init', '/usr/lib/systemd/systemd', 'usr/lib/systemd/systemd'),
    ('lib', '..', ''),
    ('a/link', '///', ''),
])
def test_resolve_symlink_target(link, target, resolved):
    assert resolve_symlink_target(link, target) == resolved


def test_dangling_symlink():
    index = index_of(entry('bin', S_DIR), entry('bin/sh', S_LNK, link_target='missing-file'))
    link = index.get('bin/sh')
    assert not index.symlink_target_exists(link)
    assert index.broken_symlinks() == [link]


def test_symlink_to_existing_file():
    index = index_of(entry('bin/busybox', S_REG), entry('bin/sh', S_LNK, link_target='busybox'))
    assert index.symlink_target_exists(index.get('bin/sh'))
    assert index.broken_symlinks() == []


def test_absolute_symlink_is_relative_to_archive_root():
    index = index_of(entry('usr/bin', S_DIR), entry('bin', S_LNK, link_target='/usr/bin'))
    assert index.resolve_symlink_target(index.get('bin')) == 'usr/bin'
    assert index.symlink_target_exists(index.get('bin'))


def test_only_one_hop_is_followed():
    # a -> b -> c, c does not exist, but a is not broken
    index = index_of(entry('a', S_LNK, link_target='b'), entry('b', S_LNK, link_target='c'))
    assert index.symlink_target_exists(index.get('a'))
    assert not index.symlink_target_exists(index.get('b'))


def test_symlink_to_archive_root():
    # the root is never in the index
    index = index_of(entry('.', S_DIR), entry('lib', S_LNK, link_target='..'))
    assert not index.symlink_target_exists(index.get('lib'))


def test_not_a_symlink():
    index = index_of(entry('a', S_REG))
    assert index.resolve_symlink_target(index.get('a')) is None
    assert not index.symlink_target_exists(index.get('a'))
