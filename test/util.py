import gzip
import lzma
import os
import pathlib
import stat

import pytest
import zstandard

from fsdbg.ArchiveEntry import ArchiveEntry
from fsdbg.EntryIndex import EntryIndex

_scriptdir = os.path.dirname(__file__)
testdir_base = pathlib.Path(_scriptdir).resolve()


def _pad(data):
    return data + b'\x00' * ((4 - len(data) % 4) % 4)


def cpio_record(name, mode, data=b'', magic=b'070701', ino=0, uid=0, gid=0,
                nlink=1, mtime=0, dev=(0, 0), rdev=(0, 0), namesize=None):
    '''Create a single "new ASCII" cpio record, including padding'''
    name_bytes = name.encode() + b'\x00'
    if namesize is None:
        namesize = len(name_bytes)
    fields = [ino, mode, uid, gid, nlink, mtime, len(data), dev[0], dev[1],
              rdev[0], rdev[1], namesize, 0]
    header = magic + b''.join(b'%08X' % f for f in fields)
    return _pad(header + name_bytes) + _pad(data)


def cpio_trailer():
    return cpio_record('TRAILER!!!', 0)


def regular(name, data=b'', perms=0o644):
    return cpio_record(name, stat.S_IFREG | perms, data)


def directory(name, perms=0o755):
    return cpio_record(name, stat.S_IFDIR | perms, nlink=2)


def symlink(name, target):
    return cpio_record(name, stat.S_IFLNK | 0o777, target.encode())


def make_cpio(*records):
    return b''.join(records) + cpio_trailer()


def compress(data, compression):
    if compression == 'gzip':
        return gzip.compress(data)
    if compression == 'xz':
        return lzma.compress(data)
    if compression == 'zstd':
        return zstandard.ZstdCompressor().compress(data)
    return data


def live_initramfs_records():
    '''records of a small but complete busybox initramfs'''
    records = [directory('.')]
    for d in ['bin', 'dev', 'proc', 'sys', 'tmp', 'mnt', 'lib', 'lib/modules',
              'rootfs', 'overlay', 'newroot', 'live-overlay']:
        records.append(directory(d))
    records.append(regular('bin/busybox', b'\x7fELF', perms=0o755))
    for applet in ['sh', 'mount', 'umount', 'mkdir', 'cat', 'ls', 'ln', 'rm',
                   'cp', 'mv', 'chmod', 'chown', 'mknod', 'find', 'echo',
                   'grep', 'sed', 'head', 'test', '[', 'sleep', 'insmod',
                   'modprobe', 'losetup', 'mount.loop', 'xz', 'gunzip',
                   'switch_root']:
        records.append(symlink(f'bin/{applet}', 'busybox'))
    records.append(regular('init', b'#!/bin/sh\n', perms=0o755))
    return records


def index_of(*entries):
    return EntryIndex.from_entries(entries)


def entry(path, mode, size=0, link_target=None):
    return ArchiveEntry(path=path, size=size, mode=mode, link_target=link_target)


@pytest.fixture
def write_archive(tmp_path):
    '''write data to a file in a temporary directory and return its path'''
    def _write(name, data):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write


@pytest.fixture
def live_initramfs(write_archive):
    return write_archive('initramfs.cpio', make_cpio(*live_initramfs_records()))
