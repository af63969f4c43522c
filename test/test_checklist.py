import io
import stat

import pytest

from util import *

from fsdbg.checklist import Checklist, CheckCategory, VerificationReport, \
    CheckResult, builtin_checklists, verify
from fsdbg.FsdbgException import InvalidArgumentError
from fsdbg.readers.cpio.ArchiveReader import CpioArchiveReader

S_REG = stat.S_IFREG | 0o644
S_EXE = stat.S_IFREG | 0o755
S_DIR = stat.S_IFDIR | 0o755
S_LNK = stat.S_IFLNK | 0o777


def checklist_from_text(text):
    return Checklist.from_yaml(io.StringIO(text))


def failures(report):
    return [(r.item, r.message) for r in report.results if not r.passed]


def test_builtin_live_initramfs_passes():
    index = CpioArchiveReader.from_bytes(make_cpio(*live_initramfs_records()))
    report = verify(index, Checklist.builtin('live-initramfs'))
    assert failures(report) == []
    assert report.is_success
    assert report.checklist_name == 'Live Initramfs'
    assert report.total == report.passed


def test_builtin_aliases():
    assert Checklist.builtin('live').name == 'Live Initramfs'
    assert Checklist.builtin('LIVE_INITRAMFS').name == 'Live Initramfs'
    assert Checklist.builtin('install').name == 'Install Initramfs'


def test_builtin_checklists():
    assert 'live-initramfs' in builtin_checklists()
    assert 'install-initramfs' in builtin_checklists()


def test_unknown_builtin():
    with pytest.raises(InvalidArgumentError, match='live-initramfs'):
        Checklist.builtin('rootfs')


def test_missing_busybox():
    records = [r for r in live_initramfs_records() if r != regular('bin/busybox', b'\x7fELF', perms=0o755)]
    index = CpioArchiveReader.from_bytes(make_cpio(*records))
    report = verify(index, Checklist.builtin('live-initramfs'))
    assert not report.is_success
    assert failures(report) == [('bin/busybox', 'Missing')]


def test_directories_and_binaries():
    index = index_of(entry('bin', S_DIR), entry('tmp', S_REG), entry('bin/ls', S_REG),
                     entry('bin/sh', S_LNK, link_target='busybox'))
    checklist = checklist_from_text('''
directories: [bin, tmp, proc]
binaries: [bin/ls, bin/sh, bin/cat]
''')
    report = verify(index, checklist)
    assert failures(report) == [
        ('tmp', 'Exists but is a regular'),
        ('proc', 'Missing'),
        ('bin/ls', 'Not executable (mode 0644)'),
        ('bin/sh', 'Exists but is not a regular file'),
        ('bin/cat', 'Missing'),
    ]
    assert report.passed == 1


def test_symlink_checks():
    index = index_of(entry('usr/bin', S_DIR), entry('bin', S_LNK, link_target='usr/bin'),
                     entry('sbin', S_LNK, link_target='usr/sbin'),
                     entry('lib', S_LNK, link_target='/usr/lib'))
    checklist = checklist_from_text('''
symlinks:
  bin: usr/bin
  sbin: usr/sbin
  lib: usr/lib
  lib64: usr/lib64
''')
    report = verify(index, checklist)
    assert failures(report) == [
        ('lib -> usr/lib', "Points to '/usr/lib' instead"),
        ('lib64 -> usr/lib64', 'Missing'),
    ]


def test_symlink_list_must_resolve():
    index = index_of(entry('usr/bin', S_DIR), entry('bin', S_LNK, link_target='usr/bin'),
                     entry('sbin', S_LNK, link_target='usr/sbin'), entry('etc', S_DIR))
    checklist = checklist_from_text('symlinks: [bin, sbin, etc]')
    report = verify(index, checklist)
    assert failures(report) == [
        ('sbin -> usr/sbin', 'Target does not exist in archive'),
        ('etc', 'Exists but is not a symlink'),
    ]


def test_forbidden():
    index = index_of(entry('usr/bin/sudo', stat.S_IFREG | 0o4755))
    checklist = checklist_from_text('forbidden: [usr/bin/sudo, bin/busybox]')
    report = verify(index, checklist)
    assert failures(report) == [('usr/bin/sudo', 'Present (must NOT exist)')]
    assert [r.category for r in report.results] == [CheckCategory.FORBIDDEN] * 2


def test_units_rules_modules_and_files():
    index = index_of(
        entry('usr/lib/systemd/system/initrd.target', S_REG),
        entry('usr/lib/udev/rules.d/60-block.rules', S_REG),
        entry('usr/lib/modules/6.1.0/kernel/fs/isofs/isofs.ko.xz', S_REG),
        entry('usr/lib/modules/6.1.0/kernel/drivers/block/loop.ko', S_REG),
        entry('etc/passwd', S_REG),
        entry('usr/share/licenses/busybox/LICENSE', S_REG),
        entry('usr/lib64/libc.so.6', S_EXE),
    )
    checklist = checklist_from_text('''
units: [initrd.target, basic.target]
udev_rules: [60-block.rules]
kernel_modules: [isofs, loop, overlay, iso]
files: [etc/passwd, etc/group, init]
licenses: [usr/share/licenses/busybox/LICENSE]
libraries: [usr/lib64/libc.so.6]
''')
    report = verify(index, checklist)
    assert failures(report) == [
        ('etc/group', 'Missing'),
        ('init', 'Missing'),
        ('basic.target', 'Missing'),
        ('module: overlay', 'Not found (check kernel config if built-in)'),
        ('module: iso', 'Not found (check kernel config if built-in)'),
    ]
    categories = {r.item: r.category for r in report.results}
    assert categories['etc/passwd'] == CheckCategory.ETC_FILE
    assert categories['init'] == CheckCategory.OTHER
    assert categories['initrd.target'] == CheckCategory.UNIT
    assert categories['60-block.rules'] == CheckCategory.UDEV_RULE
    assert categories['module: loop'] == CheckCategory.KERNEL_MODULE
    assert categories['usr/lib64/libc.so.6'] == CheckCategory.LIBRARY
    assert categories['usr/share/licenses/busybox/LICENSE'] == CheckCategory.LICENSE


def test_check_all_symlinks():
    index = index_of(entry('bin/busybox', S_EXE),
                     entry('bin/sh', S_LNK, link_target='busybox'),
                     entry('bin/vi', S_LNK, link_target='/usr/bin/vi'),
                     entry('lib', S_LNK, link_target='missing'))
    checklist = checklist_from_text('''
symlinks:
  lib: missing
check_all_symlinks: true
''')
    report = verify(index, checklist)
    # lib is only checked once
    assert failures(report) == [('bin/vi -> /usr/bin/vi', 'Target does not exist in archive')]


def test_check_all_symlinks_passes():
    index = index_of(entry('bin/busybox', S_EXE), entry('bin/sh', S_LNK, link_target='busybox'))
    report = verify(index, checklist_from_text('check_all_symlinks: true'))
    assert report.is_success
    assert report.total == 1


def test_report_by_category_order():
    report = VerificationReport('test')
    report.add(CheckResult.failing('sudo', CheckCategory.FORBIDDEN, 'Present'))
    report.add(CheckResult.passing('bin', CheckCategory.DIRECTORY))
    report.add(CheckResult.passing('busybox', CheckCategory.BINARY))
    report.add(CheckResult.passing('init', CheckCategory.BINARY))
    groups = report.by_category()
    assert [c for c, _ in groups] == [CheckCategory.BINARY, CheckCategory.DIRECTORY,
                                      CheckCategory.FORBIDDEN]
    assert [r.item for r in groups[0][1]] == ['busybox', 'init']
    assert report.passed == 3
    assert report.failed == 1
    assert report.total == 4
    assert not report.is_success


def test_empty_report_is_success():
    assert VerificationReport('empty').is_success


def test_category_names():
    assert str(CheckCategory.UNIT) == 'Systemd Units'
    assert str(CheckCategory.FORBIDDEN) == 'FORBIDDEN (must NOT exist)'


def test_paths_are_normalized():
    checklist = checklist_from_text('files: [/etc/passwd, ./init]')
    assert checklist.files == ['etc/passwd', 'init']


@pytest.mark.parametrize('text', [
    'unknown_key: [a]',
    'directories: bin',
    'directories: [1, 2]',
    'symlinks: busybox',
    'symlinks: {bin: [usr/bin]}',
    'check_all_symlinks: yes please',
    'name: [a, b]',
    '- a list',
    'directories: [bin',
])
def test_invalid_checklists(text):
    with pytest.raises(InvalidArgumentError):
        checklist_from_text(text)


def test_checklist_from_path(tmp_path):
    path = tmp_path / 'minimal.yaml'
    path.write_text('directories: [bin]\n')
    checklist = Checklist.from_path(path)
    assert checklist.name == 'minimal'
    assert checklist.directories == ['bin']
