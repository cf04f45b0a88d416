#!/usr/bin/env python3
"""
Test mounting and unmounting the CachyOS dataset layout
"""

import pytest

from conftest import FakeZFS, ok
from pool_layout import PoolLayout
from zfs_cli import ToolError

MOUNTED = ok("zpcachyos/ROOT/cos/root /mnt/zfs/root\n/dev/sda1 /mnt/zfs/root/boot\n")
UNMOUNTED = ok("/dev/nvme0n1p2 /\n")


def test_datasets_follow_config(config):
    layout = PoolLayout(FakeZFS(), 'zpcachyos', config)
    assert layout.root == 'zpcachyos/ROOT/cos/root'
    assert layout.children == ['zpcachyos/ROOT/cos/home', 'zpcachyos/ROOT/cos/varcache',
                               'zpcachyos/ROOT/cos/varlog']
    assert PoolLayout.target('/mnt', '/') == '/mnt'
    assert PoolLayout.target('/mnt', '/var/log') == '/mnt/var/log'


def test_is_mounted_ignores_case(config):
    zfs = FakeZFS()
    zfs.respond('findmnt', ok("ZPCachyOS/ROOT/cos/root /\n"))
    assert PoolLayout(zfs, 'zpcachyos', config).is_mounted()


def test_create_mountpoints(tmp_path, config):
    layout = PoolLayout(FakeZFS(), 'zpcachyos', config)
    mountpoint = tmp_path / 'root'
    assert layout.create_mountpoints(str(mountpoint))
    for sub in ('home', 'var/cache', 'var/log', 'boot'):
        assert (mountpoint / sub).is_dir()
    # an existing mountpoint is reused
    assert layout.create_mountpoints(str(mountpoint))


def test_create_mountpoints_dry_run(tmp_path, config):
    layout = PoolLayout(FakeZFS(dry_run=True), 'zpcachyos', config)
    assert layout.create_mountpoints(str(tmp_path / 'root'))
    assert not (tmp_path / 'root').exists()


def test_mount_order(config):
    zfs = FakeZFS()
    zfs.respond('findmnt', MOUNTED)
    PoolLayout(zfs, 'zpcachyos', config).mount('/mnt/zfs/root')

    assert ['zfs', 'set', 'mountpoint=/mnt/zfs/root', 'zpcachyos/ROOT/cos/root'] in zfs.calls
    assert ['zfs', 'set', 'mountpoint=/mnt/zfs/root/var/log', 'zpcachyos/ROOT/cos/varlog'] in zfs.calls
    assert zfs.index('zfs mount zpcachyos/ROOT/cos/root') < zfs.index('zfs mount zpcachyos/ROOT/cos/home')
    assert ['mount', '-v', '/dev/sda1', '/mnt/zfs/root/boot'] in zfs.calls


def test_mount_failure_detected(config):
    zfs = FakeZFS()
    zfs.respond('findmnt', UNMOUNTED)
    with pytest.raises(ToolError) as excinfo:
        PoolLayout(zfs, 'zpcachyos', config).mount('/mnt/zfs/root')
    assert str(excinfo.value) == 'Unable to mount ZFS pool.'


def test_unmount_restores_mountpoints(config):
    zfs = FakeZFS()
    zfs.respond('findmnt', UNMOUNTED)
    PoolLayout(zfs, 'zpcachyos', config).unmount('/mnt/zfs/root')

    assert zfs.index('zfs umount zpcachyos/ROOT/cos/home') < zfs.index('umount -v /mnt/zfs/root/boot')
    assert zfs.index('umount -v /mnt/zfs/root/boot') < zfs.index('zfs umount zpcachyos/ROOT/cos/root')
    assert ['zfs', 'set', 'mountpoint=/', 'zpcachyos/ROOT/cos/root'] in zfs.calls
    assert ['zfs', 'set', 'mountpoint=/home', 'zpcachyos/ROOT/cos/home'] in zfs.calls


def test_unmount_failure_detected(config):
    zfs = FakeZFS()
    zfs.respond('findmnt', MOUNTED)
    with pytest.raises(ToolError):
        PoolLayout(zfs, 'zpcachyos', config).unmount('/mnt/zfs/root')


def test_dry_run_mount_changes_nothing(config):
    zfs = FakeZFS(dry_run=True)
    zfs.respond('findmnt', UNMOUNTED)
    PoolLayout(zfs, 'zpcachyos', config).mount('/mnt/zfs/root')
    assert not zfs.ran('zfs set')
    assert not zfs.ran('zfs mount')
    assert not zfs.ran('mount')
