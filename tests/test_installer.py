#!/usr/bin/env python3
"""
Test installing, removing and updating the tool launchers
"""

import os

import zfs_tools_installer
from zfs_tools_installer import TOOLS, launcher_script


def test_launcher_script():
    script = launcher_script('zfs_snap_mgr', interpreter='/usr/bin/python3')
    assert script.startswith('#!/usr/bin/python3\n')
    assert 'from zfs_snap_mgr import main' in script


def test_install(tmp_path, as_root):
    assert zfs_tools_installer.install_main(['--path', str(tmp_path), '--no-header']) == 0
    for name, module in TOOLS.items():
        launcher = tmp_path / name
        assert os.access(launcher, os.X_OK)
        assert f'from {module} import main' in launcher.read_text()


def test_install_twice(tmp_path, as_root):
    assert zfs_tools_installer.install_main(['--path', str(tmp_path)]) == 0
    assert zfs_tools_installer.install_main(['--path', str(tmp_path)]) == 255


def test_install_requires_root(tmp_path, as_user):
    assert zfs_tools_installer.install_main(['--path', str(tmp_path)]) == 255
    assert list(tmp_path.iterdir()) == []


def test_uninstall(tmp_path, as_root):
    zfs_tools_installer.install_main(['--path', str(tmp_path)])
    assert zfs_tools_installer.uninstall_main(['--path', str(tmp_path)]) == 0
    assert list(tmp_path.iterdir()) == []
    assert zfs_tools_installer.uninstall_main(['--path', str(tmp_path)]) == 255


def test_update_replaces_launchers(tmp_path, as_root):
    (tmp_path / 'zfs-snap-mgr').write_text('old')
    assert zfs_tools_installer.update_main(['--path', str(tmp_path), '--no-header']) == 0
    assert 'from zfs_snap_mgr import main' in (tmp_path / 'zfs-snap-mgr').read_text()
    assert sorted(path.name for path in tmp_path.iterdir()) == sorted(TOOLS)


def test_path_from_config(tmp_path, monkeypatch, as_root):
    target = tmp_path / 'bin'
    target.mkdir()
    config_file = tmp_path / 'config.yaml'
    config_file.write_text(f"install:\n  path: {target}\n")
    monkeypatch.setenv('COS_ZFS_TOOLS_CONFIG', str(config_file))
    assert zfs_tools_installer.install_main([]) == 0
    assert (target / 'zfs-pool-mgr').exists()
