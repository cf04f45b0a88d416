#!/usr/bin/env python3
"""
Test configuration loading and the shared CLI helpers
"""

import pytest

import zfs_cli
from zfs_cli import ToolError, confirm, format_bytes, require_value, run_tool
from zfs_commands import ZFSCommandError
from zfs_config import DEFAULTS, Config


def test_defaults_without_file(config):
    assert config.get('pool', 'name') == 'zpcachyos'
    assert config.get('ashift', 'ssd') == 13
    assert config.get('pool', 'datasets') == DEFAULTS['pool']['datasets']
    assert config.get('pool', 'unknown', 'fallback') == 'fallback'


def test_file_is_merged_over_defaults(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text("pool:\n  name: tank\n  datasets:\n    root: /\n    data: /data\n"
                    "snapshots:\n  owner_uid: 1001\n")
    config = Config(str(path))
    assert config.get('pool', 'name') == 'tank'
    assert config.get('pool', 'mountpoint') == '/mnt/zfs/root'
    # dataset maps replace the defaults instead of adding to them
    assert config.get('pool', 'datasets') == {'root': '/', 'data': '/data'}
    assert config.get('snapshots', 'owner_uid') == 1001
    assert config.get('snapshots', 'prefix') == 'initial'


def test_environment_variable_selects_file(tmp_path, monkeypatch):
    path = tmp_path / 'env.yaml'
    path.write_text("install:\n  path: /opt/bin\n")
    monkeypatch.setenv('COS_ZFS_TOOLS_CONFIG', str(path))
    assert Config().get('install', 'path') == '/opt/bin'


def test_invalid_file_is_reported(tmp_path):
    path = tmp_path / 'broken.yaml'
    path.write_text("- just\n- a list\n")
    with pytest.raises(ToolError) as excinfo:
        zfs_cli.load_config(str(path))
    assert 'Could not load configuration' in str(excinfo.value)


def test_defaults_are_not_shared(config):
    config.get('recovery', 'packages').append('extra')
    assert Config().get('recovery', 'packages') == ['linux-cachyos-headers', 'linux-cachyos-zfs']


def test_require_value():
    assert require_value(None, 'missing') is None
    assert require_value('tank', 'missing') == 'tank'
    with pytest.raises(ToolError):
        require_value('  ', 'missing')


def test_confirm(monkeypatch):
    assert confirm('Go?', assume_yes=True)
    monkeypatch.setattr('builtins.input', lambda prompt: 'Y')
    assert confirm('Go?')
    monkeypatch.setattr('builtins.input', lambda prompt: '')
    assert not confirm('Go?')

    def closed(prompt):
        raise EOFError
    monkeypatch.setattr('builtins.input', closed)
    assert not confirm('Go?')


def test_require_root(as_user):
    with pytest.raises(ToolError) as excinfo:
        zfs_cli.require_root()
    assert "root or with 'sudo'" in str(excinfo.value)


def test_run_tool_exit_codes():
    def tool_error():
        raise ToolError('boom', exit_code=3)

    def command_error():
        raise ZFSCommandError(1, 'failed')

    def interrupted():
        raise KeyboardInterrupt

    assert run_tool(lambda: None) == 0
    assert run_tool(tool_error) == 3
    assert run_tool(command_error) == 255
    assert run_tool(interrupted) == 130


def test_format_bytes():
    assert format_bytes(0) == '0 B'
    assert format_bytes(1536) == '1.50 KB'
    assert format_bytes(5 * 1024 ** 3) == '5.00 GB'
