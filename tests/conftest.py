"""
Shared fixtures: a recording SyncZFS that never touches the system
"""

import os

import pytest

import zfs_cli
from zfs_commands import CommandResult, SyncZFS
from zfs_config import Config


def ok(stdout: str = '') -> CommandResult:
    return CommandResult(returncode=0, stdout=stdout, stderr='')


def fail(stderr: str = 'error', returncode: int = 1) -> CommandResult:
    return CommandResult(returncode=returncode, stdout='', stderr=stderr)


class FakeZFS(SyncZFS):
    """
    SyncZFS whose commands are recorded instead of executed.

    Canned results are keyed by an argv prefix, the longest matching prefix
    wins. A list of results is consumed in order, its last entry then sticks.
    Unknown commands succeed with empty output.
    """

    def __init__(self, dry_run: bool = False):
        super().__init__(dry_run=dry_run)
        self.responses = {}
        self.calls = []
        self.pipelines = []
        self.pipeline_result = ok()
        self.stream = b'stream'

    def respond(self, prefix: str, *results: CommandResult):
        self.responses[tuple(prefix.split())] = list(results)

    def _lookup(self, cmd):
        best = None
        for prefix in self.responses:
            if tuple(cmd[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return ok()
        results = self.responses[best]
        return results.pop(0) if len(results) > 1 else results[0]

    def _run(self, cmd, interactive=False):
        self.calls.append(list(cmd))
        return self._lookup(cmd)

    def _pipeline(self, cmds, stdout=None):
        self.pipelines.append([list(cmd) for cmd in cmds])
        if stdout is not None:
            stdout.write(self.stream)
        return self.pipeline_result

    def ran(self, command: str) -> bool:
        """True when a recorded call starts with the given words"""
        words = command.split()
        return any(call[:len(words)] == words for call in self.calls)

    def index(self, command: str) -> int:
        words = command.split()
        for position, call in enumerate(self.calls):
            if call[:len(words)] == words:
                return position
        raise ValueError(f"'{command}' was never run")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """No system config file and no reconfiguration of the root logger"""
    monkeypatch.setenv('COS_ZFS_TOOLS_CONFIG', str(tmp_path / 'missing.yaml'))
    monkeypatch.setattr(zfs_cli, 'setup_logging', lambda config, debug=False: None)


@pytest.fixture
def fake_zfs():
    return FakeZFS()


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(os, 'geteuid', lambda: 0)


@pytest.fixture
def as_user(monkeypatch):
    monkeypatch.setattr(os, 'geteuid', lambda: 1000)


@pytest.fixture
def use_fake(fake_zfs, monkeypatch):
    """Make a tool module build fake_zfs instead of a real executor"""
    def install(module):
        def factory(dry_run=False):
            fake_zfs.dry_run = dry_run
            return fake_zfs
        monkeypatch.setattr(module, 'SyncZFS', factory)
        return fake_zfs
    return install
