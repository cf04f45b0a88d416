"""
ZFS Commands Package - Command layer shared by the CachyOS ZFS tools

This package provides a unified interface for ZFS command execution with:
- Single source of truth for command construction (builder.py)
- Sync executor with dry-run support for the CLI tools (SyncZFS)
- Consistent error handling (CommandResult)

Usage:
    from zfs_commands import SyncZFS
    zfs = SyncZFS(dry_run=True)
    result = zfs.pool_import('zpcachyos', force=True, mount=False)
"""

from .sync_executor import SyncZFS
from .builder import ZFSCommands
from .types import CommandResult, ZFSCommandError

__all__ = [
    'SyncZFS',
    'ZFSCommands',
    'CommandResult',
    'ZFSCommandError',
]

__version__ = '0.0.4'
