#!/usr/bin/env python3
"""
Simple CachyOS ZFS pool manager
"""

import logging
import shlex
import sys
from typing import List, Optional

from pool_layout import PoolLayout
from zfs_cli import (ToolError, build_parser, echo_arguments, load_config, print_header,
                     require_root, require_value, run_tool, show)
from zfs_commands import CommandResult, SyncZFS
from zfs_config import Config

__version__ = '0.0.1'

logger = logging.getLogger('zfs_pool_mgr')

ACTIONS = ['detect', 'status', 'history', 'mount', 'umount']


class PoolManager:
    def __init__(self, zfs: SyncZFS, config: Config, pool: str, mountpoint: str):
        self.zfs = zfs
        self.pool = pool
        self.mountpoint = mountpoint
        self.layout = PoolLayout(zfs, pool, config)

    def _report(self, cmd: List[str], run) -> Optional[CommandResult]:
        """Show a read-only command's output, or what would run in dry-run mode"""
        if self.zfs.dry_run:
            logger.info("[DRY-RUN] Should run: %s", shlex.join(cmd))
            return None
        result = run()
        show(result.stdout)
        return result

    def detect(self):
        logger.info("Searching for existing ZFS pool(s)...")
        self._report(self.zfs.commands.pool_health(), self.zfs.pool_health)
        logger.info("Done.")

    def status(self):
        logger.info("Showing ZFS pool status...")
        result = self._report(self.zfs.commands.pool_status(self.pool),
                              lambda: self.zfs.pool_status(self.pool))
        if result is not None and not result.success:
            raise ToolError(f"Could not find '{self.pool}' ZFS pool.")
        logger.info("Done.")

    def history(self):
        require_root()
        logger.info("Gathering ZFS pool history...")
        result = self._report(self.zfs.commands.pool_history(), self.zfs.pool_history)
        if result is not None and not result.success:
            raise ToolError("Unable to gather ZFS pool history.")
        logger.info("Done.")

    def mount(self):
        require_root()
        if self.layout.is_mounted():
            raise ToolError("ZFS pool already mounted!")
        self.layout.create_mountpoints(self.mountpoint)
        self.layout.mount(self.mountpoint)

    def umount(self):
        require_root()
        self.layout.unmount(self.mountpoint)


def manage_pool(args) -> int:
    config = load_config(args.config, args.debug)
    print_header("Simple ZFS pool manager for CachyOS", __version__)
    if args.debug:
        echo_arguments(args.argv)

    zfs = SyncZFS(dry_run=args.dry_run)

    pool = require_value(args.name, "Missing pool name.")
    if not pool:
        pools = zfs.pool_list()
        if not pools:
            raise ToolError("No ZFS pool found, please use '--name=' to specify it.")
        pool = pools[0]
    mountpoint = require_value(args.mountpoint, "Missing mountpoint.") or config.get('pool', 'mountpoint')

    manager = PoolManager(zfs, config, pool, mountpoint)
    getattr(manager, args.action)()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser('zfs-pool-mgr', 'Manage ZFS pools', __version__,
                          usage='%(prog)s <ACTION> [OPTIONS]')
    parser.add_argument('action', choices=ACTIONS, metavar='ACTION',
                        help='detect: search for existing pool, status: show pool status, '
                             'history: show all changes done on the pool, '
                             'mount/umount: mount or unmount the root datasets on --mountpoint')
    parser.add_argument('--name', default=None, metavar='<pool-name>',
                        help='Set pool name instead of default one.')
    parser.add_argument('--mountpoint', default=None, metavar='<mountpoint>',
                        help='Where to mount the pool (default: /mnt/zfs/root)')
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    args.argv = argv
    return run_tool(lambda: manage_pool(args))


if __name__ == '__main__':
    sys.exit(main())
