#!/usr/bin/env python3
"""
Simple CachyOS ZFS boot recovery

Imports the root pool from a live system, optionally fixes its 'ashift' value
for SSDs, mounts the expected datasets, reinstalls the kernel headers and ZFS
module from a chroot, then restores the mountpoints and exports the pool.
"""

import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from pool_layout import PoolLayout
from zfs_cli import (ToolError, build_parser, confirm, echo_arguments, load_config,
                     print_header, require_root, require_value, run_tool, show)
from zfs_commands import SyncZFS
from zfs_config import Config

__version__ = '0.0.2'

logger = logging.getLogger('zfs_cos_recover')

EXIT_IMPORT_FAILED = 3


@dataclass
class RecoveryState:
    """Progress of a recovery run, set in order as each step succeeds"""
    fix_ashift: bool = False
    pool_imported: bool = False
    mountpoint_created: bool = False
    mountpoints_changed: bool = False
    pool_mounted: bool = False


class Recovery:
    def __init__(self, zfs: SyncZFS, config: Config, pool: str, mountpoint: str,
                 assume_yes: bool = False):
        self.zfs = zfs
        self.pool = pool
        self.mountpoint = mountpoint
        self.assume_yes = assume_yes
        self.ashift_default = int(config.get('ashift', 'default'))
        self.ashift_ssd = int(config.get('ashift', 'ssd'))
        self.packages = list(config.get('recovery', 'packages'))
        self.layout = PoolLayout(zfs, pool, config)
        self.state = RecoveryState()

    def check_zfs_pool(self):
        logger.info("Checking ZFS pool(s)...")
        if self.layout.is_imported():
            result = self.zfs.pool_health(self.pool)
            show(result.stdout)
            if result.success:
                return
        elif self.pool in self.zfs.pool_importable():
            logger.info("ZFS pool [%s] is available for import.", self.pool)
            return
        raise ToolError(f"Could not find '{self.pool}' ZFS pool.")

    def get_ashift_value(self) -> Optional[int]:
        logger.info("Detecting 'ashift' value...")
        value = self.zfs.pool_get_property(self.pool, 'ashift')
        if value is None or not value.isdigit():
            logger.info("Unable to detect 'ashift' value, leaving it untouched.")
            return None

        ashift = int(value)
        logger.info("Current 'ashift' value: %d", ashift)
        if ashift == self.ashift_default:
            if confirm(f"Fix 'ashift' value to {self.ashift_ssd} for SSDs?", self.assume_yes):
                logger.info("Noted. 'ashift' value will be changed during the import.")
                self.state.fix_ashift = True
            else:
                logger.info("All good, will not touch the 'ashift' value.")
        else:
            logger.info("This ZFS pool has been already tuned for SSDs.")
        return ashift

    def show_pool_status(self):
        logger.info("Checking imported ZFS pool status...")
        show(self.zfs.pool_health().stdout)
        logger.info("Gathering detailed ZFS pool status...")
        show(self.zfs.pool_status(self.pool, verbose=True).stdout)

    def zpool_import(self):
        if self.layout.is_imported():
            if not self.state.fix_ashift:
                logger.info("ZFS pool [%s] is already imported.", self.pool)
                self.state.pool_imported = True
                self.show_pool_status()
                return
            # ashift can only be given at import time
            logger.info("Exporting ZFS pool [%s] before importing it again...", self.pool)
            if not self.zfs.pool_export(self.pool).success:
                raise ToolError(f"Unable to import [{self.pool}].", exit_code=EXIT_IMPORT_FAILED)

        properties = None
        if self.state.fix_ashift:
            logger.info("Importing ZFS pool [%s] with fixed 'ashift' value for SSDs...", self.pool)
            properties = {'ashift': str(self.ashift_ssd)}
        else:
            logger.info("Importing ZFS pool [%s]...", self.pool)

        result = self.zfs.pool_import(self.pool, force=True, mount=False,
                                      load_keys=True, properties=properties)
        if not result.success:
            logger.debug(result.stderr.strip())
            raise ToolError(f"Unable to import [{self.pool}].", exit_code=EXIT_IMPORT_FAILED)

        self.state.pool_imported = True
        self.show_pool_status()

    def list_snapshots(self):
        if self.state.pool_imported:
            logger.info("Gathering ZFS datasets...")
            show(self.zfs.dataset_table().stdout)
            logger.info("Gathering ZFS snapshots...")
            show(self.zfs.snapshot_table().stdout)

    def create_mountpoints(self):
        if self.state.pool_imported:
            self.state.mountpoint_created = self.layout.create_mountpoints(self.mountpoint)

    def zfs_mount(self):
        if self.state.mountpoint_created:
            try:
                self.layout.mount(self.mountpoint)
            finally:
                self.state.mountpoints_changed = self.layout.mountpoints_changed
            self.state.pool_mounted = True

    def zfs_unmount(self) -> Optional[ToolError]:
        """Unmount and restore the default mountpoints, returning the failure if any"""
        if not (self.state.pool_mounted or self.state.mountpoints_changed):
            return None
        try:
            self.layout.unmount(self.mountpoint)
        except ToolError as e:
            logger.warning("%s Will try to export anyway.", e)
            return e
        finally:
            self.state.mountpoints_changed = self.layout.mountpoints_changed
        self.state.pool_mounted = False
        return None

    def fix_boot(self):
        if not self.state.pool_mounted:
            raise ToolError("Can't chroot in unmounted ZFS pool.")

        logger.info("Fixing ZFS bootloader...")
        result = self.zfs.chroot_run(self.mountpoint, ['pacman', '-Sy'] + self.packages)
        if not result.success:
            raise ToolError("Unable to fix ZFS bootloader.")
        logger.info("Done.")

    def zpool_export(self):
        if not self.state.pool_imported:
            return
        if self.state.pool_mounted:
            logger.warning("ZFS pool is not unmounted. Will try to export anyway.")
        logger.info("Exporting ZFS pool [%s]...", self.pool)
        if not self.zfs.pool_export(self.pool).success:
            raise ToolError(f"Unable to export [{self.pool}] ZFS pool.")
        self.state.pool_imported = False
        logger.info("Done.")

    def run(self) -> int:
        if not confirm("This script will initialize CachyOS ZFS pool recovery process, continue?",
                       self.assume_yes):
            logger.info("No problem, see you next time ;).")
            return 0
        logger.info("All good, let's do it then!")

        logger.info("Initializing CachyOS ZFS pool recovery...")
        self.check_zfs_pool()
        self.get_ashift_value()
        self.zpool_import()
        self.list_snapshots()
        try:
            self.create_mountpoints()
            self.zfs_mount()
            self.fix_boot()
        finally:
            # Never leave the pool imported with the temporary mountpoints
            unmount_error = self.zfs_unmount()
            self.zpool_export()
        if unmount_error:
            raise unmount_error
        return 0


def recover(args) -> int:
    config = load_config(args.config, args.debug)
    print_header("Simple CachyOS ZFS boot recovery script", __version__)
    if args.debug:
        echo_arguments(args.argv)

    pool = require_value(args.pool, "Missing pool name.") or config.get('pool', 'name')
    mountpoint = require_value(args.mountpoint, "Missing mountpoint.") or config.get('pool', 'mountpoint')

    require_root()
    zfs = SyncZFS(dry_run=args.dry_run)
    recovery = Recovery(zfs, config, pool, mountpoint, assume_yes=args.yes)
    if recovery.layout.is_mounted():
        raise ToolError("ZFS pool already mounted!")
    return recovery.run()


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser('zfs-cos-recover', 'Fix ZFS pool boot issues', __version__,
                          usage='%(prog)s [options] [pool-name]')
    parser.add_argument('pool', nargs='?', default=None,
                        help='Pool to recover (default: zpcachyos)')
    parser.add_argument('-y', '--yes', action='store_true', default=False,
                        help='Answer yes to every question.')
    parser.add_argument('--mountpoint', default=None,
                        help='Where to mount the pool (default: /mnt/zfs/root)')
    args = parser.parse_args(argv)
    args.argv = argv
    return run_tool(lambda: recover(args))


if __name__ == '__main__':
    sys.exit(main())
