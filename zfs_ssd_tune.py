#!/usr/bin/env python3
"""
Simple CachyOS ZFS on SSD tuning

Re-imports the pool with 'ashift' set for SSDs and keeps the previous value
in a backup file so the change can be restored.
"""

import logging
import sys
from typing import List, Optional

from pool_layout import PoolLayout
from zfs_cli import (ToolError, build_parser, confirm, echo_arguments, load_config,
                     print_header, require_root, run_tool, show)
from zfs_commands import SyncZFS
from zfs_config import Config

__version__ = '0.0.1'

logger = logging.getLogger('zfs_ssd_tune')


class SSDTuner:
    def __init__(self, zfs: SyncZFS, config: Config, pool: str, assume_yes: bool = False):
        self.zfs = zfs
        self.pool = pool
        self.assume_yes = assume_yes
        self.ashift_default = int(config.get('ashift', 'default'))
        self.ashift_ssd = int(config.get('ashift', 'ssd'))
        self.backup_file = config.get('ashift', 'backup_file')
        self.layout = PoolLayout(zfs, pool, config)
        self.pool_imported = False

    def get_ashift_value(self) -> int:
        logger.info("Detecting current 'ashift' value...")
        value = self.zfs.pool_get_property(self.pool, 'ashift')
        if value is None or not value.isdigit():
            raise ToolError(f"Unable to detect 'ashift' value of '{self.pool}'.")
        logger.info("Current 'ashift' value: %s", value)
        return int(value)

    def check(self):
        logger.info("Checking ZFS pool(s)...")
        result = self.zfs.pool_health(self.pool)
        show(result.stdout)
        if not result.success:
            raise ToolError(f"Could not find '{self.pool}' ZFS pool.")

        if self.get_ashift_value() == self.ashift_ssd:
            logger.info("This ZFS pool is tuned for SSDs.")
        else:
            logger.info("This ZFS pool is not tuned for SSDs.")

    def _refuse_mounted(self):
        logger.info("Checking ZFS pool [%s] status...", self.pool)
        if self.layout.is_mounted():
            raise ToolError("ZFS pool already mounted!")

    def _show_status(self):
        logger.info("Checking imported ZFS pool status...")
        show(self.zfs.pool_health().stdout)
        logger.info("Gathering detailed ZFS pool status...")
        show(self.zfs.pool_status(self.pool, verbose=True).stdout)

    def _import(self, ashift: int):
        if self.layout.is_imported():
            logger.info("Exporting ZFS pool [%s] before importing it again...", self.pool)
            if not self.zfs.pool_export(self.pool).success:
                raise ToolError(f"Unable to export [{self.pool}] ZFS pool.")

        result = self.zfs.pool_import(self.pool, force=True, mount=False, load_keys=True,
                                      properties={'ashift': str(ashift)})
        if not result.success:
            logger.debug(result.stderr.strip())
            raise ToolError(f"Unable to import [{self.pool}] ZFS pool.")
        self.pool_imported = True
        if not self.zfs.dry_run:
            self._show_status()

    def export(self):
        logger.info("Exporting ZFS pool [%s]...", self.pool)
        if not self.zfs.dry_run and not self.pool_imported:
            raise ToolError("The pool must be imported first prior being exported.")
        if not self.zfs.pool_export(self.pool).success:
            raise ToolError(f"Unable to export [{self.pool}] ZFS pool.")
        self.pool_imported = False
        logger.info("Done.")

    def patch(self) -> int:
        ashift = self.get_ashift_value()
        if ashift != self.ashift_default:
            raise ToolError("This ZFS pool has been already tuned for SSDs.")
        if not confirm(f"Fix 'ashift' value to {self.ashift_ssd} for SSDs?", self.assume_yes):
            logger.info("All good, will not touch the 'ashift' value.")
            return 0

        self._refuse_mounted()

        logger.info("Saving current 'ashift' value...")
        if self.zfs.dry_run:
            logger.info("[DRY-RUN] Should write '%d' to %s", ashift, self.backup_file)
        else:
            try:
                with open(self.backup_file, 'w') as backup:
                    backup.write(str(ashift))
            except OSError as e:
                raise ToolError("Could not backup current 'ashift' value") from e

        logger.info("Importing ZFS pool [%s] with fixed 'ashift' value for SSDs...", self.pool)
        self._import(self.ashift_ssd)
        self.export()
        return 0

    def restore(self) -> int:
        self._refuse_mounted()

        logger.info("Checking 'ashift' value backup file...")
        try:
            with open(self.backup_file) as backup:
                previous = backup.read().strip()
        except FileNotFoundError:
            raise ToolError("Could not find 'ashift' backup file.")
        except OSError as e:
            raise ToolError(f"Could not read '{self.backup_file}'.") from e
        if not previous.isdigit():
            raise ToolError("Unable to get previous 'ashift' value.")

        logger.info("Importing ZFS pool [%s] with previous 'ashift' value...", self.pool)
        self._import(int(previous))
        self.export()
        return 0


def tune(args) -> int:
    config = load_config(args.config, args.debug)
    print_header("Simple CachyOS ZFS on SSD tuning script", __version__)
    if args.debug:
        echo_arguments(args.argv)

    pool = args.pool or config.get('pool', 'name')
    tuner = SSDTuner(SyncZFS(dry_run=args.dry_run), config, pool, assume_yes=args.yes)
    if args.check:
        tuner.check()
        return 0

    require_root()
    if args.patch:
        return tuner.patch()
    return tuner.restore()


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser('zfs-ssd-tune', 'Tune ZFS pool running on SSDs', __version__,
                          usage='%(prog)s [options] [pool-name]')
    parser.add_argument('pool', nargs='?', default=None,
                        help='Pool to tune (default: zpcachyos)')
    parser.add_argument('-y', '--yes', action='store_true', default=False,
                        help='Answer yes to every question.')
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument('-c', '--check', action='store_true', help='Get current state.')
    action.add_argument('-p', '--patch', action='store_true', help='Apply SSD patch.')
    action.add_argument('-r', '--restore', action='store_true', help='Restore default state.')
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    args.argv = argv
    return run_tool(lambda: tune(args))


if __name__ == '__main__':
    sys.exit(main())
