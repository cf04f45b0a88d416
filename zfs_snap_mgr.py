#!/usr/bin/env python3
"""
Simple CachyOS ZFS snapshot manager

Lists, creates, deletes and rolls back snapshots of the first pool, stores
send streams as files inside a (usually remotely mapped) folder, dumps those
files and shows what changed since a snapshot.
"""

import logging
import os
import pwd
import shlex
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from zfs_cli import (ToolError, build_parser, confirm, echo_arguments, format_bytes,
                     load_config, print_header, require_root, require_value, run_tool,
                     short_hostname, show)
from zfs_commands import SyncZFS
from zfs_commands.builder import COMPRESSION_SUFFIXES
from zfs_config import Config

__version__ = '0.0.9'

logger = logging.getLogger('zfs_snap_mgr')

ACTIONS = ['help', 'list', 'create', 'send', 'delete', 'dump', 'diff', 'history', 'rollback']

ACTIONS_HELP = """Action:

  help                 Show this message and exit.
  list                 List existing snapshots.
  create               Create new snapshot.
  send                 Send snapshot to remote file. (Inside a remotely mapped folder only)
  delete               Delete given snapshot.
  dump                 Dump snapshot file content.
  diff                 Show differences between last snapshot and now.
  history              Show all changes done on the pool.
  rollback             Roll back the pool to given snapshot, destroying later ones.

Actions working on an existing snapshot (send, delete, dump, diff, rollback)
use the last one by default. To pick another one pass its exact name with
--name and add --no-prefix, otherwise the current date is appended to it:

  zfs-snap-mgr delete --name=initial-20230517083000 --no-prefix
"""

TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'


@dataclass
class SnapshotContext:
    """Everything the actions need to know about the pool and its snapshots"""
    pool: str
    name: str
    given_name: bool = False
    snapshots: List[str] = field(default_factory=list)
    mount_base: Optional[str] = None
    folder: Optional[str] = None

    @property
    def pool_snapshots(self) -> List[str]:
        """Snapshots of the pool's top-level dataset"""
        return [snap for snap in self.snapshots if '/' not in snap.split('@', 1)[0]]

    @property
    def count(self) -> int:
        return len(self.pool_snapshots)

    @property
    def first(self) -> Optional[str]:
        return self.pool_snapshots[0] if self.pool_snapshots else None

    @property
    def last(self) -> Optional[str]:
        return self.pool_snapshots[-1] if self.pool_snapshots else None

    @property
    def previous(self) -> Optional[str]:
        if self.count >= 2:
            return self.pool_snapshots[-2]
        return self.last

    @property
    def target(self) -> Optional[str]:
        """Snapshot an action works on: the given name or the latest one"""
        if self.given_name:
            return self.name if '@' in self.name else f"{self.pool}@{self.name}"
        return self.last


def snapshot_name(prefix: str, given: Optional[str], no_prefix: bool, now: datetime) -> str:
    """
    Name for a new snapshot.

    Without --name the configured prefix is followed by the timestamp and
    --no-prefix keeps the timestamp only. With --name the given name is
    followed by the timestamp and --no-prefix keeps the name as given.
    """
    stamp = now.strftime(TIMESTAMP_FORMAT)
    if given:
        return given if no_prefix else f"{given}-{stamp}"
    return stamp if no_prefix else f"{prefix}-{stamp}"


def owner_home(uid: int) -> Optional[str]:
    try:
        return pwd.getpwuid(uid).pw_dir
    except KeyError:
        return None


def build_context(zfs: SyncZFS, config: Config, args, now: Optional[datetime] = None) -> SnapshotContext:
    pools = zfs.pool_list()
    if not pools:
        raise ToolError("No ZFS pool found.")

    name = snapshot_name(config.get('snapshots', 'prefix'), args.name, args.no_prefix,
                         now or datetime.now())
    context = SnapshotContext(pool=pools[0], name=name, given_name=bool(args.name),
                              snapshots=zfs.snapshot_list())

    host = short_hostname()
    if args.mountpoint:
        context.mount_base = args.mountpoint
        context.folder = os.path.join(args.mountpoint, host)
    else:
        context.mount_base = owner_home(int(config.get('snapshots', 'owner_uid')))
        if context.mount_base:
            context.folder = os.path.join(context.mount_base, config.get('snapshots', 'base_folder'), host)
    return context


class SnapshotManager:
    def __init__(self, zfs: SyncZFS, config: Config, context: SnapshotContext, args):
        self.zfs = zfs
        self.ctx = context
        self.diff_log = config.get('snapshots', 'diff_log')
        self.recursive = args.recursive
        self.incremental = args.incremental
        self.save_all = args.all
        self.compress = args.compress
        self.assume_yes = args.yes

    @property
    def suffix(self) -> str:
        return COMPRESSION_SUFFIXES.get(self.compress, '') if self.compress else ''

    def _recursively(self) -> str:
        return ' recursively' if self.recursive else ''

    def _require_target(self) -> str:
        target = self.ctx.target
        if not target:
            raise ToolError(f"No snapshot found on '{self.ctx.pool}', please use '--name=' to specify it.")
        return target

    def _require_mount(self):
        if not self.ctx.mount_base or not os.path.isdir(self.ctx.mount_base):
            raise ToolError("Missing remote snapshot mountpoint, please use '--mountpoint=' to specify it.")

    def _show_matching(self, name: str):
        """Print the snapshot table header followed by rows mentioning name"""
        lines = self.zfs.snapshot_table().stdout.splitlines()
        if lines:
            show('\n'.join([lines[0]] + [line for line in lines[1:] if name in line]))

    def _dry_run_notice(self, cmd: List[str]) -> bool:
        if self.zfs.dry_run:
            logger.info("[DRY-RUN] Should run: %s", shlex.join(cmd))
        return self.zfs.dry_run

    def list(self):
        logger.info("Listing ZFS snapshots...")
        cmd = self.zfs.commands.snapshot_list(scripted=False)
        if self._dry_run_notice(cmd):
            return
        result = self.zfs.snapshot_table()
        result.raise_for_status(cmd)
        show(result.stdout)

    def history(self):
        require_root()
        logger.info("Gathering ZFS pool history...")
        if self._dry_run_notice(self.zfs.commands.pool_history()):
            return
        result = self.zfs.pool_history()
        show(result.stdout)
        if not result.success:
            raise ToolError("Unable to gather ZFS pool history.")
        logger.info("Done.")

    def create(self):
        require_root()
        snapshot = f"{self.ctx.pool}@{self.ctx.name}"
        logger.info("Creating ZFS snapshot '%s'...", snapshot)
        result = self.zfs.snapshot_create(self.ctx.pool, self.ctx.name, self.recursive)
        if not result.success:
            raise ToolError(f"Could not create '{self.ctx.name}'{self._recursively()}.")
        if not self.zfs.dry_run:
            logger.info("Snapshot created.")
            self._show_matching(self.ctx.name)

    def output_name(self, target: str) -> str:
        if self.save_all:
            kind = 'incremental' if self.incremental else 'full'
            name = f"{self.ctx.pool}@combined.{kind}.snap"
        else:
            name = f"{target}.snap"
        return name + self.suffix

    def incremental_source(self) -> Optional[str]:
        if not self.incremental:
            return None
        if not self.save_all and self.ctx.count > 2:
            return self.ctx.previous
        return self.ctx.first

    def send(self):
        target = self._require_target()
        source = self.incremental_source()
        if self.incremental and (source is None or source == target):
            raise ToolError(f"Nothing to send incrementally up to '{target}'.")

        self._require_mount()
        if not self.zfs.supports_raw_send():
            raise ToolError("Raw snapshot streams need OpenZFS 0.8 or later.")

        folder = self.ctx.folder
        if not os.path.isdir(folder):
            logger.info("Creating ZFS snapshot folder '%s'...", folder)
            if self.zfs.dry_run:
                logger.info("[DRY-RUN] Should create: %s", folder)
            else:
                try:
                    os.makedirs(folder, exist_ok=True)
                except OSError as e:
                    raise ToolError(f"Unable to create '{folder}'.") from e

        output = self.output_name(target)
        path = os.path.join(folder, output)
        logger.info("Creating ZFS snapshot file '%s'...", output)

        if self.zfs.dry_run:
            result = self.zfs.send_estimate(target, source, self.recursive)
            # older releases print the estimate on stderr
            estimate = result.stdout or result.stderr
            show(estimate)
            if not result.success:
                raise ToolError(f"Could not send '{target}'{self._recursively()}.")
            size = self.zfs.parse_send_size(estimate)
            if size is not None:
                logger.info("Estimated stream size: %s", format_bytes(size))
            logger.info("[DRY-RUN] Should write: %s", path)
            return

        try:
            result = self.zfs.send_to_file(target, path, source, self.recursive,
                                           compression=self.compress)
        except OSError as e:
            raise ToolError(f"Could not write '{path}'.") from e
        if not result.success:
            if os.path.exists(path):
                os.remove(path)
            raise ToolError(f"Could not send '{target}'{self._recursively()}.")

        logger.info("Snapshot file created.")
        self.list_folder(folder)

    def list_folder(self, folder: str):
        entries = sorted(os.scandir(folder), key=lambda entry: entry.name)
        lines = [f"{format_bytes(entry.stat().st_size):>12}  {entry.name}"
                 for entry in entries if entry.is_file()]
        show('\n'.join(lines))

    def delete(self):
        require_root()
        target = self._require_target()
        logger.info("Deleting ZFS snapshot '%s'...", target)
        result = self.zfs.snapshot_destroy(target, self.recursive)
        show(result.stdout)
        if not result.success:
            raise ToolError(f"Unable to remove '{target}'{self._recursively()}.")
        if not self.zfs.dry_run:
            logger.info("Snapshot deleted.")
            self._show_matching(target.split('@', 1)[1])

    def rollback(self):
        require_root()
        target = self._require_target()
        if not confirm(f"Roll back to '{target}' and destroy every later snapshot?", self.assume_yes):
            logger.info("Nothing done.")
            return
        logger.info("Rolling back to ZFS snapshot '%s'...", target)
        result = self.zfs.snapshot_rollback(target)
        if not result.success:
            raise ToolError(f"Unable to roll back to '{target}'.")
        logger.info("Done.")

    def dump(self):
        target = self._require_target()
        self._require_mount()
        filename = f"{target}.snap{self.suffix}"
        path = os.path.join(self.ctx.folder, filename)

        logger.info("Dumping ZFS snapshot details from '%s'...", filename)
        if not os.path.isfile(path):
            raise ToolError(f"Could not find '{filename}' in '{self.ctx.folder}'.")
        if self._dry_run_notice(self.zfs.commands.zstream_dump(path)):
            return

        result = self.zfs.zstream_dump(path, self.compress)
        if not result.success:
            raise ToolError(f"Could not dump '{path}'.")
        logger.info("Done.")

    def mounted_datasets(self) -> List[str]:
        mounted = []
        for dataset in self.zfs.dataset_list():
            mountpoint = self.zfs.dataset_get_properties(dataset, 'mountpoint').get('mountpoint')
            if mountpoint not in (None, 'none', '-'):
                mounted.append(dataset)
        return mounted

    def diff(self):
        require_root()
        target = self._require_target()
        name = target.split('@', 1)[1]

        mounted = set(self.mounted_datasets())
        snapshots = [snap for snap in self.ctx.snapshots
                     if snap.split('@', 1)[0] in mounted and snap.split('@', 1)[1] == name]
        if not snapshots:
            raise ToolError(f"No snapshot named '{name}' found on mounted datasets.")

        if self.zfs.dry_run:
            for snap in snapshots:
                logger.info("[DRY-RUN] Should run: %s", shlex.join(self.zfs.commands.snapshot_diff(snap)))
            return

        logger.info("Comparing %d snapshot(s) named '%s' with current data...", len(snapshots), name)
        lines = []
        for snap in snapshots:
            result = self.zfs.snapshot_diff(snap)
            if not result.success:
                logger.warning("Could not diff '%s': %s", snap, result.stderr.strip())
                continue
            lines.extend(line for line in result.stdout.splitlines() if line.strip())
        lines.sort()

        content = '\n'.join(lines) + '\n' if lines else ''
        try:
            with open(self.diff_log, 'w') as log:
                log.write(content)
        except OSError as e:
            raise ToolError(f"Could not write '{self.diff_log}'.") from e

        new, modified, deleted, renamed = self.zfs.parse_diff(content)
        logger.info("%d new, %d modified, %d deleted, %d renamed (saved to %s)",
                    len(new), len(modified), len(deleted), len(renamed), self.diff_log)

        if lines and sys.stdout.isatty():
            self.zfs.page(self.diff_log)
        else:
            show(content)


def manage_snapshots(args, parser) -> int:
    config = load_config(args.config, args.debug)
    if args.action == 'help':
        parser.print_help()
        return 0

    print_header("Simple ZFS snapshot manager for CachyOS", __version__, args.no_header)
    if args.debug:
        echo_arguments(args.argv)

    require_value(args.name, "Missing snapshot name.")
    require_value(args.mountpoint, "Missing remote snapshot mountpoint.")
    if require_value(args.compress, "Missing compression format.") and args.compress not in COMPRESSION_SUFFIXES:
        raise ToolError(f"Unsupported compression format: {args.compress}")

    zfs = SyncZFS(dry_run=args.dry_run)
    context = build_context(zfs, config, args)
    manager = SnapshotManager(zfs, config, context, args)
    getattr(manager, args.action)()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser('zfs-snap-mgr', 'Manage ZFS snapshots', __version__,
                          usage='%(prog)s <ACTION> [OPTIONS]')
    parser.description = 'Manage ZFS snapshots\n\n' + ACTIONS_HELP
    parser.add_argument('action', choices=ACTIONS, metavar='ACTION', help='See actions above.')
    parser.add_argument('-r', '--recursive', action='store_true', default=False,
                        help='Run <ACTION> recursively.')
    parser.add_argument('-i', '--incremental', action='store_true', default=False,
                        help='Make incremental snapshot files.')
    parser.add_argument('-y', '--yes', action='store_true', default=False,
                        help='Answer yes to every question.')
    parser.add_argument('--all', action='store_true', default=False,
                        help='Combine all snapshots in a single file.')
    parser.add_argument('--no-header', action='store_true', default=False,
                        help='Avoid printing script header.')
    parser.add_argument('--no-prefix', action='store_true', default=False,
                        help='Use date only as snapshot name.')
    parser.add_argument('--mountpoint', default=None, metavar='<remote-mapped-folder>',
                        help='Set locally mapped remote snapshot folder.')
    parser.add_argument('--name', default=None, metavar='<snapshot-name>',
                        help="Set snapshot name instead of default one. "
                             "[Use '--no-prefix' to avoid adding the current date to the name]")
    parser.add_argument('--compress', default=None, metavar='<gzip,xz>',
                        help='Compress snapshot file in given format.')
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    args.argv = argv
    return run_tool(lambda: manage_snapshots(args, parser))


if __name__ == '__main__':
    sys.exit(main())
