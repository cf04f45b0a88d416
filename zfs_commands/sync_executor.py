"""
Sync ZFS Executor - For use in scripts and CLI tools
Use this in: zfs_cos_recover.py, zfs_pool_mgr.py, zfs_snap_mgr.py, zfs_ssd_tune.py
"""
import logging
import re
import shlex
import subprocess
from subprocess import PIPE
from typing import List, Optional, Dict, Tuple

from packaging import version

from .builder import ZFSCommands
from .types import CommandResult

logger = logging.getLogger(__name__)

# Raw (-w) send streams appeared with native encryption in OpenZFS 0.8
RAW_SEND_MIN_VERSION = version.Version('0.8.0')


class SyncZFS:
    """
    Synchronous ZFS executor for scripts and CLI tools.

    Read-only queries always run. Commands that change the system go through
    _apply() and are only logged when dry_run is set.
    """

    def __init__(self, dry_run: bool = False):
        self.commands = ZFSCommands()
        self.dry_run = dry_run

    def _run(self, cmd: List[str], interactive: bool = False) -> CommandResult:
        """Execute command synchronously and return standardized result"""
        logger.debug("Running: %s", shlex.join(cmd))
        try:
            if interactive:
                # Child shares our terminal (prompts, pagers, progress)
                proc = subprocess.Popen(cmd, close_fds=True)
                proc.wait()
                return CommandResult(returncode=proc.returncode, stdout='', stderr='')

            proc = subprocess.Popen(
                cmd,
                stdout=PIPE,
                stderr=PIPE,
                close_fds=True
            )
            stdout, stderr = proc.communicate()
        except FileNotFoundError:
            return CommandResult(returncode=127, stdout='',
                                 stderr=f"{cmd[0]}: command not found")

        return CommandResult(
            returncode=proc.returncode,
            stdout=stdout.decode('utf-8', errors='ignore'),
            stderr=stderr.decode('utf-8', errors='ignore')
        )

    def _pipeline(self, cmds: List[List[str]], stdout=None) -> CommandResult:
        """
        Run commands chained stdout-to-stdin.
        The last command writes to stdout (a file object or our terminal).
        stderr is inherited so progress output stays visible.
        """
        logger.debug("Running: %s", ' | '.join(shlex.join(cmd) for cmd in cmds))
        procs = []
        try:
            for index, cmd in enumerate(cmds):
                last = index == len(cmds) - 1
                proc = subprocess.Popen(
                    cmd,
                    stdin=procs[-1].stdout if procs else None,
                    stdout=stdout if last else PIPE,
                    close_fds=True
                )
                if procs:
                    # Let the upstream process get SIGPIPE if we die
                    procs[-1].stdout.close()
                procs.append(proc)
        except FileNotFoundError:
            for proc in procs:
                proc.kill()
                proc.wait()
            return CommandResult(returncode=127, stdout='',
                                 stderr=f"{cmd[0]}: command not found")

        returncode = 0
        for proc in procs:
            proc.wait()
            if proc.returncode and not returncode:
                returncode = proc.returncode
        return CommandResult(returncode=returncode, stdout='', stderr='')

    def _apply(self, cmd: List[str], interactive: bool = False) -> CommandResult:
        """Execute a command that changes the system, unless in dry-run mode"""
        if self.dry_run:
            logger.info("[DRY-RUN] Should run: %s", shlex.join(cmd))
            return CommandResult(returncode=0, stdout='', stderr='')
        return self._run(cmd, interactive=interactive)

    @staticmethod
    def _names(result: CommandResult) -> List[str]:
        if result.success:
            return [line.split('\t')[0] for line in result.stdout.splitlines() if line.strip()]
        return []

    @staticmethod
    def _properties(result: CommandResult) -> Dict[str, str]:
        if result.success:
            props = {}
            for line in result.stdout.splitlines():
                parts = line.split('\t')
                if len(parts) >= 3:
                    props[parts[1]] = parts[2]
            return props
        return {}

    # ==================== POOL OPERATIONS ====================

    def pool_list(self) -> List[str]:
        """List ZFS pools"""
        cmd = self.commands.pool_list()
        return self._names(self._run(cmd))

    def pool_get_properties(self, pool: str,
                            property: str = "all") -> Dict[str, str]:
        """Get pool properties"""
        cmd = self.commands.pool_get_properties(pool, property)
        return self._properties(self._run(cmd))

    def pool_get_property(self, pool: str, property: str) -> Optional[str]:
        """Get a single pool property value, None when unavailable"""
        return self.pool_get_properties(pool, property).get(property)

    def pool_status(self, pool: str, verbose: bool = True) -> CommandResult:
        """Get pool status"""
        cmd = self.commands.pool_status(pool, verbose)
        return self._run(cmd)

    def pool_health(self, pool: Optional[str] = None) -> CommandResult:
        """Check pool health (zpool status -x)"""
        cmd = self.commands.pool_health(pool)
        return self._run(cmd)

    def pool_history(self, pool: Optional[str] = None) -> CommandResult:
        """Get pool command history"""
        cmd = self.commands.pool_history(pool)
        return self._run(cmd)

    def pool_import(self, pool: str,
                    force: bool = False,
                    mount: bool = True,
                    load_keys: bool = False,
                    properties: Optional[Dict[str, str]] = None) -> CommandResult:
        """Import pool"""
        cmd = self.commands.pool_import(pool, force, mount, load_keys, properties)
        return self._apply(cmd)

    def pool_importable(self) -> List[str]:
        """Names of exported pools that zpool import can see"""
        result = self._run(self.commands.pool_importable())
        pools = []
        if result.success:
            for line in result.stdout.splitlines():
                line = line.strip()
                if line.startswith('pool:'):
                    pools.append(line.split(':', 1)[1].strip())
        return pools

    def pool_export(self, pool: str, force: bool = False) -> CommandResult:
        """Export pool"""
        cmd = self.commands.pool_export(pool, force)
        return self._apply(cmd)

    # ==================== DATASET OPERATIONS ====================

    def dataset_list(self, dataset: Optional[str] = None) -> List[str]:
        """List ZFS datasets, returns list of dataset names"""
        cmd = self.commands.dataset_list(dataset)
        return self._names(self._run(cmd))

    def dataset_table(self, dataset: Optional[str] = None) -> CommandResult:
        """Human readable zfs list output"""
        cmd = self.commands.dataset_list(dataset, scripted=False)
        return self._run(cmd)

    def dataset_get_properties(self, dataset: str,
                               property: str = "all") -> Dict[str, str]:
        """Get dataset properties, returns dict of property: value"""
        cmd = self.commands.dataset_get_properties(dataset, property)
        return self._properties(self._run(cmd))

    def dataset_property_table(self, property: str,
                               dataset: Optional[str] = None) -> CommandResult:
        """Human readable zfs get output"""
        cmd = self.commands.dataset_get_properties(dataset, property, scripted=False)
        return self._run(cmd)

    def dataset_set_property(self, dataset: str,
                             property: str, value: str) -> CommandResult:
        """Set dataset property"""
        cmd = self.commands.dataset_set_property(dataset, property, value)
        return self._apply(cmd)

    def dataset_mount(self, dataset: str) -> CommandResult:
        """Mount a ZFS dataset"""
        cmd = self.commands.dataset_mount(dataset)
        return self._apply(cmd)

    def dataset_unmount(self, dataset: str) -> CommandResult:
        """Unmount a ZFS dataset"""
        cmd = self.commands.dataset_unmount(dataset)
        return self._apply(cmd)

    # ==================== SNAPSHOT OPERATIONS ====================

    def snapshot_create(self, dataset: str, name: str,
                        recursive: bool = False) -> CommandResult:
        """Create a snapshot"""
        cmd = self.commands.snapshot_create(dataset, name, recursive)
        return self._apply(cmd)

    def snapshot_list(self, dataset: Optional[str] = None) -> List[str]:
        """List snapshots, returns full dataset@snapshot names"""
        cmd = self.commands.snapshot_list(dataset)
        return [name for name in self._names(self._run(cmd)) if '@' in name]

    def snapshot_table(self, dataset: Optional[str] = None) -> CommandResult:
        """Human readable zfs list -t snapshot output"""
        cmd = self.commands.snapshot_list(dataset, scripted=False)
        return self._run(cmd)

    def snapshot_destroy(self, snapshot: str,
                         recursive: bool = False) -> CommandResult:
        """
        Destroy a snapshot.
        In dry-run mode zfs itself simulates the destroy (-n) and reports
        what would be removed.
        """
        cmd = self.commands.snapshot_destroy(snapshot, recursive, dry_run=self.dry_run)
        return self._run(cmd)

    def snapshot_rollback(self, snapshot: str) -> CommandResult:
        """Rollback dataset to snapshot"""
        cmd = self.commands.snapshot_rollback(snapshot)
        return self._apply(cmd)

    def snapshot_diff(self, snapshot1: str,
                      snapshot2: Optional[str] = None) -> CommandResult:
        """Compare a snapshot with a later snapshot or the live dataset"""
        cmd = self.commands.snapshot_diff(snapshot1, snapshot2)
        return self._run(cmd)

    @staticmethod
    def parse_diff(output: str) -> Tuple[List, List, List, List]:
        """
        Parse zfs diff -HF output.
        Returns (new, modified, deleted, renamed) tuples
        """
        new, modified, deleted, renamed = [], [], [], []

        for line in output.splitlines():
            args = line.split('\t')
            if len(args) < 3:
                continue

            if args[0] == '+':
                new.append((args[2], args[1]))
            elif args[0] == '-':
                deleted.append((args[2], args[1]))
            elif args[0] == 'M':
                modified.append((args[2], args[1]))
            elif args[0] == 'R' and len(args) >= 4:
                renamed.append((args[2], args[3], args[1]))

        return new, modified, deleted, renamed

    # ==================== SEND OPERATIONS ====================

    def send_estimate(self, snapshot: str,
                      from_snapshot: Optional[str] = None,
                      recursive: bool = False,
                      raw: bool = True,
                      compressed: bool = False) -> CommandResult:
        """Simulate a send (zfs send -nv)"""
        cmd = self.commands.send_estimate(snapshot, from_snapshot,
                                          recursive, raw, compressed)
        return self._run(cmd)

    @classmethod
    def parse_send_size(cls, output: str) -> Optional[int]:
        """Estimated send size in bytes from zfs send -nv output"""
        lines = [line for line in output.splitlines() if line.strip()]
        if lines:
            # Format: "total estimated size is 1.23G"
            parts = lines[-1].split()
            if len(parts) >= 2:
                try:
                    return cls._parse_size(parts[-1])
                except ValueError:
                    return None
        return None

    def send_to_file(self, snapshot: str, path: str,
                     from_snapshot: Optional[str] = None,
                     recursive: bool = False,
                     raw: bool = True,
                     compression: Optional[str] = None) -> CommandResult:
        """Write a send stream to a file, optionally through a compressor"""
        cmds = [self.commands.send_snapshot(snapshot, from_snapshot, recursive, raw)]
        if compression:
            cmds.append(self.commands.compress(compression))

        if self.dry_run:
            logger.info("[DRY-RUN] Should run: %s > %s",
                        ' | '.join(shlex.join(cmd) for cmd in cmds), path)
            return CommandResult(returncode=0, stdout='', stderr='')

        with open(path, 'wb') as out_file:
            return self._pipeline(cmds, stdout=out_file)

    def zstream_dump(self, path: str, compression: Optional[str] = None) -> CommandResult:
        """Dump a stored send stream to the terminal"""
        if compression:
            cmds = [self.commands.decompress_file(compression, path),
                    self.commands.zstream_dump()]
            return self._pipeline(cmds)
        return self._run(self.commands.zstream_dump(path), interactive=True)

    # ==================== SYSTEM OPERATIONS ====================

    def findmnt(self) -> CommandResult:
        """List mounted filesystems"""
        return self._run(self.commands.findmnt())

    def mount_device(self, device: str, target: str) -> CommandResult:
        """Mount a block device"""
        return self._apply(self.commands.mount(device, target))

    def unmount_path(self, target: str) -> CommandResult:
        """Unmount a mount point"""
        return self._apply(self.commands.umount(target))

    def chroot_run(self, root: str, command: List[str]) -> CommandResult:
        """Run a command inside an arch-chroot, attached to the terminal"""
        return self._apply(self.commands.chroot(root, command), interactive=True)

    def page(self, path: str) -> CommandResult:
        """Show a file in the pager"""
        return self._run(self.commands.pager(path), interactive=True)

    # ==================== DIAGNOSTIC OPERATIONS ====================

    def get_version(self) -> Optional[str]:
        """Get ZFS version"""
        cmd = self.commands.get_version()
        result = self._run(cmd)
        if result.success:
            return result.stdout.strip()
        return None

    def zfs_version(self) -> Optional[version.Version]:
        """Userland ZFS version, None when zfs --version is unsupported"""
        output = self.get_version()
        if not output:
            return None
        match = re.search(r'zfs-(\d+(?:\.\d+)*)', output.splitlines()[0])
        if not match:
            return None
        return version.Version(match.group(1))

    def supports_raw_send(self) -> bool:
        """Check if zfs send -w is available"""
        current = self.zfs_version()
        return current is not None and current >= RAW_SEND_MIN_VERSION

    # ==================== HELPER METHODS ====================

    @staticmethod
    def _parse_size(size_str: str) -> int:
        """Parse ZFS size string to bytes"""
        size_str = size_str.replace(',', '.')
        if size_str[-1] == 'K':
            return int(float(size_str[:-1]) * 1024)
        elif size_str[-1] == 'M':
            return int(float(size_str[:-1]) * 1024 * 1024)
        elif size_str[-1] == 'G':
            return int(float(size_str[:-1]) * 1024 * 1024 * 1024)
        elif size_str[-1] == 'T':
            return int(float(size_str[:-1]) * 1024 * 1024 * 1024 * 1024)
        else:
            return int(float(size_str))
