"""
Dataset layout of a CachyOS root pool and the mount/unmount dance
needed to work on it from a live system.
"""

import logging
import os
from collections import OrderedDict
from typing import List

from zfs_cli import ToolError, show
from zfs_commands import CommandResult, SyncZFS
from zfs_config import Config

logger = logging.getLogger(__name__)


class PoolLayout:
    """
    Datasets expected under <pool>/<root_dataset>, each with the mountpoint
    it has on the installed system, plus the boot device.
    """

    def __init__(self, zfs: SyncZFS, pool: str, config: Config):
        self.zfs = zfs
        self.pool = pool
        self.boot_device = config.get('pool', 'boot_device')
        # set once any dataset points below a temporary mountpoint
        self.mountpoints_changed = False
        root_dataset = config.get('pool', 'root_dataset').strip('/')
        self.datasets = OrderedDict(
            (f"{pool}/{root_dataset}/{name}", path)
            for name, path in config.get('pool', 'datasets').items()
        )

    @property
    def root(self) -> str:
        for dataset, path in self.datasets.items():
            if path == '/':
                return dataset
        raise ToolError(f"No dataset of [{self.pool}] is mounted on '/'.")

    @property
    def children(self) -> List[str]:
        root = self.root
        return [dataset for dataset in self.datasets if dataset != root]

    @staticmethod
    def target(mountpoint: str, path: str) -> str:
        """Where a dataset normally mounted on path lands below mountpoint"""
        relative = path.strip('/')
        return os.path.join(mountpoint, relative) if relative else mountpoint

    def is_imported(self) -> bool:
        return self.pool in self.zfs.pool_list()

    def is_mounted(self) -> bool:
        result = self.zfs.findmnt()
        return self.pool.lower() in result.stdout.lower()

    def _check(self, result: CommandResult, action: str):
        if not result.success:
            logger.warning("Could not %s: %s", action, result.stderr.strip())

    def create_mountpoints(self, mountpoint: str) -> bool:
        """Create the mountpoint tree unless it already exists"""
        if os.path.isdir(mountpoint):
            logger.debug("Mountpoint [%s] already exists.", mountpoint)
            return True

        directories = [self.target(mountpoint, path) for path in self.datasets.values()]
        directories.append(os.path.join(mountpoint, 'boot'))

        logger.info("Creating mountpoint [%s]...", mountpoint)
        if self.zfs.dry_run:
            logger.info("[DRY-RUN] Should create: %s", ' '.join(directories))
            return True

        try:
            for directory in directories:
                os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise ToolError("Unable to create mountpoint.") from e

        logger.info("Mountpoint created.")
        return True

    def mount(self, mountpoint: str):
        """Mount every dataset and the boot device below mountpoint"""
        logger.info("Mounting ZFS pool to %s...", mountpoint)

        for dataset, path in self.datasets.items():
            target = self.target(mountpoint, path)
            result = self.zfs.dataset_set_property(dataset, 'mountpoint', target)
            self._check(result, f"set mountpoint of {dataset}")
            if result.success:
                self.mountpoints_changed = True
        show(self.zfs.dataset_property_table('mountpoint').stdout)

        for dataset in [self.root] + self.children:
            self._check(self.zfs.dataset_mount(dataset), f"mount {dataset}")

        boot = os.path.join(mountpoint, 'boot')
        self._check(self.zfs.mount_device(self.boot_device, boot),
                    f"mount {self.boot_device} on {boot}")

        if not self.zfs.dry_run and not self.is_mounted():
            raise ToolError("Unable to mount ZFS pool.")
        logger.info("Done.")

    def unmount(self, mountpoint: str):
        """Unmount everything below mountpoint and restore default mountpoints"""
        logger.info("Unmounting ZFS pool from %s...", mountpoint)

        for dataset in self.children:
            self._check(self.zfs.dataset_unmount(dataset), f"unmount {dataset}")

        boot = os.path.join(mountpoint, 'boot')
        self._check(self.zfs.unmount_path(boot), f"unmount {boot}")
        self._check(self.zfs.dataset_unmount(self.root), f"unmount {self.root}")

        restored = True
        for dataset, path in self.datasets.items():
            result = self.zfs.dataset_set_property(dataset, 'mountpoint', path)
            self._check(result, f"restore mountpoint of {dataset}")
            restored = restored and result.success
        if restored:
            self.mountpoints_changed = False
        show(self.zfs.dataset_property_table('mountpoint').stdout)

        if not self.zfs.dry_run and self.is_mounted():
            raise ToolError("Unable to unmount ZFS pool.")
        logger.info("Done.")
