"""
ZFS Command Builder - Pure command construction
Single source of truth for the syntax of every external command the tools run
"""
from typing import List, Optional, Dict


COMPRESSORS = {
    'gzip': ['gzip', '-c'],
    'xz': ['xz', '-c'],
}

FILE_DECOMPRESSORS = {
    'gzip': ['zcat', '-c'],
    'xz': ['xzcat', '-c'],
}

COMPRESSION_SUFFIXES = {
    'gzip': '.gz',
    'xz': '.xz',
}


class ZFSCommands:
    """
    Pure command builder with no execution logic.
    All methods are static and return command arrays ready for execution.
    """

    # ==================== POOL OPERATIONS ====================

    @staticmethod
    def pool_list() -> List[str]:
        """Build zpool list command"""
        return ['zpool', 'list', '-H', '-o', 'name']

    @staticmethod
    def pool_get_properties(pool: str, property: str = "all") -> List[str]:
        """Build zpool get command"""
        return ['zpool', 'get', '-H', '-p', property, pool]

    @staticmethod
    def pool_status(pool: str, verbose: bool = True) -> List[str]:
        """Build zpool status command"""
        cmd = ['zpool', 'status']
        if verbose:
            cmd.append('-v')
        cmd.append(pool)
        return cmd

    @staticmethod
    def pool_health(pool: Optional[str] = None) -> List[str]:
        """Build zpool status -x command (only reports unhealthy pools)"""
        cmd = ['zpool', 'status', '-x']
        if pool:
            cmd.append(pool)
        return cmd

    @staticmethod
    def pool_history(pool: Optional[str] = None) -> List[str]:
        """Build zpool history command"""
        cmd = ['zpool', 'history']
        if pool:
            cmd.append(pool)
        return cmd

    @staticmethod
    def pool_import(pool: str, force: bool = False,
                    mount: bool = True, load_keys: bool = False,
                    properties: Optional[Dict[str, str]] = None) -> List[str]:
        """Build zpool import command"""
        cmd = ['zpool', 'import']

        if not mount:
            cmd.append('-N')
        if load_keys:
            cmd.append('-l')
        if force:
            cmd.append('-f')
        if properties:
            for key, value in properties.items():
                cmd.extend(['-o', f'{key}={value}'])

        cmd.append(pool)
        return cmd

    @staticmethod
    def pool_importable() -> List[str]:
        """Build zpool import command listing pools available for import"""
        return ['zpool', 'import']

    @staticmethod
    def pool_export(pool: str, force: bool = False) -> List[str]:
        """Build zpool export command"""
        cmd = ['zpool', 'export']
        if force:
            cmd.append('-f')
        cmd.append(pool)
        return cmd

    # ==================== DATASET OPERATIONS ====================

    @staticmethod
    def dataset_list(dataset: Optional[str] = None, scripted: bool = True) -> List[str]:
        """Build zfs list command"""
        cmd = ['zfs', 'list']
        if scripted:
            cmd.extend(['-H', '-o', 'name'])
        if dataset:
            cmd.extend(['-r', dataset])
        return cmd

    @staticmethod
    def dataset_get_properties(dataset: Optional[str] = None, property: str = "all",
                               scripted: bool = True) -> List[str]:
        """Build zfs get command"""
        cmd = ['zfs', 'get']
        if scripted:
            cmd.append('-H')
        cmd.append(property)
        if dataset:
            cmd.append(dataset)
        return cmd

    @staticmethod
    def dataset_set_property(dataset: str, property: str, value: str) -> List[str]:
        """Build zfs set command"""
        return ['zfs', 'set', f'{property}={value}', dataset]

    @staticmethod
    def dataset_mount(dataset: str) -> List[str]:
        """Build zfs mount command"""
        return ['zfs', 'mount', dataset]

    @staticmethod
    def dataset_unmount(dataset: str) -> List[str]:
        """Build zfs umount command"""
        return ['zfs', 'umount', dataset]

    # ==================== SNAPSHOT OPERATIONS ====================

    @staticmethod
    def snapshot_create(dataset: str, name: str, recursive: bool = False) -> List[str]:
        """Build zfs snapshot command"""
        cmd = ['zfs', 'snapshot']
        if recursive:
            cmd.append('-r')
        cmd.append(f'{dataset}@{name}')
        return cmd

    @staticmethod
    def snapshot_list(dataset: Optional[str] = None, scripted: bool = True) -> List[str]:
        """Build command to list snapshots"""
        cmd = ['zfs', 'list', '-t', 'snapshot']
        if scripted:
            cmd.extend(['-H', '-o', 'name'])
        if dataset:
            cmd.extend(['-r', dataset])
        return cmd

    @staticmethod
    def snapshot_destroy(snapshot: str, recursive: bool = False,
                         dry_run: bool = False) -> List[str]:
        """Build zfs destroy command for snapshot"""
        cmd = ['zfs', 'destroy']
        if recursive:
            cmd.append('-R')
        cmd.append('-v')
        if dry_run:
            cmd.append('-n')
        cmd.append(snapshot)
        return cmd

    @staticmethod
    def snapshot_rollback(snapshot: str) -> List[str]:
        """Build zfs rollback command"""
        return ['zfs', 'rollback', '-r', snapshot]

    @staticmethod
    def snapshot_diff(snapshot1: str, snapshot2: Optional[str] = None) -> List[str]:
        """Build zfs diff command"""
        cmd = ['zfs', 'diff', '-HF', snapshot1]
        if snapshot2:
            cmd.append(snapshot2)
        return cmd

    # ==================== SEND OPERATIONS ====================

    @staticmethod
    def send_snapshot(snapshot: str,
                      from_snapshot: Optional[str] = None,
                      recursive: bool = False,
                      raw: bool = True,
                      compressed: bool = False) -> List[str]:
        """Build zfs send command"""
        cmd = ['zfs', 'send']

        # Encryption/compression flags
        if raw:
            cmd.append('-w')
        if compressed:
            cmd.append('-c')
        if recursive:
            cmd.append('-R')

        cmd.append('-v')

        # Incremental send
        if from_snapshot:
            cmd.extend(['-I', from_snapshot])

        cmd.append(snapshot)
        return cmd

    @staticmethod
    def send_estimate(snapshot: str,
                      from_snapshot: Optional[str] = None,
                      recursive: bool = False,
                      raw: bool = True,
                      compressed: bool = False) -> List[str]:
        """Build zfs send -nv (size estimation) command"""
        cmd = ['zfs', 'send']

        if raw:
            cmd.append('-w')
        if compressed:
            cmd.append('-c')
        if recursive:
            cmd.append('-R')

        cmd.append('-nv')  # Dry-run with verbose

        if from_snapshot:
            cmd.extend(['-I', from_snapshot])

        cmd.append(snapshot)
        return cmd

    @staticmethod
    def zstream_dump(path: Optional[str] = None) -> List[str]:
        """Build zstream dump command (reads stdin when no path is given)"""
        cmd = ['zstream', 'dump']
        if path:
            cmd.append(path)
        return cmd

    @staticmethod
    def compress(type: str, level: int = 6) -> List[str]:
        """Build stdin-to-stdout compressor command"""
        if type not in COMPRESSORS:
            raise ValueError(f"Unsupported compression format: {type}")
        return COMPRESSORS[type] + [f'-{level}']

    @staticmethod
    def decompress_file(type: str, path: str) -> List[str]:
        """Build command writing the decompressed file to stdout"""
        if type not in FILE_DECOMPRESSORS:
            raise ValueError(f"Unsupported compression format: {type}")
        return FILE_DECOMPRESSORS[type] + [path]

    # ==================== SYSTEM OPERATIONS ====================

    @staticmethod
    def findmnt() -> List[str]:
        """Build findmnt command listing every mount"""
        return ['findmnt', '-rn', '-o', 'SOURCE,TARGET']

    @staticmethod
    def mount(device: str, target: str) -> List[str]:
        """Build mount command for a block device"""
        return ['mount', '-v', device, target]

    @staticmethod
    def umount(target: str) -> List[str]:
        """Build umount command"""
        return ['umount', '-v', target]

    @staticmethod
    def chroot(root: str, command: List[str]) -> List[str]:
        """Build arch-chroot command"""
        return ['arch-chroot', root] + list(command)

    @staticmethod
    def pager(path: str) -> List[str]:
        """Build less command"""
        return ['less', path]

    # ==================== DIAGNOSTIC OPERATIONS ====================

    @staticmethod
    def get_version() -> List[str]:
        """Build zfs --version command"""
        return ['zfs', '--version']
