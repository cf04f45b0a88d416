"""
Configuration for the CachyOS ZFS tools
"""

import copy
import os
from typing import Any, Dict, Optional

import yaml

CONFIG_ENV = "COS_ZFS_TOOLS_CONFIG"
DEFAULT_CONFIG_FILE = "/etc/cos-zfs-tools/config.yaml"

DEFAULTS = {
    "pool": {
        "name": "zpcachyos",
        "root_dataset": "ROOT/cos",
        # dataset -> mountpoint when the system boots normally
        "datasets": {
            "root": "/",
            "home": "/home",
            "varcache": "/var/cache",
            "varlog": "/var/log",
        },
        "mountpoint": "/mnt/zfs/root",
        "boot_device": "/dev/sda1",
    },
    "ashift": {
        "default": 12,
        "ssd": 13,
        "backup_file": "/root/.old_ashift_value",
    },
    "recovery": {
        "packages": ["linux-cachyos-headers", "linux-cachyos-zfs"],
    },
    "snapshots": {
        "prefix": "initial",
        "base_folder": "Data/Snapshots",
        "owner_uid": 1000,
        "diff_log": "/tmp/zfs-diff.log",
    },
    "install": {
        "path": "/usr/local/bin",
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "file": None,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict) and key != "datasets":
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration handler"""
    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file or os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG_FILE
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file, falling back to defaults"""
        if os.path.exists(self.config_file):
            with open(self.config_file, 'r') as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"Invalid configuration in {self.config_file}")
            return _merge(DEFAULTS, loaded)
        return copy.deepcopy(DEFAULTS)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self.config.get(section, {}).get(key, default)
