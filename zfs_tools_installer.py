#!/usr/bin/env python3
"""
Install, remove or update the CachyOS ZFS tools launchers
"""

import logging
import os
import sys
from typing import List, Optional

from zfs_cli import ToolError, build_parser, load_config, print_header, require_root, run_tool

__version__ = '0.0.4'

logger = logging.getLogger('zfs_tools_installer')

PROJECT_NAME = "CachyOS ZFS tools"

# launcher name -> module providing main()
TOOLS = {
    'zfs-snap-mgr': 'zfs_snap_mgr',
    'zfs-cos-recover': 'zfs_cos_recover',
    'zfs-ssd-tune': 'zfs_ssd_tune',
    'zfs-pool-mgr': 'zfs_pool_mgr',
}

LAUNCHER = """#!{interpreter}
import sys

from {module} import main

if __name__ == '__main__':
    sys.exit(main())
"""


def launcher_script(module: str, interpreter: Optional[str] = None) -> str:
    return LAUNCHER.format(interpreter=interpreter or sys.executable, module=module)


def install(path: str):
    logger.info("Installing %s in '%s'...", PROJECT_NAME, path)
    already_installed = False
    for name, module in TOOLS.items():
        dest = os.path.join(path, name)
        if os.path.exists(dest):
            already_installed = True
            continue
        try:
            with open(dest, 'w') as launcher:
                launcher.write(launcher_script(module))
            os.chmod(dest, 0o755)
        except OSError as e:
            raise ToolError(f"Could not install '{name}' in '{path}'.") from e
        logger.info("Installed '%s'", dest)

    if already_installed:
        raise ToolError(f"Already installed. Please run 'zfs-tools-uninstall' to remove installed {PROJECT_NAME}.")
    logger.info("%s installed.", PROJECT_NAME)


def uninstall(path: str, missing_ok: bool = False):
    logger.info("Removing %s from '%s'...", PROJECT_NAME, path)
    already_removed = False
    for name in TOOLS:
        dest = os.path.join(path, name)
        if not os.path.exists(dest):
            already_removed = True
            continue
        try:
            os.remove(dest)
        except OSError as e:
            raise ToolError(f"Could not remove '{name}' from '{path}'.") from e
        logger.info("Removed '%s'", dest)

    if already_removed and not missing_ok:
        raise ToolError(f"Already removed. Please run 'zfs-tools-install' to install {PROJECT_NAME}.")
    logger.info("%s removed.", PROJECT_NAME)


def _parse(prog: str, description: str, argv: Optional[List[str]]):
    parser = build_parser(prog, description, __version__)
    parser.add_argument('--no-header', action='store_true', default=False,
                        help='Avoid printing script header.')
    parser.add_argument('--path', default=None,
                        help='Install directory (default: /usr/local/bin)')
    return parser.parse_args(sys.argv[1:] if argv is None else argv)


def _install_path(args) -> str:
    config = load_config(args.config, args.debug)
    return args.path or config.get('install', 'path')


def install_main(argv: Optional[List[str]] = None) -> int:
    args = _parse('zfs-tools-install', f"Install {PROJECT_NAME}.", argv)

    def handler():
        path = _install_path(args)
        print_header(f"Simple {PROJECT_NAME} installer", __version__, args.no_header)
        require_root()
        install(path)

    return run_tool(handler)


def uninstall_main(argv: Optional[List[str]] = None) -> int:
    args = _parse('zfs-tools-uninstall', f"Remove {PROJECT_NAME}.", argv)

    def handler():
        path = _install_path(args)
        print_header(f"Simple {PROJECT_NAME} uninstaller", __version__, args.no_header)
        require_root()
        uninstall(path)

    return run_tool(handler)


def update_main(argv: Optional[List[str]] = None) -> int:
    args = _parse('zfs-tools-update', f"Update {PROJECT_NAME}.", argv)

    def handler():
        path = _install_path(args)
        print_header(f"Simple {PROJECT_NAME} updater", __version__, args.no_header)
        require_root()
        uninstall(path, missing_ok=True)
        install(path)

    return run_tool(handler)


if __name__ == '__main__':
    sys.exit(install_main())
