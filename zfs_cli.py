"""
Command-line plumbing shared by the CachyOS ZFS tools:
logging setup, error reporting, privilege checks and prompts.
"""

import argparse
import logging
import math
import os
import socket
import sys
from typing import Callable, List, Optional

import yaml

from zfs_commands import ZFSCommandError
from zfs_config import Config

logger = logging.getLogger(__name__)

DISCLAIMER = "Disclaimer:\n\n /!\\ This script is still experimental so use it with caution. /!\\"


class ToolError(Exception):
    """Fatal error: reported on stderr, the tool exits with exit_code"""
    def __init__(self, message: str, exit_code: int = 255):
        self.exit_code = exit_code
        super().__init__(message)


def setup_logging(config: Config, debug: bool = False):
    """Configure root logging from the 'logging' config section"""
    level = logging.DEBUG if debug else getattr(logging, str(config.get('logging', 'level', 'INFO')).upper(), logging.INFO)
    handlers = [logging.StreamHandler(sys.stderr)]
    log_file = config.get('logging', 'file')
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=config.get('logging', 'format'),
        handlers=handlers,
        force=True
    )


def load_config(config_file: Optional[str], debug: bool = False) -> Config:
    """Load the configuration and set up logging from it"""
    try:
        config = Config(config_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ToolError(f"Could not load configuration: {e}")
    setup_logging(config, debug)
    return config


def build_parser(prog: str, description: str, version: str, usage: Optional[str] = None) -> argparse.ArgumentParser:
    """ArgumentParser with the options every tool accepts"""
    parser = argparse.ArgumentParser(
        prog=prog,
        usage=usage,
        description=description,
        epilog=DISCLAIMER,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('-v', '--version', action='version', version=f'Version: {version}',
                        help='Show script version and exit.')
    parser.add_argument('-d', '--debug', action='store_true', default=False,
                        help='Enable debug mode.')
    parser.add_argument('-n', '--dry-run', action='store_true', default=False,
                        help="Simulate requested actions, don't execute them.")
    parser.add_argument('--config', default=None,
                        help='Configuration file (default: $COS_ZFS_TOOLS_CONFIG or /etc/cos-zfs-tools/config.yaml)')
    return parser


def print_header(title: str, version: Optional[str] = None, no_header: bool = False):
    if no_header:
        return
    if version:
        print(f"\n{title} - v{version}\n", flush=True)
    else:
        print(f"\n{title}\n", flush=True)


def echo_arguments(argv: List[str]):
    for index, arg in enumerate(argv):
        logger.debug("Arg %d: %s", index, arg)


def require_root():
    if os.geteuid() != 0:
        raise ToolError("You must run this action as root or with 'sudo'.")


def require_value(value: Optional[str], message: str) -> Optional[str]:
    """Reject options given as '--opt=' with nothing after the equal sign"""
    if value is not None and not value.strip():
        raise ToolError(message)
    return value


def confirm(question: str, assume_yes: bool = False) -> bool:
    """Ask a [y,N] question, default answer is no"""
    if assume_yes:
        logger.info("%s [y,N]: y", question)
        return True
    try:
        answer = input(f"{question} [y,N]: ")
    except EOFError:
        return False
    return answer.strip().lower() == 'y'


def show(output: str):
    """Print command output meant for the user"""
    if output:
        print(output.rstrip('\n'), flush=True)


def short_hostname() -> str:
    return socket.gethostname().split('.')[0]


def format_bytes(bytes_value: int, precision: int = 2) -> str:
    """
    Convert bytes to human-readable string format.

    Args:
        bytes_value: Number of bytes to convert
        precision: Number of decimal places for formatting

    Returns:
        Formatted string with appropriate unit suffix (B, KB, MB, GB, TB)
    """
    suffixes = ['B', 'KB', 'MB', 'GB', 'TB', 'PB', 'EB']
    if bytes_value == 0:
        return f"0 {suffixes[0]}"

    suffix_index = math.floor(math.log(bytes_value, 1024))
    suffix_index = min(suffix_index, len(suffixes) - 1)  # Cap at largest suffix

    value = bytes_value / (1024 ** suffix_index)
    return f"{value:.{precision}f} {suffixes[suffix_index]}"


def run_tool(handler: Callable[[], Optional[int]]) -> int:
    """Run a tool body and turn failures into exit codes"""
    try:
        return handler() or 0
    except ToolError as e:
        logger.error("Error: %s", e)
        return e.exit_code
    except ZFSCommandError as e:
        logger.error("Error: %s", e)
        return 255
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        return 130
