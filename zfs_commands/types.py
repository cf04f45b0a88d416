"""
Shared types for ZFS command execution
"""
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class CommandResult:
    """Standardized result from command execution"""
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command succeeded"""
        return self.returncode == 0

    def raise_for_status(self, cmd: Optional[List[str]] = None):
        """Raise exception if command failed"""
        if not self.success:
            raise ZFSCommandError(self.returncode, self.stderr, cmd)


class ZFSCommandError(Exception):
    """Exception raised when ZFS command fails"""
    def __init__(self, returncode: int, stderr: str, cmd: Optional[List[str]] = None):
        self.returncode = returncode
        self.stderr = stderr
        self.cmd = cmd
        if cmd:
            super().__init__(f"'{' '.join(cmd)}' failed (rc={returncode}): {stderr.strip()}")
        else:
            super().__init__(f"ZFS command failed (rc={returncode}): {stderr.strip()}")
