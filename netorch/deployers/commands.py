"""
External command execution for container and cluster backends
"""
import subprocess
import logging
from typing import List, Optional

from ..errors import DeployError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 300.0


class CommandError(DeployError):
    def __init__(self, args: List[str], returncode: int, stderr: str):
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"`{' '.join(args)}` exited with {returncode}: {stderr.strip()}")


def run_command(args: List[str], check: bool = True, timeout: float = DEFAULT_COMMAND_TIMEOUT,
                input: Optional[str] = None, cwd: Optional[str] = None) -> subprocess.CompletedProcess:
    """Run a command and capture its output.

    FileNotFoundError propagates when the executable is missing so callers can
    report the backend as unavailable.
    """
    logger.debug(f"Running: {' '.join(args)}")
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout, input=input, cwd=cwd)
    except subprocess.TimeoutExpired as e:
        raise DeployError(f"`{' '.join(args)}` timed out after {timeout:.0f}s") from e

    if check and result.returncode != 0:
        raise CommandError(args, result.returncode, result.stderr or "")
    return result
