"""
Working directories for deployments and nodes
"""
import os
import shutil
import tempfile
import logging
from pathlib import Path
from typing import Optional, Union

from .. import env

logger = logging.getLogger(__name__)

RECOVERY_FILES = ("mempool.json", "cryptarchia.json", "wallet.json", os.path.join("blend", "core.json"))


def ensure_recovery_paths(base_dir: Union[str, Path]) -> Path:
    """Create ``recovery/`` with empty per-service recovery files, keeping existing ones"""
    recovery_dir = Path(base_dir) / "recovery"
    recovery_dir.mkdir(parents=True, exist_ok=True)
    for relative in RECOVERY_FILES:
        path = recovery_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            path.write_text("{}")
    return recovery_dir


def should_persist(failing: bool) -> bool:
    return failing or env.keep_logs()


class Workspace:
    """Exclusively owned temporary directory for one deployment.

    ``cleanup`` deletes it unless NETORCH_KEEP_LOGS is set or the owner is
    closing because of a failure, in which case the path is logged and kept.
    """

    def __init__(self, label: str, base_dir: Optional[str] = None):
        self.label = label
        self.path = Path(tempfile.mkdtemp(prefix=f"netorch-{label}-", dir=base_dir))
        self._cleaned = False

    def subdir(self, *parts: str) -> Path:
        path = self.path.joinpath(*parts)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def node_dir(self, name: str) -> Path:
        return self.subdir("nodes", name)

    def log_dir(self, name: str) -> Path:
        return self.subdir("logs", name)

    def ensure_recovery_paths(self) -> Path:
        return ensure_recovery_paths(self.path)

    def cleanup(self, failing: bool = False) -> Optional[Path]:
        """Remove the workspace; returns the kept path when it was persisted"""
        if self._cleaned:
            return None
        self._cleaned = True

        if should_persist(failing):
            logger.info(f"{self.label}: persisting directory at {self.path}")
            return self.path

        shutil.rmtree(self.path, ignore_errors=True)
        return None

    def __repr__(self) -> str:
        return f"Workspace({self.path})"
