"""
Local node processes: spawn, readiness polling and termination
"""
import os
import subprocess
import time
import logging
from typing import Any, List, Optional

from ...errors import ApiClientError, NodeControlError

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


class NodeProcess:
    """One node OS process started from a config file"""

    def __init__(self, name: str, command: List[str], config_path: str, work_dir: str, log_file: str):
        self.name = name
        self.command = list(command) + [config_path]
        self.config_path = config_path
        self.work_dir = work_dir
        self.log_file = log_file
        self.process: Optional[subprocess.Popen] = None
        self._log_handle = None

    @property
    def pid(self) -> Optional[int]:
        if self.process is None or self.process.poll() is not None:
            return None
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def start(self) -> "NodeProcess":
        os.makedirs(self.work_dir, exist_ok=True)
        self._close_log()
        self._log_handle = open(self.log_file, 'ab')
        logger.info(f"Spawning {self.name}: {' '.join(self.command)}")
        try:
            self.process = subprocess.Popen(
                self.command,
                cwd=self.work_dir,
                stdout=self._log_handle,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            self._close_log()
            raise NodeControlError(f"failed to spawn {self.name}: {e}") from e
        logger.info(f"Spawned {self.name} with PID {self.process.pid}")
        return self

    def wait_ready(self, api: Any, timeout: float, interval: float = 0.25) -> None:
        """Poll until the process answers its status API; the process dying fails fast"""
        deadline = time.time() + timeout
        last_error = None

        while time.time() < deadline:
            if self.process.poll() is not None:
                raise NodeControlError(
                    f"{self.name} exited with code {self.process.returncode} before becoming ready "
                    f"(log: {self.log_file})"
                )
            try:
                api.consensus_info()
                logger.info(f"{self.name} is ready")
                return
            except ApiClientError as e:
                last_error = e
            time.sleep(interval)

        raise NodeControlError(f"{self.name} failed to become ready within {timeout:.2f}s: {last_error}")

    def terminate(self) -> None:
        """Terminate the process, escalating to kill after 5 seconds"""
        if self.process is None or self.process.poll() is not None:
            self._close_log()
            return

        logger.info(f"Terminating {self.name} (PID {self.process.pid})")
        self.process.terminate()
        try:
            self.process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self.process.kill()
            self.process.wait()
        self._close_log()
        logger.info(f"{self.name} terminated")

    def _close_log(self) -> None:
        if self._log_handle is not None:
            self._log_handle.close()
            self._log_handle = None
