"""
Manual cluster: imperative, step-by-step node control on the local backend
"""
import threading
import logging
from typing import Any, List, Optional

from ...errors import ManualClusterError
from ...error_handler import get_error_handler
from ...models import StartNodeOptions, StartedNode
from ...readiness import NetworkReadiness
from ...topology import Topology
from ..workspace import Workspace
from .node_control import DEFAULT_READY_TIMEOUT, LocalNodeControl

logger = logging.getLogger(__name__)


class LocalManualCluster:
    """Holds a topology and starts its nodes on demand.

    ``start_node("a")`` starts a node named ``node-a``. Closing the cluster
    stops every running node; node state under an explicit ``persist_dir``
    survives, while the cluster's own working directory is deleted unless
    NETORCH_KEEP_LOGS is set or the cluster is closed because of a failure.
    """

    def __init__(self, topology: Topology, node_command: List[str],
                 ready_timeout: float = DEFAULT_READY_TIMEOUT):
        self.topology = topology
        self.workspace = Workspace("manual")
        self.workspace.ensure_recovery_paths()
        self.control = LocalNodeControl(topology, self.workspace, node_command, ready_timeout)
        self._closed = False
        self._lock = threading.Lock()

    @staticmethod
    def node_name(label: str) -> str:
        return f"node-{label}"

    def _check_open(self) -> None:
        if self._closed:
            raise ManualClusterError("manual cluster is closed")

    def start_node(self, label: str) -> StartedNode:
        return self.start_node_with(label, StartNodeOptions())

    def start_node_with(self, label: str, options: Optional[StartNodeOptions] = None) -> StartedNode:
        self._check_open()
        return self.control.start_node_with(self.node_name(label), options or StartNodeOptions())

    def node_pid(self, name: str) -> Optional[int]:
        return self.control.node_pid(name)

    def restart_node(self, name: str, timeout: Optional[float] = None) -> None:
        self._check_open()
        self.control.restart_node(name, timeout=timeout)

    def stop_node(self, name: str) -> None:
        self._check_open()
        self.control.stop_node(name)

    def node_client(self, name: str) -> Any:
        return self.control.node_client(name)

    def running_nodes(self) -> List[str]:
        return self.control.running_nodes()

    def wait_network_ready(self, timeout: float = 60.0, poll_interval: float = 1.0) -> None:
        """Wait until every running node reports at least as many peers as it was started with"""
        self._check_open()
        nodes = self.control.readiness_nodes()
        if not nodes:
            return
        NetworkReadiness(nodes).wait(timeout, poll_interval)

    def close(self, failing: bool = False) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        handler = get_error_handler()
        handler.run_cleanup_step(self.control.stop_all, "stop manual cluster nodes", component="manual")
        handler.run_cleanup_step(self.topology.release_ports, "release ports", component="manual")
        handler.run_cleanup_step(lambda: self.workspace.cleanup(failing), "remove workspace", component="manual")
        for name in self.control.node_names():
            persisted = self.control.persist_dir(name)
            if persisted:
                logger.info(f"{name}: state kept at {persisted}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close(failing=exc_type is not None)
