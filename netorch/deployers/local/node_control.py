"""
Node control for local OS processes.

Names that match a topology node use that node's descriptor; any other name
(manual clusters use ``node-<label>``) takes the next unassigned descriptor.
"""
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ...api_client import ApiClient
from ...errors import NodeControlError
from ...models import NodeDescriptor, StartNodeOptions
from ...node_control import BaseNodeControl
from ...readiness import ReadinessNode
from ...topology import Topology
from ...topology.node_config import create_node_config, write_node_config
from ..workspace import Workspace, ensure_recovery_paths
from .process import NodeProcess

logger = logging.getLogger(__name__)

DEFAULT_READY_TIMEOUT = 60.0


class LocalNodeControl(BaseNodeControl):
    """Starts, stops and restarts node processes on this host"""

    def __init__(self, topology: Topology, workspace: Workspace, node_command: List[str],
                 ready_timeout: float = DEFAULT_READY_TIMEOUT, bind_host: str = "127.0.0.1"):
        super().__init__()
        self.topology = topology
        self.workspace = workspace
        self.node_command = list(node_command)
        self.ready_timeout = ready_timeout
        self.bind_host = bind_host

        self._assigned: Dict[str, NodeDescriptor] = {}
        self._processes: Dict[str, NodeProcess] = {}
        self._peers: Dict[str, List[str]] = {}
        self._persist_dirs: Dict[str, str] = {}

    def descriptor_for(self, name: str) -> NodeDescriptor:
        with self._lock:
            if name in self._assigned:
                return self._assigned[name]

            taken = {descriptor.name for descriptor in self._assigned.values()}
            topology_names = self.topology.names()
            if name in topology_names and name not in taken:
                descriptor = self.topology.node(name)
            else:
                spare = [d for d in self.topology.nodes if d.name not in taken]
                if not spare:
                    raise NodeControlError(
                        f"no free node slot for '{name}'; topology has {len(topology_names)} node(s)"
                    )
                descriptor = spare[0]
            self._assigned[name] = descriptor
            return descriptor

    def peers_of(self, name: str) -> List[str]:
        with self._lock:
            return list(self._peers.get(name, []))

    def persist_dir(self, name: str) -> Optional[str]:
        return self._persist_dirs.get(name)

    def readiness_nodes(self) -> List[ReadinessNode]:
        return [
            ReadinessNode(name, self.node_client(name), len(self.peers_of(name)))
            for name in self.running_nodes()
        ]

    def _start(self, name: str, options: StartNodeOptions, peers: List[str]) -> ApiClient:
        descriptor = self.descriptor_for(name)
        node_dir = self.workspace.node_dir(name)
        data_dir = Path(options.persist_dir) if options.persist_dir else node_dir / "data"
        data_dir.mkdir(parents=True, exist_ok=True)
        ensure_recovery_paths(data_dir)
        log_dir = self.workspace.log_dir(name)

        peer_addresses = [(self.bind_host, self.descriptor_for(peer).network_port) for peer in peers]
        config = create_node_config(
            descriptor,
            peer_addresses,
            data_dir=str(data_dir),
            log_dir=str(log_dir),
            bind_host=self.bind_host,
            config_patch=options.config_patch,
        )
        config_path = write_node_config(str(node_dir / "config.yaml"), config)

        self.topology.release_reservations(descriptor)
        process = NodeProcess(name, self.node_command, config_path, str(data_dir), str(log_dir / "node.log"))
        process.start()

        api = ApiClient.for_port(descriptor.api_port, host=self.bind_host)
        try:
            process.wait_ready(api, self.ready_timeout)
        except NodeControlError:
            process.terminate()
            api.close()
            raise

        with self._lock:
            self._processes[name] = process
            self._peers[name] = list(peers)
            if options.persist_dir:
                self._persist_dirs[name] = str(data_dir)
        return api

    def _process(self, name: str) -> NodeProcess:
        with self._lock:
            if name not in self._processes:
                raise NodeControlError(f"node '{name}' has no process")
            return self._processes[name]

    def _restart(self, name: str) -> None:
        process = self._process(name)
        process.terminate()
        process.start()
        process.wait_ready(self.node_client(name), self.ready_timeout)

    def _stop(self, name: str) -> None:
        self._process(name).terminate()

    def _current_pid(self, name: str) -> Optional[int]:
        with self._lock:
            process = self._processes.get(name)
        return process.pid if process is not None else None
