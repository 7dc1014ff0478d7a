"""
Local backend: every node is an OS process on this host
"""
import logging
from typing import List, Optional

from ...error_handler import get_error_handler
from ...errors import DeployError
from ...models import PeerSelection, StartNodeOptions
from ...scenario.runner import RunContext, Runner
from ...scenario.scenario import Scenario
from ...topology import TopologyBuilder, TopologyConfig
from ..base import BaseDeployer
from ..workspace import Workspace
from .binary import resolve_node_command
from .manual import LocalManualCluster
from .node_control import DEFAULT_READY_TIMEOUT, LocalNodeControl

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


class LocalDeployer(BaseDeployer):
    """Spawns node processes in topology order, each dialing its layout peers"""

    backend_name = "local"

    def __init__(self, node_command: Optional[List[str]] = None,
                 ready_timeout: float = DEFAULT_READY_TIMEOUT, **kwargs):
        super().__init__(**kwargs)
        self.node_command = node_command
        self.ready_timeout = ready_timeout

    def deploy(self, scenario: Scenario) -> Runner:
        topology = scenario.topology
        try:
            command = resolve_node_command(self.node_command)
        except DeployError:
            topology.release_ports()
            raise
        workspace = Workspace("local")
        workspace.ensure_recovery_paths()
        control = LocalNodeControl(topology, workspace, command, self.ready_timeout)

        logger.info(f"Deploying {len(topology)} node(s) locally in {workspace.path}")
        try:
            for descriptor in topology.nodes:
                peers = [peer.name for peer in topology.initial_peers_of(descriptor)]
                control.start_node_with(descriptor.name, StartNodeOptions(peers=PeerSelection.named(peers)))
            clients = {name: control.node_client(name) for name in topology.names()}
            self.wait_baseline_ready(topology, clients)
        except Exception as e:
            logger.error(f"Local deployment failed: {e}")
            control.stop_all()
            topology.release_ports()
            workspace.cleanup(failing=True)
            if isinstance(e, DeployError):
                raise
            raise DeployError(f"local deployment failed: {e}") from e

        def teardown(failing: bool) -> None:
            handler = get_error_handler()
            handler.run_cleanup_step(control.stop_all, "stop local nodes", component=self.backend_name)
            handler.run_cleanup_step(topology.release_ports, "release ports", component=self.backend_name)
            handler.run_cleanup_step(lambda: workspace.cleanup(failing), "remove workspace",
                                     component=self.backend_name)

        context = RunContext(
            topology,
            clients,
            node_control=control if scenario.node_control_enabled else None,
        )
        return Runner(context, teardown, backend=self.backend_name)

    def manual_cluster(self, config: TopologyConfig) -> LocalManualCluster:
        return self.manual_cluster_with_builder(TopologyBuilder(config))

    def manual_cluster_with_builder(self, builder: TopologyBuilder) -> LocalManualCluster:
        topology = builder.build()
        try:
            command = resolve_node_command(self.node_command)
        except DeployError:
            topology.release_ports()
            raise
        return LocalManualCluster(topology, command, self.ready_timeout)
