"""
Node control for compose services: one service per node, restarted in place
"""
import logging
from typing import List, Optional

from ...api_client import ApiClient
from ...errors import NodeControlError
from ...models import StartNodeOptions
from ...node_control import BaseNodeControl
from ...topology import Topology
from ..commands import run_command

logger = logging.getLogger(__name__)


class ComposeNodeControl(BaseNodeControl):
    """Drives ``docker compose`` for the services of one project"""

    def __init__(self, project: str, compose_file: str, topology: Topology):
        super().__init__()
        self.project = project
        self.compose_file = compose_file
        self.topology = topology

    def compose(self, args: List[str]):
        return run_command(["docker", "compose", "-p", self.project, "-f", self.compose_file] + list(args))

    def _container_id(self, name: str) -> Optional[str]:
        output = self.compose(["ps", "-q", name]).stdout.strip()
        return output.splitlines()[0] if output else None

    def _start(self, name: str, options: StartNodeOptions, peers: List[str]) -> ApiClient:
        if options.peers.mode != "default" or options.config_patch or options.persist_dir:
            raise NodeControlError(
                f"compose backend cannot start '{name}' with custom peers, config patches or persist dirs"
            )
        descriptor = self.topology.node(name)
        self.compose(["start", name])
        return ApiClient.for_port(descriptor.api_port)

    def _restart(self, name: str) -> None:
        self.compose(["restart", name])

    def _stop(self, name: str) -> None:
        self.compose(["stop", name])

    def _current_pid(self, name: str) -> Optional[int]:
        container = self._container_id(name)
        if container is None:
            return None
        raw = run_command(["docker", "inspect", "-f", "{{.State.Pid}}", container]).stdout.strip()
        try:
            pid = int(raw)
        except ValueError:
            logger.warning(f"Unexpected pid '{raw}' for {name}")
            return None
        return pid or None
