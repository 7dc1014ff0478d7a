"""
Compose backend: one container per node in a docker compose project
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ... import env
from ...api_client import ApiClient
from ...error_handler import ErrorCategory, RetryConfig, get_error_handler
from ...errors import BackendUnavailableError, DeployError
from ...scenario.runner import RunContext, Runner, Telemetry
from ...scenario.scenario import Scenario
from ...topology import Topology
from ...topology.node_config import create_node_config, write_node_config
from ..base import BaseDeployer
from ..commands import CommandError, run_command
from ..workspace import Workspace
from .control import ComposeNodeControl

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)

CONTAINER_CONFIG_PATH = "/etc/netorch/config.yaml"
CONTAINER_DATA_DIR = "/data"
PROMETHEUS_IMAGE = "prom/prometheus:latest"
PROMETHEUS_PORT = 9090


def ensure_docker_available() -> None:
    try:
        result = run_command(["docker", "info"], check=False, timeout=30)
    except FileNotFoundError:
        raise BackendUnavailableError("compose", "docker executable not found")
    except DeployError as e:
        raise BackendUnavailableError("compose", str(e))
    if result.returncode != 0:
        raise BackendUnavailableError("compose", (result.stderr or "docker daemon unreachable").strip())


def compose_services(topology: Topology, workspace_path: Path, image: str,
                     with_prometheus: bool) -> Dict[str, Any]:
    services: Dict[str, Any] = {}
    for descriptor in topology.nodes:
        name = descriptor.name
        services[name] = {
            "image": image,
            "command": [CONTAINER_CONFIG_PATH],
            "volumes": [
                f"{workspace_path / 'nodes' / name / 'config.yaml'}:{CONTAINER_CONFIG_PATH}:ro",
                f"{workspace_path / 'nodes' / name / 'data'}:{CONTAINER_DATA_DIR}",
            ],
            "ports": [f"127.0.0.1:{descriptor.api_port}:{descriptor.api_port}"],
            "environment": {env.PARAMS_PATH_VAR: env.params_path()},
        }
        peers = [peer.name for peer in topology.initial_peers_of(descriptor)]
        if peers:
            services[name]["depends_on"] = peers

    if with_prometheus:
        targets = [f"{d.name}:{d.api_port}" for d in topology.nodes]
        prometheus_config = workspace_path / "prometheus.yml"
        prometheus_config.write_text(yaml.safe_dump({
            "global": {"scrape_interval": "5s"},
            "scrape_configs": [{"job_name": "netorch", "static_configs": [{"targets": targets}]}],
        }))
        services["prometheus"] = {
            "image": PROMETHEUS_IMAGE,
            "volumes": [f"{prometheus_config}:/etc/prometheus/prometheus.yml:ro"],
            "ports": [f"127.0.0.1:{PROMETHEUS_PORT}:{PROMETHEUS_PORT}"],
        }
    return {"services": services}


class ComposeDeployer(BaseDeployer):
    """Renders a compose file for the topology and brings it up with ``docker compose``"""

    backend_name = "compose"

    def __init__(self, image: Optional[str] = None, with_prometheus: bool = False,
                 retry_config: Optional[RetryConfig] = None, **kwargs):
        super().__init__(**kwargs)
        self.image = image
        self.with_prometheus = with_prometheus
        self.retry_config = retry_config or RetryConfig(max_attempts=3, initial_delay=2.0)

    def render(self, scenario: Scenario, workspace: Workspace) -> Path:
        """Write per-node configs and the compose file; returns the compose file path"""
        topology = scenario.topology
        for descriptor in topology.nodes:
            node_dir = workspace.node_dir(descriptor.name)
            (node_dir / "data").mkdir(parents=True, exist_ok=True)
            peers = [(peer.name, peer.network_port) for peer in topology.initial_peers_of(descriptor)]
            config = create_node_config(
                descriptor, peers,
                data_dir=CONTAINER_DATA_DIR,
                bind_host="0.0.0.0",
            )
            write_node_config(str(node_dir / "config.yaml"), config)

        compose = compose_services(topology, workspace.path, self.image or env.compose_image(),
                                   self.with_prometheus)
        compose_file = workspace.path / "docker-compose.yml"
        compose_file.write_text(yaml.safe_dump(compose, default_flow_style=False, sort_keys=False))
        return compose_file

    def deploy(self, scenario: Scenario) -> Runner:
        topology = scenario.topology
        try:
            ensure_docker_available()
        except BackendUnavailableError:
            topology.release_ports()
            raise

        workspace = Workspace("compose")
        workspace.ensure_recovery_paths()
        project = f"netorch-{scenario.scenario_id}"
        compose_file = self.render(scenario, workspace)
        control = ComposeNodeControl(project, str(compose_file), topology)
        handler = get_error_handler()

        for descriptor in topology.nodes:
            topology.release_reservations(descriptor)

        clients: Dict[str, ApiClient] = {}
        started = False
        try:
            handler.retry_with_backoff(
                control.compose,
                self.retry_config,
                ErrorCategory.DEPLOYMENT,
                operation_name=f"docker compose up ({project})",
                retry_on=(CommandError,),
                args=["up", "-d"],
            )
            started = True
            clients.update((d.name, ApiClient.for_port(d.api_port)) for d in topology.nodes)
            self.wait_baseline_ready(topology, clients)
        except Exception as e:
            logger.error(f"Compose deployment failed: {e}")
            for client in clients.values():
                client.close()
            if started:
                handler.run_cleanup_step(lambda: control.compose(["down", "-v"]), "docker compose down")
            topology.release_ports()
            workspace.cleanup(failing=True)
            if isinstance(e, DeployError):
                raise
            raise DeployError(f"compose deployment failed: {e}") from e

        for name, client in clients.items():
            control.mark_running(name, client)

        def teardown(failing: bool) -> None:
            handler.run_cleanup_step(lambda: control.compose(["down", "-v"]), "docker compose down",
                                     component=self.backend_name)
            for client in clients.values():
                client.close()
            handler.run_cleanup_step(topology.release_ports, "release ports", component=self.backend_name)
            handler.run_cleanup_step(lambda: workspace.cleanup(failing), "remove workspace",
                                     component=self.backend_name)

        telemetry = Telemetry(f"http://127.0.0.1:{PROMETHEUS_PORT}" if self.with_prometheus else None)
        context = RunContext(
            topology,
            clients,
            node_control=control if scenario.node_control_enabled else None,
            telemetry=telemetry,
        )
        return Runner(context, teardown, backend=self.backend_name)
