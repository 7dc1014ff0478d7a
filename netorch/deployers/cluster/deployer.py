"""
Cluster backend: each node runs as a Deployment in a per-scenario namespace
"""
import re
import logging
from typing import Any, Dict, List, Optional

import yaml

from ... import env
from ...api_client import ApiClient
from ...error_handler import ErrorCategory, RetryConfig, get_error_handler
from ...errors import BackendUnavailableError, DeployError
from ...models import NodeDescriptor
from ...scenario.runner import RunContext, Runner
from ...scenario.scenario import Scenario
from ...topology import Topology
from ...topology.node_config import create_node_config
from ..base import BaseDeployer
from ..commands import CommandError, run_command
from .control import NODE_LABEL, ClusterNodeControl

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)

CONFIG_MOUNT = "/etc/netorch"
DATA_DIR = "/data"
DEFAULT_ROLLOUT_TIMEOUT = 300


def ensure_kubectl_available() -> None:
    for args in (["kubectl", "version", "--client"], ["kubectl", "cluster-info"]):
        try:
            result = run_command(args, check=False, timeout=30)
        except FileNotFoundError:
            raise BackendUnavailableError("cluster", "kubectl executable not found")
        except DeployError as e:
            raise BackendUnavailableError("cluster", str(e))
        if result.returncode != 0:
            raise BackendUnavailableError("cluster", (result.stderr or f"{' '.join(args)} failed").strip())


def namespace_for(scenario_id: str) -> str:
    slug = re.sub(r"[^a-z0-9-]+", "-", scenario_id.lower()).strip("-")
    return f"netorch-{slug}"[:63].rstrip("-")


def node_manifests(topology: Topology, descriptor: NodeDescriptor, image: str) -> List[Dict[str, Any]]:
    """ConfigMap, Deployment and NodePort Service for one node"""
    name = descriptor.name
    labels = {"app": "netorch", NODE_LABEL: name}
    peers = [(peer.name, peer.network_port) for peer in topology.initial_peers_of(descriptor)]
    config = create_node_config(descriptor, peers, data_dir=DATA_DIR, bind_host="0.0.0.0")

    config_map = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": f"{name}-config", "labels": labels},
        "data": {"config.yaml": yaml.safe_dump(config, default_flow_style=False, sort_keys=False)},
    }
    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "labels": labels},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {NODE_LABEL: name}},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [{
                        "name": "node",
                        "image": image,
                        "args": [f"{CONFIG_MOUNT}/config.yaml"],
                        "env": [{"name": env.PARAMS_PATH_VAR, "value": env.params_path()}],
                        "ports": [
                            {"name": "api", "containerPort": descriptor.api_port, "protocol": "TCP"},
                            {"name": "network", "containerPort": descriptor.network_port, "protocol": "UDP"},
                        ],
                        "volumeMounts": [
                            {"name": "config", "mountPath": CONFIG_MOUNT},
                            {"name": "data", "mountPath": DATA_DIR},
                        ],
                    }],
                    "volumes": [
                        {"name": "config", "configMap": {"name": f"{name}-config"}},
                        {"name": "data", "emptyDir": {}},
                    ],
                },
            },
        },
    }
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "labels": labels},
        "spec": {
            "type": "NodePort",
            "selector": {NODE_LABEL: name},
            "ports": [
                {"name": "api", "port": descriptor.api_port, "targetPort": descriptor.api_port, "protocol": "TCP"},
                {"name": "network", "port": descriptor.network_port,
                 "targetPort": descriptor.network_port, "protocol": "UDP"},
            ],
        },
    }
    return [config_map, deployment, service]


class ClusterDeployer(BaseDeployer):
    """Applies per-node manifests with ``kubectl`` and reaches nodes through NodePorts"""

    backend_name = "cluster"

    def __init__(self, image: Optional[str] = None, rollout_timeout: int = DEFAULT_ROLLOUT_TIMEOUT,
                 retry_config: Optional[RetryConfig] = None, **kwargs):
        super().__init__(**kwargs)
        self.image = image
        self.rollout_timeout = rollout_timeout
        self.retry_config = retry_config or RetryConfig(max_attempts=3, initial_delay=2.0)

    def render(self, scenario: Scenario) -> str:
        image = self.image or env.compose_image()
        documents: List[Dict[str, Any]] = []
        for descriptor in scenario.topology.nodes:
            documents.extend(node_manifests(scenario.topology, descriptor, image))
        return yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)

    def _node_port(self, namespace: str, name: str) -> int:
        raw = run_command([
            "kubectl", "-n", namespace, "get", "service", name,
            "-o", "jsonpath={.spec.ports[?(@.name==\"api\")].nodePort}",
        ]).stdout.strip()
        try:
            return int(raw)
        except ValueError:
            raise DeployError(f"service {name} in {namespace} has no api nodePort (got '{raw}')")

    def deploy(self, scenario: Scenario) -> Runner:
        topology = scenario.topology
        # cluster ports are container ports; host reservations are not needed
        topology.release_ports()
        ensure_kubectl_available()

        namespace = namespace_for(scenario.scenario_id)
        handler = get_error_handler()
        manifests = self.render(scenario)

        def delete_namespace() -> None:
            run_command(["kubectl", "delete", "namespace", namespace, "--ignore-not-found", "--wait=false"])

        logger.info(f"Deploying {len(topology)} node(s) into namespace {namespace}")
        clients: Dict[str, ApiClient] = {}
        try:
            run_command(["kubectl", "create", "namespace", namespace])
            handler.retry_with_backoff(
                run_command,
                self.retry_config,
                ErrorCategory.DEPLOYMENT,
                operation_name=f"kubectl apply ({namespace})",
                retry_on=(CommandError,),
                args=["kubectl", "-n", namespace, "apply", "-f", "-"],
                input=manifests,
            )
            for name in topology.names():
                run_command([
                    "kubectl", "-n", namespace, "rollout", "status", f"deployment/{name}",
                    f"--timeout={self.rollout_timeout}s",
                ], timeout=self.rollout_timeout + 30)

            host = env.k8s_node_host()
            node_ports = {name: self._node_port(namespace, name) for name in topology.names()}
            clients.update((name, ApiClient.for_port(port, host=host)) for name, port in node_ports.items())
            self.wait_baseline_ready(topology, clients)
        except Exception as e:
            logger.error(f"Cluster deployment failed: {e}")
            for client in clients.values():
                client.close()
            handler.run_cleanup_step(delete_namespace, f"delete namespace {namespace}", component=self.backend_name)
            if isinstance(e, DeployError):
                raise
            raise DeployError(f"cluster deployment failed: {e}") from e

        control = ClusterNodeControl(namespace, node_ports, host)
        for name, client in clients.items():
            control.mark_running(name, client)

        def teardown(failing: bool) -> None:
            for client in clients.values():
                client.close()
            if env.keep_logs():
                logger.info(f"Keeping namespace {namespace} for inspection")
                return
            handler.run_cleanup_step(delete_namespace, f"delete namespace {namespace}", component=self.backend_name)

        context = RunContext(
            topology,
            clients,
            node_control=control if scenario.node_control_enabled else None,
        )
        return Runner(context, teardown, backend=self.backend_name)
