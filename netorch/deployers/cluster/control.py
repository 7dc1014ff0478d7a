"""
Node control for Kubernetes: one single-replica Deployment per node.

A node's identity for restart purposes is its pod UID; a restart deletes the
pod and waits for the Deployment to replace it.
"""
import json
import time
import logging
from typing import Any, Dict, List, Optional

from ...api_client import ApiClient
from ...errors import ApiClientError, NodeControlError
from ...models import StartNodeOptions
from ...node_control import BaseNodeControl
from ..commands import run_command

logger = logging.getLogger(__name__)

NODE_LABEL = "netorch/node"
DEFAULT_POD_TIMEOUT = 120.0


def live_pod_uids(pods: Dict[str, Any]) -> List[str]:
    """UIDs of pods that are running and not being deleted"""
    uids = []
    for pod in pods.get("items", []):
        metadata = pod.get("metadata", {})
        if metadata.get("deletionTimestamp"):
            continue
        if pod.get("status", {}).get("phase") != "Running":
            continue
        uids.append(metadata.get("uid"))
    return uids


class ClusterNodeControl(BaseNodeControl):
    """Starts, stops and restarts node Deployments through ``kubectl``"""

    def __init__(self, namespace: str, node_ports: Dict[str, int], host: str,
                 pod_timeout: float = DEFAULT_POD_TIMEOUT, poll_interval: float = 1.0):
        super().__init__()
        self.namespace = namespace
        self.node_ports = dict(node_ports)
        self.host = host
        self.pod_timeout = pod_timeout
        self.poll_interval = poll_interval

    def kubectl(self, args: List[str], input: Optional[str] = None):
        return run_command(["kubectl", "-n", self.namespace] + list(args), input=input)

    def _pods(self, name: str) -> Dict[str, Any]:
        output = self.kubectl(["get", "pods", "-l", f"{NODE_LABEL}={name}", "-o", "json"]).stdout
        try:
            return json.loads(output or "{}")
        except ValueError as e:
            raise NodeControlError(f"unreadable pod listing for '{name}': {e}") from e

    def _wait_for_pod(self, name: str, previous: Optional[str]) -> str:
        deadline = time.time() + self.pod_timeout
        client = ApiClient.for_port(self.node_ports[name], host=self.host)
        try:
            while time.time() < deadline:
                uids = [uid for uid in live_pod_uids(self._pods(name)) if uid != previous]
                if uids:
                    try:
                        client.consensus_info()
                        return uids[0]
                    except ApiClientError as e:
                        logger.debug(f"{name} pod {uids[0]} not answering yet: {e}")
                time.sleep(self.poll_interval)
        finally:
            client.close()
        raise NodeControlError(f"no ready pod for '{name}' within {self.pod_timeout:.0f}s")

    def _start(self, name: str, options: StartNodeOptions, peers: List[str]) -> ApiClient:
        if options.peers.mode != "default" or options.config_patch or options.persist_dir:
            raise NodeControlError(
                f"cluster backend cannot start '{name}' with custom peers, config patches or persist dirs"
            )
        if name not in self.node_ports:
            raise NodeControlError(f"node '{name}' is not part of namespace {self.namespace}")
        self.kubectl(["scale", f"deployment/{name}", "--replicas=1"])
        self._wait_for_pod(name, None)
        return ApiClient.for_port(self.node_ports[name], host=self.host)

    def _restart(self, name: str) -> None:
        old_uid = self._current_pid(name)
        self.kubectl(["delete", "pod", "-l", f"{NODE_LABEL}={name}", "--wait=false"])
        self._wait_for_pod(name, old_uid)

    def _stop(self, name: str) -> None:
        self.kubectl(["scale", f"deployment/{name}", "--replicas=0"])

    def _current_pid(self, name: str) -> Optional[str]:
        uids = live_pod_uids(self._pods(name))
        return uids[0] if uids else None
