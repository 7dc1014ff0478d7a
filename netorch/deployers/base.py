"""Shared deployer behaviour: baseline readiness after resources come up"""
import logging
from abc import ABC
from typing import Dict, Any

from ..errors import DeployError, ReadinessTimeoutError
from ..interfaces import IDeployer
from ..readiness import NodeReachability, ReadinessNode
from ..topology import Topology

logger = logging.getLogger(__name__)

DEFAULT_READINESS_TIMEOUT = 120.0


class BaseDeployer(IDeployer, ABC):
    """Base implementation for deployers with common functionality"""

    backend_name = "base"

    def __init__(self, readiness_timeout: float = DEFAULT_READINESS_TIMEOUT, poll_interval: float = 1.0):
        self.readiness_timeout = readiness_timeout
        self.poll_interval = poll_interval

    def wait_baseline_ready(self, topology: Topology, clients: Dict[str, Any]) -> None:
        """Wait until every node answers its status API; full network readiness is a separate call"""
        nodes = [ReadinessNode(descriptor.name, clients[descriptor.name]) for descriptor in topology.nodes]
        logger.info(f"Waiting for {len(nodes)} node(s) to respond (timeout: {self.readiness_timeout:.0f}s)")
        try:
            NodeReachability(nodes).wait(self.readiness_timeout, self.poll_interval)
        except ReadinessTimeoutError as e:
            raise DeployError(f"{self.backend_name} deployment not ready: {e}") from e
        logger.info(f"All {len(nodes)} node(s) are responding")
