"""
Topology construction: counts and parameters in, immutable node descriptors out
"""
import os
import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from ..errors import (
    EmptyParticipantsError, IdCountMismatchError, ManualClusterError, VectorLengthMismatchError,
)
from ..models import (
    ConsensusParams, DaParams, NetworkLayout, NetworkParams, NodeDescriptor, NodeRole, WalletConfig,
)
from .configs import create_general_configs, validate_da_params, validate_generated_vectors
from .ports import PortManager, get_port_manager

logger = logging.getLogger(__name__)

DEFAULT_DA_BALANCER_INTERVAL = 1.0
VALIDATOR_EXECUTOR_DA_BALANCER_INTERVAL = 5.0


@dataclass
class TopologyConfig:
    """High-level topology settings used to generate node configs for a scenario"""
    n_validators: int = 0
    n_executors: int = 0
    consensus_params: ConsensusParams = field(default_factory=lambda: ConsensusParams.default_for_participants(1))
    da_params: DaParams = field(default_factory=DaParams)
    network_params: NetworkParams = field(default_factory=NetworkParams)
    wallet_config: WalletConfig = field(default_factory=WalletConfig)

    @property
    def n_participants(self) -> int:
        return self.n_validators + self.n_executors

    @classmethod
    def empty(cls) -> "TopologyConfig":
        """Zero nodes; counts must be set before building"""
        return cls()

    @classmethod
    def two_validators(cls) -> "TopologyConfig":
        return cls(n_validators=2, consensus_params=ConsensusParams.default_for_participants(2))

    @classmethod
    def validator_and_executor(cls) -> "TopologyConfig":
        return cls(
            n_validators=1,
            n_executors=1,
            consensus_params=ConsensusParams.default_for_participants(2),
            da_params=DaParams(
                dispersal_factor=2,
                subnetwork_size=2,
                num_subnets=2,
                min_dispersal_peers=1,
                min_replication_peers=1,
                balancer_interval=DEFAULT_DA_BALANCER_INTERVAL,
            ),
        )

    @classmethod
    def with_node_numbers(cls, validators: int, executors: int) -> "TopologyConfig":
        """Explicit counts with DA parameters derived to stay consistent with them"""
        participants = validators + executors
        da_params = DaParams()
        if participants <= 1:
            da_params.subnetwork_size = 1
            da_params.num_subnets = 1
            da_params.dispersal_factor = 1
            da_params.min_dispersal_peers = 0
            da_params.min_replication_peers = 0
        else:
            dispersal = min(participants, max(da_params.dispersal_factor, 2))
            da_params.dispersal_factor = dispersal
            da_params.subnetwork_size = max(da_params.subnetwork_size, dispersal)
            da_params.num_subnets = da_params.subnetwork_size
            min_peers = max(dispersal - 1, 1)
            da_params.min_dispersal_peers = min_peers
            da_params.min_replication_peers = min_peers
            da_params.balancer_interval = DEFAULT_DA_BALANCER_INTERVAL

        return cls(
            n_validators=validators,
            n_executors=executors,
            consensus_params=ConsensusParams.default_for_participants(participants),
            da_params=da_params,
        )

    @classmethod
    def validators_and_executor(cls, num_validators: int, num_subnets: int,
                                dispersal_factor: int) -> "TopologyConfig":
        return cls(
            n_validators=num_validators,
            n_executors=1,
            consensus_params=ConsensusParams.default_for_participants(num_validators + 1),
            da_params=DaParams(
                dispersal_factor=dispersal_factor,
                subnetwork_size=num_subnets,
                num_subnets=num_subnets,
                min_dispersal_peers=num_subnets,
                min_replication_peers=max(dispersal_factor - 1, 0),
                balancer_interval=VALIDATOR_EXECUTOR_DA_BALANCER_INTERVAL,
            ),
        )


class Topology:
    """Ordered validator and executor descriptors plus the config they came from.

    Global node order is validators first, then executors; initial peer indices
    in each descriptor refer to that order.
    """

    def __init__(self, config: TopologyConfig, validators: List[NodeDescriptor],
                 executors: List[NodeDescriptor], port_manager: Optional[PortManager] = None,
                 reserved_ports: Sequence[int] = ()):
        self.config = config
        self.validators = validators
        self.executors = executors
        self._port_manager = port_manager
        self._reserved_ports = list(reserved_ports)

    @property
    def nodes(self) -> List[NodeDescriptor]:
        return list(self.validators) + list(self.executors)

    def names(self) -> List[str]:
        return [node.name for node in self.nodes]

    def node(self, name: str) -> NodeDescriptor:
        for descriptor in self.nodes:
            if descriptor.name == name:
                return descriptor
        raise ManualClusterError(f"unknown node '{name}'")

    def initial_peers_of(self, descriptor: NodeDescriptor) -> List[NodeDescriptor]:
        nodes = self.nodes
        return [nodes[i] for i in descriptor.general.network_config.initial_peers]

    def release_reservations(self, descriptor: NodeDescriptor) -> None:
        """Unbind a node's reserved ports right before its process binds them"""
        if self._port_manager is None:
            return
        for port in (descriptor.network_port, descriptor.da_port, descriptor.api_port):
            self._port_manager.release_reservation(port)

    def release_ports(self) -> None:
        """Give every port this topology reserved back to the OS"""
        if self._port_manager is not None and self._reserved_ports:
            self._port_manager.free(self._reserved_ports)
            self._reserved_ports = []

    def __len__(self) -> int:
        return len(self.validators) + len(self.executors)

    def __repr__(self) -> str:
        return f"Topology(validators={len(self.validators)}, executors={len(self.executors)})"


def resolve_ids(ids: Optional[Sequence[bytes]], count: int) -> List[bytes]:
    if ids is None:
        return [os.urandom(32) for _ in range(count)]
    if len(ids) != count:
        raise IdCountMismatchError(count, len(ids))
    return [bytes(node_id) for node_id in ids]


def resolve_ports(ports: Optional[Sequence[int]], count: int, label: str,
                  port_manager: PortManager, kind: str, reserved: List[int]) -> List[int]:
    if ports is None:
        allocated = port_manager.allocate_many(count, label, kind)
        reserved.extend(allocated)
        return allocated
    if len(ports) != count:
        raise VectorLengthMismatchError(f"{label} ports", count, len(ports))
    return list(ports)


class TopologyBuilder:
    """Fluent builder producing a Topology from a TopologyConfig"""

    def __init__(self, config: Optional[TopologyConfig] = None):
        self.config = replace(config) if config is not None else TopologyConfig.empty()
        self._ids: Optional[List[bytes]] = None
        self._network_ports: Optional[List[int]] = None
        self._da_ports: Optional[List[int]] = None
        self._api_ports: Optional[List[int]] = None

    def with_ids(self, ids: Sequence[bytes]) -> "TopologyBuilder":
        """Provide deterministic node ids"""
        self._ids = list(ids)
        return self

    def with_network_ports(self, ports: Sequence[int]) -> "TopologyBuilder":
        self._network_ports = list(ports)
        return self

    def with_da_ports(self, ports: Sequence[int]) -> "TopologyBuilder":
        self._da_ports = list(ports)
        return self

    def with_api_ports(self, ports: Sequence[int]) -> "TopologyBuilder":
        self._api_ports = list(ports)
        return self

    def with_validator_count(self, validators: int) -> "TopologyBuilder":
        self.config.n_validators = validators
        return self

    def with_executor_count(self, executors: int) -> "TopologyBuilder":
        self.config.n_executors = executors
        return self

    def with_node_counts(self, validators: int, executors: int) -> "TopologyBuilder":
        self.config.n_validators = validators
        self.config.n_executors = executors
        return self

    validators = with_validator_count
    executors = with_executor_count

    def with_network_layout(self, layout: NetworkLayout) -> "TopologyBuilder":
        self.config.network_params = NetworkParams(layout=NetworkLayout(layout))
        return self

    def network_star(self) -> "TopologyBuilder":
        return self.with_network_layout(NetworkLayout.STAR)

    def network_chain(self) -> "TopologyBuilder":
        return self.with_network_layout(NetworkLayout.CHAIN)

    def network_full(self) -> "TopologyBuilder":
        return self.with_network_layout(NetworkLayout.FULL)

    def with_wallet_config(self, wallet: WalletConfig) -> "TopologyBuilder":
        self.config.wallet_config = wallet
        return self

    def with_consensus_params(self, params: ConsensusParams) -> "TopologyBuilder":
        self.config.consensus_params = params
        return self

    def with_da_params(self, params: DaParams) -> "TopologyBuilder":
        self.config.da_params = params
        return self

    def build(self, port_manager: Optional[PortManager] = None) -> Topology:
        """Generate ids and ports, validate them and assemble node descriptors"""
        config = replace(self.config)
        n_participants = config.n_participants
        if n_participants <= 0:
            raise EmptyParticipantsError()

        validate_da_params(config.da_params, n_participants)
        port_manager = port_manager or get_port_manager()
        ids = resolve_ids(self._ids, n_participants)

        reserved: List[int] = []
        try:
            network_ports = resolve_ports(self._network_ports, n_participants, "network", port_manager, "udp", reserved)
            da_ports = resolve_ports(self._da_ports, n_participants, "DA", port_manager, "udp", reserved)
            api_ports = resolve_ports(self._api_ports, n_participants, "API", port_manager, "tcp", reserved)

            validate_generated_vectors(
                n_participants, ids,
                [("network", network_ports), ("DA", da_ports), ("API", api_ports)],
            )

            generals = create_general_configs(
                network_ports, da_ports, api_ports,
                config.consensus_params, config.da_params,
                config.network_params, config.wallet_config,
            )
        except Exception:
            port_manager.free(reserved)
            raise

        descriptors = []
        for i in range(n_participants):
            if i < config.n_validators:
                role, index = NodeRole.VALIDATOR, i
            else:
                role, index = NodeRole.EXECUTOR, i - config.n_validators
            descriptors.append(NodeDescriptor(
                role=role,
                index=index,
                id=ids[i],
                network_port=network_ports[i],
                da_port=da_ports[i],
                general=generals[i],
            ))

        topology = Topology(
            config,
            descriptors[:config.n_validators],
            descriptors[config.n_validators:],
            port_manager=port_manager,
            reserved_ports=reserved,
        )
        logger.info(f"Built topology with {config.n_validators} validator(s) and "
                    f"{config.n_executors} executor(s), layout {config.network_params.layout.value}")
        return topology

