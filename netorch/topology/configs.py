"""
Per-service sub-config derivation and generated-vector invariants
"""
from typing import List, Sequence, Tuple

from ..errors import InvariantViolationError, VectorLengthMismatchError, TopologyParamsError
from ..models import (
    ApiConfig, ConsensusConfig, ConsensusParams, DaConfig, DaParams, GeneralConfig,
    NetworkConfig, NetworkLayout, NetworkParams, WalletConfig,
)


def validate_generated_vectors(n_participants: int, ids: Sequence[bytes],
                               ports_by_label: Sequence[Tuple[str, Sequence[int]]]) -> None:
    """Check vector lengths and global uniqueness of ids and ports"""
    if len(ids) != n_participants:
        raise VectorLengthMismatchError("ids", n_participants, len(ids))

    for label, ports in ports_by_label:
        if len(ports) != n_participants:
            raise VectorLengthMismatchError(f"{label} ports", n_participants, len(ports))

    if len(set(ids)) != len(ids):
        raise InvariantViolationError("duplicate node ids generated")
    for node_id in ids:
        if len(node_id) != 32:
            raise InvariantViolationError(f"node id must be 32 bytes, got {len(node_id)}")

    seen = {}
    for label, ports in ports_by_label:
        for port in ports:
            if port in seen:
                raise InvariantViolationError(
                    f"port {port} assigned twice ({seen[port]} and {label})"
                )
            seen[port] = label


def validate_da_params(da_params: DaParams, n_participants: int) -> None:
    if da_params.num_subnets < 1 or da_params.subnetwork_size < 1:
        raise TopologyParamsError("DA subnet count and subnetwork size must be at least 1")
    if da_params.dispersal_factor < 1:
        raise TopologyParamsError("DA dispersal factor must be at least 1")
    if da_params.dispersal_factor > n_participants:
        raise TopologyParamsError(
            f"DA dispersal factor {da_params.dispersal_factor} exceeds participant count {n_participants}"
        )
    if da_params.min_dispersal_peers < 0 or da_params.min_replication_peers < 0:
        raise TopologyParamsError("DA minimum peer counts must be non-negative")


def initial_peer_indices(layout: NetworkLayout, index: int) -> Tuple[int, ...]:
    """Lower-indexed peers a node dials at startup, so start order is always satisfiable"""
    if index == 0:
        return ()
    if layout == NetworkLayout.STAR:
        return (0,)
    if layout == NetworkLayout.CHAIN:
        return (index - 1,)
    return tuple(range(index))


def create_general_configs(
    network_ports: Sequence[int],
    da_ports: Sequence[int],
    api_ports: Sequence[int],
    consensus_params: ConsensusParams,
    da_params: DaParams,
    network_params: NetworkParams,
    wallet_config: WalletConfig,
) -> List[GeneralConfig]:
    """Derive one GeneralConfig per participant in topology order"""
    n_participants = len(network_ports)
    for label, vector in (("DA", da_ports), ("API", api_ports)):
        if len(vector) != n_participants:
            raise VectorLengthMismatchError(f"{label} ports", n_participants, len(vector))

    consensus = ConsensusConfig(
        n_participants=n_participants,
        security_param=consensus_params.security_param,
        active_slot_coeff=consensus_params.active_slot_coeff,
        slot_duration=consensus_params.slot_duration,
        funded_accounts=wallet_config.accounts,
    )

    configs = []
    for i in range(n_participants):
        configs.append(GeneralConfig(
            api_config=ApiConfig(port=api_ports[i]),
            network_config=NetworkConfig(
                port=network_ports[i],
                initial_peers=initial_peer_indices(network_params.layout, i),
            ),
            da_config=DaConfig(
                port=da_ports[i],
                dispersal_factor=da_params.dispersal_factor,
                subnetwork_size=da_params.subnetwork_size,
                num_subnets=da_params.num_subnets,
                min_dispersal_peers=da_params.min_dispersal_peers,
                min_replication_peers=da_params.min_replication_peers,
                balancer_interval=da_params.balancer_interval,
            ),
            consensus_config=consensus,
        ))
    return configs
