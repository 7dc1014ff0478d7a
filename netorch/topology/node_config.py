"""
Node configuration payloads.

Maps a resolved NodeDescriptor to the YAML document a node process reads at
startup. Backends decide the host names peers are reachable under.
"""
import copy
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml

from ..models import NodeDescriptor


def peer_multiaddr(host: str, port: int) -> str:
    proto = "ip4" if host.replace(".", "").isdigit() else "dns4"
    return f"/{proto}/{host}/udp/{port}/quic-v1"


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``patch`` into a copy of ``base``; nested mappings merge, other values replace"""
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def create_node_config(
    descriptor: NodeDescriptor,
    peers: Sequence[Tuple[str, int]],
    data_dir: str,
    log_dir: Optional[str] = None,
    bind_host: str = "127.0.0.1",
    config_patch: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the configuration document for one node.

    ``peers`` are ``(host, network_port)`` pairs the node dials at startup.
    """
    general = descriptor.general
    da = general.da_config
    consensus = general.consensus_config

    config: Dict[str, Any] = {
        "node": {
            "id": descriptor.id_hex,
            "role": descriptor.role.value,
            "index": descriptor.index,
            "name": descriptor.name,
        },
        "api": {
            "address": f"{bind_host}:{general.api_config.port}",
        },
        "network": {
            "port": general.network_config.port,
            "initial_peers": [peer_multiaddr(host, port) for host, port in peers],
        },
        "da": {
            "port": da.port,
            "dispersal_factor": da.dispersal_factor,
            "subnetwork_size": da.subnetwork_size,
            "num_subnets": da.num_subnets,
            "min_dispersal_peers": da.min_dispersal_peers,
            "min_replication_peers": da.min_replication_peers,
            "balancer_interval_secs": da.balancer_interval,
        },
        "consensus": {
            "n_participants": consensus.n_participants,
            "security_param": consensus.security_param,
            "active_slot_coeff": consensus.active_slot_coeff,
            "slot_duration_secs": consensus.slot_duration,
            "funded_accounts": consensus.funded_accounts,
        },
        "storage": {
            "data_dir": data_dir,
            "recovery_dir": f"{data_dir}/recovery",
        },
    }
    if log_dir:
        config["tracing"] = {"log_dir": log_dir}
    if config_patch:
        config = deep_merge(config, config_patch)
    return config


def write_node_config(path: str, config: Dict[str, Any]) -> str:
    with open(path, 'w') as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    return path
