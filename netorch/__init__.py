"""
netorch - end-to-end test orchestration for multi-node networks
"""
from .deployers import create_deployer, LocalDeployer, ComposeDeployer, ClusterDeployer, LocalManualCluster
from .models import (
    Backend,
    ChaosPolicy,
    NetworkLayout,
    NodeRole,
    PeerSelection,
    RunResult,
    StartNodeOptions,
    StartedNode,
    TargetSelection,
)
from .scenario import DSLLoader, Runner, Scenario, ScenarioBuilder
from .topology import Topology, TopologyBuilder, TopologyConfig
from .workflows import (
    start_node_with_timeout,
    wait_for_catch_up,
    wait_for_height_convergence,
    wait_for_min_height,
)

__version__ = "0.1.0"

__all__ = [
    'create_deployer',
    'LocalDeployer',
    'ComposeDeployer',
    'ClusterDeployer',
    'LocalManualCluster',
    'Backend',
    'ChaosPolicy',
    'NetworkLayout',
    'NodeRole',
    'PeerSelection',
    'RunResult',
    'StartNodeOptions',
    'StartedNode',
    'TargetSelection',
    'DSLLoader',
    'Runner',
    'Scenario',
    'ScenarioBuilder',
    'Topology',
    'TopologyBuilder',
    'TopologyConfig',
    'start_node_with_timeout',
    'wait_for_catch_up',
    'wait_for_height_convergence',
    'wait_for_min_height',
]
