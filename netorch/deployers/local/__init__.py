"""
Local backend - node OS processes on this host
"""
from .deployer import LocalDeployer
from .manual import LocalManualCluster
from .node_control import LocalNodeControl
from .process import NodeProcess
from .binary import resolve_node_binary

__all__ = ['LocalDeployer', 'LocalManualCluster', 'LocalNodeControl', 'NodeProcess', 'resolve_node_binary']
