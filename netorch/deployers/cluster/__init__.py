"""
Cluster backend - node Deployments on Kubernetes via kubectl
"""
from .control import ClusterNodeControl
from .deployer import ClusterDeployer, ensure_kubectl_available, namespace_for, node_manifests

__all__ = ['ClusterDeployer', 'ClusterNodeControl', 'ensure_kubectl_available', 'namespace_for', 'node_manifests']
