"""
Deployers - bring a scenario's topology up on a backend and hand back a Runner
"""
from typing import Union

from ..errors import DeployError
from ..interfaces import IDeployer
from ..models import Backend
from .cluster import ClusterDeployer
from .compose import ComposeDeployer
from .local import LocalDeployer, LocalManualCluster


def create_deployer(backend: Union[Backend, str], **kwargs) -> IDeployer:
    """Build the deployer for a backend name or enum value"""
    try:
        backend = Backend(backend)
    except ValueError:
        raise DeployError(f"unknown backend '{backend}'")

    if backend == Backend.LOCAL:
        return LocalDeployer(**kwargs)
    if backend == Backend.COMPOSE:
        return ComposeDeployer(**kwargs)
    return ClusterDeployer(**kwargs)


__all__ = ['create_deployer', 'LocalDeployer', 'LocalManualCluster', 'ComposeDeployer', 'ClusterDeployer']
