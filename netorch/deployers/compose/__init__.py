"""
Compose backend - node containers under docker compose
"""
from .control import ComposeNodeControl
from .deployer import ComposeDeployer, compose_services, ensure_docker_available

__all__ = ['ComposeDeployer', 'ComposeNodeControl', 'compose_services', 'ensure_docker_available']
