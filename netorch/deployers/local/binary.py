"""Node binary resolution for the local backend"""
import os
import shutil
from typing import List, Optional

from ... import env
from ...errors import DeployError

DEFAULT_BINARY_NAME = "netorch-node"


def resolve_node_binary(binary_name: str = DEFAULT_BINARY_NAME) -> str:
    """NETORCH_NODE_BIN if set, otherwise the first match on PATH"""
    configured = env.node_binary()
    if configured:
        if not os.path.isfile(configured):
            raise DeployError(f"{env.NODE_BIN_VAR} points to a missing file: {configured}")
        return configured

    found = shutil.which(binary_name)
    if found:
        return found

    raise DeployError(
        f"node binary '{binary_name}' not found; set {env.NODE_BIN_VAR} or add it to PATH"
    )


def resolve_node_command(node_command: Optional[List[str]] = None) -> List[str]:
    if node_command:
        return list(node_command)
    return [resolve_node_binary()]
