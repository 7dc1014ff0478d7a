"""
Step-by-step helpers for manual-cluster tests
"""
import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from .errors import CallTimeoutError, ManualTimeoutError, NetorchError, ReadinessTimeoutError, StartNodeError
from .interfaces import INodeControl
from .models import StartNodeOptions, StartedNode
from .readiness import (
    CatchUpReadiness, HeightConvergence, MinHeightReadiness, ReadinessNode, call_with_timeout,
)

logger = logging.getLogger(__name__)

Nodes = Union[Mapping[str, Any], Sequence[Any]]


def _as_readiness_nodes(nodes: Nodes) -> List[ReadinessNode]:
    if isinstance(nodes, Mapping):
        return [ReadinessNode(label, api) for label, api in nodes.items()]
    result = []
    for i, node in enumerate(nodes):
        if isinstance(node, ReadinessNode):
            result.append(node)
        elif isinstance(node, StartedNode):
            result.append(ReadinessNode(node.name, node.api))
        else:
            result.append(ReadinessNode(getattr(node, 'base_url', None) or f"node-{i}", node))
    return result


def start_node_with_timeout(handle: INodeControl, name: str,
                            options: Optional[StartNodeOptions] = None,
                            timeout: float = 60.0) -> StartedNode:
    """Start a node through a control handle, failing once ``timeout`` elapses.

    A start that completes after the timeout is stopped again.
    """
    def stop_late_start():
        try:
            handle.stop_node(name)
            logger.warning(f"Stopped {name}: its start finished after the {timeout}s timeout")
        except NetorchError as e:
            logger.warning(f"Could not stop {name} after late start: {e}")

    try:
        return call_with_timeout(handle.start_node_with, timeout, name, options or StartNodeOptions(),
                                 on_late_finish=stop_late_start)
    except CallTimeoutError:
        raise ManualTimeoutError(f"starting node '{name}' exceeded timeout")
    except NetorchError as e:
        raise StartNodeError(str(e)) from e


def _wait(check, timeout: float, poll_interval: float):
    try:
        return check.wait(timeout, poll_interval)
    except ReadinessTimeoutError as e:
        raise ManualTimeoutError(str(e), e.last_data) from e


def wait_for_min_height(nodes: Nodes, min_height: int, timeout: float,
                        poll_interval: float = 1.0) -> None:
    logger.info(f"Waiting for {len(nodes)} node(s) to reach height {min_height} (timeout: {timeout:.2f}s)")
    _wait(MinHeightReadiness(_as_readiness_nodes(nodes), min_height), timeout, poll_interval)


def wait_for_height_convergence(nodes: Nodes, max_diff: int, timeout: float,
                                poll_interval: float = 1.0, min_height: int = 0) -> None:
    _wait(HeightConvergence(_as_readiness_nodes(nodes), max_diff, min_height), timeout, poll_interval)


def wait_for_catch_up(behind: Any, references: Nodes, timeout: float,
                      poll_interval: float = 1.0, tolerance: int = 1) -> None:
    """Wait until ``behind`` is within ``tolerance`` blocks of the slowest reference node"""
    behind_node = _as_readiness_nodes([behind])[0]
    if behind_node.label == "node-0":
        behind_node.label = "behind"
    _wait(CatchUpReadiness(behind_node, _as_readiness_nodes(references), tolerance), timeout, poll_interval)
