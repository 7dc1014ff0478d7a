"""
Concrete readiness checks over per-node status calls.

Each status call is bounded by ``request_timeout``; a call that fails or times
out is recorded as that node's error and the overall poll continues.
"""
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ..errors import CallTimeoutError, NetorchError
from .base import ReadinessCheck, call_with_timeout

NETWORK_REQUEST_TIMEOUT = 10.0
HEIGHT_REQUEST_TIMEOUT = 10.0


@dataclass
class ReadinessNode:
    """A node under observation: display label, API client and optional peer target"""
    label: str
    api: Any
    expected_peers: Optional[int] = None


@dataclass
class NodeStatus:
    label: str
    value: Optional[int] = None
    error: Optional[str] = None
    expected: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def describe(self, unit: str) -> str:
        if self.error is not None:
            return f"{self.label} (error: {self.error})"
        if self.expected is not None:
            return f"{self.label} ({unit} {self.value}/{self.expected})"
        return f"{self.label} ({unit} {self.value})"


def _observe(label: str, call, what: str, request_timeout: float, extract) -> NodeStatus:
    try:
        info = call_with_timeout(call, request_timeout)
    except CallTimeoutError:
        return NodeStatus(label, error=f"{what} request timed out")
    except NetorchError as e:
        return NodeStatus(label, error=str(e))
    return NodeStatus(label, value=extract(info))


def collect_heights(nodes: Sequence[ReadinessNode], request_timeout: float = HEIGHT_REQUEST_TIMEOUT) -> List[NodeStatus]:
    return [
        _observe(node.label, node.api.consensus_info, "consensus_info", request_timeout, lambda info: info.height)
        for node in nodes
    ]


def format_heights(statuses: Sequence[NodeStatus]) -> str:
    return "[" + ", ".join(
        f"{s.label}={s.value}" if s.ok else f"{s.label}=error({s.error})" for s in statuses
    ) + "]"


class NetworkReadiness(ReadinessCheck):
    """Every node reports at least its expected peer count"""

    def __init__(self, nodes: Sequence[ReadinessNode], request_timeout: float = NETWORK_REQUEST_TIMEOUT):
        self.nodes = list(nodes)
        self.request_timeout = request_timeout

    def collect(self) -> List[NodeStatus]:
        statuses = []
        for node in self.nodes:
            status = _observe(node.label, node.api.network_info, "network_info", self.request_timeout, lambda info: info.n_peers)
            status.expected = node.expected_peers
            statuses.append(status)
        return statuses

    def is_ready(self, data: List[NodeStatus]) -> bool:
        return all(
            status.ok and (status.expected is None or status.value >= status.expected)
            for status in data
        )

    def timeout_message(self, data: List[NodeStatus]) -> str:
        summary = ", ".join(status.describe("peers") for status in data)
        return f"timed out waiting for network readiness: {summary}"


class NodeReachability(ReadinessCheck):
    """Every node answers its consensus status call; baseline readiness after deploy"""

    def __init__(self, nodes: Sequence[ReadinessNode], request_timeout: float = HEIGHT_REQUEST_TIMEOUT):
        self.nodes = list(nodes)
        self.request_timeout = request_timeout

    def collect(self) -> List[NodeStatus]:
        return collect_heights(self.nodes, self.request_timeout)

    def is_ready(self, data: List[NodeStatus]) -> bool:
        return all(status.ok for status in data)

    def timeout_message(self, data: List[NodeStatus]) -> str:
        summary = ", ".join(status.describe("height") for status in data)
        return f"timed out waiting for nodes to respond: {summary}"


class MinHeightReadiness(ReadinessCheck):
    """Every node reports consensus height >= min_height"""

    def __init__(self, nodes: Sequence[ReadinessNode], min_height: int,
                 request_timeout: float = HEIGHT_REQUEST_TIMEOUT):
        self.nodes = list(nodes)
        self.min_height = min_height
        self.request_timeout = request_timeout

    def collect(self) -> List[NodeStatus]:
        return collect_heights(self.nodes, self.request_timeout)

    def is_ready(self, data: List[NodeStatus]) -> bool:
        return all(status.ok and status.value >= self.min_height for status in data)

    def timeout_message(self, data: List[NodeStatus]) -> str:
        return f"min height {self.min_height} not reached before timeout; heights={format_heights(data)}"


class HeightConvergence(ReadinessCheck):
    """Highest and lowest reported heights differ by at most max_diff"""

    def __init__(self, nodes: Sequence[ReadinessNode], max_diff: int, min_height: int = 0,
                 request_timeout: float = HEIGHT_REQUEST_TIMEOUT):
        self.nodes = list(nodes)
        self.max_diff = max_diff
        self.min_height = min_height
        self.request_timeout = request_timeout

    def collect(self) -> List[NodeStatus]:
        return collect_heights(self.nodes, self.request_timeout)

    def is_ready(self, data: List[NodeStatus]) -> bool:
        if not data or not all(status.ok for status in data):
            return False
        heights = [status.value for status in data]
        return min(heights) >= self.min_height and max(heights) - min(heights) <= self.max_diff

    def timeout_message(self, data: List[NodeStatus]) -> str:
        return (f"heights did not converge within {self.max_diff} blocks before timeout; "
                f"heights={format_heights(data)}")


class CatchUpReadiness(ReadinessCheck):
    """A lagging node reaches min(reference heights) - tolerance"""

    def __init__(self, behind: ReadinessNode, references: Sequence[ReadinessNode], tolerance: int = 1,
                 request_timeout: float = HEIGHT_REQUEST_TIMEOUT):
        self.behind = behind
        self.references = list(references)
        self.tolerance = tolerance
        self.request_timeout = request_timeout

    def collect(self) -> List[NodeStatus]:
        return collect_heights([self.behind] + self.references, self.request_timeout)

    def is_ready(self, data: List[NodeStatus]) -> bool:
        behind, references = data[0], data[1:]
        if not behind.ok or not references or not all(ref.ok for ref in references):
            return False
        target = min(ref.value for ref in references) - self.tolerance
        return behind.value >= target

    def timeout_message(self, data: List[NodeStatus]) -> str:
        return (f"{self.behind.label} did not catch up to its peers before timeout; "
                f"heights={format_heights(data)}")
