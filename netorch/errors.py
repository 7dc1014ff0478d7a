"""
Exception hierarchy for the orchestration engine
"""
from typing import Any, Optional


class NetorchError(Exception):
    """Base class for all engine errors"""


class TopologyBuildError(NetorchError):
    """Topology could not be built; raised before any backend resource exists"""


class EmptyParticipantsError(TopologyBuildError):
    def __init__(self):
        super().__init__("topology must include at least one node")


class PortAllocationError(TopologyBuildError):
    def __init__(self, label: str):
        self.label = label
        super().__init__(f"failed to allocate a free port for {label}")


class InvariantViolationError(TopologyBuildError):
    """Generated identities or ports collide"""


class VectorLengthMismatchError(TopologyBuildError):
    def __init__(self, label: str, expected: int, actual: int):
        self.label = label
        self.expected = expected
        self.actual = actual
        super().__init__(f"config vector mismatch for {label} (expected {expected}, got {actual})")


class IdCountMismatchError(TopologyBuildError):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"expected {expected} ids but got {actual}")


class TopologyParamsError(TopologyBuildError):
    """Data-availability or network parameters are inconsistent with the node count"""


class ScenarioBuildError(NetorchError):
    """Scenario plan is invalid"""


class DeployError(NetorchError):
    """Backend failed to materialize a scenario"""


class BackendUnavailableError(DeployError):
    """The backend's infrastructure dependency is not reachable; callers may skip"""

    def __init__(self, backend: str, reason: str = ""):
        self.backend = backend
        self.reason = reason
        message = f"{backend} backend is unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class NodeControlError(NetorchError):
    """Invalid node transition or failed start/stop/restart"""


class ApiClientError(NetorchError):
    """Status or submission call against a node failed"""


class CallTimeoutError(NetorchError):
    """A single bounded call did not return in time"""


class ReadinessTimeoutError(NetorchError):
    """Readiness predicate not satisfied before the overall timeout"""

    def __init__(self, message: str, last_data: Any = None):
        super().__init__(message)
        self.last_data = last_data


class ReadinessCancelledError(NetorchError):
    """Readiness wait interrupted by the stop signal"""


class ScenarioRunError(NetorchError):
    """Scenario run failed"""


class ScenarioAlreadyRunError(ScenarioRunError):
    def __init__(self, scenario_id: str):
        super().__init__(f"scenario {scenario_id} was already run; build a new scenario to run again")


class ManualClusterError(NetorchError):
    """Misuse of a manual cluster (closed cluster, unknown node)"""


class ManualTestError(NetorchError):
    """Failure of a manual-cluster workflow helper"""


class ManualTimeoutError(ManualTestError):
    def __init__(self, message: str, last_data: Optional[Any] = None):
        super().__init__(f"timeout: {message}")
        self.last_data = last_data


class StartNodeError(ManualTestError):
    def __init__(self, message: str):
        super().__init__(f"start node failed: {message}")
