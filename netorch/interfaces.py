"""
Base interfaces and abstract classes for all major components
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional, TYPE_CHECKING

from .models import StartNodeOptions, StartedNode, WorkloadReport, ExpectationResult

if TYPE_CHECKING:
    import threading
    from .scenario.scenario import Scenario
    from .scenario.runner import Runner, RunContext


class IDeployer(ABC):
    """Interface for turning a scenario into a running deployment on one backend"""

    @abstractmethod
    def deploy(self, scenario: "Scenario") -> "Runner":
        """Materialize backend resources, wait for baseline readiness and return a Runner"""
        pass


class INodeControl(ABC):
    """Interface for starting, stopping and restarting named nodes"""

    @abstractmethod
    def start_node_with(self, name: str, options: Optional[StartNodeOptions] = None) -> StartedNode:
        """Start a declared node with the given peer selection and options"""
        pass

    @abstractmethod
    def restart_node(self, name: str, timeout: Optional[float] = None) -> None:
        """Restart a running node; returns once the new instance is current.

        With a ``timeout`` the node ends either RUNNING with a new pid or STOPPED.
        """
        pass

    @abstractmethod
    def stop_node(self, name: str) -> None:
        """Stop a running node"""
        pass

    @abstractmethod
    def node_pid(self, name: str) -> Optional[Any]:
        """Process id (or backend equivalent) of a running node, None otherwise"""
        pass

    @abstractmethod
    def running_nodes(self) -> List[str]:
        """Names of nodes currently running"""
        pass

    @abstractmethod
    def stop_all(self) -> None:
        """Stop every running node; never raises"""
        pass


class IReadinessCheck(ABC):
    """Interface for poll-until-predicate-or-timeout checks"""

    @abstractmethod
    def collect(self) -> Any:
        """Produce a snapshot of observed state"""
        pass

    @abstractmethod
    def is_ready(self, data: Any) -> bool:
        """Readiness predicate over a snapshot"""
        pass

    @abstractmethod
    def timeout_message(self, data: Any) -> str:
        """Human-readable summary of the last snapshot"""
        pass


class IWorkload(ABC):
    """Interface for traffic generators driven during a run"""

    name: str = "workload"

    @abstractmethod
    def run(self, ctx: "RunContext", stop_event: "threading.Event") -> WorkloadReport:
        """Generate traffic until the stop event is set"""
        pass


class IExpectation(ABC):
    """Interface for pass/fail checks evaluated after workloads finish"""

    name: str = "expectation"

    def start_capture(self, ctx: "RunContext") -> None:
        """Record baseline state before workloads start"""
        pass

    @abstractmethod
    def evaluate(self, ctx: "RunContext", budget: float,
                 workload_reports: List[WorkloadReport]) -> ExpectationResult:
        """Evaluate against the live deployment within the given time budget"""
        pass
