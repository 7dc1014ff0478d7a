"""Immutable execution plan for one scenario run"""
import threading
import uuid
from typing import List, Optional

from ..errors import ScenarioAlreadyRunError
from ..interfaces import IExpectation, IWorkload
from ..models import ChaosPolicy
from ..topology import Topology


class Scenario:
    """A topology plus its chaos policy, workloads, expectations and run duration.

    A scenario is consumed by exactly one ``Runner.run``; running it again
    raises ScenarioAlreadyRunError.
    """

    def __init__(self, topology: Topology, run_duration: float,
                 workloads: Optional[List[IWorkload]] = None,
                 expectations: Optional[List[IExpectation]] = None,
                 chaos_policy: Optional[ChaosPolicy] = None,
                 node_control_enabled: bool = False,
                 output_dir: Optional[str] = None,
                 seed: Optional[int] = None,
                 scenario_id: Optional[str] = None):
        self.scenario_id = scenario_id or str(uuid.uuid4())[:8]
        self.topology = topology
        self.run_duration = run_duration
        self.workloads = tuple(workloads or ())
        self.expectations = tuple(expectations or ())
        self.chaos_policy = chaos_policy
        self.node_control_enabled = node_control_enabled
        self.output_dir = output_dir
        self.seed = seed
        self._consumed = False
        self._lock = threading.Lock()

    @property
    def consumed(self) -> bool:
        return self._consumed

    def mark_consumed(self) -> None:
        with self._lock:
            if self._consumed:
                raise ScenarioAlreadyRunError(self.scenario_id)
            self._consumed = True

    def __repr__(self) -> str:
        return (f"Scenario(id={self.scenario_id}, topology={self.topology!r}, "
                f"run_duration={self.run_duration}s, workloads={len(self.workloads)}, "
                f"expectations={len(self.expectations)}, chaos={self.chaos_policy is not None})")
