"""
Pass/fail checks evaluated after a run's workloads finish
"""
import logging
from typing import Dict, List, Optional, TYPE_CHECKING

from ..errors import ReadinessTimeoutError, ScenarioBuildError
from ..interfaces import IExpectation
from ..models import ExpectationResult, WorkloadReport
from ..readiness.checks import MinHeightReadiness, collect_heights, format_heights

if TYPE_CHECKING:
    from .runner import RunContext

logger = logging.getLogger(__name__)


class ConsensusLiveness(IExpectation):
    """Every node's height advances past the highest height observed at run start"""

    name = "consensus_liveness"

    def __init__(self, min_progress: int = 1, max_wait: Optional[float] = None, poll_interval: float = 1.0):
        if min_progress < 1:
            raise ScenarioBuildError(f"consensus liveness needs min_progress >= 1, got {min_progress}")
        self.min_progress = min_progress
        self.max_wait = max_wait
        self.poll_interval = poll_interval
        self.initial_heights: Dict[str, Optional[int]] = {}

    def start_capture(self, ctx: "RunContext") -> None:
        statuses = collect_heights(ctx.readiness_nodes())
        self.initial_heights = {status.label: status.value for status in statuses}
        logger.info(f"Consensus liveness baseline: {format_heights(statuses)}")

    def target_height(self) -> int:
        known = [height for height in self.initial_heights.values() if height is not None]
        return (max(known) if known else 0) + self.min_progress

    def evaluate(self, ctx: "RunContext", budget: float,
                 workload_reports: List[WorkloadReport]) -> ExpectationResult:
        target = self.target_height()
        timeout = min(budget, self.max_wait) if self.max_wait is not None else budget
        check = MinHeightReadiness(ctx.readiness_nodes(), target)

        try:
            statuses = check.wait(timeout, self.poll_interval)
        except ReadinessTimeoutError as e:
            return ExpectationResult(
                name=self.name,
                success=False,
                message=str(e),
                details={
                    'target_height': target,
                    'initial_heights': self.initial_heights,
                    'heights': {s.label: s.value if s.ok else s.error for s in e.last_data},
                },
            )

        return ExpectationResult(
            name=self.name,
            success=True,
            message=f"all nodes reached height {target}",
            details={'target_height': target, 'heights': {s.label: s.value for s in statuses}},
        )


class TxInclusionExpectation(IExpectation):
    """At least ``min_ratio`` of submitted transactions were accepted"""

    name = "tx_inclusion"

    def __init__(self, min_ratio: float = 0.5, workload_name: str = "transactions"):
        if not 0.0 < min_ratio <= 1.0:
            raise ScenarioBuildError(f"tx inclusion ratio must be in (0, 1], got {min_ratio}")
        self.min_ratio = min_ratio
        self.workload_name = workload_name

    def evaluate(self, ctx: "RunContext", budget: float,
                 workload_reports: List[WorkloadReport]) -> ExpectationResult:
        reports = [r for r in workload_reports if r.name == self.workload_name]
        submitted = sum(r.submitted for r in reports)
        accepted = sum(r.accepted for r in reports)
        details = {'submitted': submitted, 'accepted': accepted, 'min_ratio': self.min_ratio}

        if submitted == 0:
            return ExpectationResult(self.name, False, "no transactions were submitted", details)

        ratio = accepted / submitted
        details['ratio'] = ratio
        if ratio < self.min_ratio:
            return ExpectationResult(
                self.name, False,
                f"only {accepted}/{submitted} transactions accepted ({ratio:.0%} < {self.min_ratio:.0%})",
                details,
            )
        return ExpectationResult(self.name, True, f"{accepted}/{submitted} transactions accepted", details)
