"""
Fluent builders for scenarios and their chaos policies
"""
from typing import Callable, List, Optional

from ..errors import ScenarioBuildError
from ..interfaces import IExpectation, IWorkload
from ..models import ChaosMode, ChaosPolicy, TargetSelection, WalletConfig
from ..topology import TopologyBuilder, TopologyConfig
from .expectations import ConsensusLiveness, TxInclusionExpectation
from .scenario import Scenario
from .workloads import DaWorkload, TransactionWorkload

DEFAULT_RUN_DURATION = 60.0


class RestartChaosBuilder:
    """Collects restart chaos timings; ``apply`` returns the validated policy"""

    def __init__(self):
        self._min_delay: Optional[float] = None
        self._max_delay: Optional[float] = None
        self._target_cooldown: float = 0.0
        self._target_selection = TargetSelection()

    def min_delay(self, seconds: float) -> "RestartChaosBuilder":
        self._min_delay = seconds
        return self

    def max_delay(self, seconds: float) -> "RestartChaosBuilder":
        self._max_delay = seconds
        return self

    def target_cooldown(self, seconds: float) -> "RestartChaosBuilder":
        self._target_cooldown = seconds
        return self

    def targets(self, strategy: str, specific_nodes: Optional[List[str]] = None) -> "RestartChaosBuilder":
        self._target_selection = TargetSelection(strategy=strategy, specific_nodes=specific_nodes)
        return self

    def apply(self) -> ChaosPolicy:
        if self._min_delay is None or self._max_delay is None:
            raise ScenarioBuildError("restart chaos requires min_delay and max_delay")
        policy = ChaosPolicy(
            min_delay=self._min_delay,
            max_delay=self._max_delay,
            target_cooldown=self._target_cooldown,
            mode=ChaosMode.RESTART,
            target_selection=self._target_selection,
        )
        policy.validate()
        return policy


class ChaosBuilder:
    def restart(self) -> RestartChaosBuilder:
        return RestartChaosBuilder()


class ScenarioBuilder:
    """Composes a topology with workloads, chaos, expectations and a run duration.

    Example::

        scenario = (ScenarioBuilder()
                    .topology_with(lambda t: t.validators(1).executors(1))
                    .enable_node_control()
                    .chaos_with(lambda c: c.restart().min_delay(120).max_delay(180)
                                .target_cooldown(240).apply())
                    .with_run_duration(60)
                    .expect_consensus_liveness()
                    .build())
    """

    def __init__(self, topology_config: Optional[TopologyConfig] = None):
        self._topology_builder = TopologyBuilder(topology_config)
        self._workloads: List[IWorkload] = []
        self._expectations: List[IExpectation] = []
        self._chaos_policy: Optional[ChaosPolicy] = None
        self._node_control = False
        self._run_duration = DEFAULT_RUN_DURATION
        self._output_dir: Optional[str] = None
        self._seed: Optional[int] = None
        self._scenario_id: Optional[str] = None

    @property
    def topology(self) -> TopologyBuilder:
        return self._topology_builder

    def topology_with(self, configure: Callable[[TopologyBuilder], TopologyBuilder]) -> "ScenarioBuilder":
        result = configure(self._topology_builder)
        if isinstance(result, TopologyBuilder):
            self._topology_builder = result
        return self

    def enable_node_control(self) -> "ScenarioBuilder":
        self._node_control = True
        return self

    def chaos(self, policy: ChaosPolicy) -> "ScenarioBuilder":
        policy.validate()
        self._chaos_policy = policy
        return self

    def chaos_with(self, configure: Callable[[ChaosBuilder], ChaosPolicy]) -> "ScenarioBuilder":
        return self.chaos(configure(ChaosBuilder()))

    def wallets(self, accounts: int) -> "ScenarioBuilder":
        if accounts < 0:
            raise ScenarioBuildError(f"wallet account count must be non-negative, got {accounts}")
        self._topology_builder.with_wallet_config(WalletConfig(accounts=accounts))
        return self

    def with_workload(self, workload: IWorkload) -> "ScenarioBuilder":
        self._workloads.append(workload)
        return self

    def transactions_with(self, rate: float, users: int = 1) -> "ScenarioBuilder":
        return self.with_workload(TransactionWorkload(rate, users))

    def da_with(self, channel_rate: int = 1, blob_rate: float = 1.0, headroom_percent: int = 0) -> "ScenarioBuilder":
        return self.with_workload(DaWorkload(channel_rate, blob_rate, headroom_percent))

    def with_expectation(self, expectation: IExpectation) -> "ScenarioBuilder":
        self._expectations.append(expectation)
        return self

    def expect_consensus_liveness(self, min_progress: int = 1, max_wait: Optional[float] = None) -> "ScenarioBuilder":
        return self.with_expectation(ConsensusLiveness(min_progress, max_wait))

    def expect_tx_inclusion(self, min_ratio: float = 0.5) -> "ScenarioBuilder":
        return self.with_expectation(TxInclusionExpectation(min_ratio))

    def with_run_duration(self, seconds: float) -> "ScenarioBuilder":
        self._run_duration = seconds
        return self

    def with_output_dir(self, path: str) -> "ScenarioBuilder":
        self._output_dir = path
        return self

    def with_seed(self, seed: int) -> "ScenarioBuilder":
        self._seed = seed
        return self

    def with_id(self, scenario_id: str) -> "ScenarioBuilder":
        self._scenario_id = scenario_id
        return self

    def build(self) -> Scenario:
        """Validate the plan, then build the topology; nothing is allocated for an invalid plan"""
        if self._run_duration <= 0:
            raise ScenarioBuildError(f"run duration must be positive, got {self._run_duration}")
        if self._chaos_policy is not None and not self._node_control:
            raise ScenarioBuildError("chaos requires node control; call enable_node_control()")

        topology = self._topology_builder.build()
        return Scenario(
            topology=topology,
            run_duration=float(self._run_duration),
            workloads=self._workloads,
            expectations=self._expectations,
            chaos_policy=self._chaos_policy,
            node_control_enabled=self._node_control,
            output_dir=self._output_dir,
            seed=self._seed,
            scenario_id=self._scenario_id,
        )
