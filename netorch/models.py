"""
Core data models for the orchestration engine
"""
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, TYPE_CHECKING
from enum import Enum

from .errors import ScenarioBuildError, ScenarioRunError

if TYPE_CHECKING:
    from .api_client.client import ApiClient


class NodeRole(Enum):
    """Role of a node in the topology; determines index numbering and config variant"""
    VALIDATOR = "validator"
    EXECUTOR = "executor"


class Backend(Enum):
    """Execution backends a scenario can be deployed onto"""
    LOCAL = "local"
    COMPOSE = "compose"
    CLUSTER = "cluster"


class NetworkLayout(Enum):
    """How initial peers are wired between nodes"""
    STAR = "star"
    CHAIN = "chain"
    FULL = "full"


class NodeState(Enum):
    """Lifecycle of a named node behind a node control handle"""
    UNSTARTED = "unstarted"
    RUNNING = "running"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class ChaosMode(Enum):
    """Types of chaos injection supported"""
    RESTART = "restart"


@dataclass
class ConsensusParams:
    """Consensus parameters shared by every node of a topology"""
    n_participants: int
    security_param: int = 10
    active_slot_coeff: float = 0.9
    slot_duration: float = 2.0

    @classmethod
    def default_for_participants(cls, n_participants: int) -> "ConsensusParams":
        return cls(n_participants=max(n_participants, 1))

    @property
    def block_interval(self) -> float:
        """Expected seconds between blocks"""
        return self.slot_duration / self.active_slot_coeff


@dataclass
class DaParams:
    """Data-availability network parameters"""
    dispersal_factor: int = 1
    subnetwork_size: int = 1
    num_subnets: int = 1
    min_dispersal_peers: int = 0
    min_replication_peers: int = 0
    balancer_interval: float = 1.0


@dataclass
class NetworkParams:
    layout: NetworkLayout = NetworkLayout.STAR


@dataclass
class WalletConfig:
    """Funded accounts seeded into genesis"""
    accounts: int = 0


@dataclass(frozen=True)
class ApiConfig:
    port: int


@dataclass(frozen=True)
class NetworkConfig:
    port: int
    initial_peers: tuple = ()  # indices of peer nodes in topology order


@dataclass(frozen=True)
class DaConfig:
    port: int
    dispersal_factor: int
    subnetwork_size: int
    num_subnets: int
    min_dispersal_peers: int
    min_replication_peers: int
    balancer_interval: float


@dataclass(frozen=True)
class ConsensusConfig:
    n_participants: int
    security_param: int
    active_slot_coeff: float
    slot_duration: float
    funded_accounts: int = 0


@dataclass(frozen=True)
class GeneralConfig:
    """Resolved per-service configuration of one node"""
    api_config: ApiConfig
    network_config: NetworkConfig
    da_config: DaConfig
    consensus_config: ConsensusConfig


@dataclass(frozen=True)
class NodeDescriptor:
    """Immutable description of one node in a built topology"""
    role: NodeRole
    index: int
    id: bytes
    network_port: int
    da_port: int
    general: GeneralConfig

    @property
    def name(self) -> str:
        return f"{self.role.value}-{self.index}"

    @property
    def api_port(self) -> int:
        return self.general.api_config.port

    @property
    def id_hex(self) -> str:
        return self.id.hex()


@dataclass(frozen=True)
class PeerSelection:
    """Which peers a newly started node dials: all running nodes, none, or a named list"""
    mode: str = "default"  # "default", "none", "named"
    names: tuple = ()

    @classmethod
    def default(cls) -> "PeerSelection":
        return cls("default")

    @classmethod
    def none(cls) -> "PeerSelection":
        return cls("none")

    @classmethod
    def named(cls, names: List[str]) -> "PeerSelection":
        return cls("named", tuple(names))


@dataclass
class StartNodeOptions:
    """Options for starting a node through a node control handle"""
    peers: PeerSelection = field(default_factory=PeerSelection.default)
    config_patch: Optional[Dict[str, Any]] = None
    persist_dir: Optional[str] = None


@dataclass
class StartedNode:
    """A node that transitioned from declared to running"""
    name: str
    api: "ApiClient"


@dataclass
class ConsensusInfo:
    height: int
    slot: Optional[int] = None
    tip: Optional[str] = None


@dataclass
class NetworkInfo:
    n_peers: int
    n_connections: Optional[int] = None


TARGET_STRATEGIES = ("random", "validators_only", "executors_only", "specific")


@dataclass
class TargetSelection:
    """Configuration for chaos target selection"""
    strategy: str = "random"  # "random", "validators_only", "executors_only", "specific"
    specific_nodes: Optional[List[str]] = None


@dataclass
class ChaosPolicy:
    """Randomized node restarts during a run.

    Delays are in seconds. No restart is scheduled once less than
    ``target_cooldown`` remains before the end of the run, and a node is not
    restarted again until ``target_cooldown`` has passed since its last restart.
    """
    min_delay: float
    max_delay: float
    target_cooldown: float
    mode: ChaosMode = ChaosMode.RESTART
    target_selection: TargetSelection = field(default_factory=TargetSelection)

    def validate(self) -> None:
        if self.min_delay < 0 or self.max_delay < 0 or self.target_cooldown < 0:
            raise ScenarioBuildError("chaos delays and cooldown must be non-negative")
        if self.min_delay > self.max_delay:
            raise ScenarioBuildError(
                f"chaos min_delay ({self.min_delay}s) exceeds max_delay ({self.max_delay}s)"
            )
        if self.target_selection.strategy not in TARGET_STRATEGIES:
            raise ScenarioBuildError(f"unknown chaos target strategy '{self.target_selection.strategy}'")
        if self.target_selection.strategy == "specific" and not self.target_selection.specific_nodes:
            raise ScenarioBuildError("specific chaos target selection requires node names")


@dataclass
class ChaosResult:
    """Result of one chaos action"""
    chaos_id: str
    chaos_type: ChaosMode
    target_node: str
    success: bool
    start_time: float
    end_time: Optional[float] = None
    old_pid: Optional[Any] = None
    new_pid: Optional[Any] = None
    error_message: Optional[str] = None


@dataclass
class WorkloadReport:
    """Totals reported by a workload once it stops"""
    name: str
    submitted: int = 0
    accepted: int = 0
    failed: int = 0
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExpectationResult:
    name: str
    success: bool
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RunResult:
    """Aggregate outcome of one scenario run"""
    scenario_id: str
    success: bool
    start_time: float
    end_time: float
    chaos_events: List[ChaosResult] = field(default_factory=list)
    workload_reports: List[WorkloadReport] = field(default_factory=list)
    expectation_results: List[ExpectationResult] = field(default_factory=list)
    error_message: Optional[str] = None
    seed: Optional[int] = None

    @property
    def failed_expectations(self) -> List[ExpectationResult]:
        return [result for result in self.expectation_results if not result.success]

    def raise_for_status(self) -> None:
        if self.success:
            return
        reasons = [f"{r.name}: {r.message}" for r in self.failed_expectations]
        if self.error_message:
            reasons.insert(0, self.error_message)
        raise ScenarioRunError(f"scenario {self.scenario_id} failed: " + "; ".join(reasons))
