"""
Scenario - execution plans, their builders and the runner that executes them
"""
from .scenario import Scenario
from .builder import ScenarioBuilder, ChaosBuilder, RestartChaosBuilder
from .runner import Runner, RunContext, Telemetry
from .workloads import TransactionWorkload, DaWorkload
from .expectations import ConsensusLiveness, TxInclusionExpectation
from .run_logger import ScenarioLogger
from .dsl import DSLLoader, DSLConfig

__all__ = [
    'Scenario',
    'ScenarioBuilder',
    'ChaosBuilder',
    'RestartChaosBuilder',
    'Runner',
    'RunContext',
    'Telemetry',
    'TransactionWorkload',
    'DaWorkload',
    'ConsensusLiveness',
    'TxInclusionExpectation',
    'ScenarioLogger',
    'DSLLoader',
    'DSLConfig',
]
