"""
DSL Utilities - YAML scenario files

Example::

    scenario:
      id: restart-under-load
      run_duration: 60
      seed: 42
    topology:
      validators: 1
      executors: 1
      layout: star
      wallets: 10
    node_control: true
    chaos:
      restart: {min_delay: 120, max_delay: 180, target_cooldown: 240}
    workloads:
      - transactions: {rate: 5, users: 10}
    expectations:
      - consensus_liveness
"""
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..errors import ScenarioBuildError
from ..models import Backend
from .builder import ScenarioBuilder
from .scenario import Scenario

WORKLOAD_KEYS = {"transactions", "da"}
EXPECTATION_KEYS = {"consensus_liveness", "tx_inclusion"}


@dataclass
class DSLConfig:
    """Parsed scenario file"""
    config_text: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def backend(self) -> Optional[Backend]:
        raw = (self.data.get("scenario") or {}).get("backend")
        if raw is None:
            return None
        try:
            return Backend(str(raw).lower())
        except ValueError:
            raise ScenarioBuildError(f"unknown backend '{raw}'")


class DSLLoader:
    """Utility class for loading scenario files and turning them into scenarios"""

    @staticmethod
    def load_from_file(file_path: Union[str, Path]) -> DSLConfig:
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {file_path}")
        return DSLLoader.load_from_string(file_path.read_text(), source=str(file_path))

    @staticmethod
    def load_from_string(config_text: str, source: str = "<string>") -> DSLConfig:
        try:
            data = yaml.safe_load(config_text) or {}
        except yaml.YAMLError as e:
            raise ScenarioBuildError(f"Invalid YAML syntax in {source}: {e}")
        if not isinstance(data, dict):
            raise ScenarioBuildError(f"{source} must contain a mapping at the top level")
        return DSLConfig(config_text=config_text, data=data)

    @staticmethod
    def to_builder(dsl_config: DSLConfig) -> ScenarioBuilder:
        data = dsl_config.data
        builder = ScenarioBuilder()

        scenario = data.get("scenario") or {}
        if "id" in scenario:
            builder.with_id(str(scenario["id"]))
        if "run_duration" in scenario:
            builder.with_run_duration(float(scenario["run_duration"]))
        if "seed" in scenario:
            builder.with_seed(int(scenario["seed"]))
        if "output_dir" in scenario:
            builder.with_output_dir(str(scenario["output_dir"]))

        topology = data.get("topology") or {}
        builder.topology.with_node_counts(int(topology.get("validators", 0)), int(topology.get("executors", 0)))
        if "layout" in topology:
            try:
                builder.topology.with_network_layout(str(topology["layout"]).lower())
            except ValueError:
                raise ScenarioBuildError(f"unknown network layout '{topology['layout']}'")
        if "wallets" in topology:
            builder.wallets(int(topology["wallets"]))

        if data.get("node_control"):
            builder.enable_node_control()

        chaos = data.get("chaos")
        if chaos:
            builder.chaos_with(lambda c: DSLLoader._restart_policy(c, chaos))

        for entry in data.get("workloads") or []:
            name, params = DSLLoader._entry(entry, WORKLOAD_KEYS, "workload")
            if name == "transactions":
                builder.transactions_with(float(params.get("rate", 1)), int(params.get("users", 1)))
            else:
                builder.da_with(int(params.get("channel_rate", 1)), float(params.get("blob_rate", 1)),
                                int(params.get("headroom_percent", 0)))

        for entry in data.get("expectations") or []:
            name, params = DSLLoader._entry(entry, EXPECTATION_KEYS, "expectation")
            if name == "consensus_liveness":
                builder.expect_consensus_liveness(int(params.get("min_progress", 1)), params.get("max_wait"))
            else:
                builder.expect_tx_inclusion(float(params.get("min_ratio", 0.5)))

        return builder

    @staticmethod
    def load_scenario(file_path: Union[str, Path]) -> Scenario:
        return DSLLoader.to_builder(DSLLoader.load_from_file(file_path)).build()

    @staticmethod
    def _restart_policy(chaos_builder, chaos: Dict[str, Any]):
        restart = chaos.get("restart")
        if not isinstance(restart, dict):
            raise ScenarioBuildError("chaos section must contain a 'restart' mapping")
        try:
            restart_builder = (chaos_builder.restart()
                               .min_delay(float(restart["min_delay"]))
                               .max_delay(float(restart["max_delay"]))
                               .target_cooldown(float(restart.get("target_cooldown", 0))))
        except KeyError as e:
            raise ScenarioBuildError(f"restart chaos is missing {e.args[0]}")

        targets = restart.get("targets")
        if isinstance(targets, str):
            restart_builder.targets(targets)
        elif isinstance(targets, dict):
            restart_builder.targets(targets.get("strategy", "specific"), targets.get("nodes"))
        return restart_builder.apply()

    @staticmethod
    def _entry(entry: Any, allowed: set, kind: str):
        if isinstance(entry, str):
            name, params = entry, {}
        elif isinstance(entry, dict) and len(entry) == 1:
            name, params = next(iter(entry.items()))
            params = params or {}
        else:
            raise ScenarioBuildError(f"invalid {kind} entry: {entry!r}")
        if name not in allowed:
            raise ScenarioBuildError(f"unknown {kind} '{name}'; expected one of {sorted(allowed)}")
        return name, params
