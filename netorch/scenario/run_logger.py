"""
Run Logger - structured JSON run log and human-readable summary for scenario runs
"""
import json
import time
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime

from ..models import ChaosResult, ExpectationResult, RunResult, WorkloadReport
from .scenario import Scenario

logger = logging.getLogger(__name__)


class ScenarioLogger:
    """
    Thread-safe run log. Records the scenario plan, chaos events, workload
    totals and expectation verdicts, and writes them to
    ``<output_dir>/run-<scenario_id>.json`` when an output directory is set.
    """

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = Path(output_dir) if output_dir else None
        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        self.current_run_id: Optional[str] = None
        self.run_logs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def log_run_start(self, scenario: Scenario, backend: str) -> None:
        with self._lock:
            self.current_run_id = scenario.scenario_id
            self.run_logs[scenario.scenario_id] = {
                'scenario_id': scenario.scenario_id,
                'backend': backend,
                'seed': scenario.seed,
                'start_time': time.time(),
                'start_timestamp': datetime.now().isoformat(),
                'run_duration': scenario.run_duration,
                'topology': self._serialize_topology(scenario),
                'chaos_policy': self._serialize_chaos_policy(scenario),
                'workloads': [workload.name for workload in scenario.workloads],
                'expectations': [expectation.name for expectation in scenario.expectations],
                'chaos_events': [],
                'workload_reports': [],
                'expectation_results': [],
                'status': 'running',
            }
            self._log_scenario_summary(scenario, backend)
            self._write_log_to_disk(scenario.scenario_id)

    def log_chaos_event(self, chaos_result: ChaosResult) -> None:
        with self._lock:
            if not self.current_run_id:
                logger.warning("No active run to log chaos event to")
                return
            self.run_logs[self.current_run_id]['chaos_events'].append({
                'chaos_id': chaos_result.chaos_id,
                'chaos_type': chaos_result.chaos_type.value,
                'target_node': chaos_result.target_node,
                'success': chaos_result.success,
                'start_time': chaos_result.start_time,
                'start_timestamp': datetime.fromtimestamp(chaos_result.start_time).isoformat(),
                'end_time': chaos_result.end_time,
                'duration': chaos_result.end_time - chaos_result.start_time if chaos_result.end_time else None,
                'old_pid': str(chaos_result.old_pid) if chaos_result.old_pid is not None else None,
                'new_pid': str(chaos_result.new_pid) if chaos_result.new_pid is not None else None,
                'error_message': chaos_result.error_message,
            })
            self._write_log_to_disk(self.current_run_id)

    def log_workload_report(self, report: WorkloadReport) -> None:
        with self._lock:
            if not self.current_run_id:
                return
            self.run_logs[self.current_run_id]['workload_reports'].append({
                'name': report.name,
                'submitted': report.submitted,
                'accepted': report.accepted,
                'failed': report.failed,
                'details': report.details,
            })
            self._write_log_to_disk(self.current_run_id)
        logger.info(f"Workload {report.name}: {report.accepted}/{report.submitted} accepted, {report.failed} failed")

    def log_expectation_result(self, result: ExpectationResult) -> None:
        with self._lock:
            if not self.current_run_id:
                return
            self.run_logs[self.current_run_id]['expectation_results'].append({
                'name': result.name,
                'success': result.success,
                'message': result.message,
                'details': result.details,
            })
            self._write_log_to_disk(self.current_run_id)
        if result.success:
            logger.info(f"Expectation {result.name} passed: {result.message}")
        else:
            logger.error(f"Expectation {result.name} FAILED: {result.message}")

    def log_run_end(self, result: RunResult) -> None:
        with self._lock:
            run_log = self.run_logs.get(result.scenario_id)
            if run_log is None:
                return
            run_log['end_time'] = result.end_time
            run_log['end_timestamp'] = datetime.fromtimestamp(result.end_time).isoformat()
            run_log['duration'] = result.end_time - result.start_time
            run_log['status'] = 'passed' if result.success else 'failed'
            run_log['error_message'] = result.error_message
            self._write_log_to_disk(result.scenario_id)

        status = "PASSED" if result.success else "FAILED"
        logger.info(f"Scenario {result.scenario_id} {status} in {result.end_time - result.start_time:.2f}s")

    def generate_report(self, results: List[RunResult]) -> str:
        """Render a plain-text summary of finished runs"""
        if not results:
            return "No runs executed"

        passed = sum(1 for r in results if r.success)
        lines = [
            "=" * 80,
            "SCENARIO RUN REPORT",
            "=" * 80,
            f"Total Runs:   {len(results)}",
            f"Passed:       {passed}",
            f"Failed:       {len(results) - passed}",
            "",
        ]
        for result in results:
            status = "PASS" if result.success else "FAIL"
            lines.append(f"{status} | {result.scenario_id}")
            lines.append(f"     Duration: {result.end_time - result.start_time:.2f}s | "
                         f"Chaos Events: {len(result.chaos_events)} | "
                         f"Workloads: {len(result.workload_reports)}")
            if result.error_message:
                lines.append(f"     Error: {result.error_message}")
            for expectation in result.failed_expectations:
                lines.append(f"     {expectation.name}: {expectation.message}")
            if result.seed is not None:
                lines.append(f"     Seed: {result.seed} (for reproduction)")
            lines.append("")
        lines.append("=" * 80)

        report = "\n".join(lines)
        if self.output_dir is not None:
            report_file = self.output_dir / f"report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"
            report_file.write_text(report)
            logger.info(f"Generated report: {report_file}")
        return report

    def get_run_log(self, scenario_id: str) -> Optional[Dict[str, Any]]:
        return self.run_logs.get(scenario_id)

    def log_path(self, scenario_id: str) -> Optional[Path]:
        if self.output_dir is None:
            return None
        return self.output_dir / f"run-{scenario_id}.json"

    def _serialize_topology(self, scenario: Scenario) -> Dict[str, Any]:
        topology = scenario.topology
        return {
            'validators': len(topology.validators),
            'executors': len(topology.executors),
            'layout': topology.config.network_params.layout.value,
            'nodes': [
                {
                    'name': node.name,
                    'id': node.id_hex,
                    'network_port': node.network_port,
                    'da_port': node.da_port,
                    'api_port': node.api_port,
                }
                for node in topology.nodes
            ],
        }

    def _serialize_chaos_policy(self, scenario: Scenario) -> Optional[Dict[str, Any]]:
        policy = scenario.chaos_policy
        if policy is None:
            return None
        return {
            'mode': policy.mode.value,
            'min_delay': policy.min_delay,
            'max_delay': policy.max_delay,
            'target_cooldown': policy.target_cooldown,
            'target_selection': {
                'strategy': policy.target_selection.strategy,
                'specific_nodes': policy.target_selection.specific_nodes,
            },
        }

    def _log_scenario_summary(self, scenario: Scenario, backend: str) -> None:
        topology = scenario.topology
        lines = [
            "=" * 80,
            f"SCENARIO SUMMARY: {scenario.scenario_id}",
            "=" * 80,
            f"Backend: {backend} | Run duration: {scenario.run_duration:.0f}s | Seed: {scenario.seed}",
            f"Topology: {len(topology.validators)} validator(s), {len(topology.executors)} executor(s), "
            f"layout {topology.config.network_params.layout.value}",
            f"Workloads: {', '.join(w.name for w in scenario.workloads) or 'none'}",
            f"Expectations: {', '.join(e.name for e in scenario.expectations) or 'none'}",
        ]
        policy = scenario.chaos_policy
        if policy is not None:
            lines.append(f"Chaos: {policy.mode.value} every {policy.min_delay}-{policy.max_delay}s, "
                         f"cooldown {policy.target_cooldown}s, targets {policy.target_selection.strategy}")
        lines.append("=" * 80)
        for line in lines:
            logger.info(line)

    def _write_log_to_disk(self, scenario_id: str) -> None:
        if self.output_dir is None or scenario_id not in self.run_logs:
            return
        try:
            with open(self.log_path(scenario_id), 'w') as f:
                json.dump(self.run_logs[scenario_id], f, indent=2, default=str)
        except OSError as e:
            logger.error(f"Failed to write run log to disk: {e}")
