"""
Runner - executes one scenario against a live deployment and owns its teardown

Order within a run: baseline capture for expectations, chaos scheduler start
(when node control is available), workloads in declaration order on a thread
pool until the run duration elapses, chaos stop and join, then expectation
evaluation against the final state. Teardown runs exactly once on every exit
path and never raises.
"""
import random
import threading
import time
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from .. import env
from ..chaos_engine import ChaosScheduler
from ..chaos_engine.scheduler import DEFAULT_RESTART_TIMEOUT
from ..error_handler import ErrorCategory, ErrorContext, ErrorSeverity, get_error_handler
from ..errors import ScenarioAlreadyRunError, ScenarioRunError
from ..interfaces import INodeControl
from ..models import RunResult, WorkloadReport
from ..readiness import NetworkReadiness, ReadinessNode
from ..topology import Topology
from .run_logger import ScenarioLogger
from .scenario import Scenario

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


class Telemetry:
    """Handle to the deployment's metrics endpoint, if the backend provisioned one"""

    def __init__(self, prometheus_url: Optional[str] = None):
        self.prometheus_url = prometheus_url

    def is_configured(self) -> bool:
        return self.prometheus_url is not None


class RunContext:
    """What workloads and expectations see of a live deployment"""

    def __init__(self, topology: Topology, clients: Dict[str, Any],
                 node_control: Optional[INodeControl] = None,
                 telemetry: Optional[Telemetry] = None,
                 run_duration: float = 0.0):
        self.topology = topology
        self.clients = clients
        self.node_control = node_control
        self.telemetry = telemetry or Telemetry()
        self.run_duration = run_duration

    @property
    def block_interval(self) -> float:
        return self.topology.config.consensus_params.block_interval

    def telemetry_configured(self) -> bool:
        return self.telemetry.is_configured()

    def readiness_nodes(self) -> List[ReadinessNode]:
        nodes = []
        for descriptor in self.topology.nodes:
            if descriptor.name not in self.clients:
                continue
            expected = len(descriptor.general.network_config.initial_peers)
            nodes.append(ReadinessNode(descriptor.name, self.clients[descriptor.name], expected))
        return nodes

    def wait_network_ready(self, timeout: float = 60.0, poll_interval: float = 1.0) -> None:
        """Wait until every node reports at least as many peers as it dials at startup"""
        NetworkReadiness(self.readiness_nodes()).wait(timeout, poll_interval)


class Runner:
    """Live deployment handle; consumed by exactly one ``run``"""

    def __init__(self, context: RunContext, teardown: Callable[[bool], None], backend: str = "local",
                 restart_timeout: float = DEFAULT_RESTART_TIMEOUT):
        self._context = context
        self._teardown = teardown
        self.backend = backend
        self.restart_timeout = restart_timeout
        self.error_handler = get_error_handler()

        self._lock = threading.Lock()
        self._used = False
        self._closed = False

    @property
    def context(self) -> RunContext:
        return self._context

    def node_control(self) -> Optional[INodeControl]:
        return self._context.node_control

    def run(self, scenario: Scenario) -> RunResult:
        with self._lock:
            if self._closed:
                raise ScenarioRunError("runner was already torn down")
            if self._used:
                raise ScenarioRunError("runner already executed a scenario")
            if scenario.consumed:
                raise ScenarioAlreadyRunError(scenario.scenario_id)
            if scenario.topology is not self._context.topology:
                raise ScenarioRunError(
                    f"scenario {scenario.scenario_id} was not the one deployed on this runner"
                )
            scenario.mark_consumed()
            self._used = True

        failing = True
        try:
            env.mark_startup_complete()
            result = self._execute(scenario)
            failing = not result.success
            return result
        finally:
            self.close(failing=failing)

    def _execute(self, scenario: Scenario) -> RunResult:
        run_logger = ScenarioLogger(scenario.output_dir)
        run_logger.log_run_start(scenario, self.backend)

        ctx = self._context
        ctx.run_duration = scenario.run_duration
        stop_event = threading.Event()
        start_time = time.time()
        end_time = start_time + scenario.run_duration

        scheduler: Optional[ChaosScheduler] = None
        reports: List[WorkloadReport] = []
        results = []
        error_message = None

        try:
            for expectation in scenario.expectations:
                expectation.start_capture(ctx)

            if scenario.chaos_policy is not None and ctx.node_control is not None:
                scheduler = ChaosScheduler(
                    scenario.chaos_policy, ctx.node_control, end_time,
                    rng=random.Random(scenario.seed),
                    restart_timeout=self.restart_timeout,
                    stop_event=stop_event,
                )
                scheduler.start()

            reports, error_message = self._run_workloads(scenario, stop_event, end_time)

            self._stop_scheduler(scheduler, stop_event)
            for event in scheduler.events if scheduler else []:
                run_logger.log_chaos_event(event)
            for report in reports:
                run_logger.log_workload_report(report)

            for expectation in scenario.expectations:
                result = expectation.evaluate(ctx, scenario.run_duration, reports)
                run_logger.log_expectation_result(result)
                results.append(result)
        except Exception as e:
            error_message = f"{type(e).__name__}: {e}"
            self.error_handler.handle_error(ErrorContext(
                category=ErrorCategory.EXPECTATION,
                severity=ErrorSeverity.HIGH,
                message=f"scenario run failed: {e}",
                exception=e,
                scenario_id=scenario.scenario_id,
            ))
        finally:
            self._stop_scheduler(scheduler, stop_event)

        run_result = RunResult(
            scenario_id=scenario.scenario_id,
            success=error_message is None and all(r.success for r in results),
            start_time=start_time,
            end_time=time.time(),
            chaos_events=scheduler.events if scheduler else [],
            workload_reports=reports,
            expectation_results=results,
            error_message=error_message,
            seed=scenario.seed,
        )
        run_logger.log_run_end(run_result)
        return run_result

    def _run_workloads(self, scenario: Scenario, stop_event: threading.Event, end_time: float):
        workloads = scenario.workloads
        reports: List[WorkloadReport] = []
        error_message = None

        if not workloads:
            stop_event.wait(max(end_time - time.time(), 0))
            return reports, error_message

        with ThreadPoolExecutor(max_workers=len(workloads), thread_name_prefix="workload") as executor:
            futures = [executor.submit(workload.run, self._context, stop_event) for workload in workloads]
            stop_event.wait(max(end_time - time.time(), 0))
            stop_event.set()

            for workload, future in zip(workloads, futures):
                try:
                    reports.append(future.result())
                except Exception as e:
                    logger.error(f"Workload {workload.name} failed: {e}")
                    reports.append(WorkloadReport(name=workload.name, details={'error': str(e)}))
                    if error_message is None:
                        error_message = f"workload {workload.name} failed: {e}"
        return reports, error_message

    def _stop_scheduler(self, scheduler: Optional[ChaosScheduler], stop_event: threading.Event) -> None:
        stop_event.set()
        if scheduler is not None:
            scheduler.stop()
            scheduler.join(self.restart_timeout + 5.0)

    def close(self, failing: bool = False) -> None:
        """Release backend resources; safe to call more than once"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.error_handler.run_cleanup_step(lambda: self._teardown(failing), "teardown", component=self.backend)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close(failing=exc_type is not None)
