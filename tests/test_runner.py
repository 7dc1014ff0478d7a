"""
Tests for the scenario runner
"""
import itertools
import json
import threading
from unittest.mock import Mock

import httpx
import pytest

from netorch import env
from netorch.api_client import ApiClient
from netorch.api_client.client import CONSENSUS_INFO_PATH
from netorch.errors import ScenarioAlreadyRunError, ScenarioRunError
from netorch.interfaces import IExpectation, IWorkload
from netorch.models import ChaosPolicy, ExpectationResult, WorkloadReport
from netorch.scenario import ConsensusLiveness, Runner, RunContext, Scenario, TransactionWorkload


class FixedExpectation(IExpectation):
    name = "fixed"

    def __init__(self, success):
        self.success = success
        self.captured = False

    def start_capture(self, ctx):
        self.captured = True

    def evaluate(self, ctx, budget, workload_reports):
        return ExpectationResult(self.name, self.success, "as configured", {'budget': budget})


class CountingWorkload(IWorkload):
    name = "counting"

    def run(self, ctx, stop_event):
        report = WorkloadReport(name=self.name)
        while not stop_event.is_set():
            report.submitted += 1
            stop_event.wait(0.01)
        return report


class BrokenWorkload(IWorkload):
    name = "broken"

    def run(self, ctx, stop_event):
        raise RuntimeError("generator crashed")


@pytest.fixture
def make_runner(fixed_topology, fake_api):
    def make(node_control=None, teardown=None):
        topology = fixed_topology()
        clients = {name: fake_api(heights=[1]) for name in topology.names()}
        teardown = teardown or Mock()
        context = RunContext(topology, clients, node_control=node_control)
        return Runner(context, teardown, backend="local", restart_timeout=1.0), teardown
    return make


def scenario_for(runner, **kwargs):
    kwargs.setdefault("run_duration", 0.1)
    return Scenario(topology=runner.context.topology, **kwargs)


class TestRunner:
    """Test Runner"""

    def test_successful_run(self, make_runner):
        runner, teardown = make_runner()
        expectation = FixedExpectation(True)
        scenario = scenario_for(runner, workloads=[CountingWorkload()], expectations=[expectation])

        result = runner.run(scenario)

        assert result.success
        assert result.error_message is None
        assert expectation.captured
        assert result.workload_reports[0].submitted > 0
        assert result.expectation_results[0].details['budget'] == 0.1
        teardown.assert_called_once_with(False)

    def test_failing_expectation(self, make_runner):
        runner, teardown = make_runner()
        result = runner.run(scenario_for(runner, expectations=[FixedExpectation(False)]))

        assert not result.success
        assert [r.name for r in result.failed_expectations] == ["fixed"]
        teardown.assert_called_once_with(True)
        with pytest.raises(ScenarioRunError, match="fixed: as configured"):
            result.raise_for_status()

    def test_failing_workload(self, make_runner):
        runner, _ = make_runner()
        result = runner.run(scenario_for(runner, workloads=[BrokenWorkload(), CountingWorkload()]))

        assert not result.success
        assert result.error_message == "workload broken failed: generator crashed"
        assert [r.name for r in result.workload_reports] == ["broken", "counting"]

    def test_runner_is_single_use(self, make_runner):
        runner, _ = make_runner()
        runner.run(scenario_for(runner))
        with pytest.raises(ScenarioRunError):
            runner.run(scenario_for(runner))

    def test_scenario_is_single_use(self, make_runner):
        first, _ = make_runner()
        second, teardown = make_runner()
        scenario = scenario_for(first)
        first.run(scenario)

        with pytest.raises(ScenarioAlreadyRunError):
            second.run(scenario)
        teardown.assert_not_called()

    def test_chaos_restarts_nodes(self, make_runner, fake_control):
        control = fake_control()
        for name in ("validator-0", "validator-1"):
            control.start_node_with(name)
        runner, _ = make_runner(node_control=control)

        result = runner.run(scenario_for(runner, run_duration=0.5, seed=1,
                                         chaos_policy=ChaosPolicy(0.01, 0.05, 0)))

        assert result.success
        assert result.seed == 1
        assert len(result.chaos_events) > 0
        assert {event.target_node for event in result.chaos_events} <= {"validator-0", "validator-1"}

    def test_startup_phase_closes(self, make_runner):
        runner, _ = make_runner()
        assert not env.startup_complete()
        runner.run(scenario_for(runner))
        assert env.startup_complete()

    def test_run_log_written(self, make_runner, tmp_path):
        runner, _ = make_runner()
        scenario = scenario_for(runner, output_dir=str(tmp_path), scenario_id="logged",
                                expectations=[FixedExpectation(True)])
        runner.run(scenario)

        run_log = json.loads((tmp_path / "run-logged.json").read_text())
        assert run_log['status'] == 'passed'
        assert run_log['expectation_results'][0]['name'] == 'fixed'
        assert len(run_log['topology']['nodes']) == 3

    def test_teardown_failure_does_not_change_verdict(self, make_runner):
        runner, teardown = make_runner(teardown=Mock(side_effect=RuntimeError("rm failed")))
        assert runner.run(scenario_for(runner)).success
        teardown.assert_called_once()

    def test_context_manager_closes_once(self, make_runner):
        runner, teardown = make_runner()
        with runner:
            pass
        runner.close()
        teardown.assert_called_once_with(False)

    def test_wait_network_ready(self, fixed_topology, fake_api):
        topology = fixed_topology()
        clients = {name: fake_api(n_peers=1) for name in topology.names()}
        RunContext(topology, clients).wait_network_ready(timeout=1.0, poll_interval=0.01)

    def test_run_duration_bounds_workloads(self, make_runner):
        runner, _ = make_runner()
        finished = threading.Event()

        class Marker(CountingWorkload):
            def run(self, ctx, stop_event):
                report = super().run(ctx, stop_event)
                finished.set()
                return report

        runner.run(scenario_for(runner, run_duration=0.05, workloads=[Marker()]))
        assert finished.is_set()

    def test_scenario_from_other_deployment_rejected(self, make_runner):
        deployed, _ = make_runner()
        other, teardown = make_runner()
        scenario = scenario_for(deployed)

        with pytest.raises(ScenarioRunError, match="not the one deployed"):
            other.run(scenario)

        assert not scenario.consumed
        teardown.assert_not_called()
        assert deployed.run(scenario).success


def http_node_api(name):
    """ApiClient over a mocked node: heights climb on every status call, submissions succeed"""
    heights = itertools.count(1)

    def handler(request):
        if request.url.path == CONSENSUS_INFO_PATH:
            return httpx.Response(200, json={"height": next(heights)})
        return httpx.Response(200)

    return ApiClient(f"http://{name}.test", transport=httpx.MockTransport(handler))


class TestRunAfterStop:
    """A node stopped before the run shows up as that node's failure, not a crash"""

    def test_stopped_node_reported_per_node(self, fixed_topology, fake_control):
        class HttpNodeControl(fake_control):
            def _start(self, name, options, peers):
                super()._start(name, options, peers)
                return http_node_api(name)

        topology = fixed_topology()
        control = HttpNodeControl()
        for name in topology.names():
            control.start_node_with(name)
        clients = {name: control.node_client(name) for name in topology.names()}
        runner = Runner(RunContext(topology, clients, node_control=control), Mock(), backend="local")

        control.stop_node("validator-1")
        scenario = Scenario(
            topology=topology,
            run_duration=0.2,
            workloads=[TransactionWorkload(rate=100)],
            expectations=[ConsensusLiveness(max_wait=0.2, poll_interval=0.05)],
        )
        result = runner.run(scenario)

        assert result.error_message is None
        assert not result.success
        report = result.workload_reports[0]
        assert report.accepted > 0
        assert report.failed > 0
        liveness = result.expectation_results[0]
        assert not liveness.success
        assert "validator-1=error(" in liveness.message
        assert "client is closed" in liveness.details['heights']['validator-1']
