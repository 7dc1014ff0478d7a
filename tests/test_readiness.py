"""
Tests for bounded calls, the poll-until-ready engine and the concrete checks
"""
import threading
import time

import pytest

from netorch.errors import ApiClientError, CallTimeoutError, ReadinessCancelledError, ReadinessTimeoutError
from netorch.readiness import (
    CatchUpReadiness, HeightConvergence, MinHeightReadiness, NetworkReadiness, NodeReachability,
    ReadinessCheck, ReadinessNode, call_with_timeout,
)


class CountingCheck(ReadinessCheck):
    def __init__(self, ready_after):
        self.ready_after = ready_after
        self.polls = 0

    def collect(self):
        self.polls += 1
        return self.polls

    def is_ready(self, data):
        return data >= self.ready_after

    def timeout_message(self, data):
        return f"only {data} polls"


class TestCallWithTimeout:

    def test_returns_value(self):
        assert call_with_timeout(lambda a, b=0: a + b, 1.0, 2, b=3) == 5

    def test_reraises(self):
        def fail():
            raise ApiClientError("refused")

        with pytest.raises(ApiClientError, match="refused"):
            call_with_timeout(fail, 1.0)

    def test_times_out_without_blocking(self):
        release = threading.Event()
        start = time.monotonic()
        with pytest.raises(CallTimeoutError):
            call_with_timeout(release.wait, 0.05, 5)
        assert time.monotonic() - start < 1.0
        release.set()

    def test_late_finish_hook_runs_after_timeout(self):
        release = threading.Event()
        reaped = threading.Event()
        with pytest.raises(CallTimeoutError):
            call_with_timeout(release.wait, 0.05, 5, on_late_finish=reaped.set)

        assert not reaped.is_set()
        release.set()
        assert reaped.wait(2.0)

    def test_late_finish_hook_not_run_in_time(self):
        reaped = threading.Event()
        assert call_with_timeout(lambda: 1, 1.0, on_late_finish=reaped.set) == 1
        assert not reaped.is_set()


class TestReadinessCheck:
    """Test the shared wait loop"""

    def test_ready_after_polls(self):
        check = CountingCheck(ready_after=3)
        assert check.wait(timeout=2.0, poll_interval=0.01) == 3

    def test_timeout_carries_last_data(self):
        check = CountingCheck(ready_after=10_000)
        with pytest.raises(ReadinessTimeoutError) as excinfo:
            check.wait(timeout=0.1, poll_interval=0.02)
        assert excinfo.value.last_data == check.polls
        assert str(excinfo.value) == f"only {check.polls} polls"

    def test_stop_event_cancels(self):
        stop = threading.Event()
        stop.set()
        with pytest.raises(ReadinessCancelledError):
            CountingCheck(ready_after=10_000).wait(timeout=5.0, poll_interval=1.0, stop_event=stop)


class TestWaitTiming:
    """Timing of the wait loop for always-ready and never-ready predicates"""

    def test_always_ready_returns_after_one_collection(self):
        check = CountingCheck(ready_after=1)
        start = time.monotonic()

        check.wait(timeout=10.0, poll_interval=5.0)

        assert check.polls == 1
        assert time.monotonic() - start < 1.0

    def test_never_ready_fails_after_timeout_naming_every_node(self, fake_api):
        timeout, poll_interval = 0.3, 0.05
        labels = ["validator-0", "validator-1", "executor-0"]
        nodes = [ReadinessNode(label, fake_api(n_peers=0), 1) for label in labels]
        start = time.monotonic()

        with pytest.raises(ReadinessTimeoutError) as excinfo:
            NetworkReadiness(nodes).wait(timeout=timeout, poll_interval=poll_interval)
        elapsed = time.monotonic() - start

        assert elapsed >= timeout
        # one poll interval plus scheduling slack
        assert elapsed < timeout + poll_interval + 0.25
        for label in labels:
            assert f"{label} (peers 0/1)" in str(excinfo.value)


class TestChecks:
    """Test concrete checks over fake node APIs"""

    def test_network_ready(self, fake_api):
        nodes = [ReadinessNode("a", fake_api(n_peers=2), 2), ReadinessNode("b", fake_api(n_peers=0))]
        statuses = NetworkReadiness(nodes).wait(timeout=1.0, poll_interval=0.01)
        assert [s.value for s in statuses] == [2, 0]

    def test_network_timeout_message(self, fake_api):
        nodes = [
            ReadinessNode("node-a", fake_api(n_peers=0), 1),
            ReadinessNode("node-b", fake_api(error="connection refused"), 1),
        ]
        with pytest.raises(ReadinessTimeoutError) as excinfo:
            NetworkReadiness(nodes).wait(timeout=0.05, poll_interval=0.01)
        assert str(excinfo.value) == (
            "timed out waiting for network readiness: "
            "node-a (peers 0/1), node-b (error: connection refused)"
        )

    def test_reachability(self, fake_api):
        nodes = [ReadinessNode("a", fake_api(error="down")), ReadinessNode("b", fake_api())]
        with pytest.raises(ReadinessTimeoutError, match="a \\(error: down\\), b \\(height 0\\)"):
            NodeReachability(nodes).wait(timeout=0.05, poll_interval=0.01)

    def test_min_height(self, fake_api):
        nodes = [ReadinessNode("a", fake_api(heights=[1, 2, 3])), ReadinessNode("b", fake_api(heights=[5]))]
        statuses = MinHeightReadiness(nodes, 3).wait(timeout=1.0, poll_interval=0.01)
        assert [s.value for s in statuses] == [3, 5]

    def test_min_height_message(self, fake_api):
        nodes = [ReadinessNode("a", fake_api(heights=[1])), ReadinessNode("b", fake_api(error="boom"))]
        with pytest.raises(ReadinessTimeoutError) as excinfo:
            MinHeightReadiness(nodes, 4).wait(timeout=0.05, poll_interval=0.01)
        assert str(excinfo.value) == "min height 4 not reached before timeout; heights=[a=1, b=error(boom)]"

    def test_height_convergence(self, fake_api):
        nodes = [ReadinessNode("a", fake_api(heights=[10])), ReadinessNode("b", fake_api(heights=[1, 4, 8]))]
        HeightConvergence(nodes, max_diff=2).wait(timeout=1.0, poll_interval=0.01)

    def test_height_convergence_respects_min_height(self, fake_api):
        nodes = [ReadinessNode("a", fake_api(heights=[0])), ReadinessNode("b", fake_api(heights=[0]))]
        with pytest.raises(ReadinessTimeoutError, match="did not converge"):
            HeightConvergence(nodes, max_diff=0, min_height=1).wait(timeout=0.05, poll_interval=0.01)

    def test_catch_up(self, fake_api):
        behind = ReadinessNode("late", fake_api(heights=[0, 5, 9]))
        references = [ReadinessNode("a", fake_api(heights=[10])), ReadinessNode("b", fake_api(heights=[12]))]
        statuses = CatchUpReadiness(behind, references, tolerance=1).wait(timeout=1.0, poll_interval=0.01)
        assert statuses[0].value == 9
