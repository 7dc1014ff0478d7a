"""
Tests for the node control state machine
"""
import threading
import time

import pytest

from netorch.errors import NodeControlError
from netorch.models import NodeState, PeerSelection, StartNodeOptions


class TestTransitions:
    """Test BaseNodeControl transitions"""

    def test_start_restart_stop(self, fake_control):
        control = fake_control()
        control.start_node_with("node-a")
        assert control.node_state("node-a") == NodeState.RUNNING
        first_pid = control.node_pid("node-a")

        control.restart_node("node-a")
        assert control.node_state("node-a") == NodeState.RUNNING
        assert control.node_pid("node-a") != first_pid

        control.stop_node("node-a")
        assert control.node_state("node-a") == NodeState.STOPPED
        assert control.node_pid("node-a") is None

    def test_stopped_node_can_start_again(self, fake_control):
        control = fake_control()
        control.start_node_with("node-a")
        control.stop_node("node-a")
        control.start_node_with("node-a")
        assert control.node_state("node-a") == NodeState.RUNNING

    def test_double_start_rejected(self, fake_control):
        control = fake_control()
        control.start_node_with("node-a")
        with pytest.raises(NodeControlError, match="node is running"):
            control.start_node_with("node-a")

    def test_restart_unstarted_rejected(self, fake_control):
        with pytest.raises(NodeControlError, match="node is unstarted"):
            fake_control().restart_node("node-a")

    def test_stop_unstarted_rejected(self, fake_control):
        with pytest.raises(NodeControlError):
            fake_control().stop_node("node-a")

    def test_restart_without_new_pid_stops_node(self, fake_control):
        control = fake_control(keep_pid_on_restart=True)
        control.start_node_with("node-a")
        with pytest.raises(NodeControlError, match="did not produce a new instance"):
            control.restart_node("node-a")
        assert control.node_state("node-a") == NodeState.STOPPED
        assert control.node_pid("node-a") is None

    def test_failed_restart_wrapped(self, fake_control):
        control = fake_control(fail_restart=True)
        control.start_node_with("node-a")
        with pytest.raises(NodeControlError, match="process did not come back"):
            control.restart_node("node-a")
        assert control.node_state("node-a") == NodeState.STOPPED

    def test_stop_closes_client(self, fake_control):
        control = fake_control()
        api = control.start_node_with("node-a").api
        control.stop_node("node-a")
        assert api.closed
        with pytest.raises(NodeControlError):
            control.node_client("node-a")

    def test_stop_all_continues_after_errors(self, fake_control):
        control = fake_control()
        control.start_node_with("node-a")
        control.start_node_with("node-b")

        def stuck(name):
            raise RuntimeError("stuck")
        control._stop = stuck

        control.stop_all()
        assert control.running_nodes() == []


def slow_restart_control(fake_control, delay):
    """Node control whose restart takes ``delay`` seconds; ``entered`` is set once it starts"""
    class SlowRestartControl(fake_control):
        def __init__(self):
            super().__init__()
            self.entered = threading.Event()

        def _restart(self, name):
            self.entered.set()
            time.sleep(delay)
            super()._restart(name)

    return SlowRestartControl()


class TestBoundedRestart:
    """Test restarts that outlive their timeout"""

    def test_timed_out_restart_ends_stopped(self, fake_control):
        control = slow_restart_control(fake_control, delay=0.5)
        control.start_node_with("node-a")

        with pytest.raises(NodeControlError, match="did not return within 0.10s"):
            control.restart_node("node-a", timeout=0.1)

        assert control.node_state("node-a") == NodeState.STOPPED
        assert control.node_pid("node-a") is None

    def test_late_restart_is_stopped_by_teardown(self, fake_control):
        control = slow_restart_control(fake_control, delay=0.3)
        control.start_node_with("node-a")
        with pytest.raises(NodeControlError):
            control.restart_node("node-a", timeout=0.05)

        control.stop_all()

        assert control.node_state("node-a") == NodeState.STOPPED
        assert control.pids == {}
        time.sleep(0.1)
        assert control.pids == {}

    def test_restart_within_timeout(self, fake_control):
        control = slow_restart_control(fake_control, delay=0.01)
        control.start_node_with("node-a")
        old_pid = control.node_pid("node-a")

        control.restart_node("node-a", timeout=2.0)

        assert control.node_state("node-a") == NodeState.RUNNING
        assert control.node_pid("node-a") != old_pid

    def test_stop_all_waits_for_restarting_node(self, fake_control):
        control = slow_restart_control(fake_control, delay=0.2)
        control.start_node_with("node-a")
        restarter = threading.Thread(target=control.restart_node, args=("node-a",))
        restarter.start()
        assert control.entered.wait(2.0)
        assert control.node_state("node-a") == NodeState.RESTARTING

        control.stop_all()
        restarter.join(2.0)

        assert control.node_state("node-a") == NodeState.STOPPED
        assert control.pids == {}


class TestPeerSelection:

    def test_default_uses_running_nodes(self, fake_control):
        control = fake_control()
        control.start_node_with("node-a")
        control.start_node_with("node-b")
        assert control.started_with["node-a"] == []
        assert control.started_with["node-b"] == ["node-a"]

    def test_none(self, fake_control):
        control = fake_control()
        control.start_node_with("node-a")
        control.start_node_with("node-b", StartNodeOptions(peers=PeerSelection.none()))
        assert control.started_with["node-b"] == []

    def test_named(self, fake_control):
        control = fake_control()
        control.start_node_with("node-a")
        control.start_node_with("node-b")
        control.start_node_with("node-c", StartNodeOptions(peers=PeerSelection.named(["node-b"])))
        assert control.started_with["node-c"] == ["node-b"]

    def test_named_self_rejected(self, fake_control):
        control = fake_control()
        with pytest.raises(NodeControlError, match="cannot peer with itself"):
            control.start_node_with("node-a", StartNodeOptions(peers=PeerSelection.named(["node-a"])))
        assert control.node_state("node-a") == NodeState.UNSTARTED

    def test_named_peer_not_running(self, fake_control):
        control = fake_control()
        with pytest.raises(NodeControlError, match="peer 'node-z' of node 'node-a' is not running"):
            control.start_node_with("node-a", StartNodeOptions(peers=PeerSelection.named(["node-z"])))
