"""
Integration tests for the local process backend, driven by the fake node in tests/fixtures
"""
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from netorch import env
from netorch.deployers import LocalDeployer
from netorch.deployers.local.binary import resolve_node_binary, resolve_node_command
from netorch.errors import DeployError, ManualClusterError, NodeControlError
from netorch.models import NodeState, PeerSelection, StartNodeOptions
from netorch.scenario import ScenarioBuilder
from netorch.topology import TopologyBuilder, TopologyConfig
from netorch.workflows import wait_for_height_convergence, wait_for_min_height


class TestBinaryResolution:

    def test_env_binary(self, tmp_path, monkeypatch):
        binary = tmp_path / "netorch-node"
        binary.write_text("#!/bin/sh\n")
        monkeypatch.setenv(env.NODE_BIN_VAR, str(binary))
        assert resolve_node_binary() == str(binary)

    def test_env_binary_missing(self, tmp_path, monkeypatch):
        monkeypatch.setenv(env.NODE_BIN_VAR, str(tmp_path / "absent"))
        with pytest.raises(DeployError, match="missing file"):
            resolve_node_binary()

    @patch('netorch.deployers.local.binary.shutil.which', return_value="/usr/local/bin/netorch-node")
    def test_path_lookup(self, mock_which):
        assert resolve_node_binary() == "/usr/local/bin/netorch-node"
        mock_which.assert_called_once_with("netorch-node")

    @patch('netorch.deployers.local.binary.shutil.which', return_value=None)
    def test_not_found(self, mock_which):
        with pytest.raises(DeployError, match="not found"):
            resolve_node_binary()

    def test_explicit_command_wins(self):
        assert resolve_node_command(["python", "node.py"]) == ["python", "node.py"]

    @patch('netorch.deployers.local.binary.shutil.which', return_value=None)
    def test_missing_binary_releases_ports(self, mock_which):
        scenario = ScenarioBuilder().topology_with(lambda t: t.validators(1)).build()
        ports = [scenario.topology.nodes[0].network_port, scenario.topology.nodes[0].api_port]

        with pytest.raises(DeployError):
            LocalDeployer().deploy(scenario)
        manager = scenario.topology._port_manager
        assert not any(manager.is_claimed(port) for port in ports)


class TestLocalDeployer:
    """Test LocalDeployer against real processes"""

    def test_run_scenario_with_restarts(self, fake_node_command, fast_consensus):
        scenario = (ScenarioBuilder()
                    .topology_with(lambda t: t.validators(2).executors(1).with_consensus_params(fast_consensus(3)))
                    .enable_node_control()
                    .transactions_with(5)
                    .expect_consensus_liveness()
                    .with_run_duration(1.0)
                    .build())
        deployer = LocalDeployer(node_command=fake_node_command, ready_timeout=30, poll_interval=0.1)
        runner = deployer.deploy(scenario)
        control = runner.node_control()
        workspace_path = control.workspace.path

        runner.context.wait_network_ready(timeout=10, poll_interval=0.1)

        old_pid = control.node_pid("validator-1")
        control.restart_node("validator-1")
        assert control.node_pid("validator-1") not in (None, old_pid)

        result = runner.run(scenario)

        assert result.success, result.error_message or result.failed_expectations
        assert result.workload_reports[0].accepted > 0
        assert control.running_nodes() == []
        assert not workspace_path.exists()

    def test_node_that_exits_fails_deploy(self):
        scenario = ScenarioBuilder().topology_with(lambda t: t.validators(1)).build()
        descriptor = scenario.topology.nodes[0]
        deployer = LocalDeployer(node_command=[sys.executable, "-c", "import sys; sys.exit(3)"], ready_timeout=10)

        with pytest.raises(DeployError, match="exited with code 3"):
            deployer.deploy(scenario)
        assert not scenario.topology._port_manager.is_claimed(descriptor.api_port)


class TestLocalManualCluster:
    """Test the imperative manual cluster"""

    def test_two_node_cluster(self, fake_node_command, fast_consensus, tmp_path):
        builder = TopologyBuilder(TopologyConfig.with_node_numbers(2, 0)).with_consensus_params(fast_consensus(2))
        cluster = LocalDeployer(node_command=fake_node_command, ready_timeout=30).manual_cluster_with_builder(builder)
        persist_dir = tmp_path / "node-a-state"

        with cluster:
            first = cluster.start_node_with("a", StartNodeOptions(peers=PeerSelection.none(),
                                                                  persist_dir=str(persist_dir)))
            second = cluster.start_node_with("b", StartNodeOptions(peers=PeerSelection.named(["node-a"])))
            assert cluster.running_nodes() == ["node-a", "node-b"]
            assert cluster.control.peers_of("node-b") == ["node-a"]

            cluster.wait_network_ready(timeout=10, poll_interval=0.1)
            wait_for_min_height([first, second], 2, timeout=10, poll_interval=0.1)
            wait_for_height_convergence([first, second], max_diff=5, timeout=10, poll_interval=0.1)

            cluster.stop_node("node-b")
            assert cluster.control.node_state("node-b") == NodeState.STOPPED
            assert cluster.node_pid("node-b") is None

        assert (Path(persist_dir) / "fake_node_state.json").exists()
        assert not cluster.workspace.path.exists()
        with pytest.raises(ManualClusterError, match="closed"):
            cluster.start_node("c")

    def test_more_nodes_than_slots(self, fake_node_command, fast_consensus):
        builder = TopologyBuilder(TopologyConfig.with_node_numbers(1, 0)).with_consensus_params(fast_consensus(1))
        with LocalDeployer(node_command=fake_node_command, ready_timeout=30).manual_cluster_with_builder(builder) as cluster:
            cluster.start_node("a")
            with pytest.raises(NodeControlError, match="no free node slot"):
                cluster.start_node("b")
