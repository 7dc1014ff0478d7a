"""
Tests for traffic workloads and post-run expectations
"""
import threading
from types import SimpleNamespace
from unittest.mock import Mock

from netorch.models import WorkloadReport
from netorch.readiness import ReadinessNode
from netorch.scenario import ConsensusLiveness, DaWorkload, TransactionWorkload, TxInclusionExpectation


def run_for(workload, ctx, seconds=0.1):
    stop = threading.Event()
    timer = threading.Timer(seconds, stop.set)
    timer.start()
    try:
        return workload.run(ctx, stop)
    finally:
        timer.cancel()


def liveness_ctx(*heights_per_node, fake_api):
    ctx = Mock()
    nodes = [ReadinessNode(f"validator-{i}", fake_api(heights=h)) for i, h in enumerate(heights_per_node)]
    ctx.readiness_nodes.return_value = nodes
    return ctx


class TestTransactionWorkload:
    """Test TransactionWorkload"""

    def test_submits_round_robin(self, fake_api):
        first, second = fake_api(), fake_api()
        ctx = Mock(clients={"validator-0": first, "validator-1": second}, block_interval=0.01)

        report = run_for(TransactionWorkload(rate=1, users=2), ctx)

        assert report.name == "transactions"
        assert report.submitted > 2
        assert report.accepted == report.submitted
        assert first.transactions and second.transactions
        assert first.transactions[0]["from"] == "user-0"
        assert second.transactions[0]["from"] == "user-1"

    def test_counts_rejections(self, fake_api):
        ctx = Mock(clients={"validator-0": fake_api(error="mempool full")}, block_interval=0.01)
        report = run_for(TransactionWorkload(rate=2), ctx)
        assert report.accepted == 0
        assert report.failed == report.submitted > 0

    def test_no_clients(self):
        ctx = Mock(clients={}, block_interval=0.01)
        assert TransactionWorkload(rate=1).run(ctx, threading.Event()).submitted == 0


class TestDaWorkload:

    def test_publishes_to_executors(self, fake_api):
        validator, executor = fake_api(), fake_api()
        ctx = Mock(
            clients={"validator-0": validator, "executor-0": executor},
            block_interval=0.01,
            topology=SimpleNamespace(executors=[SimpleNamespace(name="executor-0")]),
        )

        report = run_for(DaWorkload(channel_rate=2, blob_rate=1), ctx)

        assert report.accepted > 0
        assert validator.blobs == []
        assert {blob["channel"] for blob in executor.blobs} == {"channel-0", "channel-1"}

    def test_headroom(self):
        assert DaWorkload(channel_rate=2, blob_rate=1.5, headroom_percent=50).blobs_per_block == 4.5


class TestConsensusLiveness:
    """Test ConsensusLiveness"""

    def test_passes_when_heights_advance(self, fake_api):
        ctx = liveness_ctx([3, 3, 4], [2, 5], fake_api=fake_api)
        expectation = ConsensusLiveness(min_progress=1, poll_interval=0.01)

        expectation.start_capture(ctx)
        assert expectation.initial_heights == {"validator-0": 3, "validator-1": 2}
        assert expectation.target_height() == 4

        result = expectation.evaluate(ctx, 1.0, [])
        assert result.success
        assert result.details["target_height"] == 4

    def test_fails_when_stalled(self, fake_api):
        ctx = liveness_ctx([3], [3], fake_api=fake_api)
        expectation = ConsensusLiveness(min_progress=2, poll_interval=0.05)
        expectation.start_capture(ctx)

        result = expectation.evaluate(ctx, 0.2, [])

        assert not result.success
        assert "min height 5 not reached" in result.message
        assert result.details["heights"] == {"validator-0": 3, "validator-1": 3}

    def test_max_wait_caps_budget(self, fake_api):
        ctx = liveness_ctx([0], fake_api=fake_api)
        expectation = ConsensusLiveness(max_wait=0.05, poll_interval=0.01)
        expectation.start_capture(ctx)
        assert not expectation.evaluate(ctx, 30.0, []).success


class TestTxInclusion:

    def test_ratio(self):
        reports = [WorkloadReport("transactions", submitted=10, accepted=9), WorkloadReport("da", submitted=5)]
        result = TxInclusionExpectation(0.8).evaluate(Mock(), 1.0, reports)
        assert result.success
        assert result.details["ratio"] == 0.9

    def test_below_ratio(self):
        reports = [WorkloadReport("transactions", submitted=10, accepted=3)]
        result = TxInclusionExpectation(0.5).evaluate(Mock(), 1.0, reports)
        assert not result.success
        assert "only 3/10" in result.message

    def test_nothing_submitted(self):
        result = TxInclusionExpectation().evaluate(Mock(), 1.0, [])
        assert not result.success
        assert result.message == "no transactions were submitted"
