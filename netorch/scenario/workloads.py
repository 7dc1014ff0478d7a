"""
Traffic generators driven by the runner while a scenario runs
"""
import os
import threading
import logging
from itertools import cycle
from typing import TYPE_CHECKING

from ..errors import ApiClientError, ScenarioBuildError
from ..interfaces import IWorkload
from ..models import WorkloadReport

if TYPE_CHECKING:
    from .runner import RunContext

logger = logging.getLogger(__name__)


class TransactionWorkload(IWorkload):
    """Submits ``rate`` transactions per block interval from ``users`` wallet accounts"""

    name = "transactions"

    def __init__(self, rate: float, users: int = 1):
        if rate <= 0:
            raise ScenarioBuildError(f"transaction rate must be positive, got {rate}")
        if users < 1:
            raise ScenarioBuildError(f"transaction workload needs at least one user, got {users}")
        self.rate = rate
        self.users = users

    def run(self, ctx: "RunContext", stop_event: threading.Event) -> WorkloadReport:
        report = WorkloadReport(name=self.name)
        clients = list(ctx.clients.items())
        if not clients:
            return report

        interval = ctx.block_interval / self.rate
        targets = cycle(clients)
        nonce = 0
        logger.info(f"Transaction workload: {self.rate} tx/block from {self.users} user(s), "
                    f"one every {interval:.2f}s")

        while not stop_event.is_set():
            node_name, client = next(targets)
            tx = {
                "from": f"user-{nonce % self.users}",
                "nonce": nonce // self.users,
                "payload": os.urandom(16).hex(),
            }
            nonce += 1
            report.submitted += 1
            try:
                client.submit_transaction(tx)
                report.accepted += 1
            except ApiClientError as e:
                report.failed += 1
                logger.debug(f"Transaction to {node_name} rejected: {e}")
            stop_event.wait(interval)

        logger.info(f"Transaction workload done: {report.accepted}/{report.submitted} accepted")
        return report


class DaWorkload(IWorkload):
    """Publishes blobs to executors across ``channel_rate`` channels per block.

    ``headroom_percent`` raises the publishing rate above the nominal
    ``channel_rate * blob_rate`` blobs per block.
    """

    name = "da"

    def __init__(self, channel_rate: int = 1, blob_rate: float = 1.0, headroom_percent: int = 0):
        if channel_rate < 1:
            raise ScenarioBuildError(f"DA channel rate must be at least 1, got {channel_rate}")
        if blob_rate <= 0:
            raise ScenarioBuildError(f"DA blob rate must be positive, got {blob_rate}")
        if headroom_percent < 0:
            raise ScenarioBuildError(f"DA headroom must be non-negative, got {headroom_percent}")
        self.channel_rate = channel_rate
        self.blob_rate = blob_rate
        self.headroom_percent = headroom_percent

    @property
    def blobs_per_block(self) -> float:
        return self.channel_rate * self.blob_rate * (1 + self.headroom_percent / 100.0)

    def run(self, ctx: "RunContext", stop_event: threading.Event) -> WorkloadReport:
        report = WorkloadReport(name=self.name)
        executors = [
            (node.name, ctx.clients[node.name])
            for node in ctx.topology.executors if node.name in ctx.clients
        ]
        if not executors:
            executors = list(ctx.clients.items())
        if not executors:
            return report

        interval = ctx.block_interval / self.blobs_per_block
        targets = cycle(executors)
        channels = cycle(range(self.channel_rate))
        logger.info(f"DA workload: {self.blobs_per_block:.2f} blob(s)/block over "
                    f"{self.channel_rate} channel(s) to {len(executors)} node(s)")

        while not stop_event.is_set():
            node_name, client = next(targets)
            report.submitted += 1
            try:
                client.publish_blob({
                    "channel": f"channel-{next(channels)}",
                    "data": os.urandom(32).hex(),
                })
                report.accepted += 1
            except ApiClientError as e:
                report.failed += 1
                logger.debug(f"Blob publish to {node_name} failed: {e}")
            stop_event.wait(interval)

        logger.info(f"DA workload done: {report.accepted}/{report.submitted} blobs accepted")
        return report
