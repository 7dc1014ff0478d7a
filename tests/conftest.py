"""
Shared fixtures: environment isolation, in-memory node doubles and the fake node command
"""
import itertools
import sys
import threading
from pathlib import Path
from typing import List, Optional

import pytest

from netorch import env
from netorch.errors import ApiClientError
from netorch.models import ConsensusInfo, ConsensusParams, NetworkInfo, StartNodeOptions
from netorch.node_control import BaseNodeControl
from netorch.topology import TopologyBuilder

FAKE_NODE = Path(__file__).parent / "fixtures" / "fake_node.py"


class FakeApi:
    """In-memory node API; heights are consumed one per consensus_info call, the last one repeats"""

    def __init__(self, heights=(0,), n_peers: int = 0, error: Optional[str] = None):
        self.heights = list(heights)
        self.n_peers = n_peers
        self.error = error
        self.transactions: List[dict] = []
        self.blobs: List[dict] = []
        self.closed = False
        self._lock = threading.Lock()

    def consensus_info(self) -> ConsensusInfo:
        if self.error:
            raise ApiClientError(self.error)
        with self._lock:
            height = self.heights.pop(0) if len(self.heights) > 1 else self.heights[0]
        return ConsensusInfo(height=height)

    def network_info(self) -> NetworkInfo:
        if self.error:
            raise ApiClientError(self.error)
        return NetworkInfo(n_peers=self.n_peers)

    def submit_transaction(self, tx):
        if self.error:
            raise ApiClientError(self.error)
        self.transactions.append(tx)

    def publish_blob(self, blob):
        if self.error:
            raise ApiClientError(self.error)
        self.blobs.append(blob)

    def close(self):
        self.closed = True


class FakeNodeControl(BaseNodeControl):
    """Node control over imaginary processes with increasing pids"""

    def __init__(self, fail_restart: bool = False, keep_pid_on_restart: bool = False):
        super().__init__()
        self.fail_restart = fail_restart
        self.keep_pid_on_restart = keep_pid_on_restart
        self.pids = {}
        self.started_with = {}
        self.restarts = []
        self._next_pid = itertools.count(1000)

    def _start(self, name, options: StartNodeOptions, peers):
        self.pids[name] = next(self._next_pid)
        self.started_with[name] = list(peers)
        return FakeApi()

    def _restart(self, name):
        self.restarts.append(name)
        if self.fail_restart:
            raise RuntimeError("process did not come back")
        if not self.keep_pid_on_restart:
            self.pids[name] = next(self._next_pid)

    def _stop(self, name):
        self.pids.pop(name, None)

    def _current_pid(self, name):
        return self.pids.get(name)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep startup-phase state and NETORCH_* variables from leaking between tests"""
    for name in (env.BACKEND_VAR, env.VALIDATORS_VAR, env.EXECUTORS_VAR, env.RUN_SECS_VAR,
                 env.NODE_BIN_VAR, env.KEEP_LOGS_VAR, env.COMPOSE_IMAGE_VAR, env.K8S_NODE_HOST_VAR):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv(env.PARAMS_PATH_VAR, env.DEFAULT_PARAMS_PATH)
    env.reset_startup_phase()
    yield
    env.reset_startup_phase()


@pytest.fixture
def fake_api():
    return FakeApi


@pytest.fixture
def fake_control():
    return FakeNodeControl


@pytest.fixture
def fixed_topology():
    """Two validators and one executor on fixed ports; nothing is bound"""
    def build(validators=2, executors=1, layout="star"):
        n = validators + executors
        return (TopologyBuilder()
                .with_node_counts(validators, executors)
                .with_network_layout(layout)
                .with_network_ports([42000 + i for i in range(n)])
                .with_da_ports([42100 + i for i in range(n)])
                .with_api_ports([42200 + i for i in range(n)])
                .build())
    return build


@pytest.fixture
def fake_node_command():
    return [sys.executable, str(FAKE_NODE)]


@pytest.fixture
def fast_consensus():
    """Consensus params with short slots so fake node heights move quickly"""
    def params(n_participants):
        return ConsensusParams(n_participants=n_participants, active_slot_coeff=1.0, slot_duration=0.1)
    return params
