"""
Node control state machine shared by every backend.

Each named node moves UNSTARTED -> RUNNING -> (RESTARTING -> RUNNING)* -> STOPPED.
Backends implement the raw ``_start`` / ``_restart`` / ``_stop`` /
``_current_pid`` operations; transitions, locking and error reporting live here.

A restart bounded by a timeout always ends RUNNING with a new pid or STOPPED.
When the backend's ``_restart`` outlives its bound, the node is abandoned and
whatever the late restart brings up is stopped once it returns.
"""
import threading
import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from .errors import CallTimeoutError, NodeControlError
from .interfaces import INodeControl
from .models import NodeState, PeerSelection, StartNodeOptions, StartedNode
from .readiness.base import call_with_timeout

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)

LATE_RESTART_GRACE = 30.0


class BaseNodeControl(INodeControl):
    """Thread-safe node table with per-node transition locks"""

    def __init__(self):
        self._lock = threading.RLock()
        self._states: Dict[str, NodeState] = {}
        self._node_locks: Dict[str, threading.Lock] = {}
        self._clients: Dict[str, Any] = {}
        self._late_restarts: Dict[str, threading.Event] = {}

    def _node_lock(self, name: str) -> threading.Lock:
        with self._lock:
            if name not in self._node_locks:
                self._node_locks[name] = threading.Lock()
            return self._node_locks[name]

    def _set_state(self, name: str, state: NodeState) -> None:
        with self._lock:
            self._states[name] = state

    def node_state(self, name: str) -> NodeState:
        with self._lock:
            return self._states.get(name, NodeState.UNSTARTED)

    def node_names(self) -> List[str]:
        with self._lock:
            return list(self._states)

    def running_nodes(self) -> List[str]:
        with self._lock:
            return [name for name, state in self._states.items() if state == NodeState.RUNNING]

    def node_client(self, name: str) -> Any:
        with self._lock:
            if name not in self._clients:
                raise NodeControlError(f"node '{name}' is not running")
            return self._clients[name]

    def mark_running(self, name: str, api: Any) -> StartedNode:
        """Register a node a backend brought up outside ``start_node_with``"""
        with self._lock:
            self._states[name] = NodeState.RUNNING
            self._clients[name] = api
        return StartedNode(name=name, api=api)

    def resolve_peers(self, name: str, selection: PeerSelection) -> List[str]:
        if selection.mode == "none":
            return []
        if selection.mode == "named":
            running = set(self.running_nodes())
            for peer in selection.names:
                if peer == name:
                    raise NodeControlError(f"node '{name}' cannot peer with itself")
                if peer not in running:
                    raise NodeControlError(f"peer '{peer}' of node '{name}' is not running")
            return list(selection.names)
        return [peer for peer in self.running_nodes() if peer != name]

    def start_node_with(self, name: str, options: Optional[StartNodeOptions] = None) -> StartedNode:
        options = options or StartNodeOptions()
        with self._node_lock(name):
            state = self.node_state(name)
            if state in (NodeState.RUNNING, NodeState.RESTARTING):
                raise NodeControlError(f"cannot start node '{name}': node is {state.value}")

            peers = self.resolve_peers(name, options.peers)
            logger.info(f"Starting {name} with peers {peers}")
            api = self._start(name, options, peers)
            started = self.mark_running(name, api)
            logger.info(f"Started {name} (pid {self._current_pid(name)})")
            return started

    def restart_node(self, name: str, timeout: Optional[float] = None) -> None:
        with self._node_lock(name):
            state = self.node_state(name)
            if state != NodeState.RUNNING:
                raise NodeControlError(f"cannot restart node '{name}': node is {state.value}")

            self._set_state(name, NodeState.RESTARTING)
            old_pid = self._current_pid(name)
            logger.info(f"Restarting {name} (pid {old_pid})")
            try:
                self._restart_within(name, timeout)
                new_pid = self._current_pid(name)
                if new_pid is None or new_pid == old_pid:
                    raise NodeControlError(f"restart of node '{name}' did not produce a new instance")
            except Exception as e:
                logger.error(f"Failed to restart {name}: {e}")
                self._abandon(name)
                if isinstance(e, NodeControlError):
                    raise
                raise NodeControlError(f"restart of node '{name}' failed: {e}") from e

            self._set_state(name, NodeState.RUNNING)
            logger.info(f"Restarted {name} with new pid {new_pid}")

    def _restart_within(self, name: str, timeout: Optional[float]) -> None:
        if timeout is None:
            self._restart(name)
            return

        finished = threading.Event()

        def reap():
            self._reap_late_restart(name)
            finished.set()

        try:
            call_with_timeout(self._restart, timeout, name, on_late_finish=reap)
        except CallTimeoutError:
            with self._lock:
                self._late_restarts[name] = finished
            raise

    def _reap_late_restart(self, name: str) -> None:
        """Stop whatever an abandoned restart brought up after its caller gave up"""
        with self._node_lock(name):
            if self.node_state(name) != NodeState.STOPPED:
                return
            logger.warning(f"Late restart of {name} finished after it was abandoned; stopping it")
            try:
                self._stop(name)
            except Exception as e:
                logger.warning(f"Could not stop {name} after late restart: {e}")

    def stop_node(self, name: str) -> None:
        with self._node_lock(name):
            self._stop_locked(name)

    def _stop_locked(self, name: str) -> None:
        state = self.node_state(name)
        if state != NodeState.RUNNING:
            raise NodeControlError(f"cannot stop node '{name}': node is {state.value}")
        try:
            self._stop(name)
        except Exception as e:
            self._abandon(name)
            raise NodeControlError(f"stop of node '{name}' failed: {e}") from e
        self._forget_client(name)
        self._set_state(name, NodeState.STOPPED)
        logger.info(f"Stopped {name}")

    def node_pid(self, name: str) -> Optional[Any]:
        if self.node_state(name) != NodeState.RUNNING:
            return None
        return self._current_pid(name)

    def stop_all(self) -> None:
        """Stop running and restarting nodes, then wait for abandoned restarts to be reaped"""
        for name in self.node_names():
            if self.node_state(name) not in (NodeState.RUNNING, NodeState.RESTARTING):
                continue
            # a restarting node holds its lock until the restart settles
            with self._node_lock(name):
                if self.node_state(name) != NodeState.RUNNING:
                    continue
                try:
                    self._stop_locked(name)
                except Exception as e:
                    logger.warning(f"Failed to stop {name} during teardown: {e}")

        with self._lock:
            late = list(self._late_restarts.items())
        for name, finished in late:
            if not finished.wait(LATE_RESTART_GRACE):
                logger.error(f"Abandoned restart of {name} still running after {LATE_RESTART_GRACE}s")

    def _abandon(self, name: str) -> None:
        """Leave a node in STOPPED after a failed transition"""
        try:
            self._stop(name)
        except Exception as e:
            logger.warning(f"Could not stop {name} after failed transition: {e}")
        self._forget_client(name)
        self._set_state(name, NodeState.STOPPED)

    def _forget_client(self, name: str) -> None:
        with self._lock:
            client = self._clients.pop(name, None)
        if client is not None and hasattr(client, 'close'):
            client.close()

    @abstractmethod
    def _start(self, name: str, options: StartNodeOptions, peers: List[str]) -> Any:
        """Bring the node up and return its API client"""
        pass

    @abstractmethod
    def _restart(self, name: str) -> None:
        pass

    @abstractmethod
    def _stop(self, name: str) -> None:
        pass

    @abstractmethod
    def _current_pid(self, name: str) -> Optional[Any]:
        pass
