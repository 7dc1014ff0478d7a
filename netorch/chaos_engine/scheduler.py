"""
Chaos scheduler - restarts nodes at jittered intervals while a scenario runs

The scheduler runs on its own thread. Every cycle it sleeps for a delay drawn
uniformly from ``[min_delay, max_delay]`` and restarts one eligible node
through the node control handle, bounded by ``restart_timeout``. Nothing is
scheduled once less than ``target_cooldown`` remains before the end of the
run, and a node restarted within the last ``target_cooldown`` seconds is not
picked again.
"""
import random
import threading
import time
import uuid
import logging
from typing import Dict, List, Optional

from ..error_handler import ErrorCategory, ErrorContext, ErrorSeverity, get_error_handler
from ..interfaces import INodeControl
from ..models import ChaosPolicy, ChaosResult
from .selector import ChaosTargetSelector

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)

DEFAULT_RESTART_TIMEOUT = 120.0


class ChaosScheduler:
    """Background restart loop bound to one scenario run"""

    def __init__(self, policy: ChaosPolicy, node_control: INodeControl, end_time: float,
                 rng: Optional[random.Random] = None, restart_timeout: float = DEFAULT_RESTART_TIMEOUT,
                 stop_event: Optional[threading.Event] = None):
        self.policy = policy
        self.node_control = node_control
        self.end_time = end_time
        self.rng = rng or random.Random()
        self.restart_timeout = restart_timeout
        self.selector = ChaosTargetSelector(self.rng)
        self.error_handler = get_error_handler()

        self._stop_event = stop_event or threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._events: List[ChaosResult] = []
        self._last_restart: Dict[str, float] = {}

    @property
    def events(self) -> List[ChaosResult]:
        with self._lock:
            return list(self._events)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="chaos-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Chaos scheduler started: delay {self.policy.min_delay}-{self.policy.max_delay}s, "
                    f"cooldown {self.policy.target_cooldown}s")

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _remaining(self) -> float:
        return self.end_time - time.time()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            delay = self.rng.uniform(self.policy.min_delay, self.policy.max_delay)
            if self._remaining() - delay < self.policy.target_cooldown:
                logger.info("No time left for another restart outside the cooldown window")
                break
            if self._stop_event.wait(delay):
                break
            now = time.time()
            if self.end_time - now < self.policy.target_cooldown:
                break
            self.inject_once(now)

        logger.info(f"Chaos scheduler finished after {len(self.events)} restart attempt(s)")

    def _eligible_nodes(self, now: float) -> List[str]:
        cooldown = self.policy.target_cooldown
        return [
            name for name in self.node_control.running_nodes()
            if now - self._last_restart.get(name, float('-inf')) >= cooldown
        ]

    def inject_once(self, now: Optional[float] = None) -> Optional[ChaosResult]:
        """Restart one eligible node; failures are recorded on the result, never raised"""
        now = now if now is not None else time.time()
        target = self.selector.select_target(self._eligible_nodes(now), self.policy.target_selection)
        if target is None:
            logger.info("No eligible chaos target this cycle")
            return None

        result = ChaosResult(
            chaos_id=str(uuid.uuid4())[:8],
            chaos_type=self.policy.mode,
            target_node=target,
            success=False,
            start_time=now,
        )
        self._last_restart[target] = now

        try:
            result.old_pid = self.node_control.node_pid(target)
            self.node_control.restart_node(target, timeout=self.restart_timeout)
            result.new_pid = self.node_control.node_pid(target)
            result.success = True
            logger.info(f"Chaos restarted {target} (pid {result.old_pid} -> {result.new_pid})")
        except Exception as e:
            result.error_message = str(e)
            self.error_handler.handle_error(ErrorContext(
                category=ErrorCategory.CHAOS_INJECTION,
                severity=ErrorSeverity.MEDIUM,
                message=f"restart failed: {e}",
                exception=e,
                component="chaos",
                node_name=target,
            ))

        result.end_time = time.time()
        with self._lock:
            self._events.append(result)
        return result
