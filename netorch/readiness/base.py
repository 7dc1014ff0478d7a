"""
Poll-until-ready engine shared by network, height and catch-up checks
"""
import threading
import time
import logging
from typing import Any, Callable, Optional

from ..errors import CallTimeoutError, ReadinessCancelledError, ReadinessTimeoutError
from ..interfaces import IReadinessCheck

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


def call_with_timeout(func: Callable, timeout: float, *args,
                      on_late_finish: Optional[Callable[[], None]] = None, **kwargs) -> Any:
    """Run ``func`` on a daemon thread and wait at most ``timeout`` seconds for it.

    A call that never returns raises CallTimeoutError; the worker thread is
    abandoned and does not keep the interpreter alive. If an abandoned call
    does finish later, ``on_late_finish`` runs on the worker thread. Exceptions
    raised by ``func`` are re-raised in the caller.
    """
    outcome = {}
    done = threading.Event()
    guard = threading.Lock()
    abandoned = []

    def runner():
        try:
            outcome['value'] = func(*args, **kwargs)
        except BaseException as e:
            outcome['error'] = e
        finally:
            with guard:
                done.set()
                late = bool(abandoned)
            if late and on_late_finish is not None:
                on_late_finish()

    name = getattr(func, '__name__', 'call')
    worker = threading.Thread(target=runner, name=f"bounded-{name}", daemon=True)
    worker.start()

    if not done.wait(timeout):
        with guard:
            if not done.is_set():
                abandoned.append(True)
        if abandoned:
            raise CallTimeoutError(f"{name} did not return within {timeout:.2f}s")
    if 'error' in outcome:
        raise outcome['error']
    return outcome.get('value')


class ReadinessCheck(IReadinessCheck):
    """Base class: subclasses provide collect / is_ready / timeout_message"""

    def wait(self, timeout: float, poll_interval: float = DEFAULT_POLL_INTERVAL,
             stop_event: Optional[threading.Event] = None) -> Any:
        """Poll until ready, returning the ready snapshot.

        Raises ReadinessTimeoutError carrying the last snapshot once ``timeout``
        elapses, or ReadinessCancelledError when ``stop_event`` is set.
        """
        stop_event = stop_event or threading.Event()
        deadline = time.monotonic() + timeout
        attempts = 0

        while True:
            data = self.collect()
            attempts += 1
            if self.is_ready(data):
                logger.debug(f"{type(self).__name__} ready after {attempts} poll(s)")
                return data

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ReadinessTimeoutError(self.timeout_message(data), data)

            if stop_event.wait(min(poll_interval, remaining)):
                raise ReadinessCancelledError(f"{type(self).__name__} cancelled")
