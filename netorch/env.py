"""
Environment defaults read during the startup phase.

Process-wide environment mutation is only allowed before the first scenario
run begins; afterwards ``apply_startup_defaults`` refuses to touch ``os.environ``.
"""
import os
import threading
import logging
from typing import Dict, Optional

from .errors import NetorchError
from .models import Backend

logger = logging.getLogger(__name__)

BACKEND_VAR = "NETORCH_BACKEND"
VALIDATORS_VAR = "NETORCH_VALIDATORS"
EXECUTORS_VAR = "NETORCH_EXECUTORS"
RUN_SECS_VAR = "NETORCH_RUN_SECS"
NODE_BIN_VAR = "NETORCH_NODE_BIN"
PARAMS_PATH_VAR = "NETORCH_PARAMS_PATH"
KEEP_LOGS_VAR = "NETORCH_KEEP_LOGS"
COMPOSE_IMAGE_VAR = "NETORCH_COMPOSE_IMAGE"
K8S_NODE_HOST_VAR = "NETORCH_K8S_NODE_HOST"

DEFAULT_VALIDATORS = 1
DEFAULT_EXECUTORS = 1
DEFAULT_RUN_SECS = 60
DEFAULT_PARAMS_PATH = "/kzgrs_test_params"
DEFAULT_COMPOSE_IMAGE = "netorch/node:latest"

_startup_lock = threading.Lock()
_startup_complete = False


def _read_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise NetorchError(f"{name} must be an integer, got {raw!r}")


def backend() -> Backend:
    raw = os.environ.get(BACKEND_VAR, Backend.LOCAL.value).strip().lower()
    try:
        return Backend(raw)
    except ValueError:
        raise NetorchError(f"{BACKEND_VAR} must be one of local, compose, cluster; got {raw!r}")


def validator_count() -> int:
    return _read_int(VALIDATORS_VAR, DEFAULT_VALIDATORS)


def executor_count() -> int:
    return _read_int(EXECUTORS_VAR, DEFAULT_EXECUTORS)


def run_secs() -> int:
    return _read_int(RUN_SECS_VAR, DEFAULT_RUN_SECS)


def node_binary() -> Optional[str]:
    return os.environ.get(NODE_BIN_VAR) or None


def params_path() -> str:
    return os.environ.get(PARAMS_PATH_VAR) or DEFAULT_PARAMS_PATH


def keep_logs() -> bool:
    return os.environ.get(KEEP_LOGS_VAR, "").strip().lower() not in ("", "0", "false", "no")


def compose_image() -> str:
    return os.environ.get(COMPOSE_IMAGE_VAR) or DEFAULT_COMPOSE_IMAGE


def k8s_node_host() -> str:
    return os.environ.get(K8S_NODE_HOST_VAR) or "127.0.0.1"


def apply_startup_defaults(defaults: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Set unset environment variables to their defaults.

    Must run before any scenario task is spawned. Returns the variables that
    were set.
    """
    if defaults is None:
        defaults = {PARAMS_PATH_VAR: DEFAULT_PARAMS_PATH}

    with _startup_lock:
        if _startup_complete:
            raise NetorchError("environment defaults can only be applied before the first scenario run")
        applied = {}
        for name, value in defaults.items():
            if name not in os.environ:
                os.environ[name] = value
                applied[name] = value
        if applied:
            logger.info(f"Applied environment defaults: {', '.join(sorted(applied))}")
        return applied


def mark_startup_complete() -> None:
    global _startup_complete
    with _startup_lock:
        _startup_complete = True


def startup_complete() -> bool:
    return _startup_complete


def reset_startup_phase() -> None:
    """Re-open the startup phase; intended for tests"""
    global _startup_complete
    with _startup_lock:
        _startup_complete = False
