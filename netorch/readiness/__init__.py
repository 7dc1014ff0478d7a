"""
Readiness - generic poll-until-ready engine and the checks built on it
"""
from .base import ReadinessCheck, call_with_timeout
from .checks import (
    ReadinessNode,
    NodeStatus,
    NetworkReadiness,
    NodeReachability,
    MinHeightReadiness,
    HeightConvergence,
    CatchUpReadiness,
)

__all__ = [
    'ReadinessCheck',
    'call_with_timeout',
    'ReadinessNode',
    'NodeStatus',
    'NetworkReadiness',
    'NodeReachability',
    'MinHeightReadiness',
    'HeightConvergence',
    'CatchUpReadiness',
]
