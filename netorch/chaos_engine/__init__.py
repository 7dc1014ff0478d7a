"""
Chaos Engine - Restarts nodes on a jittered schedule during a run

- ChaosScheduler: background restart loop honouring the end-of-run cooldown
- ChaosTargetSelector: target node selection
"""
from .scheduler import ChaosScheduler
from .selector import ChaosTargetSelector

__all__ = [
    'ChaosScheduler',
    'ChaosTargetSelector',
]
