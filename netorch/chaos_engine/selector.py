"""Chaos target selection over running node names"""
import random
import logging
from typing import List, Optional

from ..models import NodeRole, TargetSelection

logger = logging.getLogger(__name__)


def node_role(name: str) -> Optional[NodeRole]:
    for role in NodeRole:
        if name.startswith(f"{role.value}-"):
            return role
    return None


class ChaosTargetSelector:
    """Selects chaos targets from the currently eligible nodes"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def select_target(self, candidates: List[str], target_selection: TargetSelection) -> Optional[str]:
        """Select target node based on selection strategy"""
        if not candidates:
            logger.debug("No eligible chaos targets")
            return None

        strategy = target_selection.strategy

        if strategy == "specific":
            eligible = [name for name in target_selection.specific_nodes or [] if name in candidates]
            if not eligible:
                logger.debug(f"None of the specified nodes are eligible: {target_selection.specific_nodes}")
                return None
            return self.rng.choice(eligible)

        if strategy == "random":
            return self.rng.choice(candidates)

        if strategy in ("validators_only", "executors_only"):
            role = NodeRole.VALIDATOR if strategy == "validators_only" else NodeRole.EXECUTOR
            eligible = [name for name in candidates if node_role(name) == role]
            if not eligible:
                logger.debug(f"No eligible {role.value} nodes")
                return None
            return self.rng.choice(eligible)

        logger.error(f"Unknown target selection strategy: {strategy}")
        return None
