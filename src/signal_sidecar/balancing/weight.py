"""Load-balancer weight calculation.

Maps the reported node status and participant count to the weight percentage
sent to haproxy through the agent-check. Nodes that are draining or in
maintenance get zero weight; otherwise the weight is a step function of load
against ``participant_max``, rounded to 5% increments.
"""

import logging
import math
from typing import Optional

from signal_sidecar.config import SidecarConfig
from signal_sidecar.health.models import NodeStatus

logger = logging.getLogger(__name__)

WEIGHT_STEP = 5  # percent
FULL_WEIGHT = "100%"
ZERO_WEIGHT = "0%"


def round_to_step(percent: float, step: int = WEIGHT_STEP) -> int:
    """Round a percentage to the nearest multiple of ``step`` (halves round up)."""
    return int(math.floor(percent / step + 0.5)) * step


def capacity_percent(participants: int, participant_max: int, min_weight: int) -> int:
    """Weight percentage for a healthy node carrying ``participants``.

    Full weight strictly under capacity; each whole multiple of capacity
    removes 100%, so at or above capacity the result sits on the
    ``min_weight`` floor.
    """
    ratio = participants / participant_max
    raw = 100 - 100 * math.floor(ratio)
    percent = round_to_step(raw)
    return max(min_weight, min(100, percent))


def calculate_weight(status: str, participants: Optional[int], config: SidecarConfig) -> str:
    """Calculate the agent-check weight string.

    Args:
        status: Post-overlay node status
        participants: Latest known participant count, None if unknown
        config: Sidecar configuration

    Returns:
        Weight as a percentage string, e.g. ``"85%"``
    """
    if status in (NodeStatus.DRAIN.value, NodeStatus.MAINT.value):
        return ZERO_WEIGHT

    if not config.weight_participants:
        return FULL_WEIGHT

    if participants is None:
        logger.warning("participant count unknown; reporting zero weight")
        return ZERO_WEIGHT

    percent = capacity_percent(participants, config.participant_max, config.min_weight)
    return f"{percent}%"
