"""Flap-mitigation overlay.

Turns the latest raw snapshot into the health reported to the load balancer.
Evaluation is a pure function of its inputs and is recomputed on every
request, so hysteresis windows close in real time between polls.

Two rules apply, and at most one fires for a given evaluation:

* Health dampening: a raw-healthy node is reported unhealthy until
  ``health_dampening_interval`` seconds have passed since the last
  unhealthy cycle.
* Drain grace: a raw-unhealthy node whose only failing dependency is jicofo
  is reported healthy with status ``drain`` for ``drain_grace_interval``
  seconds from the start of the failure episode, provided it has been
  healthy at some point before.
"""

import logging
from typing import Any, Dict, Optional

from signal_sidecar.balancing.agent_protocol import encode
from signal_sidecar.balancing.weight import calculate_weight
from signal_sidecar.config import SidecarConfig
from signal_sidecar.health.models import (
    JICOFO_HEALTH,
    JICOFO_STATS,
    PROSODY_HEALTH,
    STATUS_FILE,
    CensusState,
    HysteresisState,
    NodeStatus,
    RawHealthSnapshot,
    ReportedHealth,
)

logger = logging.getLogger(__name__)


def _within(now: float, since: Optional[float], interval: float) -> bool:
    return since is not None and now - since < interval


def is_dampened(hysteresis: HysteresisState, now: float, config: SidecarConfig) -> bool:
    return _within(now, hysteresis.last_went_unhealthy, config.health_dampening_interval)


def in_drain_grace(
    snapshot: RawHealthSnapshot,
    hysteresis: HysteresisState,
    now: float,
    config: SidecarConfig,
) -> bool:
    """Whether an unhealthy snapshot qualifies for the drain grace window."""
    if hysteresis.last_went_healthy is None:
        return False
    jicofo_healthy = snapshot.outcome(JICOFO_HEALTH).ok
    prosody_healthy = snapshot.outcome(PROSODY_HEALTH).ok
    if jicofo_healthy or not prosody_healthy:
        return False
    return _within(now, hysteresis.first_went_unhealthy_in_episode, config.drain_grace_interval)


def coerce_status(status: str) -> str:
    """Map any status outside ready/drain/maint to drain."""
    if status in NodeStatus.values():
        return status
    logger.warning(f"unrecognized node status {status!r}; reporting drain")
    return NodeStatus.DRAIN.value


def participant_count(
    snapshot: RawHealthSnapshot,
    census: Optional[CensusState] = None,
) -> Optional[int]:
    """Latest known participant count, preferring a polled census."""
    if census is not None and census.polled:
        return census.total_participants
    return snapshot.parsed_participants


def is_over_capacity(participants: Optional[int], config: SidecarConfig) -> bool:
    """Whether over-capacity drain is enabled and the node is past participant_max."""
    return (config.over_capacity_drain and participants is not None
            and participants > config.participant_max)


def services_view(snapshot: RawHealthSnapshot) -> Dict[str, Any]:
    jicofo = snapshot.outcome(JICOFO_HEALTH)
    stats = snapshot.outcome(JICOFO_STATS)
    prosody = snapshot.outcome(PROSODY_HEALTH)
    status_file = snapshot.outcome(STATUS_FILE)
    return {
        "jicofoReachable": jicofo.reachable,
        "jicofoStatusCode": jicofo.status_code,
        "jicofoSoftDown": jicofo.timed_out,
        "jicofoStatsReachable": stats.reachable,
        "jicofoStatsStatusCode": stats.status_code,
        "jicofoStatsParsed": snapshot.stats_parsed,
        "prosodyReachable": prosody.reachable,
        "prosodyStatusCode": prosody.status_code,
        "prosodySoftDown": prosody.timed_out,
        "statusFileFound": status_file.reachable,
        "statusFileContents": snapshot.status_file_contents,
    }


def stats_view(snapshot: RawHealthSnapshot) -> Dict[str, Any]:
    return {
        "jicofoParticipants": snapshot.parsed_participants,
        "jicofoConferences": snapshot.parsed_conferences,
        "censusParticipants": snapshot.census_participants,
        "censusSumSquared": snapshot.census_sum_squared,
    }


def evaluate(
    snapshot: RawHealthSnapshot,
    hysteresis: HysteresisState,
    now: float,
    config: SidecarConfig,
    census: Optional[CensusState] = None,
) -> ReportedHealth:
    """Evaluate the externally reported health.

    Args:
        snapshot: Latest raw snapshot
        hysteresis: Hysteresis timestamps (read only)
        now: Evaluation time in epoch seconds
        config: Sidecar configuration
        census: Latest census, if census polling is enabled

    Returns:
        Reported health including weight and agent-check line
    """
    healthy = snapshot.raw_healthy
    status = snapshot.status_file_contents
    damped = False

    if healthy:
        if is_dampened(hysteresis, now, config):
            healthy = False
            damped = True
    elif in_drain_grace(snapshot, hysteresis, now, config):
        healthy = True
        status = NodeStatus.DRAIN.value
        damped = True

    status = coerce_status(status)
    participants = participant_count(snapshot, census)
    if is_over_capacity(participants, config) and status == NodeStatus.READY.value:
        status = NodeStatus.DRAIN.value
    weight = calculate_weight(status, participants, config)

    return ReportedHealth(
        timestamp=now,
        healthy=healthy,
        damped=damped,
        status=status,
        weight=weight,
        services=services_view(snapshot),
        stats=stats_view(snapshot),
        agent_line=encode(healthy, status, weight),
    )
