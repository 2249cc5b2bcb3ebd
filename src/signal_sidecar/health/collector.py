"""Health Collector for signal-sidecar.

Runs one polling cycle across all configured sources, folds the outcomes into
an immutable snapshot, publishes it, and updates the hysteresis timestamps.

Author: signal-sidecar team
"""

import asyncio
import json
import logging
import time
from typing import Awaitable, Callable, Dict, Mapping, Optional, Tuple

from signal_sidecar.config import SidecarConfig
from signal_sidecar.core.state import SidecarState
from signal_sidecar.errors import StatsPayloadError
from signal_sidecar.health.models import (
    ALL_SOURCES,
    HTTP_SOURCES,
    JICOFO_HEALTH,
    JICOFO_STATS,
    PROSODY_HEALTH,
    STATUS_FILE,
    UNHEALTHY_SENTINEL,
    CensusState,
    ProbeOutcome,
    RawHealthSnapshot,
)
from signal_sidecar.health.probe import HttpProbe, read_status_file

logger = logging.getLogger(__name__)

StatusReader = Callable[[], Awaitable[ProbeOutcome]]


def _optional_count(value) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def decode_stats(body: str) -> Tuple[Optional[int], Optional[int]]:
    """Decode a jicofo stats body into (participants, conferences).

    Raises:
        StatsPayloadError: If the body is not a JSON object
    """
    try:
        parsed = json.loads(body)
    except ValueError as e:
        raise StatsPayloadError(f"invalid stats JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise StatsPayloadError("stats payload must be a JSON object")

    # older jicofo builds spell the field "partipants"
    participants = parsed.get("participants", parsed.get("partipants"))
    return _optional_count(participants), _optional_count(parsed.get("conferences"))


def parse_stats(body: str) -> Tuple[bool, Optional[int], Optional[int]]:
    """Parse a stats body.

    Returns:
        Tuple of (parsed, participants, conferences); counts are None when
        unparsable or absent
    """
    try:
        participants, conferences = decode_stats(body)
    except StatsPayloadError as e:
        logger.warning(f"failed to parse jicofo stats json: {e}")
        return False, None, None
    return True, participants, conferences


def compute_raw_healthy(outcomes: Mapping[str, ProbeOutcome], stats_parsed: bool,
                        status_contents: str) -> bool:
    """Raw health of a cycle.

    True iff every HTTP source answered 200, the stats parsed, the status
    source was readable and does not hold the ``unhealthy`` sentinel.
    """
    for source in HTTP_SOURCES:
        outcome = outcomes.get(source)
        if outcome is None or not outcome.ok:
            return False
    status = outcomes.get(STATUS_FILE)
    if status is None or not status.reachable:
        return False
    return stats_parsed and status_contents != UNHEALTHY_SENTINEL


def fallback_snapshot(now: float) -> RawHealthSnapshot:
    """Canned all-unreachable snapshot used when a cycle faults."""
    return RawHealthSnapshot(
        timestamp=now,
        outcomes={source: ProbeOutcome.unreachable() for source in ALL_SOURCES},
        stats_parsed=False,
        parsed_participants=None,
        parsed_conferences=None,
        status_file_contents=UNHEALTHY_SENTINEL,
        raw_healthy=False,
    )


class HealthCollector:
    """Collects raw health from jicofo, prosody and the status source."""

    def __init__(self, config: SidecarConfig, probe: Optional[HttpProbe] = None,
                 status_reader: Optional[StatusReader] = None,
                 census_provider: Optional[Callable[[], CensusState]] = None,
                 metrics=None):
        """Initialize collector.

        Args:
            config: Sidecar configuration
            probe: HTTP probe executor
            status_reader: Coroutine function reading the node status;
                defaults to reading ``config.status_path``
            census_provider: Returns the latest census, if polled
            metrics: Optional MetricsExporter
        """
        self.config = config
        self.probe = probe or HttpProbe(timeout=config.request_timeout,
                                        retries=config.request_retry_count)
        self.status_reader = status_reader or self._read_status_file
        self.census_provider = census_provider
        self.metrics = metrics
        self.targets: Dict[str, str] = {
            JICOFO_HEALTH: config.jicofo_health_url,
            JICOFO_STATS: config.jicofo_stats_url,
            PROSODY_HEALTH: config.prosody_health_url,
        }

    async def _read_status_file(self) -> ProbeOutcome:
        return read_status_file(self.config.status_path)

    async def run_cycle(self, now: Optional[float] = None) -> RawHealthSnapshot:
        """Probe every source concurrently and build a snapshot.

        A probe that raises is recorded as unreachable for its own source
        only; siblings are neither cancelled nor affected.
        """
        sources = list(self.targets) + [STATUS_FILE]
        calls = [self.probe.probe(url) for url in self.targets.values()]
        calls.append(self.status_reader())

        results = await asyncio.gather(*calls, return_exceptions=True)

        outcomes: Dict[str, ProbeOutcome] = {}
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error(f"probe of {source} raised: {result!r}")
                result = ProbeOutcome.unreachable(
                    timed_out=isinstance(result, asyncio.TimeoutError))
            outcomes[source] = result

        stats = outcomes[JICOFO_STATS]
        if stats.reachable:
            stats_parsed, participants, conferences = parse_stats(stats.body)
        else:
            stats_parsed, participants, conferences = False, None, None

        status_contents = outcomes[STATUS_FILE].body
        census = self.census_provider() if self.census_provider else None
        polled = census is not None and census.polled

        snapshot = RawHealthSnapshot(
            timestamp=time.time() if now is None else now,
            outcomes=outcomes,
            stats_parsed=stats_parsed,
            parsed_participants=participants,
            parsed_conferences=conferences,
            status_file_contents=status_contents,
            raw_healthy=compute_raw_healthy(outcomes, stats_parsed, status_contents),
            census_participants=census.total_participants if polled else None,
            census_sum_squared=census.sum_squared_participants if polled else None,
        )
        logger.debug(f"health cycle result: {snapshot}")
        return snapshot

    async def collect(self, state: SidecarState) -> RawHealthSnapshot:
        """Run a cycle, publish it and update the hysteresis.

        Unexpected faults publish the fallback snapshot instead of leaving
        the previous one in place.
        """
        previous = state.hysteresis.previous_healthy
        try:
            snapshot = await self.run_cycle()
        except Exception as e:
            logger.error(f"health cycle failed: {e!r}", exc_info=True)
            snapshot = fallback_snapshot(time.time())

        state.publish_snapshot(snapshot)
        new_episode = state.hysteresis.record_cycle(snapshot.raw_healthy, snapshot.timestamp)

        if previous is False and snapshot.raw_healthy:
            logger.info("signal node state changed from unhealthy to healthy")
        elif previous is not False and not snapshot.raw_healthy:
            logger.info("signal node state changed from healthy to unhealthy")

        if self.metrics is not None:
            self.metrics.set_signal_health(snapshot.raw_healthy)
            if new_episode:
                self.metrics.inc_unhealthy_total()
        return snapshot
