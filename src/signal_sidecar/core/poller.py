"""Timer-driven poll loops for health and census.

Each loop awaits a full cycle before sleeping for the polling interval, so a
cycle never overlaps the previous one and a failed cycle never stops the loop.
"""

import asyncio
import logging
import time
from typing import Optional

from signal_sidecar.census.census_collector import CensusCollector
from signal_sidecar.config import SidecarConfig
from signal_sidecar.core.state import SidecarState
from signal_sidecar.health.collector import HealthCollector

logger = logging.getLogger(__name__)

POLL_CHECK_DURATION = 3600  # seconds between poll-count summaries


class PollCounter:
    """Logs how many cycles ran per hour against the ideal count."""

    def __init__(self, polling_interval: float, duration: float = POLL_CHECK_DURATION,
                 clock=time.time):
        self.duration = duration
        self.ideal_count = duration / polling_interval
        self.clock = clock
        self.last_check = clock()
        self.count = 0
        logger.info(
            f"initializing health polling counter: duration={duration}s target={self.ideal_count:g}"
        )

    def tick(self, state: Optional[SidecarState] = None,
             config: Optional[SidecarConfig] = None) -> bool:
        """Count a cycle; returns True when a summary was logged."""
        elapsed = self.clock() - self.last_check
        summarized = False
        if elapsed > self.duration:
            logger.info(
                f"attempted {self.count} health checks in {elapsed:.0f} seconds; "
                f"target is {self.ideal_count:g} checks every {self.duration} seconds"
            )
            if state is not None and config is not None:
                report = state.report(config)
                logger.info(f"current health report: {report.to_dict() if report else None}")
            self.last_check = self.clock()
            self.count = 0
            summarized = True
        self.count += 1
        return summarized


class HealthPoller:
    """Drives HealthCollector cycles on a fixed interval."""

    def __init__(self, collector: HealthCollector, state: SidecarState,
                 config: SidecarConfig):
        self.collector = collector
        self.state = state
        self.config = config
        self.interval = config.polling_interval
        self.counter = PollCounter(config.polling_interval)
        self.running = False

    async def poll_once(self):
        self.counter.tick(self.state, self.config)
        return await self.collector.collect(self.state)

    async def loop(self):
        """Continuous health polling loop."""
        self.running = True
        while self.running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"health poll error: {e!r}", exc_info=True)
            await asyncio.sleep(self.interval)

    def stop(self):
        self.running = False


class CensusPoller:
    """Drives CensusCollector polls on a fixed interval."""

    def __init__(self, collector: CensusCollector, state: SidecarState,
                 interval: float, metrics=None):
        self.collector = collector
        self.state = state
        self.interval = interval
        self.metrics = metrics
        self.running = False

    async def poll_once(self):
        previous = self.state.census
        census = await self.collector.poll(previous)
        self.state.publish_census(census)
        if self.metrics is not None:
            self.metrics.set_signal_census(census is not previous)
            self.metrics.set_sum_squared_participants(census.sum_squared_participants)
        return census

    async def loop(self):
        """Continuous census polling loop."""
        self.running = True
        while self.running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"census poll error: {e!r}", exc_info=True)
            await asyncio.sleep(self.interval)

    def stop(self):
        self.running = False
