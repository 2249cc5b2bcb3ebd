"""
Sidecar wiring: builds the collectors, poll loops and listeners from config
and runs them on one event loop.
"""
import asyncio
import logging
from typing import List, Optional

from signal_sidecar.census.census_collector import CensusCollector
from signal_sidecar.config import SidecarConfig
from signal_sidecar.core.agent_server import AgentServer
from signal_sidecar.core.http_app import SignalHttpApp
from signal_sidecar.core.poller import CensusPoller, HealthPoller
from signal_sidecar.core.state import SidecarState
from signal_sidecar.health.collector import HealthCollector
from signal_sidecar.health.probe import HttpProbe
from signal_sidecar.integrations.consul import ConsulClient, ConsulReporter
from signal_sidecar.metrics.metrics_exporter import MetricsExporter

logger = logging.getLogger(__name__)


class Sidecar:
    def __init__(self, config: SidecarConfig):
        self.config = config
        self.state = SidecarState(census_enabled=config.census_poll)
        self.metrics = MetricsExporter() if config.metrics else None
        self.probe = HttpProbe(timeout=config.request_timeout,
                               retries=config.request_retry_count)

        self.consul: Optional[ConsulClient] = None
        if config.consul_status or config.consul_reports:
            self.consul = ConsulClient(
                config.consul_base_url,
                status_key=config.consul_status_key,
                report_key=config.consul_report_key,
                probe=self.probe,
            )

        status_reader = self.consul.read_status if config.consul_status else None
        self.health_collector = HealthCollector(
            config,
            probe=self.probe,
            status_reader=status_reader,
            census_provider=(lambda: self.state.census) if config.census_poll else None,
            metrics=self.metrics,
        )
        self.health_poller = HealthPoller(self.health_collector, self.state, config)

        self.census_poller: Optional[CensusPoller] = None
        if config.census_poll:
            census_collector = CensusCollector(config.prosody_census_url, self.probe,
                                               census_host=config.census_host)
            self.census_poller = CensusPoller(census_collector, self.state,
                                              config.polling_interval, metrics=self.metrics)

        self.consul_reporter: Optional[ConsulReporter] = None
        if config.consul_reports:
            self.consul_reporter = ConsulReporter(
                self.consul,
                config.consul_reports_interval,
                get_report=lambda: self.state.report(config),
                get_census=(lambda: self.state.census) if config.census_reports else None,
            )

        self.http = SignalHttpApp(self.state, config, self.metrics)
        self.agent = AgentServer(self.state, config)
        self._tasks: List[asyncio.Task] = []

    async def start(self):
        """Start poll loops and listeners."""
        logger.info("signal-sidecar startup", extra={"config": self.config.to_dict()})
        self._tasks.append(asyncio.create_task(self.health_poller.loop()))
        if self.census_poller is not None:
            self._tasks.append(asyncio.create_task(self.census_poller.loop()))
        if self.consul_reporter is not None:
            self._tasks.append(asyncio.create_task(self.consul_reporter.loop()))
        await self.http.start()
        await self.agent.start()

    async def stop(self):
        """Stop loops and listeners."""
        self.health_poller.stop()
        for poller in (self.census_poller, self.consul_reporter):
            if poller is not None:
                poller.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.agent.stop()
        await self.http.stop()

    async def run_forever(self):
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()
