"""Consul KV integration.

Reads the node status from a Consul key (as an alternative to the local
status file) and publishes the reported health, optionally with the room
census, to another key for fleet tooling.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import aiohttp

from signal_sidecar.errors import ConsulError
from signal_sidecar.health.models import CensusState, ProbeOutcome, ReportedHealth
from signal_sidecar.health.probe import HttpProbe

logger = logging.getLogger(__name__)


class ConsulClient:
    """Minimal client for the Consul KV HTTP API."""

    def __init__(self, base_url: str, status_key: str, report_key: str,
                 probe: HttpProbe):
        """Initialize Consul client.

        Args:
            base_url: Consul agent URL, e.g. ``http://localhost:8500``
            status_key: KV key holding the node status
            report_key: KV key the health report is written to
            probe: Probe executor used for status reads
        """
        self.base_url = base_url.rstrip('/')
        self.status_key = status_key
        self.report_key = report_key
        self.probe = probe

    def kv_url(self, key: str) -> str:
        return f"{self.base_url}/v1/kv/{key.lstrip('/')}"

    async def read_status(self) -> ProbeOutcome:
        """Read the status key with the same outcome shape as the status file."""
        outcome = await self.probe.probe(self.kv_url(self.status_key) + "?raw&stale")
        if not outcome.ok:
            logger.warning(
                f"consul status read of {self.status_key} failed "
                f"(reachable={outcome.reachable}, code={outcome.status_code})"
            )
            return ProbeOutcome.unreachable(timed_out=outcome.timed_out)
        return ProbeOutcome(reachable=True, status_code=0, body=outcome.body.strip())

    async def publish_report(self, report: Optional[ReportedHealth],
                             census: Optional[CensusState] = None) -> None:
        """Write the report (and census rooms) to the report key.

        Raises:
            ConsulError: If the write fails
        """
        payload: Dict[str, Any] = report.to_dict() if report is not None else {"healthy": False}
        if census is not None:
            payload["census"] = [room.to_dict() for room in census.rooms]

        timeout = aiohttp.ClientTimeout(total=self.probe.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.put(self.kv_url(self.report_key),
                                       data=json.dumps(payload)) as response:
                    if response.status != 200:
                        raise ConsulError(f"KV write returned {response.status}")
                    result = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ConsulError(f"KV write to {self.report_key} failed: {e!r}") from e
        logger.debug(f"KV report written to {self.report_key}: {result}")


class ConsulReporter:
    """Background loop publishing the current report to Consul."""

    def __init__(self, client: ConsulClient, interval: float,
                 get_report: Callable[[], Optional[ReportedHealth]],
                 get_census: Optional[Callable[[], Optional[CensusState]]] = None):
        self.client = client
        self.interval = interval
        self.get_report = get_report
        self.get_census = get_census
        self.running = False
        self.last_published: Optional[float] = None

    async def publish_once(self) -> bool:
        census = self.get_census() if self.get_census else None
        try:
            await self.client.publish_report(self.get_report(), census)
        except ConsulError as e:
            logger.error(f"KV report write error: {e}")
            return False
        self.last_published = time.time()
        return True

    async def loop(self):
        """Publish every ``interval`` seconds until stopped."""
        self.running = True
        while self.running:
            try:
                await self.publish_once()
            except Exception as e:
                logger.error(f"consul report error: {e!r}", exc_info=True)
            await asyncio.sleep(self.interval)

    def stop(self):
        self.running = False
