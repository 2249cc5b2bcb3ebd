"""HTTP status API for signal-sidecar.

Serves the summary health, the detailed report and the room census with
aiohttp. Every health request re-evaluates the flap-mitigation overlay
against the latest snapshot.
"""

import logging
from typing import Optional

from aiohttp import web

from signal_sidecar.config import SidecarConfig
from signal_sidecar.core.state import SidecarState
from signal_sidecar.metrics.metrics_exporter import MetricsExporter

logger = logging.getLogger(__name__)


class SignalHttpApp:
    """aiohttp application exposing the sidecar's HTTP API."""

    def __init__(self, state: SidecarState, config: SidecarConfig,
                 metrics: Optional[MetricsExporter] = None):
        """Initialize the HTTP app.

        Args:
            state: Shared sidecar state
            config: Sidecar configuration
            metrics: Metrics exporter; /metrics is served only when given
        """
        self.state = state
        self.config = config
        self.metrics = metrics
        middlewares = [metrics.middleware] if metrics is not None else []
        self.app = web.Application(middlewares=middlewares)
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._setup_routes()

    def _setup_routes(self):
        """Configure HTTP routes."""
        self.app.router.add_get('/health', self.handle_liveness)
        self.app.router.add_get('/about/health', self.handle_signal_health)
        self.app.router.add_get('/signal/health', self.handle_signal_health)
        self.app.router.add_get('/signal/report', self.handle_report)
        if self.config.census_poll:
            self.app.router.add_get('/signal/census', self.handle_census)
        if self.metrics is not None:
            self.app.router.add_get('/metrics', self.metrics.handle_metrics)

    async def handle_liveness(self, request: web.Request) -> web.Response:
        """Health of the sidecar process itself."""
        return web.Response(text='OK')

    async def handle_signal_health(self, request: web.Request) -> web.Response:
        """Summary health of the signal node: OK / NOT_OK."""
        if self.metrics is not None:
            self.metrics.inc_health_check()

        report = self.state.report(self.config)
        if report is None:
            logger.warning(f"{request.path} returned 500 due to no health report")
            self._count_unhealthy()
            return web.Response(status=500, text='NOT_OK')

        if not report.healthy:
            logger.info(f"{request.path} returned 503", extra={"report": report.to_dict()})
            self._count_unhealthy()
            return web.Response(status=503, text='NOT_OK')
        return web.Response(text='OK')

    async def handle_report(self, request: web.Request) -> web.Response:
        """Detailed health report for load-balancer tooling."""
        report = self.state.report(self.config)
        if report is None:
            logger.warning("/signal/report returned 500 due to no health report")
            return web.json_response({"healthy": False, "status": "unknown"}, status=500)

        status = 200
        if not report.healthy:
            logger.info("/signal/report returned 503", extra={"report": report.to_dict()})
            status = 503
        return web.json_response(report.to_dict(), status=status)

    async def handle_census(self, request: web.Request) -> web.Response:
        """Room census of the signal node."""
        census = self.state.census
        if not census.polled:
            logger.warning("/signal/census returned 500 due to no census report")
            return web.json_response(census.to_dict(), status=500)
        payload = census.to_dict()
        payload["census_host"] = self.config.census_host
        return web.json_response(payload)

    def _count_unhealthy(self):
        if self.metrics is not None:
            self.metrics.inc_unhealthy_check()

    async def start(self):
        """Start serving on the configured HTTP port."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, '0.0.0.0', self.config.http_port)
        await self.site.start()
        logger.info(f"signal-sidecar listening on :{self.config.http_port}")

    async def stop(self):
        """Stop the HTTP server and clean up."""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("HTTP server stopped")
