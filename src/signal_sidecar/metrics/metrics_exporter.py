"""Prometheus-compatible Metrics Exporter for signal-sidecar.

This module collects sidecar and HTTP request metrics and renders them in the
Prometheus text exposition format on the /metrics endpoint.
"""

import time
from collections import defaultdict
from typing import Any, Dict, Tuple

from aiohttp import web
import logging

logger = logging.getLogger(__name__)

# Histogram buckets for HTTP request duration, in seconds
DURATION_BUCKETS = (0.003, 0.01, 0.05, 0.1, 0.3, 1.0, 2.5, 10.0)

CONTENT_TYPE = 'text/plain; version=0.0.4'


def _labels(**labels: Any) -> str:
    if not labels:
        return ""
    inner = ",".join(f'{key}="{value}"' for key, value in labels.items())
    return "{" + inner + "}"


class MetricsExporter:
    """Prometheus-compatible metrics registry.

    Tracks HTTP request metrics through :meth:`middleware` and the signal
    health counters and gauges updated by the pollers and handlers.
    """

    def __init__(self):
        """Initialize empty metrics."""
        # HTTP request metrics
        self._in_flight = defaultdict(int)  # Gauge by method
        self._request_count = defaultdict(int)  # Counter by (method, code, uri)
        self._duration_buckets = defaultdict(lambda: [0] * len(DURATION_BUCKETS))
        self._duration_sum = defaultdict(float)  # by (method, uri)
        self._duration_count = defaultdict(int)  # by (method, uri)

        # Signal metrics
        self._health_checks = 0
        self._unhealthy_checks = 0
        self._unhealthy_total = 0
        self._signal_health = 0
        self._signal_census = 0
        self._sum_squared_participants = 0
        self._start_time = time.time()

    def record_request(self, method: str, code: int, uri: str, duration: float):
        """Record a completed HTTP request.

        Args:
            method: Lower-case HTTP method
            code: Response status code
            uri: Request path
            duration: Request duration in seconds
        """
        self._request_count[(method, code, uri)] += 1
        key = (method, uri)
        buckets = self._duration_buckets[key]
        for i, bound in enumerate(DURATION_BUCKETS):
            if duration <= bound:
                buckets[i] += 1
        self._duration_sum[key] += duration
        self._duration_count[key] += 1
        logger.debug(f"Recorded request: {method} {uri} {code} in {duration:.4f}s")

    def inc_in_flight(self, method: str):
        self._in_flight[method] += 1

    def dec_in_flight(self, method: str):
        self._in_flight[method] = max(0, self._in_flight[method] - 1)

    def inc_health_check(self):
        """Count a call of the summary health endpoint."""
        self._health_checks += 1

    def inc_unhealthy_check(self):
        """Count a summary health call that answered unhealthy."""
        self._unhealthy_checks += 1

    def inc_unhealthy_total(self):
        """Count a transition of the node into unhealthy."""
        self._unhealthy_total += 1

    def set_signal_health(self, healthy: bool):
        self._signal_health = 1 if healthy else 0

    def set_signal_census(self, healthy: bool):
        self._signal_census = 1 if healthy else 0

    def set_sum_squared_participants(self, value: int):
        self._sum_squared_participants = value

    def render(self) -> str:
        """Render all metrics in Prometheus text format."""
        out = []

        uptime = time.time() - self._start_time
        out.append("# HELP signal_sidecar_uptime_seconds Sidecar uptime in seconds")
        out.append("# TYPE signal_sidecar_uptime_seconds gauge")
        out.append(f"signal_sidecar_uptime_seconds {uptime:.2f}")

        out.append("# HELP http_server_requests_in_flight Gauge for requests currently being processed")
        out.append("# TYPE http_server_requests_in_flight gauge")
        for method, count in sorted(self._in_flight.items()):
            out.append(f"http_server_requests_in_flight{_labels(method=method)} {count}")

        out.append("# HELP http_server_requests_total Counter for total requests")
        out.append("# TYPE http_server_requests_total counter")
        for (method, code, uri), count in sorted(self._request_count.items()):
            out.append(f"http_server_requests_total{_labels(method=method, code=code, uri=uri)} {count}")

        out.append("# HELP http_server_request_duration_seconds duration histogram of http responses")
        out.append("# TYPE http_server_request_duration_seconds histogram")
        for (method, uri), buckets in sorted(self._duration_buckets.items()):
            for bound, count in zip(DURATION_BUCKETS, buckets):
                labels = _labels(method=method, uri=uri, le=bound)
                out.append(f"http_server_request_duration_seconds_bucket{labels} {count}")
            total = self._duration_count[(method, uri)]
            labels = _labels(method=method, uri=uri, le="+Inf")
            out.append(f"http_server_request_duration_seconds_bucket{labels} {total}")
            labels = _labels(method=method, uri=uri)
            out.append(f"http_server_request_duration_seconds_sum{labels} {self._duration_sum[(method, uri)]:.6f}")
            out.append(f"http_server_request_duration_seconds_count{labels} {total}")

        for name, kind, help_text, value in self._signal_metrics():
            out.append(f"# HELP {name} {help_text}")
            out.append(f"# TYPE {name} {kind}")
            out.append(f"{name} {value}")

        return "\n".join(out) + "\n"

    def _signal_metrics(self) -> Tuple[Tuple[str, str, str, Any], ...]:
        return (
            ("signal_health_check", "counter",
             "number of times the health check has been called", self._health_checks),
            ("signal_unhealthy_check", "counter",
             "number of times the health check has been called and returned unhealthy",
             self._unhealthy_checks),
            ("signal_unhealthy_total", "counter",
             "number of times gone unhealthy", self._unhealthy_total),
            ("signal_health", "gauge",
             "gauge for signal health (1) or unhealthy (0)", self._signal_health),
            ("signal_census", "gauge",
             "gauge for census health (1) or unhealthy (0)", self._signal_census),
            ("prosody_participant_sum_squared", "gauge",
             "gauge for participant sum squared", self._sum_squared_participants),
        )

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get a summary of current metrics.

        Returns:
            Dictionary containing current metrics state
        """
        return {
            "uptime": time.time() - self._start_time,
            "health_checks": self._health_checks,
            "unhealthy_checks": self._unhealthy_checks,
            "unhealthy_total": self._unhealthy_total,
            "signal_health": self._signal_health,
            "signal_census": self._signal_census,
            "sum_squared_participants": self._sum_squared_participants,
        }

    async def handle_metrics(self, request: web.Request) -> web.Response:
        """Handle GET requests to /metrics endpoint."""
        return web.Response(text=self.render(), content_type=CONTENT_TYPE)

    @web.middleware
    async def middleware(self, request: web.Request, handler) -> web.StreamResponse:
        """Record request metrics for the /about and /signal routes."""
        if not request.path.startswith(("/about", "/signal")):
            return await handler(request)

        method = request.method.lower()
        start = time.perf_counter()
        self.inc_in_flight(method)
        code = 500
        try:
            response = await handler(request)
            code = response.status
            return response
        except web.HTTPException as e:
            code = e.status
            raise
        finally:
            self.dec_in_flight(method)
            self.record_request(method, code, request.path, time.perf_counter() - start)
