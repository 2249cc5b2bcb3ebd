import asyncio
import socket

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from signal_sidecar.health.models import ProbeOutcome
from signal_sidecar.health.probe import HttpProbe, read_status_file


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _start_server():
    async def ok(request):
        return web.Response(text="healthy")

    async def broken(request):
        return web.Response(status=503, text="nope")

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    async def posted(request):
        return web.Response(text=request.method)

    app = web.Application()
    app.router.add_get("/ok", ok)
    app.router.add_get("/broken", broken)
    app.router.add_get("/slow", slow)
    app.router.add_post("/posted", posted)
    server = TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_probe_success():
    server = await _start_server()
    try:
        outcome = await HttpProbe(timeout=1, retries=0).probe(str(server.make_url("/ok")))
    finally:
        await server.close()
    assert outcome == ProbeOutcome(reachable=True, timed_out=False, status_code=200, body="healthy")
    assert outcome.ok


@pytest.mark.asyncio
async def test_probe_error_status_is_reachable():
    server = await _start_server()
    try:
        outcome = await HttpProbe(timeout=1, retries=2).probe(str(server.make_url("/broken")))
    finally:
        await server.close()
    assert outcome.reachable is True
    assert outcome.status_code == 503
    assert not outcome.ok


@pytest.mark.asyncio
async def test_probe_post():
    server = await _start_server()
    try:
        outcome = await HttpProbe(timeout=1).probe(str(server.make_url("/posted")), method="POST")
    finally:
        await server.close()
    assert outcome.body == "POST"


@pytest.mark.asyncio
async def test_probe_timeout_is_soft_down():
    server = await _start_server()
    try:
        probe = HttpProbe(timeout=0.2, retries=0)
        outcome = await probe.probe(str(server.make_url("/slow")))
    finally:
        await server.close()
    assert outcome.reachable is False
    assert outcome.timed_out is True
    assert outcome.status_code == 0


@pytest.mark.asyncio
async def test_probe_connection_refused():
    probe = HttpProbe(timeout=1, retries=1, retry_delay=0)
    outcome = await probe.probe(f"http://127.0.0.1:{_unused_port()}/health")
    assert outcome == ProbeOutcome(reachable=False, timed_out=False, status_code=0, body="")


class FlakyProbe(HttpProbe):
    """Fails with a connection error a set number of times."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.attempts = 0

    async def _request(self, url, method, session):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise aiohttp.ClientConnectionError("refused")
        return ProbeOutcome(reachable=True, status_code=200, body="ok")


@pytest.mark.asyncio
async def test_probe_retries_network_errors():
    probe = FlakyProbe(failures=2, retries=2, retry_delay=0)
    outcome = await probe.probe("http://jicofo/about/health")
    assert outcome.ok
    assert probe.attempts == 3


@pytest.mark.asyncio
async def test_probe_retry_count_is_bounded():
    probe = FlakyProbe(failures=10, retries=2, retry_delay=0)
    outcome = await probe.probe("http://jicofo/about/health")
    assert outcome.reachable is False
    assert probe.attempts == 3


def test_status_file_is_trimmed(status_file):
    outcome = read_status_file(str(status_file))
    assert outcome.reachable is True
    assert outcome.body == "ready"


def test_missing_status_file(tmp_path):
    outcome = read_status_file(str(tmp_path / "missing"))
    assert outcome.reachable is False
    assert outcome.body == ""
