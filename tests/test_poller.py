import asyncio
import logging

import pytest

from signal_sidecar.census.census_collector import build_census
from signal_sidecar.core.poller import CensusPoller, HealthPoller, PollCounter
from signal_sidecar.core.state import SidecarState
from signal_sidecar.health.models import CensusState, RoomData
from signal_sidecar.metrics.metrics_exporter import MetricsExporter

from conftest import make_config, make_snapshot


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class CountingCollector:
    """Health collector stub; raises on selected cycles."""

    def __init__(self, fail_on=()):
        self.calls = 0
        self.fail_on = set(fail_on)

    async def collect(self, state):
        self.calls += 1
        if self.calls in self.fail_on:
            raise RuntimeError("cycle blew up")
        snapshot = make_snapshot(timestamp=float(self.calls))
        state.publish_snapshot(snapshot)
        return snapshot


class StubCensusCollector:
    def __init__(self, results):
        self.results = list(results)

    async def poll(self, previous):
        result = self.results.pop(0)
        return previous if result is None else result


def test_poll_counter_summarizes_hourly(caplog):
    caplog.set_level(logging.INFO)
    clock = FakeClock(0.0)
    counter = PollCounter(polling_interval=5, duration=3600, clock=clock)
    assert counter.ideal_count == 720

    for _ in range(3):
        assert counter.tick() is False
    clock.now = 3601
    assert counter.tick() is True
    assert "attempted 3 health checks" in caplog.text
    assert counter.count == 1


@pytest.mark.asyncio
async def test_health_loop_survives_failed_cycles():
    config = make_config(polling_interval=0.01)
    state = SidecarState()
    collector = CountingCollector(fail_on={1, 2})
    poller = HealthPoller(collector, state, config)

    task = asyncio.create_task(poller.loop())
    for _ in range(200):
        await asyncio.sleep(0.01)
        if collector.calls >= 4:
            break
    poller.stop()
    await asyncio.wait_for(task, timeout=1)

    assert collector.calls >= 4
    assert state.latest_snapshot is not None


@pytest.mark.asyncio
async def test_census_poll_publishes_and_sets_metrics():
    fresh = build_census([RoomData("a", 3), RoomData("b", 4)])
    state = SidecarState(census_enabled=True)
    metrics = MetricsExporter()
    poller = CensusPoller(StubCensusCollector([fresh, None]), state, interval=5, metrics=metrics)

    await poller.poll_once()
    assert state.census is fresh
    assert metrics.get_metrics_summary()["signal_census"] == 1
    assert metrics.get_metrics_summary()["sum_squared_participants"] == 25

    await poller.poll_once()
    assert state.census is fresh
    assert metrics.get_metrics_summary()["signal_census"] == 0


def test_state_report_is_none_before_first_cycle():
    assert SidecarState().report(make_config()) is None


def test_state_report_ignores_census_when_disabled():
    config = make_config(weight_participants=True, participant_max=100)
    state = SidecarState(census_enabled=False)
    state.publish_snapshot(make_snapshot(participants=10))
    state.publish_census(CensusState(total_participants=500, polled=True))
    assert state.report(config, now=2000.0).weight == "100%"

    state.census_enabled = True
    assert state.report(config, now=2000.0).weight == "5%"
