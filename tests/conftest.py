import dataclasses
from typing import Optional

import pytest

from signal_sidecar.config import SidecarConfig
from signal_sidecar.health.models import (
    JICOFO_HEALTH,
    JICOFO_STATS,
    PROSODY_HEALTH,
    STATUS_FILE,
    ProbeOutcome,
    RawHealthSnapshot,
)

OK = ProbeOutcome(reachable=True, status_code=200, body="")
DOWN = ProbeOutcome.unreachable()
STATS_BODY = '{"participants": 120, "conferences": 7}'


def make_config(**overrides) -> SidecarConfig:
    return dataclasses.replace(SidecarConfig(), **overrides)


def make_snapshot(
    timestamp: float = 1000.0,
    jicofo: ProbeOutcome = OK,
    stats: Optional[ProbeOutcome] = None,
    prosody: ProbeOutcome = OK,
    status: str = "ready",
    raw_healthy: Optional[bool] = None,
    participants: Optional[int] = 120,
) -> RawHealthSnapshot:
    stats = stats or ProbeOutcome(reachable=True, status_code=200, body=STATS_BODY)
    status_outcome = ProbeOutcome(reachable=True, body=status)
    if raw_healthy is None:
        raw_healthy = jicofo.ok and stats.ok and prosody.ok and status != "unhealthy"
    return RawHealthSnapshot(
        timestamp=timestamp,
        outcomes={
            JICOFO_HEALTH: jicofo,
            JICOFO_STATS: stats,
            PROSODY_HEALTH: prosody,
            STATUS_FILE: status_outcome,
        },
        stats_parsed=True,
        parsed_participants=participants,
        parsed_conferences=7,
        status_file_contents=status,
        raw_healthy=raw_healthy,
    )


@pytest.fixture
def config():
    return make_config(health_dampening_interval=30, drain_grace_interval=120)


@pytest.fixture
def status_file(tmp_path):
    path = tmp_path / "shard-status"
    path.write_text("ready\n")
    return path
