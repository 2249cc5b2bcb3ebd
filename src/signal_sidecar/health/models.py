"""Health data model for signal-sidecar.

Defines probe outcomes, raw per-cycle snapshots, the hysteresis timestamps
that drive flap mitigation, and the externally reported health.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

# Source names used as keys in RawHealthSnapshot.outcomes
JICOFO_HEALTH = "jicofo_health"
JICOFO_STATS = "jicofo_stats"
PROSODY_HEALTH = "prosody_health"
STATUS_FILE = "status_file"

HTTP_SOURCES = (JICOFO_HEALTH, JICOFO_STATS, PROSODY_HEALTH)
ALL_SOURCES = HTTP_SOURCES + (STATUS_FILE,)

EXPECTED_STATUS_CODE = 200
UNHEALTHY_SENTINEL = "unhealthy"


class NodeStatus(str, Enum):
    """Status values understood by the haproxy agent-check."""
    READY = "ready"
    DRAIN = "drain"
    MAINT = "maint"

    @classmethod
    def values(cls):
        return tuple(member.value for member in cls)


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of a single probe against one source."""
    reachable: bool
    timed_out: bool = False
    status_code: int = 0  # 0 if unreachable
    body: str = ""

    @property
    def ok(self) -> bool:
        """Reachable with the expected HTTP status code."""
        return self.reachable and self.status_code == EXPECTED_STATUS_CODE

    @classmethod
    def unreachable(cls, timed_out: bool = False) -> "ProbeOutcome":
        return cls(reachable=False, timed_out=timed_out, status_code=0, body="")


@dataclass(frozen=True)
class RawHealthSnapshot:
    """Immutable result of one health polling cycle."""
    timestamp: float
    outcomes: Mapping[str, ProbeOutcome]
    stats_parsed: bool
    parsed_participants: Optional[int]
    parsed_conferences: Optional[int]
    status_file_contents: str
    raw_healthy: bool
    census_participants: Optional[int] = None
    census_sum_squared: Optional[int] = None

    def outcome(self, source: str) -> ProbeOutcome:
        return self.outcomes.get(source, ProbeOutcome.unreachable())


@dataclass
class HysteresisState:
    """Rolling timestamps that drive health dampening and drain grace.

    ``None`` means the event never happened; a window anchored on ``None``
    is never active, so a freshly started process reports raw health.
    Only the health collector mutates this, through :meth:`record_cycle`.
    """
    last_went_healthy: Optional[float] = None
    last_went_unhealthy: Optional[float] = None
    first_went_unhealthy_in_episode: Optional[float] = None
    previous_healthy: Optional[bool] = None

    def record_cycle(self, raw_healthy: bool, now: float) -> bool:
        """Record the outcome of a polling cycle.

        Args:
            raw_healthy: Raw health computed for the cycle
            now: Cycle timestamp in epoch seconds

        Returns:
            True if this cycle started a new failure episode
        """
        new_episode = False
        if raw_healthy:
            self.last_went_healthy = now
        else:
            self.last_went_unhealthy = now
            if self.previous_healthy:
                self.first_went_unhealthy_in_episode = now
                new_episode = True
        self.previous_healthy = raw_healthy
        return new_episode


@dataclass(frozen=True)
class ReportedHealth:
    """Externally visible health, recomputed on every request."""
    timestamp: float
    healthy: bool
    damped: bool
    status: str
    weight: str
    services: Dict[str, Any]
    stats: Dict[str, Any]
    agent_line: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Render the JSON wire shape of the report."""
        return {
            "time": self.timestamp,
            "healthy": self.healthy,
            "damped": self.damped,
            "status": self.status,
            "weight": self.weight,
            "agentmessage": self.agent_line.strip(),
            "services": dict(self.services),
            "stats": dict(self.stats),
        }


@dataclass(frozen=True)
class RoomData:
    """Occupancy of a single conference room."""
    name: str
    participants: int
    created_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "room_name": self.name,
            "participants": self.participants,
            "created_time": self.created_time,
        }


@dataclass(frozen=True)
class CensusState:
    """Room census derived from one successful poll."""
    rooms: tuple = ()
    total_participants: int = 0
    sum_squared_participants: int = 0
    polled: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.timestamp,
            "polled": self.polled,
            "total_participants": self.total_participants,
            "sum_squared_participants": self.sum_squared_participants,
            "rooms": [room.to_dict() for room in self.rooms],
        }
