"""Room census collection.

Polls prosody's room census endpoint and derives the participant totals used
for weighting and metrics. A failed or malformed poll keeps the previous
census in place; stale occupancy is preferred over none.
"""

import json
import logging
import time
from typing import Any, List, Optional

from signal_sidecar.errors import CensusPayloadError
from signal_sidecar.health.models import CensusState, RoomData
from signal_sidecar.health.probe import HttpProbe

logger = logging.getLogger(__name__)


def _as_count(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CensusPayloadError(f"{what} must be a number, got {value!r}")
    if value < 0:
        raise CensusPayloadError(f"{what} must not be negative, got {value!r}")
    return int(value)


def parse_census(payload: Any) -> List[RoomData]:
    """Validate a decoded census payload.

    Args:
        payload: Decoded JSON, expected ``{"room_census": [...]}``

    Returns:
        Rooms in payload order; an absent or null room list is empty

    Raises:
        CensusPayloadError: If the payload has the wrong shape
    """
    if not isinstance(payload, dict):
        raise CensusPayloadError("census payload must be a JSON object")

    entries = payload.get("room_census")
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise CensusPayloadError("'room_census' must be a list")

    rooms = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise CensusPayloadError(f"census entry must be an object, got {entry!r}")
        created = entry.get("created_time")
        if created is not None and (isinstance(created, bool)
                                    or not isinstance(created, (int, float))):
            raise CensusPayloadError(f"created_time must be a number, got {created!r}")
        rooms.append(RoomData(
            name=str(entry.get("room_name", "")),
            participants=_as_count(entry.get("participants", 0), "participants"),
            created_time=created,
        ))
    return rooms


def build_census(rooms: List[RoomData], now: Optional[float] = None) -> CensusState:
    """Aggregate rooms into a census with participant totals."""
    return CensusState(
        rooms=tuple(rooms),
        total_participants=sum(room.participants for room in rooms),
        sum_squared_participants=sum(room.participants ** 2 for room in rooms),
        polled=True,
        timestamp=time.time() if now is None else now,
    )


class CensusCollector:
    """Polls the room census and aggregates occupancy."""

    def __init__(self, census_url: str, probe: HttpProbe, census_host: str = ""):
        """Initialize census collector.

        Args:
            census_url: Prosody room census URL
            probe: Probe executor used for the HTTP request
            census_host: Conference host name the census describes
        """
        self.census_url = census_url
        self.census_host = census_host
        self.probe = probe

    async def poll(self, previous: CensusState) -> CensusState:
        """Poll the census once.

        Args:
            previous: Currently published census

        Returns:
            A fresh census, or ``previous`` if the poll failed
        """
        logger.debug(f"pulling census data from {self.census_url}")
        outcome = await self.probe.probe(self.census_url)

        if not outcome.reachable:
            logger.warning(f"census endpoint unreachable: {self.census_url}")
            return previous
        if not outcome.ok:
            logger.warning(f"census endpoint returned {outcome.status_code}")
            return previous

        try:
            rooms = parse_census(json.loads(outcome.body))
        except (ValueError, CensusPayloadError) as e:
            logger.warning(f"failed to parse census payload: {e}")
            return previous

        census = build_census(rooms)
        logger.debug(
            f"census for {self.census_host or 'unknown host'}: {len(census.rooms)} rooms, "
            f"{census.total_participants} participants"
        )
        return census
