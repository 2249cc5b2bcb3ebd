"""Process-scoped state shared by the poll loops and request handlers."""

import time
from typing import Optional

from signal_sidecar.config import SidecarConfig
from signal_sidecar.health.models import (
    CensusState,
    HysteresisState,
    RawHealthSnapshot,
    ReportedHealth,
)
from signal_sidecar.health.overlay import evaluate


class SidecarState:
    """
    Latest snapshot, hysteresis timestamps and census.

    Each value has a single writer (its poll loop) and is replaced by plain
    attribute assignment of an immutable object, so readers on the event
    loop always see a complete value.
    """

    def __init__(self, census_enabled: bool = False) -> None:
        self.latest_snapshot: Optional[RawHealthSnapshot] = None
        self.hysteresis = HysteresisState()
        self.census = CensusState()
        self.census_enabled = census_enabled

    def publish_snapshot(self, snapshot: RawHealthSnapshot) -> None:
        self.latest_snapshot = snapshot

    def publish_census(self, census: CensusState) -> None:
        self.census = census

    def report(self, config: SidecarConfig, now: Optional[float] = None) -> Optional[ReportedHealth]:
        """Evaluate the overlay against the latest snapshot.

        Returns:
            Reported health, or None if no cycle has completed yet
        """
        snapshot = self.latest_snapshot
        if snapshot is None:
            return None
        census = self.census if self.census_enabled else None
        return evaluate(
            snapshot,
            self.hysteresis,
            time.time() if now is None else now,
            config,
            census,
        )
