"""haproxy agent-check response encoding.

The agent line is the whole TCP payload: ``{up|down} {ready|drain|maint} {weight}``
terminated by a newline.
"""

from typing import Optional

from signal_sidecar.health.models import NodeStatus, ReportedHealth

FAILSAFE_LINE = "down drain\n"


def encode(healthy: Optional[bool], status: Optional[str], weight: Optional[str] = None) -> str:
    """Encode health, status and weight as an agent-check line.

    Missing health or status, or an unrecognized status, yields the
    fail-safe ``down drain`` line with no weight.
    """
    if healthy is None or status is None or status not in NodeStatus.values():
        return FAILSAFE_LINE

    fields = ["up" if healthy else "down", status]
    if weight:
        fields.append(weight)
    return " ".join(fields) + "\n"


def encode_report(report: Optional[ReportedHealth]) -> str:
    """Encode a reported health; ``None`` (no cycle yet) is fail-safe."""
    if report is None:
        return FAILSAFE_LINE
    return encode(report.healthy, report.status, report.weight)
