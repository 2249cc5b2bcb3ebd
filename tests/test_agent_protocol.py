from signal_sidecar.balancing.agent_protocol import FAILSAFE_LINE, encode, encode_report
from signal_sidecar.health.models import ReportedHealth


def _report(healthy=True, status="ready", weight="85%"):
    return ReportedHealth(
        timestamp=0.0,
        healthy=healthy,
        damped=False,
        status=status,
        weight=weight,
        services={},
        stats={},
    )


def test_healthy_ready_line():
    assert encode_report(_report()) == "up ready 85%\n"


def test_unhealthy_line():
    assert encode(False, "ready", "100%") == "down ready 100%\n"


def test_drain_line():
    assert encode(True, "drain", "0%") == "up drain 0%\n"


def test_maint_line():
    assert encode(False, "maint", "0%") == "down maint 0%\n"


def test_missing_report_is_failsafe():
    assert encode_report(None) == FAILSAFE_LINE == "down drain\n"


def test_missing_fields_are_failsafe():
    assert encode(None, "ready", "100%") == FAILSAFE_LINE
    assert encode(True, None, "100%") == FAILSAFE_LINE


def test_unknown_status_is_failsafe_without_weight():
    assert encode(True, "unhealthy", "100%") == "down drain\n"
    assert encode(True, "", "100%") == "down drain\n"


def test_empty_weight_is_omitted():
    assert encode(True, "ready", "") == "up ready\n"
