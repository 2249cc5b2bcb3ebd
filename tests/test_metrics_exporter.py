from signal_sidecar.metrics.metrics_exporter import MetricsExporter


def test_signal_counters_render():
    metrics = MetricsExporter()
    metrics.inc_health_check()
    metrics.inc_health_check()
    metrics.inc_unhealthy_check()
    metrics.inc_unhealthy_total()
    metrics.set_signal_health(True)
    metrics.set_signal_census(False)
    metrics.set_sum_squared_participants(25)

    text = metrics.render()
    assert "# TYPE signal_health_check counter" in text
    assert "signal_health_check 2" in text
    assert "signal_unhealthy_check 1" in text
    assert "signal_unhealthy_total 1" in text
    assert "signal_health 1" in text
    assert "signal_census 0" in text
    assert "prosody_participant_sum_squared 25" in text
    assert text.endswith("\n")


def test_request_histogram():
    metrics = MetricsExporter()
    metrics.record_request("get", 200, "/signal/health", 0.02)
    metrics.record_request("get", 503, "/signal/health", 2.0)

    text = metrics.render()
    assert 'http_server_requests_total{method="get",code="200",uri="/signal/health"} 1' in text
    assert 'http_server_requests_total{method="get",code="503",uri="/signal/health"} 1' in text
    assert 'http_server_request_duration_seconds_bucket{method="get",uri="/signal/health",le="0.01"} 0' in text
    assert 'http_server_request_duration_seconds_bucket{method="get",uri="/signal/health",le="0.05"} 1' in text
    assert 'http_server_request_duration_seconds_bucket{method="get",uri="/signal/health",le="2.5"} 2' in text
    assert 'http_server_request_duration_seconds_bucket{method="get",uri="/signal/health",le="+Inf"} 2' in text
    assert 'http_server_request_duration_seconds_count{method="get",uri="/signal/health"} 2' in text


def test_in_flight_never_negative():
    metrics = MetricsExporter()
    metrics.dec_in_flight("get")
    assert 'http_server_requests_in_flight{method="get"} 0' in metrics.render()


def test_summary():
    metrics = MetricsExporter()
    metrics.set_signal_health(True)
    summary = metrics.get_metrics_summary()
    assert summary["signal_health"] == 1
    assert summary["health_checks"] == 0
