import pytest

from signal_sidecar.balancing.weight import calculate_weight, capacity_percent, round_to_step

from conftest import make_config


@pytest.mark.parametrize("status", ["drain", "maint"])
def test_draining_node_gets_zero_weight(status):
    config = make_config(weight_participants=True)
    assert calculate_weight(status, 10, config) == "0%"
    assert calculate_weight(status, None, config) == "0%"


def test_drain_overrides_disabled_weighting():
    assert calculate_weight("drain", 10, make_config(weight_participants=False)) == "0%"


@pytest.mark.parametrize("participants", [None, 0, 4999, 5000, 50000])
def test_weighting_disabled_is_full_weight(participants):
    config = make_config(weight_participants=False)
    assert calculate_weight("ready", participants, config) == "100%"


def test_unknown_participants_is_zero_weight(caplog):
    config = make_config(weight_participants=True)
    assert calculate_weight("ready", None, config) == "0%"
    assert "participant count unknown" in caplog.text


def test_full_weight_below_capacity():
    config = make_config(weight_participants=True, participant_max=100)
    assert calculate_weight("ready", 0, config) == "100%"
    assert calculate_weight("ready", 99, config) == "100%"


def test_weight_drops_to_floor_at_capacity():
    config = make_config(weight_participants=True, participant_max=100, min_weight=5)
    assert calculate_weight("ready", 100, config) == "5%"
    assert calculate_weight("ready", 250, config) == "5%"


def test_floor_is_configurable():
    config = make_config(weight_participants=True, participant_max=100, min_weight=10)
    assert calculate_weight("ready", 120, config) == "10%"


def test_capacity_percent_is_never_above_full():
    assert capacity_percent(0, 10, 5) == 100


def test_round_to_step():
    assert round_to_step(82) == 80
    assert round_to_step(83) == 85
    assert round_to_step(87.5) == 90
    assert round_to_step(-100) == -100
