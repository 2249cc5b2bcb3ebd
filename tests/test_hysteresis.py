from signal_sidecar.health.models import HysteresisState


def test_initial_state_has_no_windows():
    state = HysteresisState()
    assert state.last_went_healthy is None
    assert state.last_went_unhealthy is None
    assert state.first_went_unhealthy_in_episode is None


def test_healthy_cycle_updates_last_went_healthy():
    state = HysteresisState()
    state.record_cycle(True, 10.0)
    state.record_cycle(True, 15.0)
    assert state.last_went_healthy == 15.0
    assert state.last_went_unhealthy is None


def test_episode_starts_only_on_healthy_to_unhealthy_edge():
    state = HysteresisState()
    state.record_cycle(True, 10.0)
    assert state.record_cycle(False, 15.0) is True
    assert state.record_cycle(False, 20.0) is False
    assert state.record_cycle(False, 25.0) is False

    assert state.first_went_unhealthy_in_episode == 15.0
    assert state.last_went_unhealthy == 25.0
    assert state.last_went_healthy == 10.0


def test_new_episode_after_recovery():
    state = HysteresisState()
    for now, healthy in [(0, True), (5, False), (10, True), (15, True), (20, False)]:
        state.record_cycle(healthy, float(now))
    assert state.first_went_unhealthy_in_episode == 20.0
    assert state.last_went_healthy == 15.0
    assert state.last_went_unhealthy == 20.0


def test_unhealthy_cold_start_is_not_an_episode():
    state = HysteresisState()
    assert state.record_cycle(False, 5.0) is False
    assert state.first_went_unhealthy_in_episode is None
    assert state.last_went_unhealthy == 5.0
