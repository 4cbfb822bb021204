import threading

from conftest import NOW, FakeController, FakeMetricsSource, FakeStateStore
from rmq_scaler.autoscaler import (
    ALREADY_AT_TARGET, APPLIED, APPLY_FAILED, COOLDOWN, FETCH_FAILED, NOT_STABLE, VerticalScaler,
)
from rmq_scaler.config import ScalerConfig
from rmq_scaler.errors import ResourceReadError, StateStoreError
from rmq_scaler.metrics import MetricsSnapshot

MEDIUM_LOAD = MetricsSnapshot(max_queue_depth=3000, publish_rate=50)
NO_LOAD = MetricsSnapshot()


def make_scaler(config, clock, snapshot=MEDIUM_LOAD, cpu="330m", store=None, **kwargs):
    source = FakeMetricsSource(snapshot, error=kwargs.pop("error", None))
    controller = FakeController(cpu=cpu, fail=kwargs.pop("fail", False))
    store = store if store is not None else FakeStateStore()
    scaler = VerticalScaler(config, source, controller, store, clock=clock)
    return scaler, source, controller, store


def test_fetch_failure_skips_tick_without_mutation(config, clock, fetch_error, capsys):
    scaler, _, controller, store = make_scaler(config, clock, error=fetch_error)

    result = scaler.run_tick()

    assert result.outcome == FETCH_FAILED
    assert store.writes == []
    assert controller.applied == []
    assert "Metrics fetch failed" in capsys.readouterr().out


def test_fetch_failure_loop_keeps_running(config, clock, fetch_error):
    scaler, source, controller, store = make_scaler(config, clock, error=fetch_error)
    waits = []
    scaler.stop_event.wait = lambda timeout: waits.append(timeout)

    ticks = scaler.run_forever(max_ticks=3)

    assert ticks == 3
    assert source.calls == 3
    assert waits == [5, 5]
    assert store.writes == []


def test_new_recommendation_starts_debounce(config, clock):
    scaler, _, controller, store = make_scaler(config, clock)

    result = scaler.run_tick()

    assert result.outcome == NOT_STABLE
    assert result.target == "MEDIUM"
    assert result.current == "LOW"
    assert store.data["stable_profile"] == "MEDIUM"
    assert controller.applied == []


def test_scale_up_applies_after_debounce(config, clock):
    scaler, _, controller, store = make_scaler(config, clock)
    scaler.run_tick()
    clock.advance(10)
    assert scaler.run_tick().outcome == NOT_STABLE

    clock.advance(20)
    result = scaler.run_tick()

    assert result.outcome == APPLIED
    assert controller.applied == [("800m", "3Gi", False)]
    assert store.data["last_scaled_profile"] == "MEDIUM"
    assert store.data["last_scale_time"] == str(NOW + 30)
    assert store.data["stable_profile"] == "MEDIUM"
    assert store.data["stable_since"] == str(NOW + 30)

    clock.advance(5)
    assert scaler.run_tick().outcome == ALREADY_AT_TARGET


def test_scale_down_waits_for_longer_debounce(config, clock):
    store = FakeStateStore({"stable_profile": "LOW", "stable_since": str(NOW - 60)})
    scaler, _, controller, _ = make_scaler(config, clock, snapshot=NO_LOAD, cpu="1600m", store=store)

    assert scaler.run_tick().outcome == NOT_STABLE
    clock.advance(60)
    assert scaler.run_tick().outcome == APPLIED
    assert controller.applied == [("330m", "2Gi", False)]


def test_apply_failure_leaves_record_for_immediate_retry(config, clock):
    store = FakeStateStore({"stable_profile": "MEDIUM", "stable_since": str(NOW - 40)})
    scaler, _, controller, _ = make_scaler(config, clock, store=store, fail=True)

    result = scaler.run_tick()

    assert result.outcome == APPLY_FAILED
    assert store.data == {"stable_profile": "MEDIUM", "stable_since": str(NOW - 40)}

    controller.fail = False
    clock.advance(5)
    assert scaler.run_tick().outcome == APPLIED


def test_cooldown_vetoes_without_resetting_stability(config, clock):
    store = FakeStateStore({
        "stable_profile": "LOW", "stable_since": str(NOW - 200),
        "last_scaled_profile": "MEDIUM", "last_scale_time": str(NOW - 30),
    })
    scaler, _, controller, _ = make_scaler(config, clock, snapshot=NO_LOAD, cpu="800m", store=store)

    result = scaler.run_tick()

    assert result.outcome == COOLDOWN
    assert "30s left" in result.reason
    assert store.data["stable_since"] == str(NOW - 200)
    assert controller.applied == []


def test_unknown_live_cpu_is_never_at_target(config, clock):
    store = FakeStateStore({"stable_profile": "LOW", "stable_since": str(NOW - 30)})
    scaler, _, controller, _ = make_scaler(config, clock, snapshot=NO_LOAD, cpu="123m", store=store)

    result = scaler.run_tick()

    assert result.current == "UNKNOWN"
    assert result.outcome == APPLIED
    assert controller.applied == [("330m", "2Gi", False)]


def test_resource_read_failure_aborts_tick(config, clock):
    scaler, _, controller, store = make_scaler(config, clock)

    def broken():
        raise ResourceReadError("forbidden")
    controller.read_current_cpu_memory = broken

    assert scaler.run_tick().outcome == FETCH_FAILED
    assert store.writes == []


def test_state_read_failure_aborts_tick(config, clock):
    scaler, _, controller, store = make_scaler(config, clock)

    def broken():
        raise StateStoreError("timeout")
    store.read = broken

    assert scaler.run_tick().outcome == FETCH_FAILED
    assert controller.applied == []


def test_dry_run_does_not_mutate_resource(profiles, clock):
    config = ScalerConfig(profiles=profiles, dry_run=True)
    store = FakeStateStore({"stable_profile": "MEDIUM", "stable_since": str(NOW - 40)})
    scaler, _, controller, _ = make_scaler(config, clock, store=store)

    assert scaler.run_tick().outcome == APPLIED
    assert controller.applied == [("800m", "3Gi", True)]
    assert controller.cpu == "330m"


def test_unexpected_error_does_not_end_loop(config, clock, capsys):
    scaler, source, _, _ = make_scaler(config, clock)
    source.fetch_overview = lambda: 1 / 0
    scaler.stop_event.wait = lambda timeout: None

    assert scaler.run_forever(max_ticks=2) == 2
    assert "Error in scaling loop" in capsys.readouterr().out


def test_stop_before_next_tick(config, clock):
    scaler, source, _, _ = make_scaler(config, clock)
    scaler.stop_event.wait = lambda timeout: scaler.stop()

    assert scaler.run_forever() == 1
    assert source.calls == 1


def test_stop_interrupts_sleep(profiles, clock):
    config = ScalerConfig(profiles=profiles, check_interval_seconds=3600)
    scaler, source, _, _ = make_scaler(config, clock)

    worker = threading.Thread(target=scaler.run_forever)
    worker.start()
    scaler.stop()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert source.calls <= 1
