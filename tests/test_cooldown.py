from conftest import NOW, FakeStateStore
from rmq_scaler.cooldown import CooldownGuard, ScaleEvent


def test_no_previous_scale_allows(config, clock):
    guard = CooldownGuard(FakeStateStore(), config, clock=clock)
    allowed, reason = guard.check("up")
    assert allowed
    assert guard.remaining("down") == 0


def test_recent_scale_vetoes_by_direction(config, clock):
    store = FakeStateStore(ScaleEvent("HIGH", NOW - 20).to_state())
    guard = CooldownGuard(store, config, clock=clock)

    assert guard.check("up")[0]
    allowed, reason = guard.check("down")
    assert not allowed
    assert "40s left" in reason
    assert guard.remaining("down") == 40


def test_cooldown_boundary_is_inclusive(config, clock):
    store = FakeStateStore(ScaleEvent("HIGH", NOW - 15).to_state())
    guard = CooldownGuard(store, config, clock=clock)
    assert guard.check("up")[0]
    clock.now = NOW - 1
    assert not guard.check("up")[0]


def test_record_persists_event(config, clock):
    store = FakeStateStore({"stable_profile": "HIGH", "stable_since": "1"})
    guard = CooldownGuard(store, config, clock=clock)

    guard.record("HIGH")

    assert store.data == {
        "stable_profile": "HIGH",
        "stable_since": "1",
        "last_scaled_profile": "HIGH",
        "last_scale_time": str(NOW),
    }
    assert guard.last_event() == ScaleEvent("HIGH", NOW)


def test_check_does_not_touch_stability_record(config, clock):
    store = FakeStateStore(ScaleEvent("HIGH", NOW).to_state())
    guard = CooldownGuard(store, config, clock=clock)
    guard.check("down")
    assert store.writes == []


def test_unreadable_event_is_ignored():
    assert ScaleEvent.from_state({}) is None
    assert ScaleEvent.from_state({"last_scale_time": "soon"}) is None
