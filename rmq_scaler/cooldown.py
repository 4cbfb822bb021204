from dataclasses import dataclass

from rmq_scaler.ist import epoch_to_ist_iso, now_epoch

LAST_SCALED_PROFILE_KEY = "last_scaled_profile"
LAST_SCALE_TIME_KEY = "last_scale_time"

_UNSET = object()


@dataclass(frozen=True)
class ScaleEvent:
    profile: str
    applied_at: int

    @classmethod
    def from_state(cls, data):
        raw = data.get(LAST_SCALE_TIME_KEY)
        if not raw:
            return None
        try:
            applied_at = int(float(raw))
        except (TypeError, ValueError):
            return None
        return cls(profile=data.get(LAST_SCALED_PROFILE_KEY) or "", applied_at=applied_at)

    def to_state(self):
        return {LAST_SCALED_PROFILE_KEY: self.profile, LAST_SCALE_TIME_KEY: str(int(self.applied_at))}


class CooldownGuard:
    """Blocks a new scale until the direction's cooldown has passed since the last one.

    The last ScaleEvent is persisted next to the stability record, so the
    cooldown also holds across restarts.
    """

    def __init__(self, store, config, clock=now_epoch):
        self.store = store
        self.scale_up_cooldown_seconds = config.scale_up_cooldown_seconds
        self.scale_down_cooldown_seconds = config.scale_down_cooldown_seconds
        self.clock = clock

    def last_event(self, state=None):
        if state is None:
            state = self.store.read()
        return ScaleEvent.from_state(state)

    def cooldown_for(self, direction):
        return self.scale_up_cooldown_seconds if direction == "up" else self.scale_down_cooldown_seconds

    def remaining(self, direction, now=None, event=_UNSET):
        now = self.clock() if now is None else now
        if event is _UNSET:
            event = self.last_event()
        if event is None:
            return 0
        return max(0, self.cooldown_for(direction) - (now - event.applied_at))

    def check(self, direction, now=None, event=_UNSET):
        """Return (allowed, reason)."""
        now = self.clock() if now is None else now
        if event is _UNSET:
            event = self.last_event()
        if event is None:
            return True, "No previous scale recorded"

        remaining = self.remaining(direction, now, event)
        if remaining > 0:
            return False, (f"Cooldown {remaining:g}s left (last scale to {event.profile} "
                           f"at {epoch_to_ist_iso(event.applied_at)})")
        return True, "Cooldown expired"

    def record(self, profile, now=None):
        now = self.clock() if now is None else now
        event = ScaleEvent(profile, int(now))
        self.store.write(event.to_state())
        return event
