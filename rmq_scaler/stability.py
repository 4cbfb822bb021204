from dataclasses import dataclass

from rmq_scaler.ist import now_epoch

# Per-tick states
REPORTED_CHANGED = "ReportedChanged"
ALREADY_AT_TARGET = "AlreadyAtTarget"
WAITING_DEBOUNCE = "WaitingDebounce"
ELIGIBLE_TO_SCALE = "EligibleToScale"

STABLE_PROFILE_KEY = "stable_profile"
STABLE_SINCE_KEY = "stable_since"


@dataclass(frozen=True)
class StabilityRecord:
    tracked_profile: str = ""
    since: int = 0

    @classmethod
    def from_state(cls, data):
        # Without a readable timestamp the record is dropped, so the next check restarts the timer
        try:
            since = int(float(data[STABLE_SINCE_KEY]))
        except (KeyError, TypeError, ValueError, OverflowError):
            return cls()
        return cls(tracked_profile=data.get(STABLE_PROFILE_KEY) or "", since=since)

    def to_state(self):
        return {STABLE_PROFILE_KEY: self.tracked_profile, STABLE_SINCE_KEY: str(int(self.since))}


@dataclass(frozen=True)
class StabilityResult:
    eligible: bool
    state: str
    reason: str
    remaining_seconds: float = 0


class StabilityTracker:
    """Debounces profile recommendations against the persisted stability record.

    A recommendation becomes actionable once the same target has been reported
    continuously for the debounce window of its direction (up or down). The
    record lives in the state store so the timer survives restarts.
    """

    def __init__(self, store, config, clock=now_epoch):
        self.store = store
        self.profiles = config.profiles
        self.scale_up_debounce_seconds = config.scale_up_debounce_seconds
        self.scale_down_debounce_seconds = config.scale_down_debounce_seconds
        self.clock = clock

    def read_record(self, state=None):
        if state is None:
            state = self.store.read()
        return StabilityRecord.from_state(state)

    def reset(self, profile, now=None):
        now = self.clock() if now is None else now
        record = StabilityRecord(profile, int(now))
        self.store.write(record.to_state())
        print(f"Updated stability tracking: {profile} since {record.since}", flush=True)
        return record

    def check(self, current, target, now=None, record=None):
        now = self.clock() if now is None else now
        if record is None:
            record = self.read_record()

        if record.tracked_profile != target:
            previous = record.tracked_profile or "<none>"
            self.reset(target, now)
            return StabilityResult(False, REPORTED_CHANGED,
                                   f"Profile recommendation changed from {previous} to {target}")

        if current == target:
            # Refresh so a later flip is not measured against a stale timestamp
            self.reset(target, now)
            return StabilityResult(True, ALREADY_AT_TARGET, f"Already at recommended profile: {target}")

        elapsed = now - record.since
        scale_up = self.profiles.priority(target) > self.profiles.priority(current)
        direction = "up" if scale_up else "down"
        required = self.scale_up_debounce_seconds if scale_up else self.scale_down_debounce_seconds

        if elapsed < required:
            remaining = required - elapsed
            return StabilityResult(
                False, WAITING_DEBOUNCE,
                f"Scale-{direction} debounce: {target} stable for {elapsed:g}s, "
                f"need {required:g}s ({remaining:g}s remaining)",
                remaining_seconds=remaining,
            )

        return StabilityResult(True, ELIGIBLE_TO_SCALE,
                               f"{target} stable for {elapsed:g}s (required {required:g}s)")
