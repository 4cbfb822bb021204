import threading
import traceback
from dataclasses import dataclass
from typing import Optional

from rmq_scaler.cooldown import CooldownGuard, ScaleEvent
from rmq_scaler.decision import determine_target_profile, explain_target, scaling_message
from rmq_scaler.errors import ApplyError, StateStoreError, TransientFetchError
from rmq_scaler.ist import now_epoch, now_ist_iso
from rmq_scaler.profiles import UNKNOWN
from rmq_scaler.stability import StabilityRecord, StabilityTracker

# Tick outcomes
FETCH_FAILED = "fetch_failed"
NOT_STABLE = "not_stable"
ALREADY_AT_TARGET = "already_at_target"
COOLDOWN = "cooldown"
APPLIED = "applied"
APPLY_FAILED = "apply_failed"


@dataclass(frozen=True)
class TickResult:
    outcome: str
    reason: str
    target: Optional[str] = None
    current: Optional[str] = None


class VerticalScaler:
    """Polls broker load and moves the RabbitmqCluster along the profile ladder.

    One tick: fetch metrics, pick a target profile, resolve the current profile
    from the live CPU request, debounce, check the cooldown, then patch. Ticks
    run strictly one after another; stop() takes effect before the next tick.
    """

    def __init__(self, config, metrics_source, controller, store, clock=now_epoch):
        self.config = config
        self.profiles = config.profiles
        self.metrics_source = metrics_source
        self.controller = controller
        self.store = store
        self.clock = clock
        self.stability = StabilityTracker(store, config, clock=clock)
        self.cooldown = CooldownGuard(store, config, clock=clock)
        self.stop_event = threading.Event()

    def current_profile(self):
        live = self.controller.read_current_cpu_memory()
        return self.profiles.profile_for_cpu(live.get("cpu"))

    def direction(self, current, target):
        return "up" if self.profiles.priority(target) > self.profiles.priority(current) else "down"

    def run_tick(self):
        now = self.clock()
        print("Analyzing RabbitMQ metrics...", flush=True)

        try:
            metrics = self.metrics_source.fetch_overview()
        except TransientFetchError as e:
            print(f"Metrics fetch failed, skipping tick: {e}", flush=True)
            return TickResult(FETCH_FAILED, str(e))

        target = determine_target_profile(metrics, self.profiles, self.config.queue_depth_metric)
        print(metrics.summary(), flush=True)
        print(scaling_message(target, self.profiles), flush=True)

        try:
            current = self.current_profile()
            print(f"Current profile: {current}", flush=True)
            if current == UNKNOWN:
                print("Live CPU request does not match any profile", flush=True)

            state = self.store.read()
            stability = self.stability.check(current, target, now, record=StabilityRecord.from_state(state))
        except TransientFetchError as e:
            print(f"State read failed, skipping tick: {e}", flush=True)
            return TickResult(FETCH_FAILED, str(e), target=target)

        print(f"Decision: {stability.reason}", flush=True)
        if not stability.eligible:
            return TickResult(NOT_STABLE, stability.reason, target, current)

        if current == target:
            print(f"Scaling skipped - already at {target} profile", flush=True)
            return TickResult(ALREADY_AT_TARGET, stability.reason, target, current)

        direction = self.direction(current, target)
        allowed, reason = self.cooldown.check(direction, now, event=ScaleEvent.from_state(state))
        if not allowed:
            print(reason, flush=True)
            return TickResult(COOLDOWN, reason, target, current)

        return self.execute_scale(current, target, direction, now,
                                  explain_target(metrics, self.profiles, target, self.config.queue_depth_metric))

    def execute_scale(self, current, target, direction, now, reason=""):
        profile = self.profiles.get(target)
        print(f"Applying: CPU={profile.cpu}, Memory={profile.memory}", flush=True)

        try:
            self.controller.apply_cpu_memory(profile.cpu, profile.memory, dry_run=self.config.dry_run)
        except ApplyError as e:
            # Stability record still points at target, so the next tick retries at once
            print(f"Scaling failed: {e}", flush=True)
            return TickResult(APPLY_FAILED, str(e), target, current)

        print(f"Scaled {direction}: {current} → {target}", flush=True)
        print(f"Reason: {reason}", flush=True)
        print(f"Time: {now_ist_iso()}", flush=True)

        try:
            self.cooldown.record(target, now)
            self.stability.reset(target, now)
        except StateStoreError as e:
            print(f"Scaled but failed to persist state: {e}", flush=True)

        return TickResult(APPLIED, reason, target, current)

    def stop(self):
        self.stop_event.set()

    def run_forever(self, max_ticks=None):
        print("RabbitMQ Vertical Scaler started", flush=True)
        print(f"   Profiles: {' < '.join(self.profiles.names)}", flush=True)
        print(f"   Interval: {self.config.check_interval_seconds:g}s, dry run: {self.config.dry_run}", flush=True)

        ticks = 0
        while not self.stop_event.is_set():
            try:
                self.run_tick()
            except Exception as e:
                print(f"Error in scaling loop: {e}", flush=True)
                traceback.print_exc()
            print("---", flush=True)

            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            self.stop_event.wait(self.config.check_interval_seconds)

        print("RabbitMQ Vertical Scaler stopped", flush=True)
        return ticks
