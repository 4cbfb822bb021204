import pytest

from rmq_scaler.config import ScalerConfig
from rmq_scaler.errors import ApplyError, MetricsFetchError
from rmq_scaler.metrics import MetricsSnapshot
from rmq_scaler.profiles import Profile, ProfileTable

NOW = 1_700_000_000


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeStateStore:
    def __init__(self, data=None):
        self.data = dict(data or {})
        self.writes = []

    def read(self):
        return dict(self.data)

    def write(self, patch):
        self.writes.append(dict(patch))
        self.data.update({k: str(v) for k, v in patch.items()})


class FakeMetricsSource:
    def __init__(self, snapshot=None, error=None):
        self.snapshot = snapshot or MetricsSnapshot()
        self.error = error
        self.calls = 0

    def fetch_overview(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.snapshot


class FakeController:
    def __init__(self, cpu="330m", memory="2Gi", fail=False):
        self.cpu = cpu
        self.memory = memory
        self.fail = fail
        self.applied = []

    def read_current_cpu_memory(self):
        return {"cpu": self.cpu, "memory": self.memory}

    def apply_cpu_memory(self, cpu, memory, dry_run=False):
        if self.fail:
            raise ApplyError("patch rejected")
        self.applied.append((cpu, memory, dry_run))
        if not dry_run:
            self.cpu, self.memory = cpu, memory
        return True


@pytest.fixture
def profiles():
    return ProfileTable([
        Profile("LOW", "330m", "2Gi"),
        Profile("MEDIUM", "800m", "3Gi", queue_threshold=2000, rate_threshold=200),
        Profile("HIGH", "1600m", "4Gi", queue_threshold=10000, rate_threshold=1000),
        Profile("CRITICAL", "2400m", "8Gi", queue_threshold=50000, rate_threshold=2000),
    ])


@pytest.fixture
def config(profiles):
    return ScalerConfig(
        profiles=profiles,
        scale_up_debounce_seconds=30,
        scale_down_debounce_seconds=120,
        scale_up_cooldown_seconds=15,
        scale_down_cooldown_seconds=60,
        check_interval_seconds=5,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeStateStore()


@pytest.fixture
def fetch_error():
    return MetricsFetchError("connection refused")
