import json
import os
from dataclasses import dataclass, field
from typing import Optional

from rmq_scaler.errors import ConfigurationError
from rmq_scaler.profiles import Profile, ProfileTable

# Profile ladder (lowest first)
DEFAULT_PROFILE_NAMES = "LOW MEDIUM HIGH CRITICAL"
DEFAULT_PROFILE_RESOURCES = {
    "LOW": ("330m", "2Gi"),
    "MEDIUM": ("800m", "3Gi"),
    "HIGH": ("1600m", "4Gi"),
    "CRITICAL": ("2400m", "8Gi"),
}
FALLBACK_CPU = "1000m"
FALLBACK_MEMORY = "2Gi"

# Thresholds that promote into a profile (queue depth, publish msg/sec)
DEFAULT_QUEUE_THRESHOLDS = {"MEDIUM": 2000, "HIGH": 10000, "CRITICAL": 50000}
DEFAULT_RATE_THRESHOLDS = {"MEDIUM": 200, "HIGH": 1000, "CRITICAL": 2000}
FALLBACK_QUEUE_THRESHOLD = 1000
FALLBACK_RATE_THRESHOLD = 100

# "max" = deepest single queue, "total" = all enqueued messages
QUEUE_DEPTH_METRICS = ("max", "total")
DEFAULT_QUEUE_DEPTH_METRIC = "max"

# Debounce: how long a recommendation must hold before acting
SCALE_UP_DEBOUNCE_SECONDS = 30
SCALE_DOWN_DEBOUNCE_SECONDS = 120

# Cooldown after an applied change
SCALE_UP_COOLDOWN_SECONDS = 15
SCALE_DOWN_COOLDOWN_SECONDS = 60

CHECK_INTERVAL_SECONDS = 5

# RabbitMQ management API
RMQ_HOST = "rmq.prod.svc.cluster.local"
RMQ_PORT = 15672
RMQ_REQUEST_TIMEOUT_SECONDS = 10
READY_ATTEMPTS = 10
READY_DELAY_SECONDS = 5

# Kubernetes
NAMESPACE = "prod"
RMQ_SERVICE_NAME = "rmq"
CONFIG_MAP_NAME = "rmq-scaler-state"
K8S_REQUEST_TIMEOUT_SECONDS = 10

TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ScalerConfig:
    profiles: ProfileTable
    scale_up_debounce_seconds: float = SCALE_UP_DEBOUNCE_SECONDS
    scale_down_debounce_seconds: float = SCALE_DOWN_DEBOUNCE_SECONDS
    scale_up_cooldown_seconds: float = SCALE_UP_COOLDOWN_SECONDS
    scale_down_cooldown_seconds: float = SCALE_DOWN_COOLDOWN_SECONDS
    check_interval_seconds: float = CHECK_INTERVAL_SECONDS
    queue_depth_metric: str = DEFAULT_QUEUE_DEPTH_METRIC
    dry_run: bool = False
    rmq_host: str = RMQ_HOST
    rmq_port: int = RMQ_PORT
    rmq_user: str = "guest"
    rmq_pass: str = field(default="guest", repr=False)
    rmq_request_timeout_seconds: float = RMQ_REQUEST_TIMEOUT_SECONDS
    namespace: str = NAMESPACE
    rmq_service_name: str = RMQ_SERVICE_NAME
    config_map_name: str = CONFIG_MAP_NAME
    k8s_request_timeout_seconds: float = K8S_REQUEST_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.queue_depth_metric not in QUEUE_DEPTH_METRICS:
            raise ConfigurationError(
                f"queue_depth_metric must be one of {QUEUE_DEPTH_METRICS}, got {self.queue_depth_metric!r}"
            )
        if self.check_interval_seconds <= 0:
            raise ConfigurationError("check_interval_seconds must be positive")
        for name in ("scale_up_debounce_seconds", "scale_down_debounce_seconds",
                     "scale_up_cooldown_seconds", "scale_down_cooldown_seconds"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")

    @property
    def rmq_base_url(self):
        return f"http://{self.rmq_host}:{self.rmq_port}"


def _number(env, key, default, cast=float):
    raw = env.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")


def _threshold(env, key, default):
    # Present-but-empty means explicitly unset; absent falls back to the default
    if key not in env:
        return default
    raw = str(env[key]).strip()
    if raw == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")


def _read_file(path):
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not load config file {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must hold a JSON object")
    return data


def _section(data, key):
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Config file entry {key!r} must be an object")
    return value


def _file_defaults(data):
    """Flatten the JSON config file into the same keys the environment uses."""
    env = {}
    names = data.get("profileNames")
    if names is not None:
        if not isinstance(names, list) or not all(isinstance(n, str) and n.split() == [n] for n in names):
            raise ConfigurationError("Config file entry 'profileNames' must be a list of names")
        env["PROFILE_NAMES"] = " ".join(names)
    for name, res in _section(data, "profiles").items():
        if not isinstance(res, dict):
            raise ConfigurationError(f"Config file profile {name!r} must be an object")
        if "cpu" in res:
            env[f"PROFILE_{name}_CPU"] = str(res["cpu"])
        if "memory" in res:
            env[f"PROFILE_{name}_MEMORY"] = str(res["memory"])
    thresholds = _section(data, "thresholds")
    for name, value in _section(thresholds, "queue").items():
        env[f"QUEUE_THRESHOLD_{name}"] = "" if value is None else str(value)
    for name, value in _section(thresholds, "rate").items():
        env[f"RATE_THRESHOLD_{name}"] = "" if value is None else str(value)
    debounce = _section(data, "debounce")
    if "scaleUpSeconds" in debounce:
        env["DEBOUNCE_SCALE_UP_SECONDS"] = str(debounce["scaleUpSeconds"])
    if "scaleDownSeconds" in debounce:
        env["DEBOUNCE_SCALE_DOWN_SECONDS"] = str(debounce["scaleDownSeconds"])
    if "checkInterval" in data:
        env["CHECK_INTERVAL_SECONDS"] = str(data["checkInterval"])
    return env


def build_profiles(env):
    names = str(env.get("PROFILE_NAMES", DEFAULT_PROFILE_NAMES)).split()
    profiles = []
    for i, name in enumerate(names):
        cpu, memory = DEFAULT_PROFILE_RESOURCES.get(name, (FALLBACK_CPU, FALLBACK_MEMORY))
        queue_threshold = rate_threshold = None
        # The lowest profile is the fallback and never carries thresholds
        if i > 0:
            queue_threshold = _threshold(env, f"QUEUE_THRESHOLD_{name}",
                                         DEFAULT_QUEUE_THRESHOLDS.get(name, FALLBACK_QUEUE_THRESHOLD))
            rate_threshold = _threshold(env, f"RATE_THRESHOLD_{name}",
                                        DEFAULT_RATE_THRESHOLDS.get(name, FALLBACK_RATE_THRESHOLD))
        profiles.append(Profile(
            name=name,
            cpu=env.get(f"PROFILE_{name}_CPU") or cpu,
            memory=env.get(f"PROFILE_{name}_MEMORY") or memory,
            queue_threshold=queue_threshold,
            rate_threshold=rate_threshold,
        ))
    return ProfileTable(profiles)


def load_config(environ=None) -> ScalerConfig:
    """Build the one ScalerConfig the process runs with.

    Values come from the optional JSON file named by SCALER_CONFIG_FILE, with
    environment variables taking precedence. Raises ConfigurationError.
    """
    environ = os.environ if environ is None else environ
    env = {}
    path: Optional[str] = environ.get("SCALER_CONFIG_FILE")
    if path:
        env.update(_file_defaults(_read_file(path)))
    env.update(environ)

    metric = str(env.get("QUEUE_DEPTH_METRIC", DEFAULT_QUEUE_DEPTH_METRIC)).strip().lower()

    return ScalerConfig(
        profiles=build_profiles(env),
        scale_up_debounce_seconds=_number(env, "DEBOUNCE_SCALE_UP_SECONDS", SCALE_UP_DEBOUNCE_SECONDS),
        scale_down_debounce_seconds=_number(env, "DEBOUNCE_SCALE_DOWN_SECONDS", SCALE_DOWN_DEBOUNCE_SECONDS),
        scale_up_cooldown_seconds=_number(env, "COOLDOWN_SCALE_UP_SECONDS", SCALE_UP_COOLDOWN_SECONDS),
        scale_down_cooldown_seconds=_number(env, "COOLDOWN_SCALE_DOWN_SECONDS", SCALE_DOWN_COOLDOWN_SECONDS),
        check_interval_seconds=_number(env, "CHECK_INTERVAL_SECONDS", CHECK_INTERVAL_SECONDS),
        queue_depth_metric=metric,
        dry_run=str(env.get("DRY_RUN", "")).strip().lower() in TRUE_VALUES,
        rmq_host=env.get("RMQ_HOST") or RMQ_HOST,
        rmq_port=_number(env, "RMQ_PORT", RMQ_PORT, cast=int),
        rmq_user=env.get("RMQ_USER", "guest"),
        rmq_pass=env.get("RMQ_PASS", "guest"),
        rmq_request_timeout_seconds=_number(env, "RMQ_REQUEST_TIMEOUT_SECONDS", RMQ_REQUEST_TIMEOUT_SECONDS),
        namespace=env.get("NAMESPACE") or NAMESPACE,
        rmq_service_name=env.get("RMQ_SERVICE_NAME") or RMQ_SERVICE_NAME,
        config_map_name=env.get("CONFIG_MAP_NAME") or CONFIG_MAP_NAME,
        k8s_request_timeout_seconds=_number(env, "K8S_REQUEST_TIMEOUT_SECONDS", K8S_REQUEST_TIMEOUT_SECONDS),
    )
