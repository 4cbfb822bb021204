from dataclasses import dataclass
from typing import Dict, List, Optional

from rmq_scaler.errors import ConfigurationError

UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Profile:
    name: str
    cpu: str
    memory: str
    queue_threshold: Optional[float] = None
    rate_threshold: Optional[float] = None

    def has_thresholds(self):
        return self.queue_threshold is not None or self.rate_threshold is not None


def parse_cpu(cpu_str):
    """Convert a Kubernetes CPU quantity to millicores ("1" -> 1000, "250m" -> 250)."""
    if cpu_str is None:
        raise ValueError("empty cpu quantity")
    cpu_str = str(cpu_str).strip()
    if not cpu_str:
        raise ValueError("empty cpu quantity")
    if cpu_str.endswith('n'):
        value = float(cpu_str[:-1]) / 1000000
    elif cpu_str.endswith('u'):
        value = float(cpu_str[:-1]) / 1000
    elif cpu_str.endswith('m'):
        value = float(cpu_str[:-1])
    else:
        value = float(cpu_str) * 1000
    if value < 0:
        raise ValueError(f"negative cpu quantity: {cpu_str}")
    return round(value, 3)


class ProfileTable:
    """Ordered profile ladder. Index 0 is the lowest priority and the fallback.

    The reverse map resolves a live CPU request back to a profile name. When two
    profiles declare the same CPU quantity the later one wins.
    """

    def __init__(self, profiles: List[Profile]):
        profiles = list(profiles)
        if not profiles:
            raise ConfigurationError("Profile table is empty")

        seen = set()
        for p in profiles:
            if not p.name:
                raise ConfigurationError("Profile name must not be empty")
            if p.name == UNKNOWN:
                raise ConfigurationError(f"Profile name {UNKNOWN} is reserved")
            if p.name in seen:
                raise ConfigurationError(f"Duplicate profile name: {p.name}")
            seen.add(p.name)
            if not p.cpu or not p.memory:
                raise ConfigurationError(f"Profile {p.name} needs both cpu and memory")
            for label, value in (("queue", p.queue_threshold), ("rate", p.rate_threshold)):
                if value is not None and value < 0:
                    raise ConfigurationError(f"Profile {p.name} has negative {label} threshold {value}")

        if profiles[0].has_thresholds():
            raise ConfigurationError(f"Lowest profile {profiles[0].name} must not carry thresholds")
        for p in profiles[1:]:
            if not p.has_thresholds():
                raise ConfigurationError(f"Profile {p.name} has no queue or rate threshold and could never be selected")

        self.profiles = profiles
        self._by_name = {p.name: p for p in profiles}
        self._priority = {p.name: i for i, p in enumerate(profiles)}
        self.cpu_to_profile = self._build_cpu_map(profiles)

    @staticmethod
    def _build_cpu_map(profiles) -> Dict[float, str]:
        mapping = {}
        for p in profiles:
            try:
                mapping[parse_cpu(p.cpu)] = p.name
            except ValueError as e:
                raise ConfigurationError(f"Profile {p.name} has invalid cpu {p.cpu!r}: {e}")
        return mapping

    def __len__(self):
        return len(self.profiles)

    def __iter__(self):
        return iter(self.profiles)

    def __contains__(self, name):
        return name in self._by_name

    @property
    def names(self):
        return [p.name for p in self.profiles]

    @property
    def lowest(self):
        return self.profiles[0]

    def get(self, name):
        return self._by_name[name]

    def priority(self, name):
        # UNKNOWN ranks below every configured profile, so leaving it is a scale-up
        return self._priority.get(name, -1)

    def profile_for_cpu(self, cpu):
        try:
            return self.cpu_to_profile.get(parse_cpu(cpu), UNKNOWN)
        except ValueError:
            return UNKNOWN
