from rmq_scaler.metrics import MetricsSnapshot
from rmq_scaler.profiles import ProfileTable


def _exceeds(value, threshold):
    # None is unset; 0 is a real threshold that any positive load exceeds
    return threshold is not None and value > threshold


def determine_target_profile(metrics: MetricsSnapshot, profiles: ProfileTable, queue_depth_metric="max") -> str:
    """Pick the highest-priority profile whose queue or rate threshold is exceeded.

    The lowest profile carries no thresholds and is returned when nothing fires.
    """
    depth = metrics.queue_depth(queue_depth_metric)
    for profile in reversed(profiles.profiles[1:]):
        if _exceeds(depth, profile.queue_threshold) or _exceeds(metrics.publish_rate, profile.rate_threshold):
            return profile.name
    return profiles.lowest.name


def explain_target(metrics, profiles, target, queue_depth_metric="max"):
    profile = profiles.get(target)
    if not profile.has_thresholds():
        return "No threshold exceeded"
    reasons = []
    depth = metrics.queue_depth(queue_depth_metric)
    if _exceeds(depth, profile.queue_threshold):
        reasons.append(f"queue {depth:g} > {profile.queue_threshold:g}")
    if _exceeds(metrics.publish_rate, profile.rate_threshold):
        reasons.append(f"publish {metrics.publish_rate:g}/s > {profile.rate_threshold:g}/s")
    return ", ".join(reasons)


def scaling_message(profile, profiles):
    index = profiles.priority(profile)
    count = len(profiles)

    if index == 0:
        return f"{profile} load detected - minimal resources"
    if index == count - 1:
        return f"{profile} load detected - scaling to maximum resources"
    if index > count / 2:
        return f"{profile} load detected - scaling up resources"
    return f"{profile} load detected - moderate scaling"
