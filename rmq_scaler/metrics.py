from dataclasses import dataclass


def _rate(stats, key):
    details = stats.get(key) or {}
    return float(details.get("rate") or 0)


@dataclass(frozen=True)
class MetricsSnapshot:
    total_messages: float = 0
    max_queue_depth: float = 0
    publish_rate: float = 0
    consume_rate: float = 0

    @property
    def backlog_rate(self):
        # Negative when consumers are draining faster than publishers fill
        return self.publish_rate - self.consume_rate

    def queue_depth(self, mode="max"):
        return self.total_messages if mode == "total" else self.max_queue_depth

    @classmethod
    def from_management_api(cls, overview, queues):
        """Build a snapshot from /api/overview and /api/queues payloads.

        Missing nested fields count as 0; the payloads themselves must exist.
        """
        totals = overview.get("queue_totals") or {}
        stats = overview.get("message_stats") or {}
        depths = [q.get("messages") or 0 for q in queues]
        return cls(
            total_messages=float(totals.get("messages") or 0),
            max_queue_depth=float(max(depths, default=0)),
            publish_rate=_rate(stats, "publish_details"),
            consume_rate=_rate(stats, "deliver_get_details"),
        )

    def summary(self):
        return (f"Queue Depth: {self.max_queue_depth:g} | Total: {self.total_messages:g} | "
                f"Publish: {self.publish_rate:g}/s | Consume: {self.consume_rate:g}/s | "
                f"Backlog: {self.backlog_rate:g}/s")
