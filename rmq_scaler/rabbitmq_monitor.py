import time

import requests

from rmq_scaler.errors import MetricsFetchError
from rmq_scaler.metrics import MetricsSnapshot


class RabbitMQMonitor:
    def __init__(self, config, session=None):
        self.base_url = config.rmq_base_url
        self.timeout = config.rmq_request_timeout_seconds
        self.session = session or requests.Session()
        self.session.auth = (config.rmq_user, config.rmq_pass)

    def fetch_overview(self):
        overview = self._get("/api/overview")
        if not isinstance(overview, dict) or not overview:
            raise MetricsFetchError("RabbitMQ /api/overview returned no data")

        queues = self._get("/api/queues")
        if not isinstance(queues, list):
            raise MetricsFetchError("RabbitMQ /api/queues did not return a list")
        print(f"Retrieved details for {len(queues)} queues", flush=True)

        return MetricsSnapshot.from_management_api(overview, queues)

    def _get(self, path, timeout=None):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(url, timeout=timeout or self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise MetricsFetchError(f"RabbitMQ API request {path} failed: {e}") from e
        except ValueError as e:
            raise MetricsFetchError(f"RabbitMQ API returned invalid JSON for {path}: {e}") from e

    def wait_until_ready(self, attempts=10, delay=5, sleep=time.sleep):
        print("Waiting for RabbitMQ to be ready...", flush=True)
        for i in range(1, attempts + 1):
            try:
                self._get("/api/overview", timeout=min(self.timeout, 5))
                print("RabbitMQ is ready", flush=True)
                return True
            except MetricsFetchError as e:
                print(f"Waiting for RabbitMQ... ({i}/{attempts}): {e}", flush=True)
                # Event.wait returns True once shutdown was requested
                if i < attempts and sleep(delay):
                    print("Shutdown requested while waiting for RabbitMQ", flush=True)
                    return False
        print(f"RabbitMQ not ready after {attempts} attempts", flush=True)
        return False
