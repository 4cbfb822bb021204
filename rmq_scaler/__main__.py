import os
import signal
import sys

from rmq_scaler.autoscaler import VerticalScaler
from rmq_scaler.cluster_client import ConfigMapStateStore, RabbitmqClusterController, init_k8s_clients
from rmq_scaler.config import READY_ATTEMPTS, READY_DELAY_SECONDS, load_config
from rmq_scaler.errors import ConfigurationError
from rmq_scaler.rabbitmq_monitor import RabbitMQMonitor


def build_scaler(config):
    core_v1, custom_api = init_k8s_clients()
    return VerticalScaler(
        config,
        metrics_source=RabbitMQMonitor(config),
        controller=RabbitmqClusterController(custom_api, config),
        store=ConfigMapStateStore(core_v1, config),
    )


def main():
    sys.stdout = os.fdopen(sys.stdout.fileno(), "w", buffering=1)
    sys.stderr = os.fdopen(sys.stderr.fileno(), "w", buffering=1)
    print("RabbitMQ Vertical Scaler", flush=True)
    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", flush=True)
        return 1

    scaler = build_scaler(config)

    def shutdown(signum, frame):
        print(f"Received {signal.Signals(signum).name}, shutting down gracefully", flush=True)
        scaler.stop()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    ready = scaler.metrics_source.wait_until_ready(READY_ATTEMPTS, READY_DELAY_SECONDS, sleep=scaler.stop_event.wait)
    if scaler.stop_event.is_set():
        return 0
    if not ready:
        print("Starting anyway; ticks will retry the broker", flush=True)

    scaler.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
