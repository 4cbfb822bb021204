from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from rmq_scaler.errors import ApplyError, ResourceReadError, StateStoreError

RMQ_GROUP = "rabbitmq.com"
RMQ_VERSION = "v1beta1"
RMQ_PLURAL = "rabbitmqclusters"


def init_k8s_clients():
    try:
        k8s_config.load_incluster_config()
        print("Loaded in-cluster config", flush=True)
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
        print("Loaded local kubeconfig", flush=True)
    return client.CoreV1Api(), client.CustomObjectsApi()


class RabbitmqClusterController:
    """Reads and patches spec.resources.requests on a RabbitmqCluster resource."""

    def __init__(self, custom_api, config):
        self.custom_api = custom_api
        self.namespace = config.namespace
        self.name = config.rmq_service_name
        self.timeout = config.k8s_request_timeout_seconds

    def read_current_cpu_memory(self):
        try:
            obj = self.custom_api.get_namespaced_custom_object(
                RMQ_GROUP, RMQ_VERSION, self.namespace, RMQ_PLURAL, self.name,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise ResourceReadError(
                f"Failed to read {RMQ_PLURAL}/{self.name} in {self.namespace}: {e.status} {e.reason}"
            ) from e
        except TransportError as e:
            raise ResourceReadError(f"Failed to reach API server reading {RMQ_PLURAL}/{self.name}: {e}") from e

        resources = ((obj or {}).get("spec") or {}).get("resources") or {}
        req = resources.get("requests") or {}
        return {"cpu": req.get("cpu"), "memory": req.get("memory")}

    def apply_cpu_memory(self, cpu, memory, dry_run=False):
        if dry_run:
            print(f"[DRY RUN] Would patch {RMQ_PLURAL}/{self.name}: CPU={cpu}, Memory={memory}", flush=True)
            return True

        body = {"spec": {"resources": {"requests": {"cpu": cpu, "memory": memory}}}}
        try:
            self.custom_api.patch_namespaced_custom_object(
                RMQ_GROUP, RMQ_VERSION, self.namespace, RMQ_PLURAL, self.name, body,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise ApplyError(f"Failed to patch {RMQ_PLURAL}/{self.name}: {e.status} {e.reason}") from e
        except TransportError as e:
            raise ApplyError(f"Failed to reach API server patching {RMQ_PLURAL}/{self.name}: {e}") from e

        print(f"Patched {RMQ_PLURAL}/{self.name}: CPU={cpu}, Memory={memory}", flush=True)
        return True


class ConfigMapStateStore:
    """Small key/value record kept in the data section of a ConfigMap."""

    def __init__(self, core_v1, config):
        self.core_v1 = core_v1
        self.namespace = config.namespace
        self.name = config.config_map_name
        self.timeout = config.k8s_request_timeout_seconds

    def read(self):
        try:
            cm = self.core_v1.read_namespaced_config_map(self.name, self.namespace, _request_timeout=self.timeout)
        except ApiException as e:
            if e.status == 404:
                # First run, nothing stored yet
                return {}
            raise StateStoreError(f"Failed to read ConfigMap {self.name}: {e.status} {e.reason}") from e
        except TransportError as e:
            raise StateStoreError(f"Failed to reach API server reading ConfigMap {self.name}: {e}") from e
        return dict(cm.data or {})

    def write(self, patch):
        data = {k: str(v) for k, v in patch.items()}
        try:
            self.core_v1.patch_namespaced_config_map(
                self.name, self.namespace, {"data": data}, _request_timeout=self.timeout,
            )
            return
        except ApiException as e:
            if e.status != 404:
                raise StateStoreError(f"Failed to patch ConfigMap {self.name}: {e.status} {e.reason}") from e
        except TransportError as e:
            raise StateStoreError(f"Failed to reach API server patching ConfigMap {self.name}: {e}") from e

        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=self.name, namespace=self.namespace),
            data=data,
        )
        try:
            self.core_v1.create_namespaced_config_map(self.namespace, body, _request_timeout=self.timeout)
            print(f"Created ConfigMap {self.namespace}/{self.name}", flush=True)
        except ApiException as e:
            raise StateStoreError(f"Failed to create ConfigMap {self.name}: {e.status} {e.reason}") from e
        except TransportError as e:
            raise StateStoreError(f"Failed to reach API server creating ConfigMap {self.name}: {e}") from e
