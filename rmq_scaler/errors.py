class ScalerError(Exception):
    pass


class ConfigurationError(ScalerError):
    """Invalid or missing configuration. Only raised at startup."""


class TransientFetchError(ScalerError):
    """A read failed; the tick is aborted and retried on the next one."""


class MetricsFetchError(TransientFetchError):
    pass


class StateStoreError(TransientFetchError):
    pass


class ResourceReadError(TransientFetchError):
    pass


class ApplyError(ScalerError):
    """Patching the managed resource failed."""
