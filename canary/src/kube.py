from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from kubernetes import client, config
from kubernetes.client import ApiException, AppsV1Api, CoreV1Api, CustomObjectsApi
from kubernetes.config.config_exception import ConfigException

from canary.src.errors import ApiCallError, ConflictError, NotFoundError
from canary.src.metrics import METRICS

LOGGER = logging.getLogger(__name__)


def load_kube_configuration() -> None:
    """Load Kubernetes client configuration.

    Attempts in-cluster config first (running inside a pod), falling back
    to the local kubeconfig for development.
    """
    try:
        config.load_incluster_config()
        LOGGER.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        LOGGER.info("Loaded local kubeconfig")


def build_clients() -> tuple[CoreV1Api, AppsV1Api, CustomObjectsApi]:
    """Return CoreV1, AppsV1 and CustomObjects API clients using the active kube configuration."""
    return client.CoreV1Api(), client.AppsV1Api(), client.CustomObjectsApi()


@lru_cache(maxsize=1)
def _serializer() -> client.ApiClient:
    return client.ApiClient()


def to_dict(obj: Any) -> dict[str, Any]:
    """Serialise a typed Kubernetes model (or a raw dict) into a camelCase dict.

    Typed models from ``AppsV1Api``/``CoreV1Api`` and the plain dicts returned
    by ``CustomObjectsApi`` end up in the same wire shape, which lets every
    workload kind share one read-modify-write algorithm.  ``None`` fields are
    dropped and datetimes become ISO 8601 strings.
    """
    if obj is None:
        return {}
    result = _serializer().sanitize_for_serialization(obj)
    if not isinstance(result, dict):
        raise TypeError(f"expected a Kubernetes object, got {type(obj).__name__}")
    return result


def api_error(
    exc: ApiException,
    action: str,
    kind: str,
    name: str,
    namespace: str,
) -> ApiCallError:
    """Translate an ``ApiException`` into the controller error taxonomy.

    The returned error is meant to be raised ``from exc`` by the caller so
    the HTTP response stays attached as the cause.
    """
    status = exc.status
    METRICS.api_errors_total.labels(kind=kind, status=str(status)).inc()
    message = f"{action} {kind.lower()} {name}.{namespace} failed: {exc.status} {exc.reason}"
    context = {"operation": action, "name": name, "namespace": namespace}
    if status == 404:
        return NotFoundError(message, status=status, **context)
    if status == 409:
        return ConflictError(message, status=status, **context)
    return ApiCallError(message, status=status, **context)
