from __future__ import annotations

from typing import Any

from kubernetes.client import AppsV1Api

from canary.src.readiness import RolloutStatus
from canary.src.workload import PodTemplateController


class DaemonSetController(PodTemplateController):
    """Canary lifecycle for ``apps/v1`` DaemonSets.

    DaemonSets have no replica count and publish no rollout conditions, so
    readiness is judged from the scheduled pod counts alone and the
    progress-deadline rules never fire.
    """

    kind = "DaemonSet"
    api_version = "apps/v1"
    allowed_strategies = frozenset({"RollingUpdate"})

    def __init__(self, apps_api: AppsV1Api, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.apps_api = apps_api

    def _read(self, name: str, namespace: str) -> Any:
        return self.apps_api.read_namespaced_daemon_set(name=name, namespace=namespace)

    def _create(self, namespace: str, body: dict[str, Any]) -> Any:
        return self.apps_api.create_namespaced_daemon_set(namespace=namespace, body=body)

    def _replace(self, name: str, namespace: str, body: dict[str, Any]) -> Any:
        return self.apps_api.replace_namespaced_daemon_set(name=name, namespace=namespace, body=body)

    def _declared_replicas(self, obj: dict[str, Any]) -> int | None:
        return None

    def _rollout_status(self, obj: dict[str, Any]) -> RolloutStatus:
        metadata = obj.get("metadata") or {}
        status = obj.get("status") or {}
        return RolloutStatus(
            name=metadata.get("name", ""),
            generation=metadata.get("generation") or 0,
            observed_generation=status.get("observedGeneration") or 0,
            desired_replicas=status.get("desiredNumberScheduled") or 0,
            updated_replicas=status.get("updatedNumberScheduled") or 0,
            total_replicas=status.get("currentNumberScheduled") or 0,
            available_replicas=status.get("numberAvailable") or 0,
        )
