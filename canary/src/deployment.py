from __future__ import annotations

from typing import Any

from kubernetes.client import AppsV1Api

from canary.src.readiness import RolloutStatus, find_condition
from canary.src.workload import PodTemplateController


class DeploymentController(PodTemplateController):
    """Canary lifecycle for ``apps/v1`` Deployments."""

    kind = "Deployment"
    api_version = "apps/v1"
    strategy_field = "strategy"
    allowed_strategies = frozenset({"RollingUpdate"})
    policy_fields = ("minReadySeconds", "revisionHistoryLimit", "strategy", "progressDeadlineSeconds")

    def __init__(self, apps_api: AppsV1Api, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.apps_api = apps_api

    def _read(self, name: str, namespace: str) -> Any:
        return self.apps_api.read_namespaced_deployment(name=name, namespace=namespace)

    def _create(self, namespace: str, body: dict[str, Any]) -> Any:
        return self.apps_api.create_namespaced_deployment(namespace=namespace, body=body)

    def _replace(self, name: str, namespace: str, body: dict[str, Any]) -> Any:
        return self.apps_api.replace_namespaced_deployment(name=name, namespace=namespace, body=body)

    def _primary_spec_extras(self, target_spec: dict[str, Any]) -> dict[str, Any]:
        replicas = target_spec.get("replicas")
        return {"replicas": 1 if replicas is None else replicas}

    def _rollout_status(self, obj: dict[str, Any]) -> RolloutStatus:
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        conditions = status.get("conditions")
        return RolloutStatus(
            name=metadata.get("name", ""),
            generation=metadata.get("generation") or 0,
            observed_generation=status.get("observedGeneration") or 0,
            desired_replicas=spec.get("replicas", 1),
            updated_replicas=status.get("updatedReplicas") or 0,
            total_replicas=status.get("replicas") or 0,
            available_replicas=status.get("availableReplicas") or 0,
            progressing=find_condition(conditions, "Progressing"),
            available=find_condition(conditions, "Available"),
        )
