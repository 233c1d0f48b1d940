from __future__ import annotations

from typing import Any

from kubernetes.client import CustomObjectsApi

from canary.src.readiness import RolloutStatus, find_condition
from canary.src.workload import PodTemplateController

KRUISE_GROUP = "apps.kruise.io"
KRUISE_VERSION = "v1alpha1"
CLONESET_PLURAL = "clonesets"


class CloneSetController(PodTemplateController):
    """Canary lifecycle for OpenKruise CloneSets, accessed as custom objects.

    Only the ``ReCreate`` update strategy is accepted: in-place updates
    would patch running primary pods instead of rolling new ones.
    Deadline handling relies on ``Progressing``/``Available`` entries in
    ``status.conditions``; CloneSets that publish neither are judged on
    replica counts alone.
    """

    kind = "CloneSet"
    api_version = f"{KRUISE_GROUP}/{KRUISE_VERSION}"
    allowed_strategies = frozenset({"ReCreate"})

    def __init__(self, custom_api: CustomObjectsApi, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.custom_api = custom_api

    def _read(self, name: str, namespace: str) -> Any:
        return self.custom_api.get_namespaced_custom_object(
            group=KRUISE_GROUP,
            version=KRUISE_VERSION,
            namespace=namespace,
            plural=CLONESET_PLURAL,
            name=name,
        )

    def _create(self, namespace: str, body: dict[str, Any]) -> Any:
        return self.custom_api.create_namespaced_custom_object(
            group=KRUISE_GROUP,
            version=KRUISE_VERSION,
            namespace=namespace,
            plural=CLONESET_PLURAL,
            body=body,
        )

    def _replace(self, name: str, namespace: str, body: dict[str, Any]) -> Any:
        return self.custom_api.replace_namespaced_custom_object(
            group=KRUISE_GROUP,
            version=KRUISE_VERSION,
            namespace=namespace,
            plural=CLONESET_PLURAL,
            name=name,
            body=body,
        )

    def _rollout_status(self, obj: dict[str, Any]) -> RolloutStatus:
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        conditions = status.get("conditions")
        return RolloutStatus(
            name=metadata.get("name", ""),
            generation=metadata.get("generation") or 0,
            observed_generation=status.get("observedGeneration") or 0,
            desired_replicas=spec.get("replicas"),
            updated_replicas=status.get("updatedReplicas") or 0,
            total_replicas=status.get("replicas") or 0,
            available_replicas=status.get("availableReplicas") or 0,
            progressing=find_condition(conditions, "Progressing"),
            available=find_condition(conditions, "Available"),
        )
