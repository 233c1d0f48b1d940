from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from typing import Any

from kubernetes.client import CoreV1Api

from canary.src.descriptor import CanaryDescriptor
from canary.src.metrics import METRICS
from canary.src.template import (
    CANARY_SUFFIX,
    compute_hash,
    has_spec_changed,
    include_labels_by_prefix,
    primary_name,
)
from canary.src.workload import WorkloadController


class ServiceController(WorkloadController):
    """Canary lifecycle when the target is a plain Service.

    There are no pods to manage: ``initialize`` creates ``<name>-canary``
    and ``<name>-primary`` ClusterIP services mirroring the target,
    ``promote`` copies the target's ports and selector onto the primary,
    and readiness and scaling are no-ops.
    """

    kind = "Service"
    api_version = "v1"

    def __init__(
        self,
        core_api: CoreV1Api,
        include_label_prefix: Iterable[str] = (),
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger=logger)
        self.core_api = core_api
        self.include_label_prefix = list(include_label_prefix)

    def _read(self, name: str, namespace: str) -> Any:
        return self.core_api.read_namespaced_service(name=name, namespace=namespace)

    def _create(self, namespace: str, body: dict[str, Any]) -> Any:
        return self.core_api.create_namespaced_service(namespace=namespace, body=body)

    def _replace(self, name: str, namespace: str, body: dict[str, Any]) -> Any:
        return self.core_api.replace_namespaced_service(name=name, namespace=namespace, body=body)

    @staticmethod
    def _cluster_ip_ports(ports: Iterable[dict[str, Any]] | None) -> list[dict[str, Any]]:
        # node ports are only valid on the target's own service type
        return [{k: v for k, v in port.items() if k != "nodePort"} for port in ports or []]

    def _ensure_service(self, cd: CanaryDescriptor, name: str, source: dict[str, Any]) -> bool:
        """Create ``name`` from ``source`` unless it exists; return whether it was created."""
        if self._exists(name, cd.namespace):
            return False

        metadata = source.get("metadata") or {}
        spec = source.get("spec") or {}
        body: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": {
                "name": name,
                "namespace": cd.namespace,
                "labels": include_labels_by_prefix(metadata.get("labels"), self.include_label_prefix),
                "annotations": dict(metadata.get("annotations") or {}),
                "ownerReferences": [cd.owner_reference()],
            },
            "spec": {
                "type": "ClusterIP",
                "ports": self._cluster_ip_ports(spec.get("ports")),
            },
        }
        if spec.get("selector"):
            body["spec"]["selector"] = dict(spec["selector"])

        self._create_object(body)
        self.logger.info("Service %s.%s created for canary %s", name, cd.namespace, cd.key)
        return True

    def initialize(self, cd: CanaryDescriptor) -> None:
        target = self._get(cd.target_ref.name, cd.namespace)
        self._ensure_service(cd, f"{cd.target_ref.name}{CANARY_SUFFIX}", target)
        if self._ensure_service(cd, primary_name(cd.target_ref.name), target):
            METRICS.primary_created_total.labels(kind=self.kind).inc()

    def promote(self, cd: CanaryDescriptor) -> None:
        target = self._get(cd.target_ref.name, cd.namespace)
        name = primary_name(cd.target_ref.name)
        current = self._get(name, cd.namespace)

        target_spec = target.get("spec") or {}
        updated = copy.deepcopy(current)
        spec = updated.setdefault("spec", {})
        spec["type"] = "ClusterIP"
        spec["ports"] = self._cluster_ip_ports(target_spec.get("ports"))
        if target_spec.get("selector"):
            spec["selector"] = dict(target_spec["selector"])
        else:
            spec.pop("selector", None)
        self._update(updated, "promote")
        METRICS.promotions_total.labels(kind=self.kind).inc()
        self.logger.info("Promoted Service %s.%s to %s", cd.target_ref.name, cd.namespace, name)

    def has_target_changed(self, cd: CanaryDescriptor) -> bool:
        target = self._get(cd.target_ref.name, cd.namespace)
        return has_spec_changed(cd, compute_hash(target.get("spec") or {}))

    def have_dependencies_changed(self, cd: CanaryDescriptor) -> bool:
        return False

    def get_metadata(self, cd: CanaryDescriptor) -> tuple[str, str, dict[str, int] | None]:
        return "", "", None

    def is_primary_ready(self, cd: CanaryDescriptor) -> None:
        return None

    def is_canary_ready(self, cd: CanaryDescriptor) -> bool:
        return True

    def scale_to_zero(self, cd: CanaryDescriptor) -> None:
        return None

    def scale_from_zero(self, cd: CanaryDescriptor) -> None:
        return None

    def finalize(self, cd: CanaryDescriptor) -> None:
        return None
