"""Pod template helpers shared by every workload controller.

Everything here works on camelCase dicts as produced by
:func:`canary.src.kube.to_dict`.
"""

from __future__ import annotations

import copy
import json
import uuid
from collections.abc import Iterable, Mapping
from hashlib import sha256
from types import MappingProxyType
from typing import Any

from canary.src.descriptor import CanaryDescriptor

PRIMARY_SUFFIX = "-primary"
CANARY_SUFFIX = "-canary"

SCALE_TO_ZERO_NODE_SELECTOR: Mapping[str, str] = MappingProxyType(
    {"flagger.app/scale-to-zero": "true"}
)

ID_ANNOTATION = "flagger-id"
LAST_APPLIED_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"
TOOLKIT_LABEL_PREFIX = "toolkit.fluxcd.io/"
SIDECAR_CONTAINERS = frozenset({"istio-proxy", "envoy"})


def primary_name(target_name: str) -> str:
    return f"{target_name}{PRIMARY_SUFFIX}"


def has_scale_down_marker(pod_spec: Mapping[str, Any]) -> bool:
    node_selector = pod_spec.get("nodeSelector") or {}
    return all(node_selector.get(k) == v for k, v in SCALE_TO_ZERO_NODE_SELECTOR.items())


def add_scale_down_marker(pod_spec: dict[str, Any]) -> None:
    """Add the scale-to-zero marker, keeping every other node selector entry."""
    node_selector = dict(pod_spec.get("nodeSelector") or {})
    node_selector.update(SCALE_TO_ZERO_NODE_SELECTOR)
    pod_spec["nodeSelector"] = node_selector


def remove_scale_down_marker(pod_spec: dict[str, Any]) -> None:
    """Remove the scale-to-zero marker.

    An empty node selector is dropped altogether, which the API server
    treats the same as a selector that was never set.
    """
    node_selector = dict(pod_spec.get("nodeSelector") or {})
    for key in SCALE_TO_ZERO_NODE_SELECTOR:
        node_selector.pop(key, None)
    if node_selector:
        pod_spec["nodeSelector"] = node_selector
    else:
        pod_spec.pop("nodeSelector", None)


def compute_hash(obj: Any) -> str:
    """Return a SHA-256 hex digest of ``obj`` serialised as canonical JSON."""
    stable_payload = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return sha256(stable_payload.encode("utf-8")).hexdigest()


def template_hash(template: Mapping[str, Any]) -> str:
    """Hash a pod template the way drift detection sees it.

    The scale-to-zero marker is removed and a missing node selector is
    normalised to an empty one, so scaling the target down and up again
    never changes the hash.
    """
    normalized = copy.deepcopy(dict(template))
    pod_spec = normalized.setdefault("spec", {})
    remove_scale_down_marker(pod_spec)
    pod_spec.setdefault("nodeSelector", {})
    return compute_hash(normalized)


def has_spec_changed(cd: CanaryDescriptor, new_hash: str) -> bool:
    if not cd.last_applied_spec:
        return True
    # a manual rollback to the promoted revision is not a new canary run
    if cd.last_promoted_spec == new_hash:
        return False
    return cd.last_applied_spec != new_hash


def make_annotations(annotations: Mapping[str, str] | None) -> dict[str, str]:
    """Copy pod template annotations and stamp a fresh revision id.

    A new ``flagger-id`` value guarantees the template differs from the
    previous one, so the platform rolls out a new revision even when the
    spec is otherwise unchanged.
    """
    result = {
        k: v
        for k, v in (annotations or {}).items()
        if k != ID_ANNOTATION and LAST_APPLIED_ANNOTATION not in k
    }
    result[ID_ANNOTATION] = str(uuid.uuid4())
    return result


def make_primary_labels(labels: Mapping[str, str] | None, label_value: str, label: str) -> dict[str, str]:
    result = {k: v for k, v in (labels or {}).items() if k != label}
    result[label] = label_value
    return result


def include_labels_by_prefix(
    labels: Mapping[str, str] | None, include_label_prefix: Iterable[str]
) -> dict[str, str]:
    """Return the labels whose key starts with one of the allowed prefixes (``*`` allows all)."""
    prefixes = list(include_label_prefix)
    result: dict[str, str] = {}
    for key, value in (labels or {}).items():
        if key.startswith(TOOLKIT_LABEL_PREFIX):
            continue
        if any(prefix == "*" or key.startswith(prefix) for prefix in prefixes):
            result[key] = value
    return result


def get_ports(cd: CanaryDescriptor, containers: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    """Collect container ports keyed by name, skipping mesh sidecars and the canary service port."""
    target_port = cd.service.target_port
    ports: dict[str, int] = {}
    for container in containers:
        container_name = container.get("name", "")
        if container_name in SIDECAR_CONTAINERS:
            continue
        for index, port in enumerate(container.get("ports") or []):
            number = port.get("containerPort")
            if target_port in (None, 0, "0", ""):
                if number == cd.service.port:
                    continue
            elif isinstance(target_port, int):
                if number == target_port:
                    continue
            elif port.get("name") == target_port:
                continue
            name = port.get("name") or f"tcp-{container_name}-{index}"
            ports[name] = number
    return ports
