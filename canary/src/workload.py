from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from kubernetes.client import ApiException

from canary.src.descriptor import CanaryDescriptor
from canary.src.errors import ConfigurationError, RolloutNotReadyError
from canary.src.kube import api_error, to_dict
from canary.src.metrics import METRICS
from canary.src.readiness import RolloutStatus, ensure_ready
from canary.src.template import (
    SCALE_TO_ZERO_NODE_SELECTOR,
    add_scale_down_marker,
    get_ports,
    has_scale_down_marker,
    has_spec_changed,
    include_labels_by_prefix,
    make_annotations,
    make_primary_labels,
    primary_name,
    remove_scale_down_marker,
    template_hash,
)
from canary.src.tracker import ConfigRefs, ConfigTracker


def utc_now() -> datetime:
    return datetime.now(UTC)


class WorkloadController(ABC):
    """Lifecycle operations the reconciliation loop drives for one workload kind.

    Implementations hold no per-canary state: every call re-reads the target
    and primary objects from the API server, so one instance can serve any
    number of canaries concurrently.  Failures are raised as
    :class:`canary.src.errors.WorkloadError` subclasses whose ``retryable``
    flag tells the caller whether to try again on its next pass.
    """

    kind: str = ""
    api_version: str = ""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(type(self).__module__)

    @abstractmethod
    def initialize(self, cd: CanaryDescriptor) -> None: ...

    @abstractmethod
    def promote(self, cd: CanaryDescriptor) -> None: ...

    @abstractmethod
    def has_target_changed(self, cd: CanaryDescriptor) -> bool: ...

    @abstractmethod
    def have_dependencies_changed(self, cd: CanaryDescriptor) -> bool: ...

    @abstractmethod
    def get_metadata(self, cd: CanaryDescriptor) -> tuple[str, str, dict[str, int] | None]: ...

    @abstractmethod
    def is_primary_ready(self, cd: CanaryDescriptor) -> None: ...

    @abstractmethod
    def is_canary_ready(self, cd: CanaryDescriptor) -> bool: ...

    @abstractmethod
    def scale_to_zero(self, cd: CanaryDescriptor) -> None: ...

    @abstractmethod
    def scale_from_zero(self, cd: CanaryDescriptor) -> None: ...

    @abstractmethod
    def finalize(self, cd: CanaryDescriptor) -> None: ...

    # Kind-specific API access. Bodies and results are camelCase dicts or
    # typed models; ``_get`` normalises reads through ``to_dict``.

    @abstractmethod
    def _read(self, name: str, namespace: str) -> Any: ...

    @abstractmethod
    def _create(self, namespace: str, body: dict[str, Any]) -> Any: ...

    @abstractmethod
    def _replace(self, name: str, namespace: str, body: dict[str, Any]) -> Any: ...

    def _get(self, name: str, namespace: str) -> dict[str, Any]:
        try:
            return to_dict(self._read(name=name, namespace=namespace))
        except ApiException as exc:
            raise api_error(exc, "get", self.kind, name, namespace) from exc

    def _exists(self, name: str, namespace: str) -> bool:
        try:
            self._read(name=name, namespace=namespace)
        except ApiException as exc:
            if exc.status == 404:
                return False
            raise api_error(exc, "get", self.kind, name, namespace) from exc
        return True

    def _create_object(self, body: dict[str, Any]) -> None:
        metadata = body["metadata"]
        try:
            self._create(namespace=metadata["namespace"], body=body)
        except ApiException as exc:
            raise api_error(exc, "create", self.kind, metadata["name"], metadata["namespace"]) from exc

    def _update(self, obj: dict[str, Any], action: str) -> None:
        """Write back an object read by ``_get``.

        The body keeps the ``resourceVersion`` it was read with, so a
        concurrent modification surfaces as a ``ConflictError`` instead of
        being overwritten.
        """
        metadata = obj["metadata"]
        obj.setdefault("apiVersion", self.api_version)
        obj.setdefault("kind", self.kind)
        try:
            self._replace(name=metadata["name"], namespace=metadata["namespace"], body=obj)
        except ApiException as exc:
            raise api_error(exc, action, self.kind, metadata["name"], metadata["namespace"]) from exc


class PodTemplateController(WorkloadController):
    """Shared algorithm for workload kinds that own a pod template.

    Subclasses declare which spec fields make up the deployment policy,
    which update strategies are compatible with canary releases, and how
    to map their status onto :class:`RolloutStatus`.
    """

    strategy_field = "updateStrategy"
    allowed_strategies: frozenset[str] = frozenset()
    policy_fields: tuple[str, ...] = ("minReadySeconds", "revisionHistoryLimit", "updateStrategy")

    def __init__(
        self,
        config_tracker: ConfigTracker,
        labels: Iterable[str],
        include_label_prefix: Iterable[str] = (),
        logger: logging.Logger | None = None,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(logger=logger)
        self.config_tracker = config_tracker
        self.labels = list(labels)
        self.include_label_prefix = list(include_label_prefix)
        self.now_fn = now_fn

    @abstractmethod
    def _rollout_status(self, obj: dict[str, Any]) -> RolloutStatus: ...

    def _declared_replicas(self, obj: dict[str, Any]) -> int | None:
        return (obj.get("spec") or {}).get("replicas")

    def _primary_spec_extras(self, target_spec: dict[str, Any]) -> dict[str, Any]:
        """Extra spec fields set only when the primary is first created."""
        return {}

    def initialize(self, cd: CanaryDescriptor) -> None:
        """Create the primary if needed and, on the first run, scale the target down."""
        self._create_primary(cd)

        if not cd.is_initial_phase():
            return
        if not cd.skip_analysis:
            self.is_primary_ready(cd)

        self.logger.info(
            "Scaling down %s %s.%s for canary %s",
            self.kind,
            cd.target_ref.name,
            cd.namespace,
            cd.key,
        )
        self.scale_to_zero(cd)

    def promote(self, cd: CanaryDescriptor) -> None:
        """Copy the target's deployment policy, pod spec, configs and labels onto the primary."""
        target_name = cd.target_ref.name
        primary = primary_name(target_name)

        target = self._get(target_name, cd.namespace)
        label, label_value = self._selector_label(target)
        current = self._get(primary, cd.namespace)

        # primary configs must exist before the primary pod spec references them
        config_refs = self.config_tracker.get_target_configs(cd)
        self.config_tracker.create_primary_configs(cd, config_refs, self.include_label_prefix)

        target_spec = target.get("spec") or {}
        target_template = target_spec.get("template") or {}
        target_template_meta = target_template.get("metadata") or {}

        updated = copy.deepcopy(current)
        spec = updated.setdefault("spec", {})
        for field_name in self.policy_fields:
            if field_name in target_spec:
                spec[field_name] = copy.deepcopy(target_spec[field_name])
            else:
                spec.pop(field_name, None)

        template = spec.setdefault("template", {})
        template["spec"] = self._primary_pod_spec(target_template, config_refs)
        template_meta = template.setdefault("metadata", {})
        template_meta["annotations"] = make_annotations(target_template_meta.get("annotations"))
        template_meta["labels"] = make_primary_labels(
            target_template_meta.get("labels"), primary_name(label_value), label
        )

        self._update(updated, "promote")
        METRICS.promotions_total.labels(kind=self.kind).inc()
        self.logger.info("Promoted %s %s.%s to %s", self.kind, target_name, cd.namespace, primary)

    def has_target_changed(self, cd: CanaryDescriptor) -> bool:
        target = self._get(cd.target_ref.name, cd.namespace)
        template = (target.get("spec") or {}).get("template") or {}
        return has_spec_changed(cd, template_hash(template))

    def have_dependencies_changed(self, cd: CanaryDescriptor) -> bool:
        return self.config_tracker.has_config_changed(cd)

    def get_metadata(self, cd: CanaryDescriptor) -> tuple[str, str, dict[str, int] | None]:
        """Return the pairing selector label, its value and (with port discovery) container ports."""
        target = self._get(cd.target_ref.name, cd.namespace)
        label, label_value = self._selector_label(target)

        ports: dict[str, int] | None = None
        if cd.service.port_discovery:
            pod_spec = ((target.get("spec") or {}).get("template") or {}).get("spec") or {}
            ports = get_ports(cd, pod_spec.get("containers") or [])
        return label, label_value, ports

    def is_primary_ready(self, cd: CanaryDescriptor) -> None:
        """Raise unless the primary rollout is complete and the primary has replicas."""
        name = primary_name(cd.target_ref.name)
        primary = self._get(name, cd.namespace)
        try:
            ensure_ready(
                self.kind,
                self._rollout_status(primary),
                cd.progress_deadline_seconds,
                self.now_fn(),
                cd.namespace,
            )
        except RolloutNotReadyError as exc:
            raise RolloutNotReadyError(
                f"{name}.{cd.namespace} not ready: {exc}",
                retryable=exc.retryable,
                operation="is_primary_ready",
                name=name,
                namespace=cd.namespace,
            ) from exc

        if self._declared_replicas(primary) == 0:
            raise ConfigurationError(
                f"halt {cd.key} advancement: primary {self.kind.lower()} is scaled to zero",
                operation="is_primary_ready",
                name=name,
                namespace=cd.namespace,
            )

    def is_canary_ready(self, cd: CanaryDescriptor) -> bool:
        name = cd.target_ref.name
        target = self._get(name, cd.namespace)
        try:
            ensure_ready(
                self.kind,
                self._rollout_status(target),
                cd.progress_deadline_seconds,
                self.now_fn(),
                cd.namespace,
            )
        except RolloutNotReadyError as exc:
            raise RolloutNotReadyError(
                f"canary {self.kind.lower()} {name}.{cd.namespace} not ready: {exc}",
                retryable=exc.retryable,
                operation="is_canary_ready",
                name=name,
                namespace=cd.namespace,
            ) from exc
        return True

    def scale_to_zero(self, cd: CanaryDescriptor) -> None:
        """Add the scale-to-zero node selector to the target's pod template."""
        target = self._get(cd.target_ref.name, cd.namespace)
        updated = copy.deepcopy(target)
        pod_spec = self._pod_spec(updated)
        if has_scale_down_marker(pod_spec):
            self.logger.debug("%s %s.%s already scaled to zero", self.kind, cd.target_ref.name, cd.namespace)
            return

        add_scale_down_marker(pod_spec)
        self._update(updated, "scale to zero")
        METRICS.scale_transitions_total.labels(kind=self.kind, direction="down").inc()

    def scale_from_zero(self, cd: CanaryDescriptor) -> None:
        """Remove the scale-to-zero node selector, leaving other entries untouched."""
        target = self._get(cd.target_ref.name, cd.namespace)
        updated = copy.deepcopy(target)
        pod_spec = self._pod_spec(updated)
        node_selector = pod_spec.get("nodeSelector") or {}
        if not any(key in node_selector for key in SCALE_TO_ZERO_NODE_SELECTOR):
            self.logger.debug("%s %s.%s is not scaled to zero", self.kind, cd.target_ref.name, cd.namespace)
            return

        remove_scale_down_marker(pod_spec)
        self._update(updated, "scale from zero")
        METRICS.scale_transitions_total.labels(kind=self.kind, direction="up").inc()
        self.logger.info("Scaled up %s %s.%s", self.kind, cd.target_ref.name, cd.namespace)

    def finalize(self, cd: CanaryDescriptor) -> None:
        self.scale_from_zero(cd)

    @staticmethod
    def _pod_spec(obj: dict[str, Any]) -> dict[str, Any]:
        spec = obj.setdefault("spec", {})
        template = spec.setdefault("template", {})
        return template.setdefault("spec", {})

    def _primary_pod_spec(self, target_template: dict[str, Any], config_refs: ConfigRefs) -> dict[str, Any]:
        pod_spec = self.config_tracker.apply_primary_configs(
            copy.deepcopy(target_template.get("spec") or {}), config_refs
        )
        remove_scale_down_marker(pod_spec)
        return pod_spec

    def _selector_label(self, obj: dict[str, Any]) -> tuple[str, str]:
        """Resolve the pairing label: exactly one configured key must be in the selector."""
        metadata = obj.get("metadata") or {}
        selector = (obj.get("spec") or {}).get("selector") or {}
        match_labels = selector.get("matchLabels") or {}
        found = [label for label in self.labels if label in match_labels]
        if len(found) != 1:
            qualifier = "one of" if not found else "only one of"
            raise ConfigurationError(
                f"{self.kind.lower()} {metadata.get('name')}.{metadata.get('namespace')} "
                f"spec.selector.matchLabels must contain {qualifier} {self.labels}",
                operation="get selector label",
                name=metadata.get("name"),
                namespace=metadata.get("namespace"),
            )
        return found[0], match_labels[found[0]]

    def _check_strategy(self, target: dict[str, Any]) -> None:
        metadata = target.get("metadata") or {}
        strategy = (target.get("spec") or {}).get(self.strategy_field) or {}
        strategy_type = strategy.get("type") or ""
        if strategy_type and strategy_type not in self.allowed_strategies:
            raise ConfigurationError(
                f"{self.kind.lower()} {metadata.get('name')}.{metadata.get('namespace')} must have "
                f"{' or '.join(sorted(self.allowed_strategies))} strategy but has {strategy_type}",
                operation="create primary",
                name=metadata.get("name"),
                namespace=metadata.get("namespace"),
            )

    def _create_primary(self, cd: CanaryDescriptor) -> None:
        """Create the primary from the target's current template unless it already exists."""
        target_name = cd.target_ref.name
        name = primary_name(target_name)

        target = self._get(target_name, cd.namespace)
        self._check_strategy(target)
        label, label_value = self._selector_label(target)
        primary_label_value = primary_name(label_value)

        if self._exists(name, cd.namespace):
            return

        config_refs = self.config_tracker.get_target_configs(cd)
        self.config_tracker.create_primary_configs(cd, config_refs, self.include_label_prefix)

        metadata = target.get("metadata") or {}
        target_spec = target.get("spec") or {}
        target_template = target_spec.get("template") or {}
        target_template_meta = target_template.get("metadata") or {}

        spec: dict[str, Any] = {
            field_name: copy.deepcopy(target_spec[field_name])
            for field_name in self.policy_fields
            if field_name in target_spec
        }
        spec.update(self._primary_spec_extras(target_spec))
        spec["selector"] = {"matchLabels": {label: primary_label_value}}
        spec["template"] = {
            "metadata": {
                "labels": make_primary_labels(
                    target_template_meta.get("labels"), primary_label_value, label
                ),
                "annotations": make_annotations(target_template_meta.get("annotations")),
            },
            "spec": self._primary_pod_spec(target_template, config_refs),
        }

        body = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": {
                "name": name,
                "namespace": cd.namespace,
                "labels": make_primary_labels(
                    include_labels_by_prefix(metadata.get("labels"), self.include_label_prefix),
                    primary_label_value,
                    label,
                ),
                "annotations": dict(metadata.get("annotations") or {}),
                "ownerReferences": [cd.owner_reference()],
            },
            "spec": spec,
        }
        self._create_object(body)
        METRICS.primary_created_total.labels(kind=self.kind).inc()
        self.logger.info("%s %s.%s created for canary %s", self.kind, name, cd.namespace, cd.key)
