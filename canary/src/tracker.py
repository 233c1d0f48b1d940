from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from canary.src.descriptor import CanaryDescriptor


@dataclass(frozen=True)
class ConfigRef:
    """Handle to a ConfigMap or Secret referenced by a pod template."""

    kind: str
    name: str


ConfigRefs = Mapping[str, ConfigRef]


class ConfigTracker(Protocol):
    """Secret and ConfigMap synchronisation engine consumed by the controllers.

    ``create_primary_configs`` must run before a pod spec produced by
    ``apply_primary_configs`` is written, so the rewritten spec only
    references primary copies that already exist.
    """

    def get_target_configs(self, cd: CanaryDescriptor) -> ConfigRefs: ...

    def create_primary_configs(
        self,
        cd: CanaryDescriptor,
        refs: ConfigRefs,
        include_label_prefix: list[str],
    ) -> None: ...

    def apply_primary_configs(self, pod_spec: dict[str, Any], refs: ConfigRefs) -> dict[str, Any]: ...

    def has_config_changed(self, cd: CanaryDescriptor) -> bool: ...


class NopTracker:
    """Tracker used when config tracking is disabled: nothing is copied or rewritten."""

    def get_target_configs(self, cd: CanaryDescriptor) -> ConfigRefs:
        return {}

    def create_primary_configs(
        self,
        cd: CanaryDescriptor,
        refs: ConfigRefs,
        include_label_prefix: list[str],
    ) -> None:
        return None

    def apply_primary_configs(self, pod_spec: dict[str, Any], refs: ConfigRefs) -> dict[str, Any]:
        return pod_spec

    def has_config_changed(self, cd: CanaryDescriptor) -> bool:
        return False
