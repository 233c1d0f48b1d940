from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

CANARY_API_VERSION = "flagger.app/v1beta1"
CANARY_KIND = "Canary"
DEFAULT_PROGRESS_DEADLINE_SECONDS = 600


class CanaryPhase(str, Enum):
    NONE = ""
    INITIALIZING = "Initializing"
    INITIALIZED = "Initialized"
    WAITING = "Waiting"
    PROGRESSING = "Progressing"
    WAITING_PROMOTION = "WaitingPromotion"
    PROMOTING = "Promoting"
    FINALISING = "Finalising"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TERMINATING = "Terminating"
    TERMINATED = "Terminated"


@dataclass(frozen=True)
class TargetRef:
    kind: str
    name: str
    api_version: str = "apps/v1"


@dataclass(frozen=True)
class ServicePorts:
    """Service settings used by port discovery.

    ``target_port`` mirrors the Kubernetes ``IntOrString``: an int is matched
    against container port numbers, a str against container port names.
    """

    port: int = 0
    target_port: int | str | None = None
    port_discovery: bool = False


@dataclass(frozen=True)
class CanaryDescriptor:
    """Read-only view of a Canary custom resource.

    Owned by the CRD layer; the workload controllers only read it.
    ``last_applied_spec`` and ``last_promoted_spec`` are the pod template
    hashes recorded in the Canary status by the reconciliation loop.
    """

    name: str
    namespace: str
    target_ref: TargetRef
    uid: str = ""
    phase: CanaryPhase = CanaryPhase.NONE
    progress_deadline_seconds: int = DEFAULT_PROGRESS_DEADLINE_SECONDS
    skip_analysis: bool = False
    service: ServicePorts = field(default_factory=ServicePorts)
    last_applied_spec: str = ""
    last_promoted_spec: str = ""
    api_version: str = CANARY_API_VERSION

    @property
    def key(self) -> str:
        return f"{self.name}.{self.namespace}"

    def is_initial_phase(self) -> bool:
        return self.phase in {CanaryPhase.NONE, CanaryPhase.INITIALIZING}

    def owner_reference(self) -> dict[str, Any]:
        """Return a controller owner reference pointing at this Canary."""
        return {
            "apiVersion": self.api_version,
            "kind": CANARY_KIND,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> CanaryDescriptor:
        """Build a descriptor from a Canary object as returned by ``CustomObjectsApi``."""
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        target = spec.get("targetRef") or {}
        service = spec.get("service") or {}

        name = metadata.get("name")
        namespace = metadata.get("namespace")
        if not name or not namespace:
            raise ValueError("canary metadata.name and metadata.namespace are required")
        if not target.get("name"):
            raise ValueError(f"canary {name}.{namespace} spec.targetRef.name is required")

        deadline = spec.get("progressDeadlineSeconds")
        return cls(
            name=name,
            namespace=namespace,
            uid=metadata.get("uid", ""),
            api_version=obj.get("apiVersion", CANARY_API_VERSION),
            target_ref=TargetRef(
                kind=target.get("kind", "Deployment"),
                name=target["name"],
                api_version=target.get("apiVersion", "apps/v1"),
            ),
            phase=CanaryPhase(status.get("phase", "")),
            progress_deadline_seconds=(
                int(deadline) if deadline is not None else DEFAULT_PROGRESS_DEADLINE_SECONDS
            ),
            skip_analysis=bool(spec.get("skipAnalysis", False)),
            service=ServicePorts(
                port=int(service.get("port", 0)),
                target_port=service.get("targetPort"),
                port_discovery=bool(service.get("portDiscovery", False)),
            ),
            last_applied_spec=status.get("lastAppliedSpec", ""),
            last_promoted_spec=status.get("lastPromotedSpec", ""),
        )
