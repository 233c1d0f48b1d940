from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from canary.src.errors import RolloutNotReadyError
from canary.src.metrics import METRICS

PROGRESS_DEADLINE_EXCEEDED = "ProgressDeadlineExceeded"
MINIMUM_REPLICAS_UNAVAILABLE = "MinimumReplicasUnavailable"


class Verdict(str, Enum):
    READY = "ready"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class Condition:
    type: str
    status: str
    reason: str = ""
    last_transition_time: datetime | None = None


@dataclass(frozen=True)
class RolloutStatus:
    """Kind-independent view of a workload's rollout status.

    ``desired_replicas`` is ``None`` when the kind has no declared replica
    count (DaemonSets schedule one pod per node).
    """

    name: str
    generation: int
    observed_generation: int
    desired_replicas: int | None
    updated_replicas: int
    total_replicas: int
    available_replicas: int
    progressing: Condition | None = None
    available: Condition | None = None


@dataclass(frozen=True)
class Readiness:
    verdict: Verdict
    message: str = ""

    @property
    def ready(self) -> bool:
        return self.verdict is Verdict.READY


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a Kubernetes RFC 3339 timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def find_condition(conditions: Iterable[Mapping[str, Any]] | None, condition_type: str) -> Condition | None:
    """Return the status condition of the given type from a raw ``status.conditions`` list."""
    for raw in conditions or []:
        if raw.get("type") == condition_type:
            return Condition(
                type=condition_type,
                status=str(raw.get("status", "")),
                reason=raw.get("reason") or "",
                last_transition_time=parse_timestamp(raw.get("lastTransitionTime")),
            )
    return None


def _stuck_past_deadline(status: RolloutStatus, deadline_seconds: int, now: datetime) -> bool:
    available = status.available
    if available is None or available.status != "False":
        return False
    if available.reason != MINIMUM_REPLICAS_UNAVAILABLE or available.last_transition_time is None:
        return False
    return available.last_transition_time + timedelta(seconds=deadline_seconds) < now


def classify(status: RolloutStatus, deadline_seconds: int, now: datetime) -> Readiness:
    """Classify a rollout as ready, not ready (retry later) or stuck (stop retrying).

    Rules are evaluated in order and the first match wins:

    1. Status not yet observed for the current generation: retry.
    2. Progressing condition reports ``ProgressDeadlineExceeded``: fatal.
    3. Fewer updated replicas than declared: retry.
    4. Old replicas still running: retry.
    5. Updated replicas not yet available: retry.

    Rules 3-5 become fatal once the ``Available`` condition has reported
    ``MinimumReplicasUnavailable`` for longer than the progress deadline.
    """
    if status.generation > status.observed_generation:
        return Readiness(
            Verdict.RETRYABLE,
            "waiting for rollout to finish: observed generation less than desired generation",
        )

    progressing = status.progressing
    if progressing is not None and progressing.reason == PROGRESS_DEADLINE_EXCEEDED:
        return Readiness(Verdict.FATAL, f"{status.name!r} exceeded its progress deadline")

    pending = (
        Verdict.FATAL if _stuck_past_deadline(status, deadline_seconds, now) else Verdict.RETRYABLE
    )
    if status.desired_replicas is not None and status.updated_replicas < status.desired_replicas:
        return Readiness(
            pending,
            f"waiting for rollout to finish: {status.updated_replicas} out of "
            f"{status.desired_replicas} new replicas have been updated",
        )
    if status.total_replicas > status.updated_replicas:
        return Readiness(
            pending,
            f"waiting for rollout to finish: {status.total_replicas - status.updated_replicas} "
            "old replicas are pending termination",
        )
    if status.available_replicas < status.updated_replicas:
        return Readiness(
            pending,
            f"waiting for rollout to finish: {status.available_replicas} of "
            f"{status.updated_replicas} updated replicas are available",
        )
    return Readiness(Verdict.READY)


def ensure_ready(
    kind: str,
    status: RolloutStatus,
    deadline_seconds: int,
    now: datetime,
    namespace: str,
) -> None:
    """Raise :class:`RolloutNotReadyError` unless the rollout is ready."""
    readiness = classify(status, deadline_seconds, now)
    METRICS.readiness_checks_total.labels(kind=kind, verdict=readiness.verdict.value).inc()
    if readiness.ready:
        return
    raise RolloutNotReadyError(
        readiness.message,
        retryable=readiness.verdict is Verdict.RETRYABLE,
        operation="readiness",
        name=status.name,
        namespace=namespace,
    )
