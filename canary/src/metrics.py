from __future__ import annotations

from dataclasses import dataclass, field

from prometheus_client import Counter


@dataclass(frozen=True)
class WorkloadMetrics:
    """Prometheus metrics recorded by the workload controllers.

    Every series carries a ``kind`` label (``Deployment``, ``CloneSet``, ...)
    so operators can tell which workload family is misbehaving.
    """

    primary_created_total: Counter = field(
        default_factory=lambda: Counter(
            "canary_workload_primary_created_total",
            "Total primary workloads created from a canary target",
            ["kind"],
        )
    )
    promotions_total: Counter = field(
        default_factory=lambda: Counter(
            "canary_workload_promotions_total",
            "Total target revisions promoted to the primary workload",
            ["kind"],
        )
    )
    scale_transitions_total: Counter = field(
        default_factory=lambda: Counter(
            "canary_workload_scale_transitions_total",
            "Total scale-to-zero marker changes written to target workloads",
            ["kind", "direction"],
        )
    )
    readiness_checks_total: Counter = field(
        default_factory=lambda: Counter(
            "canary_workload_readiness_checks_total",
            "Total readiness evaluations by verdict",
            ["kind", "verdict"],
        )
    )
    api_errors_total: Counter = field(
        default_factory=lambda: Counter(
            "canary_workload_api_errors_total",
            "Total Kubernetes API errors by HTTP status",
            ["kind", "status"],
        )
    )


METRICS = WorkloadMetrics()
