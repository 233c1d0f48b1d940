from __future__ import annotations

from typing import Any

import pytest

from canary.src.daemonset import DaemonSetController
from canary.src.errors import ConfigurationError, RolloutNotReadyError
from canary.tests.fakes import (
    FakeAppsApi,
    FakeCluster,
    RecordingTracker,
    fixed_now,
    make_canary,
    make_workload,
)


def _make_daemonset(**kwargs: Any) -> dict[str, Any]:
    daemonset = make_workload("DaemonSet", replicas=None, **kwargs)
    daemonset["status"] = {
        "observedGeneration": 1,
        "desiredNumberScheduled": 3,
        "currentNumberScheduled": 3,
        "updatedNumberScheduled": 3,
        "numberAvailable": 3,
        "numberReady": 3,
    }
    return daemonset


def _setup(**kwargs: Any) -> tuple[FakeCluster, DaemonSetController]:
    cluster = FakeCluster()
    cluster.put("DaemonSet", _make_daemonset(**kwargs))
    controller = DaemonSetController(
        apps_api=FakeAppsApi(cluster),
        config_tracker=RecordingTracker(cluster),
        labels=["app"],
        now_fn=fixed_now,
    )
    return cluster, controller


def test_initialize_creates_primary_without_replica_count() -> None:
    cluster, controller = _setup(strategy_type="RollingUpdate")

    controller.initialize(make_canary(kind="DaemonSet", skip_analysis=True))

    primary = cluster.stored("DaemonSet", "ns", "demo-primary")
    assert "replicas" not in primary["spec"]
    assert primary["spec"]["updateStrategy"] == {"type": "RollingUpdate"}
    assert cluster.writes("DaemonSet") == [
        "create:DaemonSet/demo-primary",
        "replace:DaemonSet/demo",
    ]


def test_initialize_rejects_on_delete_strategy() -> None:
    _, controller = _setup(strategy_type="OnDelete")

    with pytest.raises(ConfigurationError):
        controller.initialize(make_canary(kind="DaemonSet"))


@pytest.mark.parametrize(
    ("status_update", "fragment"),
    [
        ({"updatedNumberScheduled": 1}, "1 out of 3 new replicas have been updated"),
        ({"currentNumberScheduled": 4}, "1 old replicas are pending termination"),
        ({"numberAvailable": 2}, "2 of 3 updated replicas are available"),
        ({"observedGeneration": 0}, "observed generation"),
    ],
)
def test_is_canary_ready_maps_scheduled_counts(status_update: dict[str, int], fragment: str) -> None:
    cluster, controller = _setup()
    cluster.stored("DaemonSet", "ns", "demo")["status"].update(status_update)

    with pytest.raises(RolloutNotReadyError) as excinfo:
        controller.is_canary_ready(make_canary(kind="DaemonSet"))

    assert excinfo.value.retryable is True
    assert fragment in str(excinfo.value)


def test_is_primary_ready_never_halts_on_replica_count() -> None:
    cluster, controller = _setup()
    cluster.put("DaemonSet", _make_daemonset(name="demo-primary", selector={"app": "demo-primary"}))

    controller.is_primary_ready(make_canary(kind="DaemonSet"))
