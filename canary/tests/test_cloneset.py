from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from canary.src.cloneset import CloneSetController
from canary.src.descriptor import CanaryPhase
from canary.src.errors import ConfigurationError, RolloutNotReadyError
from canary.src.template import SCALE_TO_ZERO_NODE_SELECTOR
from canary.tests.fakes import (
    FIXED_NOW,
    FakeCluster,
    FakeCustomObjectsApi,
    RecordingTracker,
    fixed_now,
    make_canary,
    make_workload,
)


def _make_cloneset(**kwargs: Any) -> dict[str, Any]:
    return make_workload("CloneSet", api_version="apps.kruise.io/v1alpha1", **kwargs)


def _setup(**kwargs: Any) -> tuple[FakeCluster, FakeCustomObjectsApi, CloneSetController]:
    cluster = FakeCluster()
    cluster.put("CloneSet", _make_cloneset(**kwargs))
    custom_api = FakeCustomObjectsApi(cluster)
    controller = CloneSetController(
        custom_api=custom_api,
        config_tracker=RecordingTracker(cluster),
        labels=["app"],
        now_fn=fixed_now,
    )
    return cluster, custom_api, controller


def test_initialize_creates_primary_cloneset_through_custom_objects_api() -> None:
    cluster, custom_api, controller = _setup(strategy_type="ReCreate", min_ready_seconds=3)

    controller.initialize(make_canary(kind="CloneSet", skip_analysis=True))

    primary = cluster.stored("CloneSet", "ns", "demo-primary")
    assert primary["apiVersion"] == "apps.kruise.io/v1alpha1"
    assert primary["kind"] == "CloneSet"
    assert primary["spec"]["updateStrategy"] == {"type": "ReCreate"}
    assert primary["spec"]["minReadySeconds"] == 3
    assert "replicas" not in primary["spec"]
    assert primary["spec"]["selector"] == {"matchLabels": {"app": "demo-primary"}}
    assert cluster.stored("CloneSet", "ns", "demo")["spec"]["template"]["spec"]["nodeSelector"] == dict(
        SCALE_TO_ZERO_NODE_SELECTOR
    )
    assert set(custom_api.calls) == {("apps.kruise.io", "v1alpha1", "clonesets")}


@pytest.mark.parametrize("strategy_type", ["InPlaceIfPossible", "InPlaceOnly"])
def test_initialize_rejects_in_place_update_strategies(strategy_type: str) -> None:
    cluster, _, controller = _setup(strategy_type=strategy_type)

    with pytest.raises(ConfigurationError) as excinfo:
        controller.initialize(make_canary(kind="CloneSet"))

    assert "ReCreate" in str(excinfo.value)
    assert cluster.writes() == []


def test_promote_copies_update_strategy_and_strips_marker() -> None:
    cluster, _, controller = _setup(
        strategy_type="ReCreate",
        min_ready_seconds=7,
        node_selector=dict(SCALE_TO_ZERO_NODE_SELECTOR),
    )
    cluster.put(
        "CloneSet",
        _make_cloneset(name="demo-primary", selector={"app": "demo-primary"}, min_ready_seconds=0),
    )

    controller.promote(make_canary(kind="CloneSet", phase=CanaryPhase.PROMOTING))

    primary = cluster.stored("CloneSet", "ns", "demo-primary")
    assert primary["spec"]["minReadySeconds"] == 7
    assert primary["spec"]["updateStrategy"] == {"type": "ReCreate"}
    assert "nodeSelector" not in primary["spec"]["template"]["spec"]
    assert primary["spec"]["template"]["metadata"]["labels"]["app"] == "demo-primary"


def test_is_primary_ready_halts_on_zero_replicas() -> None:
    cluster, _, controller = _setup()
    cluster.put(
        "CloneSet",
        _make_cloneset(name="demo-primary", selector={"app": "demo-primary"}, replicas=0),
    )

    with pytest.raises(ConfigurationError):
        controller.is_primary_ready(make_canary(kind="CloneSet"))


def test_is_canary_ready_without_conditions_is_always_retryable() -> None:
    cluster, _, controller = _setup()
    cluster.stored("CloneSet", "ns", "demo")["status"]["availableReplicas"] = 1

    with pytest.raises(RolloutNotReadyError) as excinfo:
        controller.is_canary_ready(make_canary(kind="CloneSet"))

    assert excinfo.value.retryable is True
    assert "1 of 2 updated replicas are available" in str(excinfo.value)


def test_is_canary_ready_uses_published_conditions() -> None:
    cluster, _, controller = _setup()
    status = cluster.stored("CloneSet", "ns", "demo")["status"]
    status["availableReplicas"] = 1
    status["conditions"] = [
        {
            "type": "Available",
            "status": "False",
            "reason": "MinimumReplicasUnavailable",
            "lastTransitionTime": (FIXED_NOW - timedelta(minutes=5)).isoformat(),
        }
    ]

    with pytest.raises(RolloutNotReadyError) as excinfo:
        controller.is_canary_ready(make_canary(kind="CloneSet", progress_deadline_seconds=60))

    assert excinfo.value.retryable is False


def test_is_canary_ready_when_rolled_out() -> None:
    _, _, controller = _setup()

    assert controller.is_canary_ready(make_canary(kind="CloneSet")) is True
