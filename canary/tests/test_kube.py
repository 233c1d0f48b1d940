from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from kubernetes.client import (
    ApiException,
    V1Deployment,
    V1DeploymentCondition,
    V1DeploymentSpec,
    V1DeploymentStatus,
    V1LabelSelector,
    V1ObjectMeta,
    V1PodTemplateSpec,
)

from canary.src.errors import ApiCallError, ConflictError, ErrorKind, NotFoundError
from canary.src.kube import api_error, build_clients, load_kube_configuration, to_dict


def test_load_kube_configuration_in_cluster() -> None:
    with (
        patch("canary.src.kube.config.load_incluster_config") as mock_incluster,
        patch("canary.src.kube.config.load_kube_config") as mock_kubeconfig,
    ):
        load_kube_configuration()

    mock_incluster.assert_called_once()
    mock_kubeconfig.assert_not_called()


def test_load_kube_configuration_local_fallback() -> None:
    from kubernetes.config.config_exception import ConfigException

    with (
        patch(
            "canary.src.kube.config.load_incluster_config",
            side_effect=ConfigException("not in cluster"),
        ),
        patch("canary.src.kube.config.load_kube_config") as mock_kubeconfig,
    ):
        load_kube_configuration()

    mock_kubeconfig.assert_called_once()


def test_build_clients_returns_tuple() -> None:
    with patch("canary.src.kube.client") as mock_client:
        mock_client.CoreV1Api.return_value = SimpleNamespace(name="core")
        mock_client.AppsV1Api.return_value = SimpleNamespace(name="apps")
        mock_client.CustomObjectsApi.return_value = SimpleNamespace(name="custom")
        core, apps, custom = build_clients()

    assert core.name == "core"
    assert apps.name == "apps"
    assert custom.name == "custom"


def test_to_dict_serialises_typed_models_to_camel_case() -> None:
    deployment = V1Deployment(
        metadata=V1ObjectMeta(name="demo", namespace="ns", labels={"app": "demo"}),
        spec=V1DeploymentSpec(
            selector=V1LabelSelector(match_labels={"app": "demo"}),
            template=V1PodTemplateSpec(metadata=V1ObjectMeta(labels={"app": "demo"})),
            progress_deadline_seconds=60,
        ),
        status=V1DeploymentStatus(
            observed_generation=2,
            conditions=[
                V1DeploymentCondition(
                    type="Available",
                    status="False",
                    reason="MinimumReplicasUnavailable",
                    last_transition_time=datetime(2026, 1, 1, 11, 0, tzinfo=UTC),
                )
            ],
        ),
    )

    result = to_dict(deployment)

    assert result["metadata"] == {"name": "demo", "namespace": "ns", "labels": {"app": "demo"}}
    assert result["spec"]["selector"] == {"matchLabels": {"app": "demo"}}
    assert result["spec"]["progressDeadlineSeconds"] == 60
    assert result["status"]["observedGeneration"] == 2
    condition = result["status"]["conditions"][0]
    assert condition["lastTransitionTime"].startswith("2026-01-01T11:00:00")


def test_to_dict_passes_custom_object_dicts_through() -> None:
    obj = {"apiVersion": "apps.kruise.io/v1alpha1", "kind": "CloneSet", "spec": {"replicas": 2}}

    assert to_dict(obj) == obj
    assert to_dict(None) == {}


def test_to_dict_rejects_non_objects() -> None:
    with pytest.raises(TypeError):
        to_dict(["not", "an", "object"])


@pytest.mark.parametrize(
    ("status", "expected_type", "expected_kind"),
    [
        (404, NotFoundError, ErrorKind.NOT_FOUND),
        (409, ConflictError, ErrorKind.CONFLICT),
        (500, ApiCallError, ErrorKind.API),
        (403, ApiCallError, ErrorKind.API),
    ],
)
def test_api_error_maps_http_status(
    status: int, expected_type: type[ApiCallError], expected_kind: ErrorKind
) -> None:
    exc = ApiException(status=status, reason="Reason")

    error = api_error(exc, "promote", "Deployment", "demo-primary", "ns")

    assert type(error) is expected_type
    assert error.kind is expected_kind
    assert error.retryable is True
    assert error.status == status
    assert error.operation == "promote"
    assert error.name == "demo-primary"
    assert error.namespace == "ns"
    assert str(error) == f"promote deployment demo-primary.ns failed: {status} Reason"
