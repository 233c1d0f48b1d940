from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from kubernetes.client import AppsV1Api, CoreV1Api, CustomObjectsApi

from canary.src.cloneset import CloneSetController
from canary.src.daemonset import DaemonSetController
from canary.src.deployment import DeploymentController
from canary.src.service import ServiceController
from canary.src.tracker import ConfigTracker
from canary.src.workload import WorkloadController, utc_now

DEFAULT_KIND = "Deployment"


class ControllerFactory:
    """Maps a canary target kind to its workload controller.

    Controllers are stateless, so one instance per kind is built up front
    and shared by every canary.  Unknown kinds get the Deployment
    controller rather than an error.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        apps_api: AppsV1Api,
        custom_api: CustomObjectsApi,
        config_tracker: ConfigTracker,
        labels: Iterable[str],
        include_label_prefix: Iterable[str] = (),
        logger: logging.Logger | None = None,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        labels = list(labels)
        include_label_prefix = list(include_label_prefix)
        shared: dict[str, Any] = {
            "config_tracker": config_tracker,
            "labels": labels,
            "include_label_prefix": include_label_prefix,
            "now_fn": now_fn,
        }
        # without an explicit logger each controller logs under its own module
        if logger is not None:
            shared["logger"] = logger
        self._controllers: dict[str, WorkloadController] = {
            DeploymentController.kind: DeploymentController(apps_api=apps_api, **shared),
            DaemonSetController.kind: DaemonSetController(apps_api=apps_api, **shared),
            CloneSetController.kind: CloneSetController(custom_api=custom_api, **shared),
            ServiceController.kind: ServiceController(
                core_api=core_api,
                include_label_prefix=include_label_prefix,
                logger=logger,
            ),
        }

    @property
    def kinds(self) -> frozenset[str]:
        return frozenset(self._controllers)

    def controller(self, kind: str) -> WorkloadController:
        return self._controllers.get(kind, self._controllers[DEFAULT_KIND])
