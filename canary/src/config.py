from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from kubernetes.client import AppsV1Api, CoreV1Api, CustomObjectsApi

from canary.src.errors import ConfigurationError
from canary.src.factory import ControllerFactory
from canary.src.tracker import ConfigTracker

DEFAULT_SELECTOR_LABELS = "app,name,app.kubernetes.io/name"


@dataclass(frozen=True)
class FactorySettings:
    """Process-wide settings shared by every workload controller.

    Attributes:
        selector_labels:      Candidate selector label keys, in priority order,
                              one of which pairs a target with its primary.
        include_label_prefix: Label key prefixes copied from the target onto
                              the primary (``*`` copies all).
    """

    selector_labels: tuple[str, ...]
    include_label_prefix: tuple[str, ...]


def env_list(name: str, default: str, env: Mapping[str, str] | None = None) -> tuple[str, ...]:
    """Parse a comma-separated env var, dropping blanks and surrounding whitespace."""
    values = env if env is not None else os.environ
    raw = values.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def load_settings(env: Mapping[str, str] | None = None) -> FactorySettings:
    """Load factory settings from the environment.

    ``SELECTOR_LABELS`` (default ``app,name,app.kubernetes.io/name``) must
    name at least one label key; ``INCLUDE_LABEL_PREFIX`` defaults to
    copying no labels.
    """
    selector_labels = env_list("SELECTOR_LABELS", DEFAULT_SELECTOR_LABELS, env=env)
    if not selector_labels:
        raise ConfigurationError(
            "SELECTOR_LABELS must contain at least one label key", operation="load settings"
        )

    return FactorySettings(
        selector_labels=selector_labels,
        include_label_prefix=env_list("INCLUDE_LABEL_PREFIX", "", env=env),
    )


def build_factory_from_env(
    core_api: CoreV1Api,
    apps_api: AppsV1Api,
    custom_api: CustomObjectsApi,
    config_tracker: ConfigTracker,
    env: Mapping[str, str] | None = None,
) -> ControllerFactory:
    settings = load_settings(env)
    return ControllerFactory(
        core_api=core_api,
        apps_api=apps_api,
        custom_api=custom_api,
        config_tracker=config_tracker,
        labels=settings.selector_labels,
        include_label_prefix=settings.include_label_prefix,
    )
