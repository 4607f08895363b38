"""Transformer applying per-deployment overrides from spec.deployments."""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Optional

from knoperator.component import DeploymentOverride, EnvRequirementsOverride, KComponent
from knoperator.manifest import Transformer, nested_field, set_nested_field
from knoperator.resources import _apply_requirements, _containers, _find

_log = logging.getLogger(__name__)


def deployments_transform(obj: KComponent,
                          log: Optional[logging.Logger] = None) -> Optional[Transformer]:
    """Return a transformer applying spec.deployments, or None when there are no overrides."""
    overrides = obj.spec.deployment_override
    if not overrides:
        return None
    logger = log or _log

    def transformer(resource: dict[str, Any]) -> None:
        if resource.get("kind") != "Deployment":
            return
        name = (resource.get("metadata") or {}).get("name", "")
        for override in overrides:
            if override.name == name:
                logger.debug("Overriding deployment %s", name)
                _apply_override(override, resource)

    return transformer


def _apply_override(override: DeploymentOverride, deployment: dict[str, Any]) -> None:
    for values, path in (
        (override.labels, ("metadata", "labels")),
        (override.labels, ("spec", "template", "metadata", "labels")),
        (override.annotations, ("metadata", "annotations")),
        (override.annotations, ("spec", "template", "metadata", "annotations")),
    ):
        _overlay(deployment, values, *path)

    if override.replicas is not None:
        set_nested_field(deployment, override.replicas, "spec", "replicas")
    if override.node_selector:
        set_nested_field(deployment, dict(override.node_selector),
                         "spec", "template", "spec", "nodeSelector")
    if override.tolerations:
        set_nested_field(deployment, copy.deepcopy(override.tolerations),
                         "spec", "template", "spec", "tolerations")
    if override.affinity is not None:
        set_nested_field(deployment, copy.deepcopy(override.affinity),
                         "spec", "template", "spec", "affinity")

    if override.resources:
        for container in _containers(deployment):
            requirements = _find(override.resources, container.get("name", ""))
            if requirements is not None:
                _apply_requirements(requirements, container)

    if override.env:
        for container in _containers(deployment):
            env_override = _find_env_override(override.env, container.get("name", ""))
            if env_override is not None:
                _merge_env(env_override.env_vars, container)


def _overlay(resource: dict[str, Any], values: dict[str, str], *path: str) -> None:
    if not values:
        return
    current, _ = nested_field(resource, *path)
    merged = dict(current or {})
    merged.update(values)
    set_nested_field(resource, merged, *path)


def _find_env_override(overrides: Iterable[EnvRequirementsOverride],
                       container_name: str) -> Optional[EnvRequirementsOverride]:
    return next((o for o in overrides if o.container == container_name), None)


def _merge_env(source: list[dict[str, Any]], container: dict[str, Any]) -> None:
    """Replace variables of the same name, append new ones; take ``source`` if none exist."""
    target = list(container.get("env") or [])
    if not target:
        if source:
            container["env"] = copy.deepcopy(source)
        else:
            container.pop("env", None)
        return
    for var in source:
        name = var.get("name")
        if any(existing.get("name") == name for existing in target):
            target = [copy.deepcopy(var) if existing.get("name") == name else existing
                      for existing in target]
        else:
            target.append(copy.deepcopy(var))
    container["env"] = target