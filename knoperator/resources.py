"""Transformer that applies container resource requirements to deployments."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from knoperator.component import KComponent, ResourceRequirementsOverride
from knoperator.manifest import FieldTypeError, Transformer, nested_field

_log = logging.getLogger(__name__)


def resource_requirements_transform(obj: KComponent,
                                    log: Optional[logging.Logger] = None) -> Transformer:
    """Merge spec.resources into the matching containers of every Deployment.

    Deployments whose override in spec.deployments carries resources are left alone;
    those resources are applied by the deployment override transformer instead.
    """
    logger = log or _log

    def transformer(resource: dict[str, Any]) -> None:
        if resource.get("kind") != "Deployment":
            return
        name = (resource.get("metadata") or {}).get("name", "")
        if any(o.name == name and o.resources for o in obj.spec.deployment_override):
            return
        for container in _containers(resource):
            override = _find(obj.spec.resources, container.get("name", ""))
            if override is not None:
                logger.debug("Setting resources deployment=%s container=%s",
                             name, override.container)
                _apply_requirements(override, container)

    return transformer


def _containers(resource: dict[str, Any]) -> list[dict[str, Any]]:
    containers, _ = nested_field(resource, "spec", "template", "spec", "containers")
    if containers is None:
        return []
    if not isinstance(containers, list):
        raise FieldTypeError("spec.template.spec.containers is not a list")
    return containers


def _find(overrides: Iterable[ResourceRequirementsOverride],
          container_name: str) -> Optional[ResourceRequirementsOverride]:
    return next((o for o in overrides if o.container == container_name), None)


def _merge(source: dict[str, Any], target: dict[str, Any], key: str) -> None:
    """Overlay ``source`` on ``target[key]``, or replace it when it is empty."""
    current = target.get(key)
    if current:
        current.update(source)
    elif source:
        target[key] = dict(source)
    else:
        target.pop(key, None)


def _apply_requirements(override: ResourceRequirementsOverride,
                        container: dict[str, Any]) -> None:
    requirements = container.get("resources") or {}
    _merge(override.limits, requirements, "limits")
    _merge(override.requests, requirements, "requests")
    if requirements:
        container["resources"] = requirements
    else:
        container.pop("resources", None)