"""Transformer applying per-service overrides from spec.services."""

from __future__ import annotations

import logging
from typing import Any, Optional

from knoperator.component import KComponent, ServiceOverride
from knoperator.manifest import Transformer, nested_field, set_nested_field

_log = logging.getLogger(__name__)


def services_transform(obj: KComponent,
                       log: Optional[logging.Logger] = None) -> Optional[Transformer]:
    """Return a transformer applying spec.services, or None when there are no overrides."""
    overrides = obj.spec.service_override
    if not overrides:
        return None
    logger = log or _log

    def transformer(resource: dict[str, Any]) -> None:
        if resource.get("kind") != "Service":
            return
        name = (resource.get("metadata") or {}).get("name", "")
        for override in overrides:
            if override.name == name:
                logger.debug("Overriding service %s", name)
                _apply_override(override, resource)

    return transformer


def _apply_override(override: ServiceOverride, service: dict[str, Any]) -> None:
    _overlay(service, override.labels, "metadata", "labels")
    _overlay(service, override.annotations, "metadata", "annotations")
    _overlay(service, override.selector, "spec", "selector")


def _overlay(resource: dict[str, Any], values: dict[str, str], *path: str) -> None:
    if not values:
        return
    current, _ = nested_field(resource, *path)
    merged = dict(current or {})
    merged.update(values)
    set_nested_field(resource, merged, *path)