"""Transformer that raises replica counts when a highly available control plane is requested."""

from __future__ import annotations

import logging
from typing import Any, Optional

from knoperator.component import KComponent
from knoperator.manifest import FieldTypeError, Transformer, nested_field, set_nested_field

_HA_UNSUPPORTED = frozenset({"pingsource-mt-adapter"})

# Replicas of these deployments are governed by their HorizontalPodAutoscaler.
_HAS_HORIZONTAL_POD_AUTOSCALER = frozenset({"webhook", "activator"})


def _nested_int(obj: dict[str, Any], *fields: str) -> tuple[int, bool]:
    value, found = nested_field(obj, *fields)
    if not found:
        return 0, False
    if not isinstance(value, int) or isinstance(value, bool):
        raise FieldTypeError(
            f"{'.'.join(fields)} accessor error: {value!r} is of type "
            f"{type(value).__name__}, expected int")
    return value, True


def high_availability_transform(obj: KComponent,
                                log: Optional[logging.Logger] = None) -> Transformer:
    """Set deployment replicas and HPA minimums from spec.high-availability."""

    def transformer(resource: dict[str, Any]) -> None:
        name = (resource.get("metadata") or {}).get("name", "")
        # A deployment override's replicas take precedence over high availability.
        if any(o.replicas is not None and o.name == name for o in obj.spec.deployment_override):
            return

        ha = obj.spec.high_availability
        if ha is None or ha.replicas is None:
            return
        replicas = int(ha.replicas)
        kind = resource.get("kind")

        if (kind == "Deployment" and name not in _HA_UNSUPPORTED
                and name not in _HAS_HORIZONTAL_POD_AUTOSCALER):
            set_nested_field(resource, replicas, "spec", "replicas")

        if kind == "HorizontalPodAutoscaler":
            minimum, _ = _nested_int(resource, "spec", "minReplicas")
            if minimum >= replicas:
                return
            set_nested_field(resource, replicas, "spec", "minReplicas")
            maximum, found = _nested_int(resource, "spec", "maxReplicas")
            if not found:
                return
            # Raise the maximum by as much so it never falls below the minimum.
            set_nested_field(resource, maximum + (replicas - minimum), "spec", "maxReplicas")

    return transformer