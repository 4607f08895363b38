"""Transformer applying overrides from spec.podDisruptionBudgets."""

from __future__ import annotations

import logging
from typing import Any, Optional

from knoperator.component import KComponent
from knoperator.manifest import Transformer, set_nested_field

_log = logging.getLogger(__name__)


def pod_disruption_budgets_transform(obj: KComponent,
                                     log: Optional[logging.Logger] = None
                                     ) -> Optional[Transformer]:
    """Return a transformer setting minAvailable on named budgets, or None without overrides.

    The first override matching a budget that leaves minAvailable unset ends the
    transformation of that budget.
    """
    overrides = obj.spec.pod_disruption_budget_override
    if not overrides:
        return None
    logger = log or _log

    def transformer(resource: dict[str, Any]) -> None:
        if resource.get("kind") != "PodDisruptionBudget":
            return
        name = (resource.get("metadata") or {}).get("name", "")
        for override in overrides:
            if override.name != name:
                continue
            if override.min_available is None:
                return
            logger.debug("Setting minAvailable of %s (%s) to %s",
                         name, resource.get("apiVersion"), override.min_available)
            set_nested_field(resource, override.min_available, "spec", "minAvailable")

    return transformer