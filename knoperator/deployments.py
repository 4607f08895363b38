"""Readiness checks for the deployments of a manifest."""

from __future__ import annotations

from typing import Any

from knoperator.component import KComponent
from knoperator.manifest import Manifest, NotFoundError, by_kind


def check_deployments(manifest: Manifest, instance: KComponent) -> None:
    """Record in the instance status whether every deployment in the manifest is available."""
    status = instance.status
    non_ready: list[str] = []
    for resource in manifest.filter(by_kind("Deployment")).resources:
        try:
            deployment = manifest.client.get(resource)
        except NotFoundError:
            status.mark_deployments_not_ready(["all"])
            return
        except Exception:
            status.mark_deployments_not_ready(["all"])
            raise
        if not is_deployment_available(deployment):
            non_ready.append((deployment.get("metadata") or {}).get("name", ""))

    if non_ready:
        status.mark_deployments_not_ready(non_ready)
        return
    status.mark_deployments_available()


def is_deployment_available(deployment: dict[str, Any]) -> bool:
    conditions = (deployment.get("status") or {}).get("conditions") or []
    return any(
        condition.get("type") == "Available" and condition.get("status") == "True"
        for condition in conditions
    )