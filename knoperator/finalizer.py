"""Merge patches that remove a finalizer from a component."""

from __future__ import annotations

import json
from typing import Optional

from knoperator.component import KComponent


def finalizer_removal_patch(obj: KComponent, to_remove: str) -> Optional[bytes]:
    """Return a JSON merge patch removing ``to_remove``, or None if it is not present."""
    finalizers = set(obj.finalizers)
    if to_remove not in finalizers:
        return None
    finalizers.discard(to_remove)
    patch = {
        "metadata": {
            "finalizers": sorted(finalizers),
            "resourceVersion": obj.resource_version,
        }
    }
    try:
        return json.dumps(patch, separators=(",", ":"), sort_keys=True).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ValueError(f"failed to construct finalizer patch: {exc}") from exc