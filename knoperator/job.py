"""Transformer giving Jobs version-specific names and disabling sidecar injection."""

from __future__ import annotations

from typing import Any

from knoperator.component import KComponent, KnativeEventing
from knoperator.manifest import Transformer, nested_field, set_nested_field
from knoperator.releases import target_version

ISTIO_ANNOTATION_NAME = "sidecar.istio.io/inject"


def job_transform(obj: KComponent) -> Transformer:
    """Suffix Job names with the component and target version."""

    def transformer(resource: dict[str, Any]) -> None:
        if resource.get("kind") != "Job":
            return
        component = "eventing" if isinstance(obj, KnativeEventing) else "serving"
        version = target_version(obj)
        metadata = resource.get("metadata") or {}
        name = metadata.get("name") or ""
        if name == "":
            new_name = f"{metadata.get('generateName') or ''}{component}-{version}"
        else:
            new_name = f"{name}-{component}-{version}"
        set_nested_field(resource, new_name, "metadata", "name")
        _add_istio_ignore_annotation(resource)

    return transformer


def _add_istio_ignore_annotation(job: dict[str, Any]) -> None:
    annotations, _ = nested_field(job, "spec", "template", "metadata", "annotations")
    annotations = dict(annotations or {})
    if not annotations.get(ISTIO_ANNOTATION_NAME):
        annotations[ISTIO_ANNOTATION_NAME] = "false"
        set_nested_field(job, annotations, "spec", "template", "metadata", "annotations")