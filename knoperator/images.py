"""Transformer that points container images at another registry."""

from __future__ import annotations

import logging
from typing import Any, Optional

from knoperator.component import Registry
from knoperator.manifest import FieldTypeError, Transformer, nested_field, set_nested_field

CONTAINER_NAME_VARIABLE = "${NAME}"
_DELIMITER = "/"
_CACHING_API_VERSION = "caching.internal.knative.dev/v1alpha1"
_POD_SPEC_KINDS = frozenset({"Deployment", "DaemonSet", "Job"})

_log = logging.getLogger(__name__)


def image_transform(registry: Registry, log: Optional[logging.Logger] = None) -> Transformer:
    """Rewrite container images, image env vars and pull secrets from ``registry``."""
    logger = log or _log

    def transformer(resource: dict[str, Any]) -> None:
        kind = resource.get("kind")
        if kind == "Image" and resource.get("apiVersion") == _CACHING_API_VERSION:
            _update_caching_image(registry, resource, logger)
            return
        if kind not in _POD_SPEC_KINDS:
            return

        name = (resource.get("metadata") or {}).get("name", "")
        logger.debug("Updating name=%s registry=%s", name, registry)

        pod_spec, found = nested_field(resource, "spec", "template", "spec")
        if found and pod_spec is not None and not isinstance(pod_spec, dict):
            raise FieldTypeError(f"failed to convert Unstructured to {kind}: "
                                 "spec.template.spec is not a mapping")
        pod_spec = pod_spec if isinstance(pod_spec, dict) else {}

        containers = pod_spec.get("containers") or []
        if not isinstance(containers, list):
            raise FieldTypeError(f"failed to convert Unstructured to {kind}: "
                                 "spec.template.spec.containers is not a list")
        for container in containers:
            _update_container(registry, name, container)

        if registry.image_pull_secrets:
            logger.debug("Adding ImagePullSecrets: %s", registry.image_pull_secrets)
            existing = pod_spec.get("imagePullSecrets") or []
            pod_spec["imagePullSecrets"] = [*existing,
                                            *(dict(s) for s in registry.image_pull_secrets)]
            set_nested_field(resource, pod_spec, "spec", "template", "spec")

        logger.debug("Finished conversion name=%s", name)

    return transformer


def _update_container(registry: Registry, owner: str, container: dict[str, Any]) -> None:
    container_name = container.get("name", "") or ""
    overrides = registry.override
    qualified = f"{owner}{_DELIMITER}{container_name}"
    if qualified in overrides:
        container["image"] = overrides[qualified]
    elif container_name in overrides:
        container["image"] = overrides[container_name]
    elif registry.default:
        image_name = get_image_name(container.get("image", "") or "") or container_name
        container["image"] = registry.default.replace(CONTAINER_NAME_VARIABLE, image_name)

    for env in container.get("env") or []:
        env_name = env.get("name", "") or ""
        if env_name in overrides:
            env["value"] = overrides[env_name]


def _update_caching_image(registry: Registry, resource: dict[str, Any],
                          logger: logging.Logger) -> None:
    name = (resource.get("metadata") or {}).get("name", "") or ""
    spec, _ = nested_field(resource, "spec")
    if spec is not None and not isinstance(spec, dict):
        raise FieldTypeError("failed to convert Unstructured to Image: spec is not a mapping")
    spec = dict(spec or {})
    logger.debug("Updating Image name=%s registry=%s", name, registry)

    if name in registry.override:
        spec["image"] = registry.override[name]
    elif registry.default:
        image_name = get_image_name(spec.get("image", "") or "") or name
        spec["image"] = registry.default.replace(CONTAINER_NAME_VARIABLE, image_name)

    if registry.image_pull_secrets:
        logger.debug("Adding ImagePullSecrets: %s", registry.image_pull_secrets)
        spec["imagePullSecrets"] = [*(spec.get("imagePullSecrets") or []),
                                    *(dict(s) for s in registry.image_pull_secrets)]

    resource["spec"] = spec
    resource.pop("status", None)
    logger.debug("Finished conversion name=%s", name)


def get_image_name(full_image_url: str) -> str:
    """Return the bare image name of a reference with a path, or "" if it has no path."""
    if "/" not in full_image_url:
        return ""
    name_with_tag = full_image_url.split("/")[-1]
    if ":" not in name_with_tag:
        return name_with_tag
    image_name = name_with_tag.split(":")[0]
    if "@" not in image_name:
        return image_name
    return name_with_tag.split("@")[0]