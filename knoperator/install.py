"""Ordered installation and removal of a component's manifest."""

from __future__ import annotations

import logging

from knoperator.component import KComponent, KnativeServing
from knoperator.manifest import Manifest, any_of, by_kind, negate, no_crds
from knoperator.releases import target_manifest_path_array, target_version

_ROLE = any_of(by_kind("ClusterRole"), by_kind("Role"))
_ROLE_BINDING = any_of(by_kind("ClusterRoleBinding"), by_kind("RoleBinding"))
_WEBHOOK = any_of(
    by_kind("MutatingWebhookConfiguration"), by_kind("ValidatingWebhookConfiguration")
)
_GATEWAY_NOT_MATCH = 'no matches for kind "Gateway"'

_log = logging.getLogger(__name__)


class InstallError(Exception):
    """Raised when resources of a manifest cannot be applied or removed."""


def _needs_istio_hint(instance: KComponent, message: str) -> bool:
    if not isinstance(instance, KnativeServing) or _GATEWAY_NOT_MATCH not in message:
        return False
    return instance.ingress is None or instance.ingress.istio_enabled


def install(manifest: Manifest, instance: KComponent) -> None:
    """Apply the manifest in the order roles, role bindings, the rest, webhooks.

    Binding roles that do not exist yet would need broader permissions, hence the order.
    The instance status records the outcome, the target version and manifest paths.
    """
    _log.debug("Installing manifest")
    status = instance.status

    steps = (
        (_ROLE, "failed to apply (cluster)roles"),
        (_ROLE_BINDING, "failed to apply (cluster)rolebindings"),
        (negate(any_of(_ROLE, _ROLE_BINDING, _WEBHOOK)), "failed to apply non rbac manifest"),
        (_WEBHOOK, "failed to apply webhooks"),
    )
    for predicate, failure in steps:
        try:
            manifest.filter(predicate).apply()
        except Exception as exc:
            message = str(exc)
            status.mark_install_failed(message)
            if failure.endswith("non rbac manifest") and _needs_istio_hint(instance, message):
                hint = f"please install istio or disable the istio ingress plugin: {message}"
                status.mark_install_failed(hint)
                raise InstallError(hint) from exc
            raise InstallError(f"{failure}: {message}") from exc

    status.mark_install_succeeded()
    status.version = target_version(instance)
    status.manifests = target_manifest_path_array(instance)


def uninstall(manifest: Manifest) -> None:
    """Delete everything but CRDs, removing RBAC resources last."""
    rbac = any_of(_ROLE, _ROLE_BINDING)
    try:
        manifest.filter(no_crds, negate(rbac)).delete()
    except Exception as exc:
        raise InstallError(f"failed to remove non-crd/non-rbac resources: {exc}") from exc
    try:
        manifest.filter(rbac).delete()
    except Exception as exc:
        raise InstallError(f"failed to remove rbac: {exc}") from exc