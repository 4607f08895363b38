"""Knative component custom resources, their specs and status, and platform extensions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from knoperator.manifest import Manifest, Transformer

INSTALL_SUCCEEDED = "InstallSucceeded"
DEPLOYMENTS_AVAILABLE = "DeploymentsAvailable"
READY = "Ready"

_DEPENDENT_CONDITIONS = (INSTALL_SUCCEEDED, DEPLOYMENTS_AVAILABLE)


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class Condition:
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""


@dataclass
class Registry:
    """Image registry settings: a default template, per-name overrides and pull secrets."""

    default: str = ""
    override: dict[str, str] = field(default_factory=dict)
    image_pull_secrets: list[dict[str, str]] = field(default_factory=list)


@dataclass
class ResourceRequirementsOverride:
    container: str
    limits: dict[str, Any] = field(default_factory=dict)
    requests: dict[str, Any] = field(default_factory=dict)


@dataclass
class EnvRequirementsOverride:
    container: str
    env_vars: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class DeploymentOverride:
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    replicas: Optional[int] = None
    node_selector: dict[str, str] = field(default_factory=dict)
    tolerations: list[dict[str, Any]] = field(default_factory=list)
    affinity: Optional[dict[str, Any]] = None
    resources: list[ResourceRequirementsOverride] = field(default_factory=list)
    env: list[EnvRequirementsOverride] = field(default_factory=list)


@dataclass
class ServiceOverride:
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    selector: dict[str, str] = field(default_factory=dict)


@dataclass
class PodDisruptionBudgetOverride:
    name: str
    min_available: Optional[Union[int, str]] = None


@dataclass
class HighAvailability:
    replicas: Optional[int] = None


@dataclass
class ManifestSource:
    url: str


@dataclass
class IngressConfigs:
    istio_enabled: bool = False
    kourier_enabled: bool = False
    contour_enabled: bool = False


@dataclass
class CommonSpec:
    version: str = ""
    config: dict[str, dict[str, str]] = field(default_factory=dict)
    registry: Registry = field(default_factory=Registry)
    resources: list[ResourceRequirementsOverride] = field(default_factory=list)
    deployment_override: list[DeploymentOverride] = field(default_factory=list)
    service_override: list[ServiceOverride] = field(default_factory=list)
    pod_disruption_budget_override: list[PodDisruptionBudgetOverride] = field(default_factory=list)
    high_availability: Optional[HighAvailability] = None
    manifests: list[ManifestSource] = field(default_factory=list)
    additional_manifests: list[ManifestSource] = field(default_factory=list)


@dataclass
class ComponentStatus:
    """Installed version, manifests and readiness conditions of a component."""

    version: str = ""
    manifests: list[str] = field(default_factory=list)
    conditions: dict[str, Condition] = field(default_factory=dict)

    def initialize_conditions(self) -> None:
        for condition_type in (*_DEPENDENT_CONDITIONS, READY):
            self.conditions.setdefault(condition_type, Condition(condition_type))
        self._update_ready()

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        return self.conditions.get(condition_type)

    def mark_install_failed(self, message: str) -> None:
        self._set(INSTALL_SUCCEEDED, ConditionStatus.FALSE, "Error",
                  f"Install failed with message: {message}")

    def mark_install_succeeded(self) -> None:
        self._set(INSTALL_SUCCEEDED, ConditionStatus.TRUE)

    def mark_deployments_available(self) -> None:
        self._set(DEPLOYMENTS_AVAILABLE, ConditionStatus.TRUE)

    def mark_deployments_not_ready(self, names: list[str]) -> None:
        self._set(DEPLOYMENTS_AVAILABLE, ConditionStatus.FALSE, "NotReady",
                  f"Waiting on deployments: {', '.join(names)}")

    def _set(self, condition_type: str, status: ConditionStatus,
             reason: str = "", message: str = "") -> None:
        self.conditions[condition_type] = Condition(condition_type, status, reason, message)
        self._update_ready()

    def _update_ready(self) -> None:
        dependents = [self.conditions.get(t) or Condition(t) for t in _DEPENDENT_CONDITIONS]
        failed = next((c for c in dependents if c.status is ConditionStatus.FALSE), None)
        if failed is not None:
            self.conditions[READY] = Condition(READY, ConditionStatus.FALSE, failed.reason, failed.message)
        elif any(c.status is ConditionStatus.UNKNOWN for c in dependents):
            self.conditions[READY] = Condition(READY, ConditionStatus.UNKNOWN)
        else:
            self.conditions[READY] = Condition(READY, ConditionStatus.TRUE)


@dataclass
class KComponent:
    """A Knative component custom resource."""

    component: ClassVar[str] = ""

    name: str = ""
    namespace: str = ""
    resource_version: str = ""
    finalizers: list[str] = field(default_factory=list)
    spec: CommonSpec = field(default_factory=CommonSpec)
    status: ComponentStatus = field(default_factory=ComponentStatus)


@dataclass
class KnativeServing(KComponent):
    component: ClassVar[str] = "serving"

    ingress: Optional[IngressConfigs] = None


@dataclass
class KnativeEventing(KComponent):
    component: ClassVar[str] = "eventing"


class Extension(ABC):
    """Platform-specific manifests, transformers and reconcile hooks."""

    @abstractmethod
    def manifests(self, component: Optional[KComponent]) -> list[Manifest]:
        ...

    @abstractmethod
    def transformers(self, component: Optional[KComponent]) -> list[Transformer]:
        ...

    @abstractmethod
    def reconcile(self, context: Any, component: Optional[KComponent]) -> None:
        ...

    @abstractmethod
    def finalize(self, context: Any, component: Optional[KComponent]) -> None:
        ...


def _require_component(component: Optional[KComponent]) -> Optional[KComponent]:
    if component is not None and not isinstance(component, KComponent):
        raise TypeError(f"expected a KComponent, got {type(component).__name__}")
    return component


class NilExtension(Extension):
    """An extension that contributes no manifests, no transformers and no hooks."""

    def __init__(self) -> None:
        self._manifests: tuple[Manifest, ...] = ()
        self._transformers: tuple[Transformer, ...] = ()

    def manifests(self, component: Optional[KComponent]) -> list[Manifest]:
        _require_component(component)
        return list(self._manifests)

    def transformers(self, component: Optional[KComponent]) -> list[Transformer]:
        _require_component(component)
        return list(self._transformers)

    def reconcile(self, context: Any, component: Optional[KComponent]) -> None:
        _require_component(component)

    def finalize(self, context: Any, component: Optional[KComponent]) -> None:
        _require_component(component)


def no_extension(context: Any = None, impl: Any = None) -> Extension:
    return NilExtension()