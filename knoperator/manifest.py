"""Collections of Kubernetes resources and the client they are applied with."""

from __future__ import annotations

import copy
import urllib.request
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional

import yaml

Resource = dict[str, Any]
Predicate = Callable[[Resource], bool]
Transformer = Callable[[Resource], None]

_MANIFEST_SUFFIXES = frozenset({".yaml", ".yml", ".json"})

_CLUSTER_SCOPED_KINDS = frozenset(
    {
        "APIService",
        "ClusterRole",
        "ClusterRoleBinding",
        "CustomResourceDefinition",
        "MutatingWebhookConfiguration",
        "Namespace",
        "Node",
        "PersistentVolume",
        "PodSecurityPolicy",
        "PriorityClass",
        "StorageClass",
        "ValidatingWebhookConfiguration",
    }
)


class NotFoundError(LookupError):
    """Raised when a resource does not exist in the cluster."""


class FieldTypeError(TypeError):
    """Raised when a nested field path runs through a value that is not a mapping."""


def _key(resource: Resource) -> tuple[str, str, str, str]:
    metadata = resource.get("metadata") or {}
    return (
        resource.get("apiVersion", ""),
        resource.get("kind", ""),
        metadata.get("namespace", "") or "",
        metadata.get("name", "") or "",
    )


def _describe(resource: Resource) -> str:
    api_version, kind, namespace, name = _key(resource)
    where = f"{namespace}/{name}" if namespace else name
    return f"{kind} {where} ({api_version})"


class Client:
    """An in-memory store of cluster objects, keyed by apiVersion, kind, namespace and name."""

    def __init__(self, objects: Iterable[Resource] = ()) -> None:
        self._objects: dict[tuple[str, str, str, str], Resource] = {}
        for obj in objects:
            self._objects[_key(obj)] = copy.deepcopy(obj)

    def get(self, resource: Resource) -> Resource:
        """Return a copy of the stored object matching ``resource``."""
        try:
            return copy.deepcopy(self._objects[_key(resource)])
        except KeyError:
            raise NotFoundError(f"{_describe(resource)} not found") from None

    def create(self, resource: Resource) -> None:
        self._objects[_key(resource)] = copy.deepcopy(resource)

    def update(self, resource: Resource) -> None:
        key = _key(resource)
        if key not in self._objects:
            raise NotFoundError(f"{_describe(resource)} not found")
        self._objects[key] = copy.deepcopy(resource)

    def delete(self, resource: Resource) -> None:
        try:
            del self._objects[_key(resource)]
        except KeyError:
            raise NotFoundError(f"{_describe(resource)} not found") from None


def _parse_documents(text: str) -> list[Resource]:
    resources: list[Resource] = []
    for document in yaml.safe_load_all(text):
        if not isinstance(document, dict) or not document:
            continue
        kind = document.get("kind", "")
        if kind.endswith("List") and isinstance(document.get("items"), list):
            resources.extend(item for item in document["items"] if isinstance(item, dict))
        else:
            resources.append(document)
    return resources


def _read_source(source: str) -> list[Resource]:
    if source.startswith(("http://", "https://")):
        with urllib.request.urlopen(source) as response:
            return _parse_documents(response.read().decode("utf-8"))
    path = Path(source)
    if path.is_dir():
        resources: list[Resource] = []
        for file in sorted(path.iterdir()):
            if file.is_file() and file.suffix in _MANIFEST_SUFFIXES:
                resources.extend(_parse_documents(file.read_text(encoding="utf-8")))
        return resources
    if path.is_file():
        return _parse_documents(path.read_text(encoding="utf-8"))
    raise FileNotFoundError(f"manifest path {source} does not exist")


class Manifest:
    """An ordered set of resources together with the client that applies them."""

    def __init__(self, resources: Iterable[Resource] = (), client: Optional[Client] = None) -> None:
        self._resources = [copy.deepcopy(resource) for resource in resources]
        self.client = client if client is not None else Client()

    @classmethod
    def from_path(cls, path: str, client: Optional[Client] = None) -> "Manifest":
        """Read resources from a file, a directory, a URL, or a comma-separated list of them."""
        sources = [part.strip() for part in path.split(",") if part.strip()]
        if not sources:
            raise FileNotFoundError("no manifest path given")
        resources: list[Resource] = []
        for source in sources:
            resources.extend(_read_source(source))
        return cls(resources, client)

    @property
    def resources(self) -> list[Resource]:
        """Copies of the resources, in order."""
        return [copy.deepcopy(resource) for resource in self._resources]

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self.resources)

    def filter(self, *predicates: Predicate) -> "Manifest":
        """Keep the resources that satisfy every predicate."""
        kept = [r for r in self._resources if all(predicate(r) for predicate in predicates)]
        return Manifest(kept, self.client)

    def transform(self, *transformers: Optional[Transformer]) -> "Manifest":
        """Return a new manifest with every transformer run on a copy of each resource."""
        active = [transformer for transformer in transformers if transformer is not None]
        resources = self.resources
        for resource in resources:
            for transformer in active:
                transformer(resource)
        return Manifest(resources, self.client)

    def append(self, *manifests: "Manifest") -> "Manifest":
        combined = list(self._resources)
        for manifest in manifests:
            combined.extend(manifest._resources)
        return Manifest(combined, self.client)

    def apply(self) -> None:
        """Create the resources that are missing and update the rest, in order."""
        for resource in self._resources:
            try:
                self.client.get(resource)
            except NotFoundError:
                self.client.create(copy.deepcopy(resource))
            else:
                self.client.update(copy.deepcopy(resource))

    def delete(self) -> None:
        """Delete the resources in reverse order, skipping those already gone."""
        for resource in reversed(self._resources):
            try:
                self.client.delete(copy.deepcopy(resource))
            except NotFoundError:
                continue


def by_kind(kind: str) -> Predicate:
    return lambda resource: resource.get("kind") == kind


def by_name(name: str) -> Predicate:
    return lambda resource: (resource.get("metadata") or {}).get("name") == name


def any_of(*predicates: Predicate) -> Predicate:
    return lambda resource: any(predicate(resource) for predicate in predicates)


def negate(predicate: Predicate) -> Predicate:
    return lambda resource: not predicate(resource)


def no_crds(resource: Resource) -> bool:
    return resource.get("kind") != "CustomResourceDefinition"


def inject_namespace(namespace: str) -> Transformer:
    """Place namespaced resources, service account subjects and webhook services in ``namespace``."""

    def transformer(resource: Resource) -> None:
        kind = resource.get("kind", "")
        if kind not in _CLUSTER_SCOPED_KINDS:
            set_nested_field(resource, namespace, "metadata", "namespace")
        if kind in ("ClusterRoleBinding", "RoleBinding"):
            for subject in resource.get("subjects") or []:
                if subject.get("kind") == "ServiceAccount":
                    subject["namespace"] = namespace
        for webhook in resource.get("webhooks") or []:
            service = (webhook.get("clientConfig") or {}).get("service")
            if isinstance(service, dict):
                service["namespace"] = namespace

    return transformer


def nested_field(obj: Any, *fields: str) -> tuple[Any, bool]:
    """Return ``(value, found)`` for the value at ``fields`` inside ``obj``."""
    value = obj
    for depth, field in enumerate(fields):
        if value is None:
            return None, False
        if not isinstance(value, dict):
            path = ".".join(fields[:depth])
            raise FieldTypeError(f"{path} is of type {type(value).__name__}, expected a mapping")
        if field not in value:
            return None, False
        value = value[field]
    return value, True


def set_nested_field(obj: Resource, value: Any, *fields: str) -> None:
    """Set the value at ``fields`` inside ``obj``, creating mappings on the way."""
    if not fields:
        raise ValueError("at least one field is required")
    current = obj
    for depth, field in enumerate(fields[:-1]):
        child = current.get(field)
        if child is None:
            child = current[field] = {}
        elif not isinstance(child, dict):
            path = ".".join(fields[: depth + 1])
            raise FieldTypeError(f"{path} is of type {type(child).__name__}, expected a mapping")
        current = child
    current[fields[-1]] = value