"""Release discovery, target and installed manifests, and version migration checks."""

from __future__ import annotations

import os
import re
import stat
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Callable, Optional

import yaml

from knoperator.component import KComponent, KnativeEventing, KnativeServing
from knoperator.manifest import Manifest

KO_ENV_KEY = "KO_DATA_PATH"
VERSION_VARIABLE = "${VERSION}"
COMMA = ","
LATEST_VERSION = "latest"

_VERSION_LABEL = "app.kubernetes.io/version"

_cache: dict[str, Manifest] = {}


class ReleaseError(Exception):
    """Raised when a release or its manifests cannot be resolved or validated."""


# Semantic versions in the "v" prefixed form: vMAJOR, vMAJOR.MINOR or a full version.
_SEMVER = re.compile(
    r"v(0|[1-9][0-9]*)"
    r"(?:\.(0|[1-9][0-9]*)"
    r"(?:\.(0|[1-9][0-9]*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r")?)?"
)


@dataclass(frozen=True)
class _Version:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...]


def _parse(version: str) -> Optional[_Version]:
    match = _SEMVER.fullmatch(version)
    if match is None:
        return None
    major, minor, patch, prerelease, _build = match.groups()
    identifiers = tuple(prerelease.split(".")) if prerelease else ()
    if any(part.isdigit() and len(part) > 1 and part[0] == "0" for part in identifiers):
        return None
    return _Version(int(major), int(minor or 0), int(patch or 0), identifiers)


def _is_valid(version: str) -> bool:
    return _parse(version) is not None


def _major(version: str) -> str:
    parsed = _parse(version)
    return "" if parsed is None else f"v{parsed.major}"


def _major_minor(version: str) -> str:
    parsed = _parse(version)
    return "" if parsed is None else f"v{parsed.major}.{parsed.minor}"


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _compare_prerelease(left: tuple[str, ...], right: tuple[str, ...]) -> int:
    if left == right:
        return 0
    if not left:
        return 1
    if not right:
        return -1
    for a, b in zip(left, right):
        if a == b:
            continue
        a_numeric, b_numeric = a.isdigit(), b.isdigit()
        if a_numeric and b_numeric:
            return _sign(int(a) - int(b))
        if a_numeric:
            return -1
        if b_numeric:
            return 1
        return -1 if a < b else 1
    return _sign(len(left) - len(right))


def _compare(left: str, right: str) -> int:
    """Compare two versions; invalid versions sort before every valid one."""
    a, b = _parse(left), _parse(right)
    if a is None and b is None:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    for x, y in ((a.major, b.major), (a.minor, b.minor), (a.patch, b.patch)):
        if x != y:
            return _sign(x - y)
    return _compare_prerelease(a.prerelease, b.prerelease)


def _join(*parts: str) -> str:
    present = [part for part in parts if part]
    if not present:
        return ""
    return os.path.normpath(os.path.join(*present))


def sanitize_semver(version: str) -> str:
    """Prefix the version with ``v`` unless it already starts with one."""
    return version if version.startswith("v") else f"v{version}"


def target_version(instance: KComponent) -> str:
    """Return the version to install, resolving ``latest``, empty and major.minor versions."""
    version = instance.spec.version
    if version.lower() == LATEST_VERSION:
        return get_latest_release(instance, version)
    if not instance.spec.manifests:
        if version == "":
            return latest_release(instance)
        sanitized = sanitize_semver(version)
        if sanitized == _major_minor(sanitized):
            return get_latest_release(instance, version)
    return version


def target_manifest(instance: KComponent) -> Manifest:
    """Return the manifest for the target version, from kodata or from spec.manifests."""
    path = target_manifest_path(instance)
    fetcher = fetch_manifest if not instance.spec.manifests else _fetch_manifest_from_path
    return _manifest_with_version_validation(path, instance, fetcher)


def target_additional_manifest(instance: KComponent) -> Manifest:
    """Return the manifest named by spec.additionalManifests, or an empty one."""
    path = additional_manifest_path(instance)
    if path == "":
        return Manifest()
    return _manifest_with_version_validation(path, instance, _fetch_manifest_from_path)


def installed_manifest(instance: KComponent) -> Manifest:
    """Return the manifest currently installed, or the target one if nothing is recorded."""
    current = instance.status.version
    if not instance.status.manifests and current == "":
        return target_manifest(instance)
    paths = _installed_manifest_path(current, instance)
    if not paths:
        return Manifest()
    first, *rest = paths
    manifest = fetch_manifest(first)
    for path in rest:
        manifest = manifest.append(fetch_manifest(path))
    return manifest


def check_migration_eligible(instance: KComponent) -> None:
    """Raise ReleaseError unless the target version is valid and reachable from the installed one."""
    version = target_version(instance)
    if version == LATEST_VERSION:
        return
    target = sanitize_semver(version)
    if not _is_valid(target):
        raise ReleaseError(f"target version {target} is not in a valid semantic versioning format.")
    if len(target.split(".")) < 2:
        raise ReleaseError(
            f"target version {target} should at least include the major and minor numbers.")

    current = instance.status.version
    if current in ("", LATEST_VERSION):
        return

    current = sanitize_semver(current)
    current_major = _major(current)
    target_major = _major(target)
    try:
        current_minor = int(current.split(".")[1])
    except (IndexError, ValueError):
        raise ReleaseError(
            f"minor number of the current version {current} should be an integer.") from None
    try:
        target_minor = int(target.split(".")[1])
    except (IndexError, ValueError):
        raise ReleaseError(
            f"minor number of the target version {target} should be an integer.") from None

    if current_major != target_major:
        # 0.26 directly precedes 1.0, so moving between them either way is allowed.
        if _major_minor(current) == "v0.26" and _major_minor(target) == "v1.0":
            return
        if _major_minor(target) == "v0.26" and _major_minor(current) == "v1.0":
            return
        raise ReleaseError(
            "not supported to upgrade or downgrade across the MAJOR version. The "
            f"installed KnativeServing version is {current}.")

    if abs(current_minor - target_minor) < 2:
        return
    raise ReleaseError(
        "not supported to upgrade or downgrade across multiple MINOR versions. The "
        f"installed KnativeServing version is {current}.")


def _manifest_with_version_validation(
    manifests_path: str,
    instance: KComponent,
    fetch: Callable[[str], Manifest],
) -> Manifest:
    version = target_version(instance)
    try:
        manifests = fetch(manifests_path)
    except (OSError, yaml.YAMLError) as exc:
        if not instance.spec.manifests:
            raise ReleaseError(
                f"the manifests of the target version {instance.spec.version} "
                "are not available to this release") from exc
        raise

    if len(manifests) == 0:
        raise ReleaseError(f"there is no resource available in the target manifests {manifests_path}")

    if version in ("", LATEST_VERSION):
        return manifests

    target = sanitize_semver(version)
    for resource in manifests.resources:
        metadata = resource.get("metadata") or {}
        labels = metadata.get("labels") or {}
        manifest_version = labels.get(_VERSION_LABEL, "")
        sanitized = sanitize_semver(manifest_version)
        if manifest_version != "" and _major_minor(target) != _major_minor(sanitized):
            raise ReleaseError(
                f"the version of the manifests {sanitized} of the component "
                f"{metadata.get('name', '')} does not match the target version "
                f"of the operator CR {target}")
    return manifests


def fetch_manifest(path: str) -> Manifest:
    """Return the manifest at ``path`` from the cache, reading and caching it if absent."""
    cached = _cache.get(path)
    if cached is not None:
        return cached
    result = Manifest.from_path(path)
    _cache[path] = result
    return result


def _fetch_manifest_from_path(path: str) -> Manifest:
    result = Manifest.from_path(path)
    _cache[path] = result
    return result


def clear_cache() -> None:
    """Forget every cached manifest."""
    _cache.clear()


def _ko_data_dir() -> str:
    return os.environ.get(KO_ENV_KEY, "")


def _component_dir(instance: KComponent) -> str:
    if isinstance(instance, KnativeServing):
        return _join(_ko_data_dir(), "knative-serving")
    if isinstance(instance, KnativeEventing):
        return _join(_ko_data_dir(), "knative-eventing")
    return ""


def _component_ingress_dir() -> str:
    return _join(_ko_data_dir(), "ingress")


def additional_manifest_path(instance: KComponent) -> str:
    """Comma-separated URLs of spec.additionalManifests with the version substituted."""
    sources = instance.spec.additional_manifests
    if not sources:
        return ""
    version = target_version(instance)
    return COMMA.join(source.url.replace(VERSION_VARIABLE, version) for source in sources)


def target_manifest_path(instance: KComponent) -> str:
    """Comma-separated URLs of spec.manifests, or the local kodata path for the target version."""
    version = target_version(instance)
    path = COMMA.join(
        source.url.replace(VERSION_VARIABLE, version) for source in instance.spec.manifests)
    if path == "":
        path = _join(_component_dir(instance), version)
        if not os.path.exists(path):
            return ""
    return path


def target_manifest_path_array(instance: KComponent) -> list[str]:
    """The target manifest path, followed by the additional manifest path if there is one."""
    paths = [target_manifest_path(instance)]
    if instance.spec.additional_manifests:
        paths.append(additional_manifest_path(instance))
    return paths


def _installed_manifest_path(version: str, instance: KComponent) -> list[str]:
    if instance.status.manifests:
        return list(instance.status.manifests)
    local_path = _join(_component_dir(instance), version)
    if local_path and os.path.exists(local_path):
        return [local_path]
    return []


def _all_releases_under_path(pathname: str) -> list[str]:
    tags = []
    for name in sorted(os.listdir(pathname)):
        if stat.S_ISDIR(os.stat(os.path.join(pathname, name)).st_mode):
            tags.append(name)
    if not tags:
        raise ReleaseError(f"unable to find any version number under the path {pathname}")
    newest_first = cmp_to_key(lambda a, b: _compare(sanitize_semver(b), sanitize_semver(a)))
    return sorted(tags, key=newest_first)


def all_releases(instance: KComponent) -> list[str]:
    """Release directories available in kodata for the component, newest first."""
    return _all_releases_under_path(_component_dir(instance))


def latest_release(instance: KComponent) -> str:
    return get_latest_release(instance, "")


def get_latest_ingress_release(version: str) -> str:
    """The newest ingress release in kodata matching ``version``."""
    return _latest_release_from_list(_all_releases_under_path(_component_ingress_dir()), version)


def get_latest_release(instance: KComponent, version: str) -> str:
    """The newest release of the component in kodata matching ``version``."""
    return _latest_release_from_list(all_releases(instance), version)


def _latest_release_from_list(versions: list[str], version: str) -> str:
    if version == "":
        return versions[0]
    if version.lower() == LATEST_VERSION:
        return next((candidate for candidate in versions if candidate == version), versions[0])
    wanted = _major_minor(sanitize_semver(version))
    for candidate in versions:
        if candidate.startswith(version) and _major_minor(sanitize_semver(candidate)) == wanted:
            return candidate
    return version