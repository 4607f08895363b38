# knoperator

Building blocks for an operator that installs Knative Serving and Knative
Eventing. The package works on manifests: ordered lists of Kubernetes
resources held as plain dictionaries. It reads them from files, directories
or URLs, rewrites them to match the custom resource that describes a
component, applies them in a safe order and records the outcome on the
component's status.

## Installation

```
pip install knoperator
```

To run the tests:

```
pip install "knoperator[test]"
pytest
```

## Manifests

`knoperator.manifest.Manifest` holds resources together with a `Client`.

- `Manifest.from_path(path, client=None)` reads a YAML or JSON file, every
  `.yaml`, `.yml` and `.json` file in a directory (in name order), or an
  `http://`/`https://` URL. Several sources may be given separated by commas.
  `*List` documents are expanded into their items.
- `filter(*predicates)` keeps resources matching every predicate;
  `transform(*transformers)` returns a new manifest with each transformer run
  on a copy of every resource (`None` transformers are skipped);
  `append(*manifests)` concatenates.
- `apply()` creates missing resources and updates existing ones, in order.
  `delete()` removes resources in reverse order and skips those already gone.
- Predicates: `by_kind`, `by_name`, `any_of`, `negate`, `no_crds`.
- `inject_namespace(namespace)` is a transformer that sets the namespace of
  namespaced resources, ServiceAccount subjects of role bindings and webhook
  services.
- `nested_field(obj, *fields)` returns `(value, found)`;
  `set_nested_field(obj, value, *fields)` creates mappings on the way. Both
  raise `FieldTypeError` when a path runs through something that is not a
  mapping.

## Components

`knoperator.component` defines the dataclasses `KnativeServing` and
`KnativeEventing` (both `KComponent`). Each carries a `CommonSpec` (version,
config, registry, resources, deployment/service/PodDisruptionBudget
overrides, high availability, manifests and additional manifests) and a
`ComponentStatus`. The status tracks the `InstallSucceeded`,
`DeploymentsAvailable` and `Ready` conditions; `Ready` follows the other two.
`KnativeServing` also has an optional `ingress` (`IngressConfigs`).

`Extension` is the abstract interface for platform-specific manifests,
transformers and reconcile/finalize hooks. `no_extension()` returns a
`NilExtension` that contributes nothing.

## Transformers

Each function returns a callable that rewrites one resource in place. Those
that take `log` accept an optional `logging.Logger`.

- `config_maps.config_map_transform(config, log)` — overlays
  `config[name]` onto the ConfigMap `name`, or onto `config-name` when the
  key omits the `config-` prefix; only differing keys are written.
- `images.image_transform(registry, log)` — for Deployments, DaemonSets,
  Jobs and caching `Image` resources: an override keyed `<resource>/<container>`
  wins, then one keyed by container name, then the `default` template with
  `${NAME}` replaced by the image name (see `get_image_name`). Env vars named
  in the overrides get the override as value; pull secrets are appended.
- `ha.high_availability_transform(obj, log)` — sets Deployment replicas
  (except `pingsource-mt-adapter`, `webhook` and `activator`) and raises an
  HPA's `minReplicas`, raising `maxReplicas` by the same amount. Deployments
  whose override sets replicas are left alone.
- `job.job_transform(obj)` — renames Jobs to
  `<name>-<serving|eventing>-<version>` (or `<generateName><component>-<version>`)
  and sets `sidecar.istio.io/inject: "false"` unless already set.
- `resources.resource_requirements_transform(obj, log)` — merges
  `spec.resources` into matching containers, skipping Deployments whose
  override carries resources.
- `deployments_override.deployments_transform(obj, log)` — labels,
  annotations, replicas, node selector, tolerations, affinity, resources and
  env vars per Deployment.
- `services_override.services_transform(obj, log)` — labels, annotations and
  selector per Service.
- `poddisruptionbudget_override.pod_disruption_budgets_transform(obj, log)` —
  `minAvailable` per PodDisruptionBudget.

The last three return `None` when the component has no such overrides.

## Releases

`knoperator.releases` looks in the directory named by the `KO_DATA_PATH`
environment variable, which holds `knative-serving`, `knative-eventing` and
`ingress`, each with one subdirectory per release.

```python
import os
from knoperator.component import CommonSpec, KnativeServing
from knoperator.releases import target_version, target_manifest, check_migration_eligible

os.environ["KO_DATA_PATH"] = "/var/run/ko"
serving = KnativeServing(spec=CommonSpec(version="1.0"))

print(target_version(serving))     # the newest 1.0.x release on disk
check_migration_eligible(serving)  # raises ReleaseError if not allowed
manifest = target_manifest(serving)
```

- An empty version means the newest release; `major.minor` means the newest
  matching patch release; `latest` selects a `latest` directory if present,
  else the newest release.
- `target_manifest` uses `spec.manifests` when given (with `${VERSION}`
  substituted), else the kodata directory, and raises `ReleaseError` when the
  manifests are missing, empty, or labelled with a different major.minor.
- `installed_manifest`, `target_additional_manifest`, `all_releases`,
  `latest_release`, `get_latest_release` and `get_latest_ingress_release`
  complete the set. Manifests are cached by path; `clear_cache()` empties it.
- Upgrades and downgrades may move by at most one minor version; moving
  between 0.26 and 1.0 is also allowed.

## Installing and removing

```python
from knoperator.install import install, uninstall
from knoperator.deployments import check_deployments

install(manifest, serving)            # roles, bindings, the rest, then webhooks
check_deployments(manifest, serving)  # updates DeploymentsAvailable
uninstall(manifest)                   # everything but CRDs, RBAC last
```

On failure `install` marks `InstallSucceeded` false and raises
`InstallError`; on success it records the target version and manifest paths
on the status.

`finalizer.finalizer_removal_patch(obj, name)` returns a JSON merge patch
(bytes) removing one finalizer, or `None` if it is not present.

## What it does not do

`Client` is an in-memory store of objects, not a connection to a cluster.
There is no Kubernetes API client, no watch loop or controller that runs
reconciliation, and no command-line program; the package supplies the
pieces such a controller would call.