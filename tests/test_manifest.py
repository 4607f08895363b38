import pytest

from knoperator.manifest import (
    Client,
    FieldTypeError,
    Manifest,
    NotFoundError,
    any_of,
    by_kind,
    by_name,
    inject_namespace,
    negate,
    nested_field,
    no_crds,
    set_nested_field,
)


def _res(api, kind, name, namespace=None):
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    return {"apiVersion": api, "kind": kind, "metadata": metadata}


def _names(manifest):
    return [r["metadata"]["name"] for r in manifest.resources]


DOC = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: first
---
apiVersion: v1
kind: ServiceAccount
metadata:
  name: second
"""


def test_from_path_reads_all_documents(tmp_path):
    path = tmp_path / "m.yaml"
    path.write_text(DOC)
    manifest = Manifest.from_path(str(path))
    assert _names(manifest) == ["first", "second"]
    assert [r["kind"] for r in manifest.resources] == ["Deployment", "ServiceAccount"]


def test_from_path_comma_separated_keeps_order(tmp_path):
    a = tmp_path / "a.yaml"
    b = tmp_path / "b.yaml"
    a.write_text("kind: ConfigMap\nmetadata:\n  name: from-a\n")
    b.write_text("kind: ConfigMap\nmetadata:\n  name: from-b\n")
    manifest = Manifest.from_path(f"{b},{a}")
    assert _names(manifest) == ["from-b", "from-a"]


def test_from_path_directory_sorted(tmp_path):
    (tmp_path / "b.yaml").write_text("kind: ConfigMap\nmetadata:\n  name: from-b\n")
    (tmp_path / "a.yaml").write_text("kind: ConfigMap\nmetadata:\n  name: from-a\n")
    (tmp_path / "notes.txt").write_text("ignored")
    manifest = Manifest.from_path(str(tmp_path))
    assert _names(manifest) == ["from-a", "from-b"]


def test_from_path_missing_and_empty(tmp_path):
    with pytest.raises(FileNotFoundError):
        Manifest.from_path(str(tmp_path / "absent.yaml"))
    with pytest.raises(FileNotFoundError):
        Manifest.from_path("")


def test_filter_predicates():
    manifest = Manifest(
        [
            _res("apps/v1", "Deployment", "d"),
            _res("rbac.authorization.k8s.io/v1", "Role", "r"),
            _res("apiextensions.k8s.io/v1", "CustomResourceDefinition", "crd"),
        ]
    )
    assert _names(manifest.filter(by_kind("Deployment"))) == ["d"]
    assert _names(manifest.filter(by_name("r"))) == ["r"]
    assert _names(manifest.filter(any_of(by_kind("Role"), by_name("d")))) == ["d", "r"]
    assert _names(manifest.filter(negate(by_kind("Role")))) == ["d", "crd"]
    assert _names(manifest.filter(no_crds)) == ["d", "r"]
    assert _names(manifest.filter(no_crds, negate(by_kind("Role")))) == ["d"]


def test_transform_copies_and_skips_none():
    manifest = Manifest([_res("v1", "ConfigMap", "cm")])

    def rename(resource):
        resource["metadata"]["name"] = "renamed"

    result = manifest.transform(None, rename)
    assert _names(result) == ["renamed"]
    assert _names(manifest) == ["cm"]


def test_transform_propagates_errors():
    manifest = Manifest([_res("v1", "ConfigMap", "cm")])

    def broken(resource):
        raise ValueError("bad")

    with pytest.raises(ValueError):
        manifest.transform(broken)


def test_resources_are_copies():
    manifest = Manifest([_res("v1", "ConfigMap", "cm")])
    manifest.resources[0]["metadata"]["name"] = "changed"
    assert _names(manifest) == ["cm"]


def test_append():
    first = Manifest([_res("v1", "ConfigMap", "one")])
    second = Manifest([_res("v1", "ConfigMap", "two")])
    combined = first.append(second)
    assert _names(combined) == ["one", "two"]
    assert combined.client is first.client


def test_apply_creates_then_updates():
    client = Client()
    resource = _res("v1", "ConfigMap", "cm", "ns")
    resource["data"] = {"k": "v1"}
    Manifest([resource], client).apply()
    assert client.get(resource)["data"] == {"k": "v1"}
    resource["data"] = {"k": "v2"}
    Manifest([resource], client).apply()
    assert client.get(resource)["data"] == {"k": "v2"}


def test_delete_reverse_order_ignores_missing():
    deleted = []

    class Recording(Client):
        def delete(self, resource):
            deleted.append(resource["metadata"]["name"])
            super().delete(resource)

    present = _res("v1", "ConfigMap", "present")
    client = Recording([present])
    Manifest([present, _res("v1", "ConfigMap", "absent")], client).delete()
    assert deleted == ["absent", "present"]
    with pytest.raises(NotFoundError):
        client.get(present)


def test_client_get_missing_raises():
    with pytest.raises(NotFoundError):
        Client().get(_res("v1", "ConfigMap", "nothing"))
    with pytest.raises(NotFoundError):
        Client().update(_res("v1", "ConfigMap", "nothing"))


def test_nested_field():
    obj = {"spec": {"replicas": 3}, "data": "text"}
    assert nested_field(obj, "spec", "replicas") == (3, True)
    assert nested_field(obj, "spec", "missing") == (None, False)
    assert nested_field(obj, "absent", "x") == (None, False)
    with pytest.raises(FieldTypeError):
        nested_field(obj, "data", "k")


def test_set_nested_field():
    obj = {}
    set_nested_field(obj, 5, "spec", "replicas")
    assert obj == {"spec": {"replicas": 5}}
    obj["data"] = "text"
    with pytest.raises(FieldTypeError):
        set_nested_field(obj, "v", "data", "k")


def test_inject_namespace():
    deployment = _res("apps/v1", "Deployment", "d")
    cluster_role = _res("rbac.authorization.k8s.io/v1", "ClusterRole", "cr")
    binding = _res("rbac.authorization.k8s.io/v1", "ClusterRoleBinding", "crb")
    binding["subjects"] = [{"kind": "ServiceAccount", "name": "sa", "namespace": "old"}]
    result = Manifest([deployment, cluster_role, binding]).transform(inject_namespace("target"))
    out = result.resources
    assert out[0]["metadata"]["namespace"] == "target"
    assert "namespace" not in out[1]["metadata"]
    assert out[2]["subjects"][0]["namespace"] == "target"