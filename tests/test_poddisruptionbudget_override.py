import pytest

from knoperator.component import CommonSpec, KnativeServing, PodDisruptionBudgetOverride
from knoperator.manifest import FieldTypeError, Manifest, by_name
from knoperator.poddisruptionbudget_override import pod_disruption_budgets_transform


def _pdb(api_version, name):
    return {
        "apiVersion": api_version,
        "kind": "PodDisruptionBudget",
        "metadata": {"name": name, "namespace": "knative-serving"},
        "spec": {"minAvailable": "80%", "selector": {"matchLabels": {"app": "activator"}}},
    }


def _fixture():
    return [
        _pdb("policy/v1beta1", "activator-pdb"),
        _pdb("policy/v1", "activator-pdb-1"),
        {"apiVersion": "apps/v1", "kind": "Deployment",
         "metadata": {"name": "activator-pdb"}, "spec": {}},
    ]


def _min_available(overrides, name):
    ks = KnativeServing(spec=CommonSpec(pod_disruption_budget_override=overrides))
    manifest = Manifest(_fixture()).transform(pod_disruption_budgets_transform(ks))
    budget = next(r for r in manifest.filter(by_name(name)).resources
                  if r["kind"] == "PodDisruptionBudget")
    return budget["spec"]["minAvailable"]


BUDGETS = ["activator-pdb", "activator-pdb-1"]


@pytest.mark.parametrize("name", BUDGETS)
def test_simple_override(name):
    assert _min_available([PodDisruptionBudgetOverride(name, min_available="50%")], name) == "50%"


@pytest.mark.parametrize("name", BUDGETS)
def test_no_override(name):
    assert pod_disruption_budgets_transform(KnativeServing()) is None
    assert _min_available([], name) == "80%"


@pytest.mark.parametrize("name", BUDGETS)
def test_override_without_min_available(name):
    assert _min_available([PodDisruptionBudgetOverride(name)], name) == "80%"


def test_unset_override_stops_later_ones_for_same_budget():
    overrides = [PodDisruptionBudgetOverride("activator-pdb"),
                 PodDisruptionBudgetOverride("activator-pdb", min_available="30%")]
    assert _min_available(overrides, "activator-pdb") == "80%"


def test_integer_min_available_and_other_budget_untouched():
    overrides = [PodDisruptionBudgetOverride("activator-pdb-1", min_available=2)]
    assert _min_available(overrides, "activator-pdb-1") == 2
    assert _min_available(overrides, "activator-pdb") == "80%"


def test_other_kinds_untouched():
    ks = KnativeServing(spec=CommonSpec(pod_disruption_budget_override=[
        PodDisruptionBudgetOverride("activator-pdb", min_available="10%")]))
    manifest = Manifest(_fixture()).transform(pod_disruption_budgets_transform(ks))
    deployment = next(r for r in manifest.resources if r["kind"] == "Deployment")
    assert deployment == _fixture()[2]


def test_malformed_spec_raises():
    budget = {"kind": "PodDisruptionBudget", "metadata": {"name": "x"}, "spec": "bad"}
    transformer = pod_disruption_budgets_transform(KnativeServing(spec=CommonSpec(
        pod_disruption_budget_override=[PodDisruptionBudgetOverride("x", min_available=1)])))
    with pytest.raises(FieldTypeError):
        transformer(budget)