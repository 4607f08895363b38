import pytest

from knoperator.component import CommonSpec, KnativeEventing, KnativeServing
from knoperator.job import job_transform

STORAGE_VERSION_MIGRATION = "storage-version-migration"


def create_job(name, generate):
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": name, "generateName": generate + "-"},
    }


@pytest.mark.parametrize(
    "component, job, expected",
    [
        (KnativeServing(spec=CommonSpec(version="0.15.2")),
         create_job(STORAGE_VERSION_MIGRATION, ""),
         STORAGE_VERSION_MIGRATION + "-serving-0.15.2"),
        (KnativeEventing(spec=CommonSpec(version="0.16.0")),
         create_job(STORAGE_VERSION_MIGRATION, ""),
         STORAGE_VERSION_MIGRATION + "-eventing-0.16.0"),
        (KnativeServing(spec=CommonSpec(version="0.15.2")),
         create_job("", STORAGE_VERSION_MIGRATION),
         STORAGE_VERSION_MIGRATION + "-serving-0.15.2"),
        (KnativeEventing(spec=CommonSpec(version="0.16.0")),
         create_job("", STORAGE_VERSION_MIGRATION),
         STORAGE_VERSION_MIGRATION + "-eventing-0.16.0"),
    ],
    ids=[
        "ChangeNameForServingJob",
        "ChangeNameForEventingJob",
        "ChangeNameWithGeneratedNameForServingJob",
        "ChangeNameWithGeneratedNameForEventingJob",
    ],
)
def test_job_transform_name(component, job, expected):
    job_transform(component)(job)
    assert job["metadata"]["name"] == expected


def test_job_transform_adds_istio_annotation():
    job = create_job("job", "")
    job_transform(KnativeServing(spec=CommonSpec(version="0.15.2")))(job)
    assert job["spec"]["template"]["metadata"]["annotations"] == {
        "sidecar.istio.io/inject": "false"
    }


def test_job_transform_keeps_existing_istio_annotation():
    job = create_job("job", "")
    job["spec"] = {"template": {"metadata": {"annotations": {"sidecar.istio.io/inject": "true"}}}}
    job_transform(KnativeServing(spec=CommonSpec(version="0.15.2")))(job)
    assert job["spec"]["template"]["metadata"]["annotations"] == {
        "sidecar.istio.io/inject": "true"
    }


def test_job_transform_ignores_other_kinds():
    deployment = {"kind": "Deployment", "metadata": {"name": "controller"}}
    job_transform(KnativeServing(spec=CommonSpec(version="0.15.2")))(deployment)
    assert deployment == {"kind": "Deployment", "metadata": {"name": "controller"}}