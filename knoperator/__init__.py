"""Manifests, transformers, release selection and installation for Knative components."""

__version__ = "0.1.0"