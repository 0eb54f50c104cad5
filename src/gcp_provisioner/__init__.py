"""Dependency-ordered reconciliation of declared GCP infrastructure."""

__version__ = "0.1.0"
