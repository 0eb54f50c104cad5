"""Core infrastructure components for GCP Provisioner."""

from gcp_provisioner.core.state import LiveRecord, State

__all__ = ["LiveRecord", "State"]
