"""Persisted resource state."""

from cluster_provisioner.core.state import ResourceState, ResourceStatus, State

__all__ = ["ResourceState", "ResourceStatus", "State"]
