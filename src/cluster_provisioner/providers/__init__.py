"""Provider plugins shipped with the engine."""

from cluster_provisioner.providers.memory import InMemoryProvider

__all__ = ["InMemoryProvider"]
