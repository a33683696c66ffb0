"""Declarative resource-graph provisioner."""

__version__ = "0.1.0"
