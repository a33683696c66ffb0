"""Simulated Azure and Talos plugins for trying the example stack offline.

Both keep resources in memory; swap them for real plugins to provision for real.
"""

from __future__ import annotations

import hashlib
from typing import Any

from cluster_provisioner.providers import InMemoryProvider


def _serial(resource_id: str) -> int:
    return int(resource_id.rsplit("/", 1)[1])


def _public_ip(resource_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
    return {"ip_address": f"20.50.0.{_serial(resource_id)}"}


def _digest(*parts: Any) -> str:
    return hashlib.sha256("|".join(map(str, parts)).encode()).hexdigest()[:32]


def _machine_secrets(resource_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
    return {"machine_secrets": _digest("secrets", resource_id)}


def _client_config(resource_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
    endpoints = ", ".join(inputs.get("endpoints", []))
    return {
        "talos_config": (
            f"context: {inputs['cluster_name']}\n"
            f"contexts:\n"
            f"  {inputs['cluster_name']}:\n"
            f"    endpoints: [{endpoints}]\n"
            f"    ca: {_digest('ca', inputs['machine_secrets'])}\n"
        )
    }


def _machine_config(role: str):
    def compute(resource_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
        return {
            "machine_config": (
                f"machine:\n  type: {role}\n"
                f"cluster:\n  clusterName: {inputs['cluster_name']}\n"
                f"  controlPlane:\n    endpoint: {inputs['cluster_endpoint']}\n"
                f"  token: {_digest(role, inputs['machine_secrets'])}\n"
            )
        }

    return compute


class SimulatedAzure(InMemoryProvider):
    """Azure resource kinds; public IPs get an address on create."""

    def __init__(self, *, delay: float = 0.0) -> None:
        super().__init__(
            computed={"azure:network/publicIp": _public_ip},
            replace_on={
                "azure:network/virtualNetwork": ["address_spaces"],
                "azure:network/subnet": ["address_prefixes"],
                "azure:compute/virtualMachine": ["storage_image_id", "vm_size"],
            },
            delay=delay,
        )


class SimulatedTalos(InMemoryProvider):
    """Talos secrets, configurations and bootstrap."""

    def __init__(self, *, delay: float = 0.0) -> None:
        super().__init__(
            computed={
                "talos:machineSecrets": _machine_secrets,
                "talos:clientConfiguration": _client_config,
                "talos:machineConfigurationControlplane": _machine_config("controlplane"),
                "talos:machineConfigurationWorker": _machine_config("worker"),
            },
            replace_on={"talos:machineSecrets": ["talos_version"]},
            delay=delay,
        )
