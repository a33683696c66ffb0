"""Declare a small Talos cluster from Python and apply it.

Usage:
    python app.py [--state-dir DIR] [--destroy] [--control-planes N]
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from cluster_provisioner.core.state import ResourceStatus
from cluster_provisioner.engine.engine import Engine
from cluster_provisioner.engine.store import StateStore
from cluster_provisioner.engine.types import RunMode, RunStatus
from cluster_provisioner.engine.values import interpolate
from cluster_provisioner.providers import InMemoryProvider

AZURE_KINDS = ["rg", "vnet", "subnet", "public_ip", "nic", "vm"]
TALOS_KINDS = ["machine_secrets", "machine_config", "bootstrap"]


def _public_ip(resource_id: str, inputs: dict) -> dict:
    return {"ip_address": f"20.50.0.{resource_id.rsplit('/', 1)[1]}"}


def _machine_config(resource_id: str, inputs: dict) -> dict:
    return {"machine_config": f"type: {inputs['role']}\nendpoint: {inputs['endpoint']}\n"}


def declare_cluster(engine: Engine, control_planes: int) -> None:
    rg = engine.resource("rg", "talos-rg", {"location": "westeurope"})
    vnet = engine.resource(
        "vnet", "talos-vnet", {"resource_group": rg.id, "address_spaces": ["10.0.0.0/16"]}
    )
    secrets = engine.resource("machine_secrets", "talos-ms", {"talos_version": "v1.7"})
    lb_ip = engine.resource("public_ip", "talos-lb-pub-ip", {"resource_group": rg.id})
    cp_cfg = engine.resource(
        "machine_config",
        "talos-cp-machine-cfg",
        {
            "role": "controlplane",
            "secrets": secrets.id,
            "endpoint": interpolate(f"https://{lb_ip['ip_address']}:6443"),
        },
    )

    first_ip = None
    for i in range(1, control_planes + 1):
        subnet = engine.resource(
            "subnet",
            f"subnet-{i:02d}",
            {"virtual_network": vnet.id, "address_prefixes": [f"10.0.{i}.0/24"]},
        )
        ip = engine.resource("public_ip", f"cp-pub-ip-{i:02d}", {"resource_group": rg.id})
        nic = engine.resource(
            "nic", f"cp-ni-{i:02d}", {"subnet": subnet.id, "public_ip_address": ip.id}
        )
        vm = engine.resource(
            "vm",
            f"talos-cp-{i:02d}",
            {
                "network_interface": nic.id,
                "vm_size": "Standard_DS1_v2",
                "custom_data": cp_cfg["machine_config"],
            },
        )
        if first_ip is None:
            first_ip = (ip, vm)

    ip, vm = first_ip
    engine.resource("bootstrap", "bootstrap", {"node": ip["ip_address"]}, depends_on=[vm])
    engine.export("kubernetes_endpoint", cp_cfg["endpoint"])
    engine.export("bootstrap_node", ip["ip_address"])


def on_status(name: str, status: ResourceStatus) -> None:
    if status in (ResourceStatus.READY, ResourceStatus.DELETED, ResourceStatus.FAILED):
        print(f"  {name}: {status.value}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--state-dir", type=Path, default=Path(".provisioner"))
    parser.add_argument("--control-planes", type=int, default=3)
    parser.add_argument("--destroy", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)

    azure = InMemoryProvider(computed={"public_ip": _public_ip}, delay=0.1)
    talos = InMemoryProvider(computed={"machine_config": _machine_config})
    providers = {**dict.fromkeys(AZURE_KINDS, azure), **dict.fromkeys(TALOS_KINDS, talos)}

    engine = Engine(
        providers=providers,
        store=StateStore(args.state_dir),
        stack="talos-api",
        parallelism=4,
        on_status=on_status,
    )
    declare_cluster(engine, args.control_planes)

    plan = engine.plan(destroy=args.destroy)
    print(f"Plan: {plan.summary()}")
    for change in plan.changes:
        print(f"  {change.action.value:8} {change.name}")

    result = engine.run(RunMode.DESTROY if args.destroy else RunMode.APPLY)
    print(f"Run {result.status.value}")
    for name, value in sorted(result.outputs.items()):
        print(f"  {name} = {value}")
    if result.status != RunStatus.SUCCEEDED:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
