from __future__ import annotations

import pytest

from cluster_provisioner.engine import ProviderError, ProviderErrorKind, RequiresReplacement
from cluster_provisioner.providers import InMemoryProvider


def _ip_for(resource_id: str, inputs: dict) -> dict:
    return {"ip_address": f"10.0.0.{resource_id.rsplit('/', 1)[1]}"}


@pytest.mark.asyncio
async def test_create_echoes_inputs_and_computed_outputs() -> None:
    provider = InMemoryProvider(computed={"publicIp": _ip_for})

    resource_id, outputs = await provider.create("publicIp", {"sku": "Standard"})

    assert resource_id == "publicIp/1"
    assert outputs == {"sku": "Standard", "ip_address": "10.0.0.1"}
    assert provider.resources["publicIp/1"]["inputs"] == {"sku": "Standard"}
    assert provider.calls == [("create", "publicIp/1")]


@pytest.mark.asyncio
async def test_ids_are_unique_across_kinds() -> None:
    provider = InMemoryProvider()
    first, _ = await provider.create("net", {})
    second, _ = await provider.create("vm", {})
    assert (first, second) == ("net/1", "vm/2")


@pytest.mark.asyncio
async def test_update_in_place() -> None:
    provider = InMemoryProvider()
    resource_id, _ = await provider.create("vm", {"size": "small"})

    outputs = await provider.update("vm", resource_id, {"size": "small"}, {"size": "large"})

    assert outputs == {"size": "large"}
    assert provider.resources[resource_id]["inputs"] == {"size": "large"}


@pytest.mark.asyncio
async def test_update_signals_replacement() -> None:
    provider = InMemoryProvider(replace_on={"vm": ["image", "zone"]})
    resource_id, _ = await provider.create("vm", {"image": "talos-1.6", "zone": "1"})

    result = await provider.update(
        "vm", resource_id, {"image": "talos-1.6", "zone": "1"}, {"image": "talos-1.7", "zone": "2"}
    )

    assert result == RequiresReplacement("changed: image, zone")
    assert provider.resources[resource_id]["inputs"]["image"] == "talos-1.6"


@pytest.mark.asyncio
async def test_update_missing_resource_rejected() -> None:
    provider = InMemoryProvider()
    with pytest.raises(ProviderError) as exc_info:
        await provider.update("vm", "vm/42", {}, {"size": "large"})
    assert exc_info.value.kind == ProviderErrorKind.REJECTED


@pytest.mark.asyncio
async def test_delete_is_idempotent() -> None:
    provider = InMemoryProvider()
    resource_id, outputs = await provider.create("net", {})
    await provider.delete("net", resource_id, outputs)
    await provider.delete("net", resource_id, outputs)
    assert provider.resources == {}
    assert provider.calls[-2:] == [("delete", resource_id), ("delete", resource_id)]


def test_requires_replacement_prediction() -> None:
    provider = InMemoryProvider(replace_on={"vm": ["image"]})
    assert provider.requires_replacement("vm", {"image": "a"}, {"image": "b"})
    assert not provider.requires_replacement("vm", {"image": "a", "n": 1}, {"image": "a", "n": 2})
    assert not provider.requires_replacement("net", {"image": "a"}, {"image": "b"})
