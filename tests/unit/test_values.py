from __future__ import annotations

import pytest

from cluster_provisioner.engine.errors import (
    CyclicDependencyError,
    DuplicateNameError,
    EngineError,
    UnknownOutputError,
    UnresolvedValueError,
)
from cluster_provisioner.engine.registry import ResourceRegistry, ResourceSpec
from cluster_provisioner.engine.values import (
    UNKNOWN,
    LiteralValue,
    Resolved,
    ResourceHandle,
    Template,
    Unresolved,
    ValueGraph,
    collect_references,
    interpolate,
    interpolate_all,
    is_unknown,
    ref,
)


def _graph() -> ValueGraph:
    return ValueGraph(ResourceRegistry())


class TestInterpolate:
    def test_plain_string_unchanged(self) -> None:
        assert interpolate("talos-rg") == "talos-rg"

    def test_whole_string_reference(self) -> None:
        assert interpolate("${net1.id}") == Unresolved("net1", "id")

    def test_embedded_reference_becomes_template(self) -> None:
        value = interpolate("${rg.name}-nic-${nic.index}")
        assert isinstance(value, Template)
        assert value.refs == (Unresolved("rg", "name"), Unresolved("nic", "index"))

    def test_f_string_roundtrip(self) -> None:
        handle = ResourceHandle(name="rg", kind="azure:resources/resourceGroup")
        assert interpolate(f"{handle['name']}-vnet") == Template(
            "${rg.name}-vnet", (Unresolved("rg", "name"),)
        )

    def test_interpolate_all_nested(self) -> None:
        value = interpolate_all({"subnets": ["${sn.id}", "fixed"], "count": 3})
        assert value == {"subnets": [Unresolved("sn", "id"), "fixed"], "count": 3}


def test_handle_references() -> None:
    handle = ResourceHandle(name="vm1", kind="vm")
    assert handle.id == Unresolved("vm1", "id")
    assert handle["ip"] == handle.output("ip") == ref("vm1", "ip")
    assert str(handle.id) == "${vm1.id}"


def test_collect_references_dedupes_in_order() -> None:
    inputs = {
        "a": Unresolved("x", "id"),
        "b": [Template("${y.name}-${x.id}", (Unresolved("y", "name"), Unresolved("x", "id")))],
    }
    assert collect_references(inputs) == [Unresolved("x", "id"), Unresolved("y", "name")]


def test_is_unknown_nested() -> None:
    assert is_unknown({"a": [1, UNKNOWN]})
    assert not is_unknown({"a": [1, "known"]})


class TestValueGraph:
    def test_declare_returns_handle(self) -> None:
        graph = _graph()
        handle = graph.declare(ResourceSpec(kind="net", name="net1"))
        assert handle == ResourceHandle(name="net1", kind="net")

    def test_dependencies_from_references_and_depends_on(self) -> None:
        graph = _graph()
        net = graph.declare(ResourceSpec(kind="net", name="net1"))
        disk = graph.declare(ResourceSpec(kind="disk", name="disk1"))
        graph.declare(
            ResourceSpec(kind="vm", name="vm1", inputs={"network": net.id}, depends_on=[disk])
        )
        assert graph.dependencies("vm1") == ["net1", "disk1"]

    def test_duplicate_name(self) -> None:
        graph = _graph()
        graph.declare(ResourceSpec(kind="net", name="net1"))
        with pytest.raises(DuplicateNameError, match="net1"):
            graph.declare(ResourceSpec(kind="vm", name="net1"))

    def test_cycle_rejected_at_declare(self) -> None:
        graph = _graph()
        graph.declare(ResourceSpec(kind="x", name="a", inputs={"v": ref("b", "id")}))
        with pytest.raises(CyclicDependencyError) as exc_info:
            graph.declare(ResourceSpec(kind="x", name="b", inputs={"v": ref("a", "id")}))
        assert "b" in exc_info.value.members
        assert "b" not in graph.registry

    def test_resolve_returns_newly_eligible(self) -> None:
        graph = _graph()
        a = graph.declare(ResourceSpec(kind="x", name="a"))
        b = graph.declare(ResourceSpec(kind="x", name="b"))
        graph.declare(ResourceSpec(kind="x", name="c", inputs={"v": a.id, "w": b.id}))
        graph.declare(ResourceSpec(kind="x", name="d", inputs={"v": a.id}))

        assert graph.resolve("a", {"id": "a-1"}) == ["d"]
        assert graph.resolve("b", {"id": "b-1"}) == ["c"]

    def test_resolve_twice_is_an_error(self) -> None:
        graph = _graph()
        graph.declare(ResourceSpec(kind="x", name="a"))
        graph.resolve("a", {"id": "1"})
        with pytest.raises(EngineError, match="already resolved"):
            graph.resolve("a", {"id": "2"})

    def test_reset_starts_a_new_run(self) -> None:
        graph = _graph()
        graph.declare(ResourceSpec(kind="x", name="a"))
        graph.resolve("a", {"id": "1"})
        graph.reset()
        assert not graph.is_resolved("a")
        graph.resolve("a", {"id": "2"})
        assert graph.outputs("a") == {"id": "2"}

    def test_resolve_inputs(self) -> None:
        graph = _graph()
        rg = graph.declare(ResourceSpec(kind="rg", name="rg"))
        graph.declare(
            ResourceSpec(
                kind="vnet",
                name="vnet",
                inputs={
                    "resource_group": rg["name"],
                    "display": interpolate("${rg.name}-vnet"),
                    "tags": {"owner": LiteralValue("ops"), "pinned": Resolved(1)},
                    "prefixes": ["10.0.0.0/16"],
                },
            )
        )
        graph.resolve("rg", {"id": "rg/1", "name": "talos-rg"})

        assert graph.resolve_inputs("vnet") == {
            "resource_group": "talos-rg",
            "display": "talos-rg-vnet",
            "tags": {"owner": "ops", "pinned": 1},
            "prefixes": ["10.0.0.0/16"],
        }

    def test_resolved_value_keeps_type(self) -> None:
        graph = _graph()
        a = graph.declare(ResourceSpec(kind="x", name="a"))
        graph.declare(ResourceSpec(kind="x", name="b", inputs={"ports": a["ports"]}))
        graph.resolve("a", {"id": "1", "ports": [80, 443]})
        assert graph.resolve_inputs("b") == {"ports": [80, 443]}

    def test_unresolved_read_raises(self) -> None:
        graph = _graph()
        a = graph.declare(ResourceSpec(kind="x", name="a"))
        graph.declare(ResourceSpec(kind="x", name="b", inputs={"v": a.id}))
        with pytest.raises(UnresolvedValueError):
            graph.resolve_inputs("b")

    def test_missing_output_raises(self) -> None:
        graph = _graph()
        a = graph.declare(ResourceSpec(kind="x", name="a"))
        graph.declare(ResourceSpec(kind="x", name="b", inputs={"v": a["nope"]}))
        graph.resolve("a", {"id": "1"})
        with pytest.raises(UnknownOutputError, match="nope"):
            graph.resolve_inputs("b")

    def test_preview_inputs_marks_unknown(self) -> None:
        graph = _graph()
        a = graph.declare(ResourceSpec(kind="x", name="a"))
        graph.declare(
            ResourceSpec(
                kind="x",
                name="b",
                inputs={"v": a.id, "t": interpolate("${a.name}-b"), "k": "literal"},
            )
        )
        assert graph.preview_inputs("b", {}) == {"v": UNKNOWN, "t": UNKNOWN, "k": "literal"}
        assert graph.preview_inputs("b", {"a": {"id": "1", "name": "x"}}) == {
            "v": "1",
            "t": "x-b",
            "k": "literal",
        }
