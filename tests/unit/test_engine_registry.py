import pytest
from pydantic import ValidationError

from cluster_provisioner.engine.errors import DuplicateNameError, EngineError
from cluster_provisioner.engine.registry import ResourceRegistry, ResourceSpec
from cluster_provisioner.engine.values import ResourceHandle, Unresolved


def test_register_and_get() -> None:
    registry = ResourceRegistry()
    spec = ResourceSpec(kind="net", name="net1", inputs={"cidr": "10.0.0.0/16"})
    registry.register(spec)

    assert registry.get("net1") == spec
    assert "net1" in registry
    assert len(registry) == 1


def test_duplicate_name_rejected() -> None:
    registry = ResourceRegistry()
    registry.register(ResourceSpec(kind="net", name="net1"))
    with pytest.raises(DuplicateNameError, match="net1"):
        registry.register(ResourceSpec(kind="vm", name="net1"))


def test_get_unknown_raises() -> None:
    with pytest.raises(EngineError, match="Unknown resource"):
        ResourceRegistry().get("missing")


def test_all_is_restartable_and_ordered() -> None:
    registry = ResourceRegistry()
    for name in ("c", "a", "b"):
        registry.register(ResourceSpec(kind="x", name=name))

    view = registry.all()
    assert [s.name for s in view] == ["c", "a", "b"]
    assert [s.name for s in view] == ["c", "a", "b"]
    assert len(view) == 3


def test_all_sees_later_registrations() -> None:
    registry = ResourceRegistry()
    view = registry.all()
    registry.register(ResourceSpec(kind="x", name="a"))
    assert [s.name for s in view] == ["a"]


def test_index_is_declaration_order() -> None:
    registry = ResourceRegistry()
    registry.register(ResourceSpec(kind="x", name="b"))
    registry.register(ResourceSpec(kind="x", name="a"))
    assert registry.index("b") == 0
    assert registry.index("a") == 1
    assert registry.index("undeclared") == 2


def test_inputs_are_copied_on_register() -> None:
    registry = ResourceRegistry()
    inputs = {"tags": {"env": "dev"}}
    registry.register(ResourceSpec(kind="x", name="a", inputs=inputs))
    inputs["tags"]["env"] = "prod"
    assert registry.get("a").inputs == {"tags": {"env": "dev"}}


class TestResourceSpec:
    @pytest.mark.parametrize("name", ["net 1", "net.1", "", "vm/1"])
    def test_invalid_names(self, name: str) -> None:
        with pytest.raises(ValidationError):
            ResourceSpec(kind="net", name=name)

    def test_depends_on_accepts_handles_and_strings(self) -> None:
        handle = ResourceHandle(name="disk1", kind="disk")
        spec = ResourceSpec(kind="vm", name="vm1", depends_on=[handle, "net1"])
        assert spec.depends_on == ("disk1", "net1")

    def test_depends_on_single_value(self) -> None:
        assert ResourceSpec(kind="vm", name="vm1", depends_on="net1").depends_on == ("net1",)

    def test_dependency_names(self) -> None:
        spec = ResourceSpec(
            kind="vm",
            name="vm1",
            inputs={"nic": Unresolved("nic1", "id"), "subnet": Unresolved("sn", "id")},
            depends_on=["nic1", "bootstrap"],
        )
        assert spec.dependency_names() == ["nic1", "sn", "bootstrap"]

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            ResourceSpec(kind="vm", name="vm1", count=3)

    def test_frozen(self) -> None:
        spec = ResourceSpec(kind="vm", name="vm1")
        with pytest.raises(ValidationError):
            spec.kind = "net"
