from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from cluster_provisioner.core.state import (
    ResourceState,
    ResourceStatus,
    State,
    compute_inputs_hash,
    compute_state_digest,
)
from cluster_provisioner.engine.errors import StateLockError
from cluster_provisioner.engine.store import StateStackMismatchError, StateStore

if TYPE_CHECKING:
    from pathlib import Path


def _resource(name: str = "net1", **kwargs) -> ResourceState:
    inputs = kwargs.pop("inputs", {"cidr": "10.0.0.0/16"})
    return ResourceState(
        name=name,
        kind="net",
        id=f"net/{name}",
        inputs=inputs,
        outputs={**inputs, "id": f"net/{name}"},
        inputs_hash=compute_inputs_hash(inputs),
        **kwargs,
    )


def test_state_digest_excludes_timestamps() -> None:
    t0 = datetime(2020, 1, 1, tzinfo=UTC)
    t1 = t0 + timedelta(days=1)

    state = State(stack="dev", resources={"net1": _resource(created_at=t0, updated_at=t0)})
    d0 = compute_state_digest(state)

    state.resources["net1"].created_at = t1
    state.resources["net1"].updated_at = t1
    assert compute_state_digest(state) == d0


def test_state_digest_includes_serial_lineage_and_status() -> None:
    state = State(stack="dev", resources={"net1": _resource()})
    d0 = compute_state_digest(state)

    state.serial += 1
    assert compute_state_digest(state) != d0

    state.serial = 0
    state.lineage = "different"
    d1 = compute_state_digest(state)
    assert d1 != d0

    state.resources["net1"].status = ResourceStatus.FAILED
    assert compute_state_digest(state) != d1


def test_inputs_hash_is_key_order_independent() -> None:
    assert compute_inputs_hash({"a": 1, "b": [1, 2]}) == compute_inputs_hash({"b": [1, 2], "a": 1})
    assert compute_inputs_hash({"a": 1}) != compute_inputs_hash({"a": 2})


class TestStateStore:
    def test_load_missing_returns_fresh_state(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        state = store.load("dev")
        assert state.stack == "dev"
        assert state.serial == 0
        assert state.resources == {}
        assert not store.exists("dev")

    def test_save_and_load_roundtrip(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "nested")
        state = State(stack="dev", serial=3, resources={"net1": _resource()}, outputs={"x": 1})
        store.save("dev", state)

        loaded = store.load("dev")
        assert loaded == state
        assert store.path_for("dev") == tmp_path / "nested" / "dev.state.json"

    def test_state_file_is_sorted_json(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        store.save("dev", State(stack="dev"))
        text = store.path_for("dev").read_text()
        assert text.endswith("\n")
        data = json.loads(text)
        assert list(data) == sorted(data)

    def test_save_writes_backup_of_previous_state(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        state = State(stack="dev")
        store.save("dev", state)
        first = store.path_for("dev").read_bytes()

        state.serial = 1
        store.save("dev", state)

        backup = tmp_path / "dev.state.json.backup"
        assert backup.read_bytes() == first
        assert json.loads(store.path_for("dev").read_text())["serial"] == 1

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        store.save("dev", State(stack="dev"))
        store.save("dev", State(stack="dev", serial=1))
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "dev.state.json",
            "dev.state.json.backup",
        ]

    def test_stacks_are_isolated(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        store.save("dev", State(stack="dev", resources={"net1": _resource()}))
        assert store.load("prod").resources == {}

    def test_stack_mismatch(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        store.save("dev", State(stack="prod"))
        with pytest.raises(StateStackMismatchError, match="expected dev, got prod"):
            store.load("dev")

    @pytest.mark.parametrize("stack", ["", "..", "a/b", "dev stack"])
    def test_invalid_stack_names(self, tmp_path: Path, stack: str) -> None:
        with pytest.raises(ValueError, match="Invalid stack name"):
            StateStore(tmp_path).path_for(stack)


class TestStateLock:
    def test_lock_is_exclusive(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        with store.lock("dev") as held:
            assert held.locked
            with pytest.raises(StateLockError, match="Cannot lock"), store.lock("dev", wait=False):
                pass
        assert not held.locked

    def test_lock_released_after_use(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        with store.lock("dev"):
            pass
        with store.lock("dev", wait=False) as again:
            assert again.locked
