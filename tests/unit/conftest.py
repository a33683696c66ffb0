"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from cluster_provisioner.config import load
from cluster_provisioner.engine import Engine, StateStore
from cluster_provisioner.providers import InMemoryProvider

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from cluster_provisioner.config.schema import StackConfig

_PROVISIONER_ENV_VARS = (
    "PROVISIONER_PARALLELISM",
    "PROVISIONER_CALL_TIMEOUT",
    "PROVISIONER_STATE_DIR",
    "PROVISIONER_STACK",
    "PROVISIONER_LOG",
)


@pytest.fixture(autouse=True)
def _clean_provisioner_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove PROVISIONER_* env vars so unit tests don't leak host config."""
    for var in _PROVISIONER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., StackConfig]:
    """Factory fixture: write YAML + optional .env, return loaded StackConfig."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> StackConfig:
        (tmp_path / "stack.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "stack.yaml")

    return _make


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider()


@pytest.fixture
def make_engine(tmp_path: Path) -> Callable[..., Engine]:
    """Factory fixture: engine over a state dir in ``tmp_path``.

    Every kind in *kinds* is served by *plugin*.
    """

    def _make(plugin, kinds=("net", "vm", "disk"), **kwargs) -> Engine:
        return Engine(
            providers=dict.fromkeys(kinds, plugin),
            store=StateStore(tmp_path / "state"),
            **kwargs,
        )

    return _make
