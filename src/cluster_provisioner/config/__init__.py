"""YAML stack loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from cluster_provisioner.config.loader import ConfigError, load_config
from cluster_provisioner.config.plugins import PluginLoadError, load_plugins
from cluster_provisioner.config.schema import EngineSettings, StackConfig
from cluster_provisioner.engine.engine import Engine, StatusCallback
from cluster_provisioner.engine.errors import DuplicateNameError
from cluster_provisioner.engine.store import StateStore
from cluster_provisioner.engine.types import RunMode

if TYPE_CHECKING:
    from pathlib import Path

    from cluster_provisioner.engine.types import Plan, RunResult

__all__ = [
    "ConfigError",
    "EngineSettings",
    "StackConfig",
    "apply",
    "build_engine",
    "destroy",
    "load",
    "load_config",
    "outputs",
    "plan",
]


def load(path: Path | str) -> StackConfig:
    """Load a YAML stack file."""
    return load_config(path)


def build_engine(config: StackConfig, *, on_status: StatusCallback | None = None) -> Engine:
    """Build an ``Engine`` with every resource and output of *config* declared."""
    try:
        plugins = load_plugins(config.providers, config.config_dir)
    except PluginLoadError as exc:
        raise ConfigError(str(exc)) from exc

    engine = Engine.from_settings(config.settings, plugins, on_status=on_status)
    try:
        for spec in config.specs():
            engine.declare(spec)
    except DuplicateNameError as exc:
        raise ConfigError(str(exc)) from exc
    for name, value in config.exported().items():
        engine.export(name, value)
    return engine


def plan(config: StackConfig, *, destroy: bool = False) -> Plan:
    """Plan changes for the given configuration."""
    return build_engine(config).plan(destroy=destroy)


def apply(config: StackConfig, *, on_status: StatusCallback | None = None) -> RunResult:
    """Plan and apply in one step."""
    return build_engine(config, on_status=on_status).run(RunMode.APPLY)


def destroy(config: StackConfig, *, on_status: StatusCallback | None = None) -> RunResult:
    """Delete every resource tracked in the stack's state."""
    return build_engine(config, on_status=on_status).run(RunMode.DESTROY)


def outputs(config: StackConfig) -> dict[str, Any]:
    """Exported outputs recorded by the last apply."""
    store = StateStore(config.settings.state_dir)
    return dict(store.load(config.settings.stack).outputs)
