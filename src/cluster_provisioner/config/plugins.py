"""Load provider plugin classes named in a stack file."""

from __future__ import annotations

import importlib
import importlib.util
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cluster_provisioner.engine.providers import ProviderPlugin

if TYPE_CHECKING:
    from types import ModuleType

    from cluster_provisioner.config.schema import ProviderEntry


class PluginLoadError(Exception):
    """Raised when a provider plugin cannot be imported or instantiated."""


def _load_local_module(module_path: str, config_dir: Path) -> ModuleType | None:
    """Load a Python module from a file relative to *config_dir*, if present."""
    parts = module_path.split(".")
    candidates = [
        config_dir / Path(*parts).with_suffix(".py"),
        config_dir / Path(*parts) / "__init__.py",
    ]
    file_path = next((p for p in candidates if p.exists()), None)
    if file_path is None:
        return None

    spec = importlib.util.spec_from_file_location(module_path, file_path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Failed to create module spec for '{file_path}'")
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def _import_module(module_path: str, config_dir: Path) -> ModuleType:
    local = _load_local_module(module_path, config_dir)
    if local is not None:
        return local
    try:
        return importlib.import_module(module_path)
    except ImportError as exc:
        raise PluginLoadError(f"Cannot import plugin module '{module_path}': {exc}") from exc


def load_plugin(entry: ProviderEntry, config_dir: Path) -> ProviderPlugin:
    """Import ``module:Class`` and instantiate it with the entry's options.

    Modules are looked up relative to *config_dir* first, then on ``sys.path``.
    """
    module_path, _, attr = entry.plugin.partition(":")
    mod = _import_module(module_path, config_dir)

    cls: Any = getattr(mod, attr, None)
    if cls is None:
        raise PluginLoadError(f"Module '{module_path}' has no attribute '{attr}'")
    if not (isinstance(cls, type) and issubclass(cls, ProviderPlugin)):
        raise PluginLoadError(f"'{entry.plugin}' is not a ProviderPlugin subclass")

    try:
        return cls(**entry.options)
    except TypeError as exc:
        raise PluginLoadError(f"Invalid options for '{entry.plugin}': {exc}") from exc


def load_plugins(entries: list[ProviderEntry], config_dir: Path) -> dict[str, ProviderPlugin]:
    """Kind -> plugin instance.  One instance serves all kinds of its entry."""
    plugins: dict[str, ProviderPlugin] = {}
    for entry in entries:
        plugin = load_plugin(entry, config_dir)
        for kind in entry.kinds:
            if kind in plugins:
                raise PluginLoadError(f"Kind '{kind}' is served by more than one plugin")
            plugins[kind] = plugin
    return plugins
