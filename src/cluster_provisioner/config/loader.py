"""YAML stack file loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from cluster_provisioner.config.schema import ResourceEntry, StackConfig
from cluster_provisioner.config.variables import CONFIG_NAMESPACE, config_keys, resolve_config

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


# Field name → environment variable.
_SETTINGS_ENV_MAP: dict[str, str] = {
    "parallelism": "PROVISIONER_PARALLELISM",
    "call_timeout": "PROVISIONER_CALL_TIMEOUT",
    "state_dir": "PROVISIONER_STATE_DIR",
    "stack": "PROVISIONER_STACK",
}


def _resolve_settings(raw_settings: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Resolve settings from YAML, env vars, and ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.  A relative
    ``state_dir`` is taken relative to the stack file.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    unknown = sorted(set(raw_settings) - set(_SETTINGS_ENV_MAP))
    if unknown:
        raise ConfigError(f"Unknown settings: {', '.join(unknown)}")

    resolved: dict[str, Any] = {}
    for field, env_key in _SETTINGS_ENV_MAP.items():
        val = raw_settings.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            resolved[field] = val

    state_dir = Path(resolved.get("state_dir", ".provisioner"))
    resolved["state_dir"] = state_dir if state_dir.is_absolute() else config_dir / state_dir
    return resolved


def _validate_unique_names(resources: list[ResourceEntry]) -> list[str]:
    """Check that no two resources share the same name."""
    seen: dict[str, str] = {}  # name → kind of first declaration
    errors: list[str] = []
    for r in resources:
        if r.name in seen:
            errors.append(f"Duplicate resource name '{r.name}' ({seen[r.name]} and {r.kind})")
        else:
            seen[r.name] = r.kind
    return errors


def _apply_stack_config(config: StackConfig) -> None:
    """Substitute ``${config.<key>}`` in resources and outputs.

    Raises:
        ConfigError: If a referenced key is missing from the ``config`` section.
    """
    users: dict[str, list[str]] = {}  # key → resources / outputs reading it
    for r in config.resources:
        for key in config_keys(r.inputs):
            users.setdefault(key, []).append(r.name)
    for name, value in config.outputs.items():
        for key in config_keys(value):
            users.setdefault(key, []).append(f"output {name}")

    missing = [k for k in users if k not in config.config]
    if missing:
        raise ConfigError(
            "\n".join(
                f"Missing required config value '{k}' (used by {', '.join(users[k])})"
                for k in missing
            )
        )

    for r in config.resources:
        r.inputs = resolve_config(r.inputs, config.config)
    config.outputs = resolve_config(config.outputs, config.config)
    logger.debug("Substituted config keys: %s", ", ".join(users) or "none")


def load_config(path: Path | str) -> StackConfig:
    """Load a YAML stack file and return a ``StackConfig`` object.

    Raises:
        ConfigError: On YAML parse errors, missing sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    try:
        raw["settings"] = _resolve_settings(raw.get("settings") or {}, path.parent)
        config = StackConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = path.parent

    errors = _validate_unique_names(config.resources)
    errors.extend(
        f"Resource name '{r.name}' is reserved for stack config values"
        for r in config.resources
        if r.name == CONFIG_NAMESPACE
    )
    if errors:
        raise ConfigError("\n".join(errors))

    _apply_stack_config(config)

    logger.info(
        "Loaded stack %s from %s (%d resources)",
        config.settings.stack,
        path,
        len(config.resources),
    )
    return config
