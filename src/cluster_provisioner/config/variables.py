"""Stack config substitution.

A stack file's ``config`` section holds plain values (image ids, regions,
sizes) that resources read with ``${config.<key>}``.  Substitution happens at
load time, before output references are parsed, so a config value never shows
up as a dependency.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

CONFIG_NAMESPACE = "config"

_CONFIG_REF = re.compile(r"\$\{config\.([A-Za-z0-9_]+)\}")


def config_keys(value: Any) -> list[str]:
    """Config keys referenced anywhere in *value*, in first-seen order."""
    keys: list[str] = []
    if isinstance(value, str):
        keys.extend(_CONFIG_REF.findall(value))
    elif isinstance(value, dict):
        for v in value.values():
            keys.extend(config_keys(v))
    elif isinstance(value, list):
        for v in value:
            keys.extend(config_keys(v))
    return list(dict.fromkeys(keys))


def resolve_config(value: Any, config: Mapping[str, Any]) -> Any:
    """Replace ``${config.<key>}`` in string values, recursively.

    A string that is exactly one reference takes the config value as is, so
    numbers and lists keep their type; embedded references are formatted
    into the surrounding text.  Every key must be present in *config*.
    """
    if isinstance(value, str):
        whole = _CONFIG_REF.fullmatch(value)
        if whole:
            return config[whole.group(1)]
        return _CONFIG_REF.sub(lambda m: str(config[m.group(1)]), value)
    if isinstance(value, dict):
        return {k: resolve_config(v, config) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_config(v, config) for v in value]
    return value
