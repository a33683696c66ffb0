"""Comparison of desired inputs against the last applied inputs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from cluster_provisioner.engine.values import is_unknown

if TYPE_CHECKING:
    from collections.abc import Mapping

    from cluster_provisioner.engine.providers import CompareStrategy


def values_differ(
    desired: Any,
    prior: Any,
    *,
    strategy: CompareStrategy | None = None,
) -> bool:
    """Check whether a desired value differs from the prior (stored) value.

    A desired value that is still unknown at plan time always differs.

    - ``strategy="set"``: lists compare as sets; other types use equality.
    - ``strategy="partial"``: for dicts, only keys present in *desired* are
      compared, so provider-added defaults in *prior* are ignored.
    - ``strategy=None`` or ``"exact"``: strict equality.
    """
    if is_unknown(desired):
        return True

    if strategy == "set":
        if isinstance(desired, list) and isinstance(prior, list):
            return set(map(repr, desired)) != set(map(repr, prior))
        return desired != prior

    if strategy == "partial" and isinstance(desired, dict) and isinstance(prior, dict):
        return any(values_differ(v, prior.get(k), strategy="partial") for k, v in desired.items())
    return desired != prior


def diff_inputs(
    desired: Mapping[str, Any],
    prior: Mapping[str, Any],
    strategies: Mapping[str, CompareStrategy] | None = None,
) -> dict[str, dict[str, Any]]:
    """Per-input ``{"from": ..., "to": ...}`` for every input that changed.

    Inputs dropped from *desired* show up with ``"to": None``.
    """
    strategies = strategies or {}
    diff = {
        k: {"from": prior.get(k), "to": v}
        for k, v in desired.items()
        if k not in prior or values_differ(v, prior[k], strategy=strategies.get(k))
    }
    for k in prior:
        if k not in desired:
            diff[k] = {"from": prior[k], "to": None}
    return diff
