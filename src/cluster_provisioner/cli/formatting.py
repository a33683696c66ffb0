"""Plan and run output rendering (Terraform-style)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from cluster_provisioner.core.state import ResourceStatus
from cluster_provisioner.engine.types import Action, RunStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from cluster_provisioner.engine.types import Plan, ResourceChange, RunResult


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    description: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "will be created"),
    "update": _ActionStyle("yellow", "~", "will be updated in-place"),
    "replace": _ActionStyle("magenta", "-/+", "must be replaced"),
    "delete": _ActionStyle("red", "-", "will be destroyed"),
    "no-op": _ActionStyle("bright_black", " ", "is up-to-date"),
}

_STATUS_VERBS: dict[ResourceStatus, str] = {
    ResourceStatus.CREATING: "Creating...",
    ResourceStatus.UPDATING: "Modifying...",
    ResourceStatus.DELETING: "Destroying...",
    ResourceStatus.READY: "Complete",
    ResourceStatus.DELETED: "Destruction complete",
    ResourceStatus.FAILED: "Failed",
    ResourceStatus.BLOCKED: "Skipped (dependency failed)",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


def status_verb(status: ResourceStatus) -> str:
    return _STATUS_VERBS.get(status, status.value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_actionable_changes(plan: Plan) -> bool:
    """Return True if the plan contains any non-NOOP changes."""
    return any(c.action != Action.NOOP for c in plan.changes)


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    """Format a value for display in a plan diff block."""
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    return str(value)


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def _change_attrs(change: ResourceChange) -> dict[str, str]:
    """Extract displayable ``key → formatted value`` pairs from a change."""
    if change.action == Action.CREATE and change.planned:
        return {k: _format_value(v) for k, v in change.planned.items()}
    if change.action in (Action.UPDATE, Action.REPLACE) and change.diff:
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in change.diff.items()
        }
    return {}


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a Terraform-style block."""
    style = styler(color)
    s = _ACTION_STYLES[change.action.value]
    sc = {"fg": s.color}
    header = f"  # {change.name} {s.description}"
    if change.reason:
        header += f" ({change.reason})"

    lines = [
        style(header, bold=True, **sc),
        style(f'  {s.symbol} resource "{change.kind}" "{change.name}" {{', **sc),
        *[
            style(f"      {s.symbol} {k} = {v}", **sc)
            for k, v in _align_values(_change_attrs(change))
        ],
        style("    }", **sc),
    ]
    return "\n".join(lines)


def format_changes(changes: list[ResourceChange], *, color: bool = True) -> str:
    """Render a list of changes as Terraform-style diff blocks."""
    blocks = [format_change(c, color=color) for c in changes if c.action != Action.NOOP]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


def format_plan(plan: Plan, *, color: bool = True) -> str:
    """Render the full plan output with per-change diff blocks."""
    return format_changes(plan.changes, color=color)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_PLAN_VERBS = ("to add", "to change", "to replace", "to destroy")
_APPLY_VERBS = ("added", "changed", "replaced", "destroyed")
_SUMMARY_ACTIONS = ("create", "update", "replace", "delete")
_SUMMARY_COLORS = ("green", "yellow", "magenta", "red")


def _format_summary(summary: dict[str, int], verbs: tuple[str, ...], *, color: bool) -> str:
    """Build the ``N verb, N verb, ...`` part of a summary line."""
    style = styler(color)
    counts = [summary.get(a, 0) for a in _SUMMARY_ACTIONS]
    parts = [
        style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}"
        for n, verb, fg in zip(counts, verbs, _SUMMARY_COLORS, strict=True)
    ]
    return ", ".join(parts)


def format_plan_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to replace, 0 to destroy.``"""
    return f"Plan: {_format_summary(summary, _PLAN_VERBS, color=color)}."


def format_failures(result: RunResult, *, color: bool = True) -> str:
    """One line per failed or blocked resource."""
    style = styler(color)
    lines = []
    for name, o in result.failed.items():
        if o.status == ResourceStatus.FAILED:
            lines.append(style(f"  {name}: {o.error}", fg="red"))
        else:
            lines.append(style(f"  {name}: blocked by {', '.join(o.blocked_by)}", fg="yellow"))
    return "\n".join(lines)


def format_run_summary(result: RunResult, *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 replaced, 0 destroyed.``"""
    style = styler(color)
    counts = _format_summary(result.summary(), _APPLY_VERBS, color=color)
    if result.status == RunStatus.SUCCEEDED:
        header = style("Apply complete!", fg="green", bold=True)
        return f"{header} Resources: {counts}."
    if result.status == RunStatus.ABORTED:
        header = style("Apply canceled.", fg="yellow", bold=True)
        return f"{header} Resources: {counts}."
    header = style("Apply finished with errors.", fg="red", bold=True)
    return f"{header} Resources: {counts}.\n{format_failures(result, color=color)}"


def format_outputs(outputs: dict[str, Any]) -> str:
    """Render ``name = value`` lines, aligned."""
    if not outputs:
        return "No outputs."
    return "\n".join(
        f"{k} = {_format_value(v)}"
        for k, v in _align_values({k: outputs[k] for k in sorted(outputs)})
    )
