"""CLI command implementations."""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from cluster_provisioner.cli import app
from cluster_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from cluster_provisioner.core.state import ResourceStatus
    from cluster_provisioner.engine.engine import Engine
    from cluster_provisioner.engine.types import Plan, RunMode, RunResult

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the stack file."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


async def _run_cancelable(engine: Engine, mode: RunMode) -> RunResult:
    """Run with Ctrl-C bound to ``engine.cancel``: running calls finish, no new ones start."""
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, engine.cancel)
        installed = True
    try:
        return await engine.arun(mode)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _run_with_progress(engine: Engine, plan_obj: Plan, mode: RunMode, *, color: bool) -> RunResult:
    """Run with a Rich progress bar and per-resource status lines."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from cluster_provisioner.cli.formatting import status_verb
    from cluster_provisioner.core.state import ResourceStatus
    from cluster_provisioner.engine.types import Action

    console = Console(no_color=not color)
    actionable = {c.name for c in plan_obj.changes if c.action != Action.NOOP}
    finished = {
        ResourceStatus.READY,
        ResourceStatus.DELETED,
        ResourceStatus.FAILED,
        ResourceStatus.BLOCKED,
    }

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Applying", total=len(actionable))

        def on_status(name: str, status: ResourceStatus) -> None:
            if name not in actionable or status == ResourceStatus.PENDING:
                return
            if status in finished:
                progress.console.print(f"  {name}: {status_verb(status)}")
                progress.advance(task)
            else:
                progress.update(task, description=f"{name}: {status_verb(status)}")

        engine.on_status = on_status
        try:
            return asyncio.run(_run_cancelable(engine, mode))
        finally:
            engine.on_status = None


def _confirm_and_run(
    config: Path,
    mode: RunMode,
    *,
    color: bool,
    auto_approve: bool,
    confirm_msg: str,
    empty_msg: str,
) -> None:
    """Shared flow: show plan -> confirm -> run with progress -> print summary.

    Exits with code 0 if no actionable changes, 1 if any resource failed.
    """
    from cluster_provisioner.cli.formatting import (
        format_plan,
        format_plan_summary,
        format_run_summary,
        has_actionable_changes,
    )
    from cluster_provisioner.config import build_engine, load
    from cluster_provisioner.engine.types import RunMode, RunStatus

    try:
        cfg = load(config)
        engine = build_engine(cfg)
        plan_obj = engine.plan(destroy=mode == RunMode.DESTROY)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not has_actionable_changes(plan_obj):
        typer.echo(empty_msg)
        raise typer.Exit(0)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))
    typer.echo()

    if not auto_approve:
        try:
            typer.confirm(confirm_msg, abort=True)
        except typer.Abort as e:
            typer.echo("Apply canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        result = _run_with_progress(engine, plan_obj, mode, color=color)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo()
    typer.echo(format_run_summary(result, color=color))
    if result.status != RunStatus.SUCCEEDED:
        raise typer.Exit(1)


@app.command()
def plan(
    config: ConfigPath = Path("stack.yaml"),
    destroy: Annotated[
        bool,
        typer.Option("--destroy", help="Plan the destruction of all resources."),
    ] = False,
    no_color: NoColor = False,
) -> None:
    """Show changes required by the current stack file."""
    from cluster_provisioner.cli.formatting import (
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )
    from cluster_provisioner.config import load
    from cluster_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg, destroy=destroy)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))

    if has_actionable_changes(plan_obj):
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    config: ConfigPath = Path("stack.yaml"),
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Apply the changes required by the current stack file."""
    from cluster_provisioner.engine.types import RunMode

    _confirm_and_run(
        config,
        RunMode.APPLY,
        color=_use_color(no_color),
        auto_approve=auto_approve,
        confirm_msg="Do you want to apply these changes?",
        empty_msg="No changes. Resources are up-to-date.",
    )


@app.command()
def destroy(
    config: ConfigPath = Path("stack.yaml"),
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Destroy all managed resources."""
    from cluster_provisioner.engine.types import RunMode

    _confirm_and_run(
        config,
        RunMode.DESTROY,
        color=_use_color(no_color),
        auto_approve=auto_approve,
        confirm_msg="Do you really want to destroy all resources?",
        empty_msg="No resources to destroy.",
    )


@app.command()
def output(
    config: ConfigPath = Path("stack.yaml"),
    as_json: Annotated[bool, typer.Option("--json", help="Print outputs as JSON.")] = False,
    no_color: NoColor = False,
) -> None:
    """Show exported outputs from the last apply."""
    from cluster_provisioner.cli.formatting import format_outputs
    from cluster_provisioner.config import load
    from cluster_provisioner.config import outputs as outputs_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        values = outputs_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if as_json:
        typer.echo(json.dumps(values, indent=2, sort_keys=True))
    else:
        typer.echo(format_outputs(values))
