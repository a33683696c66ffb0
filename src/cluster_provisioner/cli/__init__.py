"""``cluster-provisioner`` command line."""

from __future__ import annotations

import logging
import os
import sys
from typing import Annotated

import typer

from cluster_provisioner import __version__

app = typer.Typer(
    name="cluster-provisioner",
    help="Plan and apply declared resource graphs.",
    no_args_is_help=True,
    add_completion=False,
)

_LOG_ENV = "PROVISIONER_LOG"
_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_LEVELS = {
    name: getattr(logging, name) for name in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
}


def _requested_level(verbose: int) -> int | None:
    """Level asked for via ``PROVISIONER_LOG`` (wins) or ``-v`` count; None leaves logging alone."""
    name = os.environ.get(_LOG_ENV, "").upper()
    if name:
        if name not in _LEVELS:
            typer.echo(
                f"WARNING: invalid {_LOG_ENV} level '{name}' "
                f"(expected {', '.join(_LEVELS)}), using INFO",
                err=True,
            )
        return _LEVELS.get(name, logging.INFO)
    if verbose <= 0:
        return None
    return logging.DEBUG if verbose > 1 else logging.INFO


def _configure_logging(verbose: int) -> None:
    level = _requested_level(verbose)
    if level is None:
        return
    # Third-party loggers stay at WARNING; only ours follow the requested level.
    logging.basicConfig(level=logging.WARNING, format=_LOG_FORMAT, stream=sys.stderr, force=True)
    logging.getLogger("cluster_provisioner").setLevel(level)


def _show_version(value: bool) -> None:
    if not value:
        return
    typer.echo(f"cluster-provisioner {__version__}")
    raise typer.Exit


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="-v for info logs, -vv for debug."),
    ] = 0,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=_show_version,
            is_eager=True,
            help="Print the version and exit.",
        ),
    ] = False,
) -> None:
    """Plan and apply declared resource graphs."""
    _ = version
    _configure_logging(verbose)


# Commands import ``app`` from this module.
from cluster_provisioner.cli import commands as _commands  # noqa: E402, F401
