"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors map to exit code 1.  No tracebacks are printed.
    """
    from cluster_provisioner.config.loader import ConfigError
    from cluster_provisioner.engine.errors import (
        CyclicDependencyError,
        DuplicateNameError,
        StateLockError,
        UnknownKindError,
        ValidationError,
    )
    from cluster_provisioner.engine.store import StateStackMismatchError

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, ValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, CyclicDependencyError):
        _err(f"Dependency cycle: {' -> '.join(exc.members)}", fg=fg)
    elif isinstance(exc, DuplicateNameError | UnknownKindError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, StateStackMismatchError):
        _err(f"State mismatch: {exc}", fg=fg)
    elif isinstance(exc, StateLockError):
        _err(f"State is locked: {exc}", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
