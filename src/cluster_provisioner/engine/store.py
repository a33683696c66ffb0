"""File-backed state store, one state file per stack."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path

from cluster_provisioner.core.state import State
from cluster_provisioner.engine.errors import EngineError
from cluster_provisioner.engine.lock import StateLock

logger = logging.getLogger(__name__)

_STACK_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class StateStackMismatchError(EngineError):
    """Raised when a state file belongs to a different stack."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"State stack mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class StateStore:
    """Durable resource tables keyed by stack name.

    Writes replace the whole table atomically; callers hold ``lock(stack)``
    around their read-modify-write cycle.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, stack: str) -> Path:
        if not _STACK_PATTERN.match(stack) or stack in {".", ".."}:
            raise ValueError(f"Invalid stack name: {stack!r}")
        return self._directory / f"{stack}.state.json"

    def exists(self, stack: str) -> bool:
        return self.path_for(stack).exists()

    def lock(self, stack: str, *, wait: bool = True) -> StateLock:
        return StateLock(self.path_for(stack), wait=wait)

    def load(self, stack: str) -> State:
        """Load the stack's state, or a fresh empty one if none exists."""
        path = self.path_for(stack)
        if not path.exists():
            logger.debug("Created new state for stack %s", stack)
            return State(stack=stack)
        state = State.model_validate_json(path.read_text(encoding="utf-8"))
        if state.stack != stack:
            raise StateStackMismatchError(stack, state.stack)
        logger.debug(
            "State loaded from %s: serial=%d, %d resources",
            path,
            state.serial,
            len(state.resources),
        )
        return state

    def save(self, stack: str, state: State) -> None:
        """Save state to its JSON file.

        - Writes atomically (temp file + rename)
        - Writes a `.backup` copy of the previous state when overwriting
        """
        path = self.path_for(stack)
        path.parent.mkdir(parents=True, exist_ok=True)

        backup_path = Path(str(path) + ".backup")
        # Avoid TOCTOU race between exists() and read_bytes().
        with contextlib.suppress(FileNotFoundError):
            backup_path.write_bytes(path.read_bytes())

        data = state.model_dump(mode="json")
        content = json.dumps(data, indent=2, sort_keys=True) + "\n"

        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()
        logger.debug("State saved: serial=%d path=%s", state.serial, path)
