"""Base interface for agent runners.

A runner turns a natural-language instruction into changes in the workspace,
either by shelling out to a coding agent or by asking a model for file writes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import cycles avoided at runtime
    from ..environment import EnvironmentPlugin


@dataclass(frozen=True, slots=True)
class RunnerContext:
    """Where and how long a runner may act."""

    cwd: Path
    environment: EnvironmentPlugin
    timeout_ms: int | None = None


@dataclass(frozen=True, slots=True)
class RunnerExecResult:
    """Outcome of one agent invocation. A non-zero exit code is data, not an error."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    files_written: tuple[str, ...] = ()


class RunnerPlugin:
    """Base contract for all runners."""

    name: str = "runner"
    provider: str | None = None
    model: str | None = None

    def execute(self, prompt: str, context: RunnerContext) -> RunnerExecResult:
        """Invoke the agent with ``prompt`` inside ``context.cwd``."""
        raise NotImplementedError
