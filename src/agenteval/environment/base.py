"""Base interface for execution environments.

An environment decides where code changes happen. Lifecycle per iteration:

1. ``setup`` prepares the workspace (git reset, container start...)
2. ``execute`` runs agent and verification commands
3. ``get_diff`` captures the code change
4. ``teardown`` releases resources

Command failures are returned as results. Only setup and teardown raise.
"""

from __future__ import annotations

from pathlib import Path

from .shell import EnvironmentCommandResult


class EnvironmentPlugin:
    """Base contract for all execution environments."""

    name: str = "environment"

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------
    def setup(self, cwd: Path) -> None:
        """Prepare the workspace for one iteration."""
        raise NotImplementedError

    def teardown(self, cwd: Path) -> None:
        """Release per-iteration resources. Optional."""

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def execute(
        self,
        command: str,
        cwd: Path,
        timeout_ms: int | None = None,
    ) -> EnvironmentCommandResult:
        """Run a shell command and capture its output."""
        raise NotImplementedError

    def get_diff(self, cwd: Path) -> str:
        """Return staged plus unstaged changes relative to the last commit."""
        raise NotImplementedError
