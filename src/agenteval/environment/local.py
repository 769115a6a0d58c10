"""Local git environments: the default execution environment.

Commands run through the host shell; workspace isolation comes from git
(reset --hard, clean -fd) and diffs come from the git CLI.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterable
from pathlib import Path

from ..config import settings
from ..errors import InfrastructureError
from .base import EnvironmentPlugin
from .git import (
    DEFAULT_PRESERVED_PATHS,
    ensure_repository,
    has_head,
    intent_to_add_argv,
    reset_workspace,
    run_git,
    workspace_diff,
)
from .shell import EnvironmentCommandResult, run_process

logger = logging.getLogger(__name__)


class LocalEnvironment(EnvironmentPlugin):
    """Git-isolated workspace on the host; every setup starts from the last commit."""

    name = "local"

    def __init__(self, preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS) -> None:
        self.preserve = tuple(preserve)

    def setup(self, cwd: Path) -> None:
        ensure_repository(cwd)
        reset_workspace(cwd, self.preserve)

    def execute(
        self,
        command: str,
        cwd: Path,
        timeout_ms: int | None = None,
    ) -> EnvironmentCommandResult:
        return run_process(
            command,
            cwd=cwd,
            timeout_ms=timeout_ms or settings.timeouts.command_ms,
        )

    def get_diff(self, cwd: Path) -> str:
        return workspace_diff(cwd, self.preserve)


class PreservingLocalEnvironment(LocalEnvironment):
    """Local environment that keeps the user's uncommitted work.

    Setup snapshots the uncommitted diff (untracked files included) without
    cleaning, so the agent sees the current work. Teardown resets the workspace
    and re-applies the snapshot. Without a snapshot teardown touches nothing.
    """

    name = "preserving-local"

    def __init__(self, preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS) -> None:
        super().__init__(preserve)
        self._snapshot: str | None = None

    def setup(self, cwd: Path) -> None:
        ensure_repository(cwd)
        if not has_head(cwd):
            raise InfrastructureError(
                f"Repository has no commits to restore uncommitted work onto: {cwd}"
            )
        run_git(intent_to_add_argv(self.preserve)[1:], cwd)
        self._snapshot = run_git(["diff", "HEAD", "--binary"], cwd)

    def teardown(self, cwd: Path) -> None:
        snapshot, self._snapshot = self._snapshot, None
        if snapshot is None:
            logger.debug("No snapshot taken for %s; leaving the workspace as is", cwd)
            return
        reset_workspace(cwd, self.preserve)
        if snapshot.strip():
            self._reapply(snapshot, cwd)

    def _reapply(self, snapshot: str, cwd: Path) -> None:
        with tempfile.TemporaryDirectory(prefix="agenteval-restore-") as tmp_dir:
            patch_path = Path(tmp_dir) / "uncommitted.patch"
            patch_path.write_text(snapshot)
            result = run_process(
                ["git", "apply", "--whitespace=nowarn", str(patch_path)],
                cwd=cwd,
                timeout_ms=settings.timeouts.git_ms,
            )
        if not result.ok:
            logger.warning(
                "Could not restore uncommitted changes in %s: %s",
                cwd,
                result.stderr.strip() or f"git apply exited {result.exit_code}",
            )
