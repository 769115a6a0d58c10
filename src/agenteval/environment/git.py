"""Git plumbing for workspace isolation and diff capture."""

from __future__ import annotations

import shlex
from collections.abc import Iterable
from pathlib import Path

from ..config import settings
from ..errors import InfrastructureError
from .shell import run_process

DEFAULT_PRESERVED_PATHS: tuple[str, ...] = (".agenteval",)


def _exclude_pathspecs(preserve: Iterable[str]) -> list[str]:
    return [f":(exclude){path}" for path in preserve]


def intent_to_add_argv(preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS) -> list[str]:
    """Register untracked files so new files show up as added-file diffs."""
    return ["git", "add", "--intent-to-add", "--all", "--", ".", *_exclude_pathspecs(preserve)]


def diff_argv(*, staged: bool, preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS) -> list[str]:
    argv = ["git", "diff"]
    if staged:
        argv.append("--cached")
    return [*argv, "--", ".", *_exclude_pathspecs(preserve)]


def combine_diffs(staged: str, unstaged: str) -> str:
    """Join staged and unstaged diffs, dropping empty parts."""
    return "\n".join(part for part in (staged, unstaged) if part)


def as_shell(argv: list[str]) -> str:
    return shlex.join(argv)


def run_git(args: list[str], cwd: Path) -> str:
    """Run a git command that must succeed, returning stdout."""
    result = run_process(["git", *args], cwd=cwd, timeout_ms=settings.timeouts.git_ms)
    if not result.ok:
        detail = result.stderr.strip() or f"exit code {result.exit_code}"
        raise InfrastructureError(f"git {' '.join(args)} failed in {cwd}: {detail}")
    return result.stdout


def has_head(cwd: Path) -> bool:
    """Whether the repository has at least one commit."""
    result = run_process(
        ["git", "rev-parse", "--verify", "--quiet", "HEAD"],
        cwd=cwd,
        timeout_ms=settings.timeouts.git_ms,
    )
    return result.ok


def ensure_repository(cwd: Path) -> None:
    if not Path(cwd).is_dir():
        raise InfrastructureError(f"Workspace does not exist: {cwd}")
    result = run_process(
        ["git", "rev-parse", "--is-inside-work-tree"],
        cwd=cwd,
        timeout_ms=settings.timeouts.git_ms,
    )
    if not result.ok:
        raise InfrastructureError(f"Workspace is not a git repository: {cwd}")


def reset_workspace(cwd: Path, preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS) -> None:
    """Discard tracked changes and untracked files, keeping preserved paths."""
    if has_head(cwd):
        run_git(["reset", "--hard", "HEAD"], cwd)
    else:
        run_git(["read-tree", "--empty"], cwd)
    clean_args = ["clean", "-fd"]
    for path in preserve:
        clean_args.extend(["-e", path])
    run_git(clean_args, cwd)


def workspace_diff(cwd: Path, preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS) -> str:
    """Staged plus unstaged diff of a local workspace, new files included."""
    preserve = tuple(preserve)
    run_git(intent_to_add_argv(preserve)[1:], cwd)
    staged = run_git(diff_argv(staged=True, preserve=preserve)[1:], cwd)
    unstaged = run_git(diff_argv(staged=False, preserve=preserve)[1:], cwd)
    return combine_diffs(staged, unstaged)
