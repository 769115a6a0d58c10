"""Bounded subprocess execution shared by environments and judges."""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path

TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127
KILL_GRACE_SEC = 1.0


@dataclass(frozen=True, slots=True)
class EnvironmentCommandResult:
    """Output of a command executed in an environment."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _kill_group(process: subprocess.Popen) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _as_text(data: str | bytes | None) -> str:
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data or ""


def _drain_after_kill(process: subprocess.Popen) -> tuple[str, str]:
    """Collect remaining output from a killed process group.

    A descendant that left the group (``setsid``, a daemonized server) can keep
    the pipes open; after the grace period the pipes are closed and whatever
    arrived so far is returned.
    """
    try:
        stdout, stderr = process.communicate(timeout=KILL_GRACE_SEC)
        return stdout or "", stderr or ""
    except subprocess.TimeoutExpired as exc:
        stdout, stderr = _as_text(exc.stdout), _as_text(exc.stderr)
    for stream in (process.stdout, process.stderr):
        if stream is not None:
            stream.close()
    process.wait()
    return stdout, stderr


def run_process(
    command: str | list[str],
    cwd: str | Path | None = None,
    timeout_ms: int | None = None,
    env: dict[str, str] | None = None,
) -> EnvironmentCommandResult:
    """Run a command to completion or until the timeout, never raising on failure.

    A string runs through the shell; a list runs as argv. The child gets its own
    process group so a timeout kills everything it spawned.

    Args:
        command: Shell command text or argv
        cwd: Working directory
        timeout_ms: Kill the process group after this many milliseconds
        env: Full environment for the child (inherits when None)

    Returns:
        EnvironmentCommandResult; exit code 124 on timeout, 127 when not found
    """
    timeout = timeout_ms / 1000 if timeout_ms else None
    try:
        process = subprocess.Popen(
            command,
            cwd=cwd,
            shell=isinstance(command, str),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            env=env,
            start_new_session=True,
        )
    except FileNotFoundError as exc:
        return EnvironmentCommandResult(
            stdout="",
            stderr=f"Command not found: {exc.filename or command}",
            exit_code=NOT_FOUND_EXIT_CODE,
        )

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(process)
        stdout, stderr = _drain_after_kill(process)
        note = f"Command timed out after {timeout_ms}ms"
        return EnvironmentCommandResult(
            stdout=stdout,
            stderr=f"{stderr}\n{note}" if stderr else note,
            exit_code=TIMEOUT_EXIT_CODE,
        )

    return EnvironmentCommandResult(
        stdout=stdout or "",
        stderr=stderr or "",
        exit_code=process.returncode,
    )
