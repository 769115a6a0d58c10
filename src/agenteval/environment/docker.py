"""Docker environment: one container per iteration with the workspace bind-mounted."""

from __future__ import annotations

import logging
import math
import secrets
from collections.abc import Iterable
from pathlib import Path

from ..config import settings
from ..errors import InfrastructureError
from .base import EnvironmentPlugin
from .git import DEFAULT_PRESERVED_PATHS, as_shell, combine_diffs, diff_argv, intent_to_add_argv
from .shell import EnvironmentCommandResult, run_process

logger = logging.getLogger(__name__)

# $0 is the command, $1 the limit in seconds.
BOUNDED_EXEC_SCRIPT = (
    'if command -v timeout >/dev/null 2>&1; then exec timeout -s KILL "$1" sh -c "$0"; fi; '
    'exec sh -c "$0"'
)


class DockerEnvironment(EnvironmentPlugin):
    """Runs agent and verification commands inside a throwaway container."""

    name = "docker"

    def __init__(
        self,
        image: str | None = None,
        dockerfile: str | None = None,
        work_dir: str = "/workspace",
        docker_args: Iterable[str] = (),
        preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS,
    ) -> None:
        if not image and not dockerfile:
            raise ValueError("DockerEnvironment needs an image or a dockerfile.")
        self.image = image
        self.dockerfile = dockerfile
        self.work_dir = work_dir
        self.docker_args = list(docker_args)
        self.preserve = tuple(preserve)
        self.container_id: str | None = None
        self._built_tag: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def setup(self, cwd: Path) -> None:
        image = self.image
        if self.dockerfile:
            tag = f"agenteval-{secrets.token_hex(4)}"
            self._docker(
                ["build", "-t", tag, "-f", self.dockerfile, "."],
                cwd=cwd,
                timeout_ms=settings.timeouts.docker_build_ms,
            )
            self._built_tag = tag
            image = tag

        container_id = self._docker(
            [
                "create",
                *self.docker_args,
                "-v",
                f"{Path(cwd).resolve()}:{self.work_dir}",
                "-w",
                self.work_dir,
                str(image),
                "sleep",
                "infinity",
            ],
            timeout_ms=settings.timeouts.docker_ms,
        ).strip()
        self._docker(["start", container_id], timeout_ms=settings.timeouts.docker_ms)
        self.container_id = container_id
        logger.debug("Started container %s from %s", container_id[:12], image)

    def teardown(self, cwd: Path) -> None:
        container_id, self.container_id = self.container_id, None
        if container_id:
            result = run_process(
                ["docker", "rm", "-f", container_id],
                timeout_ms=settings.timeouts.docker_ms,
            )
            if not result.ok:
                # Already removed containers are fine.
                logger.debug("docker rm -f %s: %s", container_id[:12], result.stderr.strip())
        tag, self._built_tag = self._built_tag, None
        if tag:
            result = run_process(["docker", "rmi", "-f", tag], timeout_ms=settings.timeouts.docker_ms)
            if not result.ok:
                logger.warning("Could not remove image %s: %s", tag, result.stderr.strip())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def execute(
        self,
        command: str,
        cwd: Path,
        timeout_ms: int | None = None,
    ) -> EnvironmentCommandResult:
        if not self.container_id:
            return EnvironmentCommandResult(stdout="", stderr="Container not started", exit_code=1)
        timeout_ms = timeout_ms or settings.timeouts.command_ms
        return run_process(self._exec_argv(command, timeout_ms), timeout_ms=timeout_ms)

    def get_diff(self, cwd: Path) -> str:
        if not self.container_id:
            return ""
        self._exec_checked(as_shell(intent_to_add_argv(self.preserve)))
        staged = self._exec_checked(as_shell(diff_argv(staged=True, preserve=self.preserve)))
        unstaged = self._exec_checked(as_shell(diff_argv(staged=False, preserve=self.preserve)))
        return combine_diffs(staged, unstaged)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _exec_argv(self, command: str, timeout_ms: int | None = None) -> list[str]:
        """``docker exec`` argv; with a timeout the command is killed inside the container too.

        Killing the host-side ``docker exec`` client leaves the command running in
        the container, so it runs under the image's ``timeout`` when there is one.
        """
        argv = ["docker", "exec", "-w", self.work_dir, str(self.container_id), "sh", "-c"]
        if timeout_ms is None:
            return [*argv, command]
        seconds = max(1, math.ceil(timeout_ms / 1000))
        return [*argv, BOUNDED_EXEC_SCRIPT, command, str(seconds)]

    def _exec_checked(self, command: str) -> str:
        timeout_ms = settings.timeouts.git_ms
        result = run_process(self._exec_argv(command, timeout_ms), timeout_ms=timeout_ms)
        if not result.ok:
            raise InfrastructureError(
                f"Diff capture failed in container {str(self.container_id)[:12]}: "
                f"{result.stderr.strip() or result.exit_code}"
            )
        return result.stdout

    def _docker(
        self,
        args: list[str],
        cwd: Path | None = None,
        timeout_ms: int | None = None,
    ) -> str:
        result = run_process(["docker", *args], cwd=cwd, timeout_ms=timeout_ms)
        if not result.ok:
            raise InfrastructureError(
                f"docker {args[0]} failed: {result.stderr.strip() or result.exit_code}"
            )
        return result.stdout
