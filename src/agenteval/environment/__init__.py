"""Execution environments: where agent code changes happen."""

from __future__ import annotations

from collections.abc import Iterable

from ..schemas import EnvironmentConfig
from .base import EnvironmentPlugin
from .docker import DockerEnvironment
from .git import DEFAULT_PRESERVED_PATHS
from .local import LocalEnvironment, PreservingLocalEnvironment
from .shell import (
    NOT_FOUND_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    EnvironmentCommandResult,
    run_process,
)


def build_environment(
    config: EnvironmentConfig | None = None,
    preserve: Iterable[str] = DEFAULT_PRESERVED_PATHS,
) -> EnvironmentPlugin:
    """Instantiate the environment selected by configuration (local by default)."""
    config = config or EnvironmentConfig()
    if config.type == "docker":
        return DockerEnvironment(
            image=config.image,
            dockerfile=config.dockerfile,
            work_dir=config.work_dir,
            docker_args=config.docker_args,
            preserve=preserve,
        )
    if config.type == "preserving-local":
        return PreservingLocalEnvironment(preserve)
    return LocalEnvironment(preserve)


__all__ = [
    "DEFAULT_PRESERVED_PATHS",
    "DockerEnvironment",
    "EnvironmentCommandResult",
    "EnvironmentPlugin",
    "LocalEnvironment",
    "NOT_FOUND_EXIT_CODE",
    "PreservingLocalEnvironment",
    "TIMEOUT_EXIT_CODE",
    "build_environment",
    "run_process",
]
