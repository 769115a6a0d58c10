"""Runner that asks a model for whole files and writes them to the workspace."""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import InfrastructureError
from ..llm import ModelPlugin
from .base import RunnerContext, RunnerExecResult, RunnerPlugin

logger = logging.getLogger(__name__)


def resolve_inside(root: Path, relative: str) -> Path:
    """Resolve ``relative`` under ``root``, rejecting paths that escape it."""
    base = Path(root).resolve()
    target = (base / relative).resolve()
    if target != base and base not in target.parents:
        raise InfrastructureError(f"Refusing to write outside the workspace: {relative}")
    if target == base:
        raise InfrastructureError(f"Invalid file path from model: {relative!r}")
    return target


class APIRunner(RunnerPlugin):
    """Direct model call; every returned file overwrites its target in full."""

    def __init__(self, name: str, model: ModelPlugin) -> None:
        self.name = name
        self.model_plugin = model
        self.provider = model.provider
        self.model = model.model

    def execute(self, prompt: str, context: RunnerContext) -> RunnerExecResult:
        output = self.model_plugin.generate(prompt)
        targets = [(op, resolve_inside(context.cwd, op.path)) for op in output.files]

        written: list[str] = []
        for op, target in targets:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(op.content, encoding="utf-8")
            written.append(op.path)

        logger.debug("%s wrote %d file(s)", self.name, len(written))
        return RunnerExecResult(files_written=tuple(written))
