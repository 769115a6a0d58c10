"""Runner for coding agents driven from the command line."""

from __future__ import annotations

import shlex

from ..config import settings
from .base import RunnerContext, RunnerExecResult, RunnerPlugin

PROMPT_PLACEHOLDER = "{{prompt}}"


def render_command(template: str, prompt: str) -> str:
    """Substitute the shell-quoted prompt into a command template."""
    return template.replace(PROMPT_PLACEHOLDER, shlex.quote(prompt))


class CLIRunner(RunnerPlugin):
    """Executes a command template such as ``claude -p {{prompt}}``."""

    def __init__(self, name: str, command: str) -> None:
        self.name = name
        self.command = command
        self.model = command.split(" ", 1)[0] if command else None

    def execute(self, prompt: str, context: RunnerContext) -> RunnerExecResult:
        result = context.environment.execute(
            render_command(self.command, prompt),
            context.cwd,
            timeout_ms=context.timeout_ms or settings.timeouts.agent_ms,
        )
        return RunnerExecResult(
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
        )
