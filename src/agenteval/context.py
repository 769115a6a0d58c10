"""Per-iteration evaluation context: captured diff, command results, declared tasks.

A context is created fresh for every iteration and never shared. Everything the
judge sees is rendered from it by ``logs``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import ValidationError
from .schemas import CommandResult, JudgeResult, Thresholds

if TYPE_CHECKING:  # pragma: no cover - import cycles avoided at runtime
    from .environment import EnvironmentPlugin
    from .judge import JudgePlugin


@dataclass(frozen=True, slots=True)
class TaskSpec:
    """A post-agent check with its own judge criteria (declarative mode)."""

    name: str
    action: Callable[[], CommandResult]
    criteria: str
    weight: float | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValidationError("Task name must not be empty")
        if not self.criteria.strip():
            raise ValidationError(f'Task "{self.name}" needs criteria')
        if self.weight is not None and self.weight < 0:
            raise ValidationError(f'Task "{self.name}" has negative weight {self.weight}')

    @property
    def effective_weight(self) -> float:
        return 1.0 if self.weight is None else self.weight


class EvalContext:
    """Mutable evidence record for one iteration."""

    def __init__(
        self,
        cwd: Path,
        environment: EnvironmentPlugin,
        judge: JudgePlugin | None = None,
        thresholds: Thresholds | None = None,
        command_timeout_ms: int | None = None,
    ) -> None:
        self.cwd = Path(cwd)
        self.environment = environment
        self.judge = judge
        self.thresholds = thresholds
        self.command_timeout_ms = command_timeout_ms
        self._diff: str | None = None
        self._commands: list[CommandResult] = []
        self._tasks: list[TaskSpec] = []
        self._judge_results: list[JudgeResult] = []
        self.applied_thresholds: Thresholds | None = None
        self.judge_model: str | None = None

    # ------------------------------------------------------------------
    # Evidence capture
    # ------------------------------------------------------------------
    def store_diff(self) -> str:
        """Capture the current workspace diff, replacing any earlier capture."""
        self._diff = self.environment.get_diff(self.cwd)
        return self._diff

    def run_command(self, name: str, command: str, timeout_ms: int | None = None) -> CommandResult:
        """Execute a command in the environment and record its result."""
        start = time.monotonic()
        result = self.environment.execute(
            command,
            self.cwd,
            timeout_ms=timeout_ms or self.command_timeout_ms,
        )
        record = CommandResult(
            name=name,
            command=command,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        self._commands.append(record)
        return record

    def exec(self, command: str, timeout_ms: int | None = None) -> CommandResult:
        """``run_command`` labelled with the command text itself."""
        return self.run_command(command, command, timeout_ms=timeout_ms)

    # ------------------------------------------------------------------
    # Declarative tasks and verdicts
    # ------------------------------------------------------------------
    def add_task(
        self,
        task: TaskSpec | None = None,
        *,
        name: str | None = None,
        action: Callable[[], CommandResult] | None = None,
        criteria: str | None = None,
        weight: float | None = None,
    ) -> TaskSpec:
        """Register a task, either as a TaskSpec or by keyword."""
        if task is None:
            if name is None or action is None or criteria is None:
                raise ValidationError("add_task needs a TaskSpec or name, action and criteria")
            task = TaskSpec(name=name, action=action, criteria=criteria, weight=weight)
        self._tasks.append(task)
        return task

    def record_judge_result(
        self,
        result: JudgeResult,
        thresholds: Thresholds | None = None,
        model: str | None = None,
    ) -> None:
        """Keep a verdict, the thresholds that produced its status and the model override used."""
        self._judge_results.append(result)
        self.judge_model = model
        if thresholds is not None:
            self.applied_thresholds = thresholds

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def diff(self) -> str | None:
        """Last captured diff; None until ``store_diff`` runs, "" for a clean tree."""
        return self._diff

    @property
    def commands(self) -> list[CommandResult]:
        return list(self._commands)

    @property
    def tasks(self) -> list[TaskSpec]:
        return list(self._tasks)

    @property
    def judge_results(self) -> list[JudgeResult]:
        return list(self._judge_results)

    @property
    def logs(self) -> str:
        parts: list[str] = []
        if self._diff:
            parts.append(f"── Git Diff ──\n{self._diff}")
        for cmd in self._commands:
            section = (
                f"── {cmd.name} (exit {cmd.exit_code}, {cmd.duration_ms}ms) ──\n"
                f"$ {cmd.command}\n{cmd.stdout}"
            )
            if cmd.stderr:
                section += f"\nSTDERR:\n{cmd.stderr}"
            parts.append(section)
        return "\n\n".join(parts)
