"""Pipeline events rendered to the terminal."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

import click

from .schemas import LedgerEntry

CI_ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "JENKINS_URL",
    "CIRCLECI",
    "BUILDKITE",
    "TF_BUILD",
    "CODEBUILD_BUILD_ID",
)

STEP_LABELS: dict[str, str] = {
    "env_setup": "Environment setup",
    "agent_execute": "Agent execution",
    "evidence_capture": "Diff capture",
    "verify": "Post-agent commands",
    "judge": "Judge evaluation",
    "persist": "Ledger write",
    "teardown": "Environment teardown",
}


def is_ci() -> bool:
    """Non-interactive run: a known CI variable is set or stdout is not a TTY."""
    return any(os.environ.get(name) for name in CI_ENV_VARS) or not sys.stdout.isatty()


@dataclass(frozen=True, slots=True)
class TestEvent:
    __test__ = False

    test_id: str
    runner: str
    suite_path: tuple[str, ...] = ()
    iteration: int = 1


@dataclass(frozen=True, slots=True)
class TestResultEvent:
    __test__ = False

    event: TestEvent
    entry: LedgerEntry
    duration_ms: int = 0


class Reporter:
    """Silent reporter; subclasses override the events they render."""

    def on_run_start(self, total_tests: int, total_runners: int) -> None:
        pass

    def on_file_start(self, path: str) -> None:
        pass

    def on_test_start(self, event: TestEvent) -> None:
        pass

    def on_file_write(self, event: TestEvent, path: str) -> None:
        pass

    def on_pipeline_step(self, event: TestEvent, step: str, status: str, detail: str = "") -> None:
        pass

    def on_test_pass(self, result: TestResultEvent) -> None:
        pass

    def on_test_warn(self, result: TestResultEvent) -> None:
        pass

    def on_test_fail(self, result: TestResultEvent) -> None:
        pass

    def on_test_error(self, event: TestEvent, error: str) -> None:
        pass

    def on_run_end(self, results: list[TestResultEvent], duration_ms: int, errors: int = 0) -> None:
        pass

    def on_result(self, result: TestResultEvent) -> None:
        """Dispatch on the entry's status."""
        if result.entry.status == "PASS":
            self.on_test_pass(result)
        elif result.entry.status == "WARN":
            self.on_test_warn(result)
        else:
            self.on_test_fail(result)


@dataclass
class RecordingReporter(Reporter):
    """Keeps every event; used by tests and programmatic callers."""

    events: list[tuple] = field(default_factory=list)

    def on_run_start(self, total_tests: int, total_runners: int) -> None:
        self.events.append(("run_start", total_tests, total_runners))

    def on_test_start(self, event: TestEvent) -> None:
        self.events.append(("test_start", event))

    def on_file_write(self, event: TestEvent, path: str) -> None:
        self.events.append(("file_write", event, path))

    def on_pipeline_step(self, event: TestEvent, step: str, status: str, detail: str = "") -> None:
        self.events.append(("step", step, status))

    def on_test_pass(self, result: TestResultEvent) -> None:
        self.events.append(("pass", result))

    def on_test_warn(self, result: TestResultEvent) -> None:
        self.events.append(("warn", result))

    def on_test_fail(self, result: TestResultEvent) -> None:
        self.events.append(("fail", result))

    def on_test_error(self, event: TestEvent, error: str) -> None:
        self.events.append(("error", event, error))

    def on_run_end(self, results: list[TestResultEvent], duration_ms: int, errors: int = 0) -> None:
        self.events.append(("run_end", len(results), errors))

    def kinds(self) -> list[str]:
        return [event[0] for event in self.events]


class ConsoleReporter(Reporter):
    """Scrollback-safe progress output with click styling."""

    def __init__(self, color: bool | None = None, verbose: bool = True) -> None:
        self.color = not is_ci() if color is None else color
        self.verbose = verbose
        self._current = 0
        self._total = 0

    def _echo(self, message: str = "") -> None:
        click.echo(message, color=self.color)

    def on_run_start(self, total_tests: int, total_runners: int) -> None:
        self._total = total_tests * total_runners
        self._current = 0
        self._echo(click.style(f"\nagenteval: {total_tests} test(s) x {total_runners} runner(s)\n", bold=True))

    def on_file_start(self, path: str) -> None:
        self._echo(click.style(path, bold=True))

    def on_test_start(self, event: TestEvent) -> None:
        self._current += 1
        counter = click.style(f"[{self._current}/{self._total}]", dim=True)
        name = " > ".join((*event.suite_path, event.test_id))
        iteration = f" #{event.iteration}" if event.iteration > 1 else ""
        self._echo(
            f"\n  {counter} {click.style(name, fg='blue')}"
            f" {click.style(f'[{event.runner}]{iteration}', fg='bright_black')}"
        )

    def on_file_write(self, event: TestEvent, path: str) -> None:
        if self.verbose:
            self._echo(click.style(f"       wrote {path}", dim=True))

    def on_pipeline_step(self, event: TestEvent, step: str, status: str, detail: str = "") -> None:
        if not self.verbose:
            return
        label = STEP_LABELS.get(step, step)
        suffix = click.style(f" {detail}", dim=True) if detail else ""
        if status == "running":
            self._echo(f"    {click.style('*', fg='cyan')} {label}...{suffix}")
        elif status == "done":
            self._echo(f"    {click.style('ok', fg='green')} {label}{suffix}")
        else:
            self._echo(f"    {click.style('x', fg='red')} {label}{suffix}")

    def _verdict(self, tag: str, fg: str, result: TestResultEvent) -> None:
        score = click.style(f"{result.entry.score:.2f}", fg="yellow")
        duration = click.style(f"{result.duration_ms / 1000:.1f}s", dim=True)
        self._echo(f"  {click.style(tag, fg=fg, bold=True)} {score} {duration}")

    def on_test_pass(self, result: TestResultEvent) -> None:
        self._verdict("PASS", "green", result)

    def on_test_warn(self, result: TestResultEvent) -> None:
        self._verdict("WARN", "yellow", result)

    def on_test_fail(self, result: TestResultEvent) -> None:
        self._verdict("FAIL", "red", result)
        if self.verbose and result.entry.reason:
            self._echo(click.style(f"    {result.entry.reason.splitlines()[0]}", dim=True))

    def on_test_error(self, event: TestEvent, error: str) -> None:
        self._echo(f"  {click.style('ERROR', fg='red', bold=True)} {click.style(error, fg='red')}")

    def on_run_end(self, results: list[TestResultEvent], duration_ms: int, errors: int = 0) -> None:
        counts = {"PASS": 0, "WARN": 0, "FAIL": 0}
        for result in results:
            counts[result.entry.status] += 1

        self._echo()
        for result in results:
            entry = result.entry
            self._echo(
                f"  {entry.status:<5} {entry.score:.2f}  {entry.test_id} [{entry.agent_runner}]"
            )
        parts = [
            click.style(f"{counts['PASS']} passed", fg="green"),
            click.style(f"{counts['WARN']} warned", fg="yellow"),
            click.style(f"{counts['FAIL']} failed", fg="red"),
        ]
        if errors:
            parts.append(click.style(f"{errors} errored", fg="red", bold=True))
        self._echo(f"\n  {', '.join(parts)} in {duration_ms / 1000:.1f}s")
