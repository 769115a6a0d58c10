"""Test orchestrator: drives each test definition through the evaluation pipeline.

Per iteration:

    INIT -> ENV_SETUP -> AGENT_EXECUTE -> EVIDENCE_CAPTURE -> VERIFY
         -> JUDGE -> SCORE -> PERSIST -> TEARDOWN -> DONE

with FAILED reachable from any stage. Infrastructure and validation errors
fail the iteration without a ledger entry. Every other iteration persists
exactly one entry, failing verdicts included; a JudgeFailure is attached to
the iteration only after that entry is written.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

from .context import EvalContext, TaskSpec
from .environment import EnvironmentPlugin, build_environment
from .errors import AgentEvalError, InfrastructureError, JudgeFailure, ValidationError
from .expect import finalize_verdict
from .judge import JudgePlugin, build_judge, build_judge_prompt, warn_if_self_judging
from .ledger import LedgerPlugin, utc_timestamp
from .plugins import validate_plugin
from .registry import HookFn, TestDefinition, TestRegistry
from .reporter import Reporter, TestEvent, TestResultEvent
from .runners import RunnerContext, RunnerExecResult, RunnerPlugin, build_runner
from .schemas import (
    CommandResult,
    EvidenceSnapshot,
    JudgeResult,
    LedgerEntry,
    ProjectConfig,
    TestStatus,
    Thresholds,
)
from .scoring import (
    compute_status,
    is_passing,
    resolve_thresholds,
    weighted_score,
    worst_status,
)

logger = logging.getLogger(__name__)

NO_JUDGE_REASON = "Test completed without judge evaluation"

AggregateStatus = Literal["PASS", "WARN", "FAIL", "ERROR"]


def _preserved_paths(config: ProjectConfig) -> tuple[str, ...]:
    """Workspace-relative paths that isolation must never clean (the ledger)."""
    output = Path(config.output_dir)
    if not output.is_absolute():
        return (output.as_posix(),)
    try:
        return (output.relative_to(config.root_dir).as_posix(),)
    except ValueError:
        return ()


class PipelineStage(str, Enum):
    INIT = "init"
    ENV_SETUP = "env_setup"
    AGENT_EXECUTE = "agent_execute"
    EVIDENCE_CAPTURE = "evidence_capture"
    VERIFY = "verify"
    JUDGE = "judge"
    SCORE = "score"
    PERSIST = "persist"
    TEARDOWN = "teardown"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class IterationResult:
    """Outcome of one iteration of one test against one runner."""

    test_id: str
    runner: str
    iteration: int
    stage: PipelineStage = PipelineStage.INIT
    stages: list[PipelineStage] = field(default_factory=lambda: [PipelineStage.INIT])
    entry: LedgerEntry | None = None
    error: BaseException | None = None
    agent_result: RunnerExecResult | None = None
    duration_ms: int = 0

    def advance(self, stage: PipelineStage) -> None:
        if self.stage is PipelineStage.FAILED:
            return
        self.stage = stage
        self.stages.append(stage)

    @property
    def status(self) -> AggregateStatus:
        if self.entry is None:
            return "ERROR"
        return self.entry.status

    @property
    def judge_failure(self) -> JudgeFailure | None:
        return self.error if isinstance(self.error, JudgeFailure) else None

    @property
    def infrastructure_failed(self) -> bool:
        return self.entry is None


@dataclass(slots=True)
class TestRunResult:
    """All iterations of one test against one runner."""

    __test__ = False

    test: TestDefinition
    runner: str
    iterations: list[IterationResult] = field(default_factory=list)

    @property
    def entries(self) -> list[LedgerEntry]:
        return [it.entry for it in self.iterations if it.entry is not None]

    @property
    def status(self) -> AggregateStatus:
        if any(it.infrastructure_failed for it in self.iterations):
            return "ERROR"
        return worst_status(entry.status for entry in self.entries) or "ERROR"

    @property
    def passed(self) -> bool:
        return self.status in ("PASS", "WARN")


class AgentHandle:
    """What a test function drives: ``run`` (imperative) or ``instruct`` (declarative)."""

    def __init__(
        self,
        orchestrator: TestOrchestrator,
        runner: RunnerPlugin,
        ctx: EvalContext,
        record: IterationResult,
        event: TestEvent,
    ) -> None:
        self._orchestrator = orchestrator
        self._runner = runner
        self._ctx = ctx
        self._record = record
        self._event = event
        self.instruction: str | None = None
        self.runs = 0

    @property
    def name(self) -> str:
        return self._runner.name

    @property
    def model(self) -> str:
        return self._runner.model or "unknown"

    def run(self, prompt: str) -> RunnerExecResult:
        """Execute the agent now, then capture the diff and run after-each commands."""
        if self.instruction is not None:
            raise ValidationError("agent.run() cannot be combined with agent.instruct() in one test")
        self.runs += 1
        return self._orchestrator._execute_agent(self._runner, self._ctx, self._record, self._event, prompt)

    def instruct(self, prompt: str) -> None:
        """Declare the single instruction executed after the test function returns."""
        if self.instruction is not None:
            raise ValidationError("agent.instruct() can only be called once per test")
        if self.runs:
            raise ValidationError("agent.instruct() cannot be combined with agent.run() in one test")
        if not prompt.strip():
            raise ValidationError("agent.instruct() needs a non-empty prompt")
        self.instruction = prompt


class TestOrchestrator:
    """Runs test definitions against every selected runner and records results."""

    __test__ = False

    def __init__(
        self,
        config: ProjectConfig,
        tests: TestRegistry | Iterable[TestDefinition],
        ledger: LedgerPlugin,
        environment: EnvironmentPlugin | None = None,
        judge: JudgePlugin | None = None,
        reporter: Reporter | None = None,
        runners: Sequence[RunnerPlugin] | None = None,
        before_each: Sequence[HookFn] = (),
    ) -> None:
        self.config = config
        if isinstance(tests, TestRegistry):
            self.registry: TestRegistry | None = tests
            self.tests = tests.tests
        else:
            self.registry = None
            self.tests = list(tests)
        self.ledger = validate_plugin(ledger, "ledger")
        self.environment = validate_plugin(
            environment or build_environment(config.environment, preserve=_preserved_paths(config)),
            "environment",
        )
        if judge is None:
            if config.judge is None:
                raise ValidationError("No judge configured: set `judge` in the project config")
            judge = build_judge(config.judge)
        self.judge = validate_plugin(judge, "judge")
        self.reporter = reporter or Reporter()
        all_runners = list(runners) if runners is not None else [build_runner(c) for c in config.runners]
        for runner in all_runners:
            validate_plugin(runner, "runner")
        self.runners = self._select_runners(all_runners)
        self.before_each = list(before_each)
        self._ledger_ready = False
        warn_if_self_judging(self.judge, self.runners)

    def _select_runners(self, runners: list[RunnerPlugin]) -> list[RunnerPlugin]:
        if self.config.matrix_runners is None:
            return runners
        wanted = set(self.config.matrix_runners)
        return [runner for runner in runners if runner.name in wanted]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def run_all(self, tests: Iterable[TestDefinition] | None = None) -> list[TestRunResult]:
        """Run every test sequentially; results in execution order."""
        if tests is not None:
            selected = list(tests)
        else:
            selected = self.registry.tests if self.registry is not None else self.tests
        self.reporter.on_run_start(len(selected), len(self.runners))
        start = time.monotonic()

        results: list[TestRunResult] = []
        for test_def in selected:
            results.extend(self.run_test(test_def))

        events = [
            TestResultEvent(
                event=TestEvent(it.test_id, it.runner, r.test.suite_path, it.iteration),
                entry=it.entry,
                duration_ms=it.duration_ms,
            )
            for r in results
            for it in r.iterations
            if it.entry is not None
        ]
        errors = sum(1 for r in results for it in r.iterations if it.infrastructure_failed)
        self.reporter.on_run_end(events, int((time.monotonic() - start) * 1000), errors)
        return results

    def run_test(self, test_def: TestDefinition, *, strict: bool = False) -> list[TestRunResult]:
        """Run all iterations of ``test_def`` for each runner.

        With ``strict``, the first iteration error (JudgeFailure included) is
        raised once every iteration has been persisted.
        """
        if not self._ledger_ready:
            self.ledger.initialize()
            self._ledger_ready = True

        results: list[TestRunResult] = []
        for runner in self.runners:
            run = TestRunResult(test=test_def, runner=runner.name)
            for iteration in range(1, test_def.iterations + 1):
                run.iterations.append(self.run_iteration(test_def, runner, iteration))
            results.append(run)

        if strict:
            for run in results:
                for it in run.iterations:
                    if it.error is not None:
                        raise it.error
        return results

    # ------------------------------------------------------------------
    # One iteration
    # ------------------------------------------------------------------
    def run_iteration(
        self,
        test_def: TestDefinition,
        runner: RunnerPlugin,
        iteration: int = 1,
    ) -> IterationResult:
        start = time.monotonic()
        cwd = self.config.root_dir
        record = IterationResult(test_id=test_def.test_id, runner=runner.name, iteration=iteration)
        event = TestEvent(test_def.test_id, runner.name, test_def.suite_path, iteration)
        ctx = EvalContext(
            cwd=cwd,
            environment=self.environment,
            judge=self.judge,
            thresholds=resolve_thresholds(test_def.thresholds, self.config.thresholds),
        )
        agent = AgentHandle(self, runner, ctx, record, event)
        self.reporter.on_test_start(event)

        try:
            with self._stage(record, event, PipelineStage.ENV_SETUP):
                try:
                    self.environment.setup(cwd)
                except AgentEvalError:
                    raise
                except Exception as exc:
                    raise InfrastructureError(f"Environment setup failed: {exc}") from exc

            failure: BaseException | None = None
            try:
                for hook in self._before_hooks(test_def):
                    hook(ctx)
                test_def.fn(agent, ctx)
                if agent.instruction is not None:
                    failure = self._run_declarative(runner, ctx, record, event, agent.instruction)
                elif ctx.judge_results:
                    record.advance(PipelineStage.JUDGE)
            except JudgeFailure as exc:
                record.advance(PipelineStage.JUDGE)
                failure = exc
            except AgentEvalError:
                raise
            except Exception as exc:
                logger.exception("Test %r raised during %s", test_def.title, record.stage.value)
                failure = exc

            for hook in self._after_hooks(test_def):
                hook(ctx)

            record.advance(PipelineStage.SCORE)
            record.duration_ms = int((time.monotonic() - start) * 1000)
            entry = self._build_entry(test_def, runner, ctx, record.duration_ms, failure)

            with self._stage(record, event, PipelineStage.PERSIST):
                try:
                    record.entry = self.ledger.record_run(entry)
                except AgentEvalError:
                    raise
                except Exception as exc:
                    raise InfrastructureError(f"Ledger write failed: {exc}") from exc
            record.error = failure
            self.reporter.on_result(TestResultEvent(event, record.entry, record.duration_ms))
        except AgentEvalError as exc:
            record.advance(PipelineStage.FAILED)
            record.error = exc
            record.duration_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Iteration %s [%s] #%d failed: %s", test_def.title, runner.name, iteration, exc)
            self.reporter.on_test_error(event, str(exc))
        finally:
            self._teardown(record, event, cwd)

        record.advance(PipelineStage.DONE)
        return record

    def _execute_agent(
        self,
        runner: RunnerPlugin,
        ctx: EvalContext,
        record: IterationResult,
        event: TestEvent,
        prompt: str,
    ) -> RunnerExecResult:
        with self._stage(record, event, PipelineStage.AGENT_EXECUTE):
            result = runner.execute(
                prompt,
                RunnerContext(cwd=ctx.cwd, environment=self.environment, timeout_ms=self.config.timeout_ms),
            )
            for path in result.files_written:
                self.reporter.on_file_write(event, path)
        record.agent_result = result
        if result.exit_code != 0:
            logger.info("Runner %s exited with %d; capturing evidence anyway", runner.name, result.exit_code)

        with self._stage(record, event, PipelineStage.EVIDENCE_CAPTURE):
            ctx.store_diff()

        if self.config.after_each:
            with self._stage(record, event, PipelineStage.VERIFY):
                for command in self.config.after_each:
                    ctx.run_command(command.name, command.command)
        return result

    def _run_declarative(
        self,
        runner: RunnerPlugin,
        ctx: EvalContext,
        record: IterationResult,
        event: TestEvent,
        instruction: str,
    ) -> JudgeFailure | None:
        tasks = ctx.tasks
        if not tasks:
            raise ValidationError("agent.instruct() needs at least one ctx.add_task(...)")

        self._execute_agent(runner, ctx, record, event, instruction)

        outcomes: list[tuple[TaskSpec, CommandResult]] = []
        with self._stage(record, event, PipelineStage.VERIFY):
            for task in tasks:
                result = task.action()
                if not isinstance(result, CommandResult):
                    raise ValidationError(f'Task "{task.name}" action must return a CommandResult')
                outcomes.append((task, result))

        verdicts: list[tuple[TaskSpec, JudgeResult]] = []
        with self._stage(record, event, PipelineStage.JUDGE):
            for task, result in outcomes:
                prompt = build_judge_prompt(
                    task.criteria,
                    ctx.logs,
                    diff=ctx.diff,
                    instruction=instruction,
                    task_results=[(task, result)],
                )
                verdicts.append((task, self.judge.judge(prompt)))

        thresholds = ctx.thresholds or resolve_thresholds()
        score = weighted_score((verdict.score, task.weight) for task, verdict in verdicts)
        status = compute_status(score, thresholds)
        combined = finalize_verdict(
            JudgeResult(
                pass_=is_passing(status),
                score=score,
                reason="\n\n".join(
                    f"### {task.name} (score {v.score:.2f}, weight {task.effective_weight:g})\n{v.reason}"
                    for task, v in verdicts
                ),
                improvement="\n\n".join(
                    f"### {task.name}\n{v.improvement}" for task, v in verdicts if v.improvement
                ),
            ),
            thresholds,
        )
        ctx.record_judge_result(combined, thresholds)
        return JudgeFailure(combined) if combined.status == "FAIL" else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _build_entry(
        self,
        test_def: TestDefinition,
        runner: RunnerPlugin,
        ctx: EvalContext,
        duration_ms: int,
        failure: BaseException | None,
    ) -> LedgerEntry:
        thresholds: Thresholds = ctx.applied_thresholds or ctx.thresholds or resolve_thresholds()
        verdicts = ctx.judge_results
        if verdicts:
            verdict = verdicts[-1]
            score, reason, improvement = verdict.score, verdict.reason, verdict.improvement
            status: TestStatus = verdict.status or compute_status(score, thresholds)
        elif failure is not None:
            score, reason, improvement, status = 0.0, f"Execution error: {failure}", "", "FAIL"
        else:
            score, reason, improvement, status = 0.0, NO_JUDGE_REASON, "", "FAIL"

        return LedgerEntry(
            test_id=test_def.test_id,
            suite_path=list(test_def.suite_path),
            timestamp=utc_timestamp(),
            agent_runner=runner.name,
            judge_model=self.judge.identity(ctx.judge_model),
            score=score,
            pass_=is_passing(status),
            status=status,
            reason=reason,
            improvement=improvement,
            context=EvidenceSnapshot(diff=ctx.diff, commands=ctx.commands),
            duration_ms=duration_ms,
            thresholds=thresholds,
        )

    def _before_hooks(self, test_def: TestDefinition) -> list[HookFn]:
        scoped = self.registry.before_hooks(test_def) if self.registry else []
        return [*self.before_each, *scoped]

    def _after_hooks(self, test_def: TestDefinition) -> list[HookFn]:
        return self.registry.after_hooks(test_def) if self.registry else []

    def _teardown(self, record: IterationResult, event: TestEvent, cwd: Path) -> None:
        record.advance(PipelineStage.TEARDOWN)
        try:
            self.environment.teardown(cwd)
        except Exception as exc:
            logger.error("Environment teardown failed for %s: %s", record.test_id, exc)
            self.reporter.on_pipeline_step(event, PipelineStage.TEARDOWN.value, "error", str(exc))
            if record.error is None and record.entry is None:
                record.error = exc

    @contextmanager
    def _stage(self, record: IterationResult, event: TestEvent, stage: PipelineStage) -> Iterator[None]:
        record.advance(stage)
        self.reporter.on_pipeline_step(event, stage.value, "running")
        try:
            yield
        except JudgeFailure:
            self.reporter.on_pipeline_step(event, stage.value, "done")
            raise
        except Exception as exc:
            self.reporter.on_pipeline_step(event, stage.value, "error", str(exc))
            raise
        self.reporter.on_pipeline_step(event, stage.value, "done")
