"""Tests for the test orchestrator pipeline."""

import shlex
from pathlib import Path

import pytest
from conftest import FakeJudge, FakeRunner

from agenteval import expect
from agenteval.environment import LocalEnvironment
from agenteval.errors import InfrastructureError, JudgeFailure, ValidationError
from agenteval.judge import CLIJudge
from agenteval.ledger import JsonLedger, build_ledger
from agenteval.orchestrator import NO_JUDGE_REASON, PipelineStage, TestOrchestrator
from agenteval.registry import TestRegistry
from agenteval.reporter import RecordingReporter
from agenteval.schemas import AfterEachCommand, ProjectConfig, Thresholds


def make_orchestrator(
    config: ProjectConfig,
    registry: TestRegistry,
    *,
    judge=None,
    runners=None,
    reporter=None,
    **kwargs,
) -> TestOrchestrator:
    return TestOrchestrator(
        config,
        registry,
        build_ledger(config.ledger, config.output_path),
        judge=judge or FakeJudge(0.9),
        runners=runners if runners is not None else [FakeRunner()],
        reporter=reporter,
        **kwargs,
    )


def judged(criteria: str = "hello.txt exists", **options):
    def fn(agent, ctx):
        agent.run("Create hello.txt")
        expect(ctx).to_pass_judge(criteria, **options)

    return fn


class BrokenSetupEnvironment(LocalEnvironment):
    def __init__(self, error: Exception) -> None:
        super().__init__()
        self.error = error
        self.teardowns = 0

    def setup(self, cwd: Path) -> None:
        raise self.error

    def teardown(self, cwd: Path) -> None:
        self.teardowns += 1


class FullDiskLedger(JsonLedger):
    def record_run(self, entry):
        raise OSError("disk full")


@pytest.fixture
def config(empty_repo: Path) -> ProjectConfig:
    return ProjectConfig(
        root_dir=empty_repo,
        after_each=[AfterEachCommand(name="check", command="echo ok")],
    )


class TestImperativeMode:
    """agent.run() followed by expect(ctx).to_pass_judge()."""

    def test_end_to_end_pass(self, config: ProjectConfig, reporter: RecordingReporter):
        registry = TestRegistry()
        registry.test("creates hello", judged())
        judge = FakeJudge(0.9)
        orchestrator = make_orchestrator(config, registry, judge=judge, reporter=reporter)

        [run] = orchestrator.run_all()

        assert run.status == "PASS"
        assert run.passed
        [entry] = run.entries
        assert entry.id == 1
        assert entry.score == 0.9
        assert entry.status == "PASS"
        assert entry.agent_runner == "fake-agent"
        assert entry.judge_model == "fake/judge-1"
        assert "diff --git a/hello.txt b/hello.txt" in entry.context.diff
        assert [c.name for c in entry.context.commands] == ["check"]
        assert entry.context.commands[0].stdout == "ok\n"
        assert "hello.txt exists" in judge.prompts[0]
        assert "── check (exit 0, " in judge.prompts[0]
        assert [e.id for e in orchestrator.ledger.get_runs()] == [1]

    def test_judge_model_override_is_recorded(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", judged(model="judge-2"))

        [run] = make_orchestrator(config, registry).run_all()

        assert run.entries[0].judge_model == "fake/judge-2"

    def test_stage_sequence(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", judged())

        [run] = make_orchestrator(config, registry).run_all()

        assert run.iterations[0].stages == [
            PipelineStage.INIT,
            PipelineStage.ENV_SETUP,
            PipelineStage.AGENT_EXECUTE,
            PipelineStage.EVIDENCE_CAPTURE,
            PipelineStage.VERIFY,
            PipelineStage.JUDGE,
            PipelineStage.SCORE,
            PipelineStage.PERSIST,
            PipelineStage.TEARDOWN,
            PipelineStage.DONE,
        ]

    def test_reporter_events(self, config: ProjectConfig, reporter: RecordingReporter):
        registry = TestRegistry()
        registry.test("t", judged())

        make_orchestrator(config, registry, reporter=reporter).run_all()

        kinds = reporter.kinds()
        assert kinds[0] == "run_start"
        assert kinds[1] == "test_start"
        assert "file_write" in kinds
        assert kinds[-2:] == ["pass", "run_end"]
        assert ("step", "agent_execute", "done") in reporter.events
        assert reporter.events[-1] == ("run_end", 1, 0)

    def test_agent_non_zero_exit_still_judged(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", judged())

        [run] = make_orchestrator(config, registry, runners=[FakeRunner(exit_code=3)]).run_all()

        assert run.status == "PASS"
        assert run.iterations[0].agent_result.exit_code == 3
        assert "hello.txt" in run.entries[0].context.diff

    def test_test_without_judge_records_failure(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", lambda agent, ctx: agent.run("do nothing"))

        [run] = make_orchestrator(config, registry).run_all()

        entry = run.entries[0]
        assert entry.score == 0
        assert entry.status == "FAIL"
        assert entry.reason == NO_JUDGE_REASON

    def test_test_exception_records_failure(self, config: ProjectConfig):
        def boom(agent, ctx):
            raise RuntimeError("boom")

        registry = TestRegistry()
        registry.test("t", boom)

        [run] = make_orchestrator(config, registry).run_all()

        iteration = run.iterations[0]
        assert iteration.entry.status == "FAIL"
        assert iteration.entry.reason == "Execution error: boom"
        assert isinstance(iteration.error, RuntimeError)


class TestJudgeFailure:
    FAILING_VERDICT = '{"pass": false, "score": 0.2, "reason": "Button missing", "improvement": "Add it"}'

    def _cli_judge(self) -> CLIJudge:
        return CLIJudge(f"printf '%s' {shlex.quote(self.FAILING_VERDICT)}")

    def test_entry_persisted_before_failure_raised(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("adds button", judged("A close button exists"))
        orchestrator = make_orchestrator(config, registry, judge=self._cli_judge())

        with pytest.raises(JudgeFailure) as excinfo:
            orchestrator.run_test(registry.tests[0], strict=True)

        assert excinfo.value.score == 0.2
        assert "Add it" in str(excinfo.value)
        [entry] = orchestrator.ledger.get_runs()
        assert entry.status == "FAIL"
        assert entry.score == 0.2
        assert entry.reason == "Button missing"
        assert entry.judge_model == self._cli_judge().command

    def test_non_strict_attaches_failure(self, config: ProjectConfig, reporter: RecordingReporter):
        registry = TestRegistry()
        registry.test("adds button", judged())
        orchestrator = make_orchestrator(config, registry, judge=self._cli_judge(), reporter=reporter)

        [run] = orchestrator.run_test(registry.tests[0])

        iteration = run.iterations[0]
        assert isinstance(iteration.judge_failure, JudgeFailure)
        assert iteration.entry is not None
        assert run.status == "FAIL"
        assert not run.passed
        assert "fail" in reporter.kinds()
        assert PipelineStage.JUDGE in iteration.stages

    def test_strict_raises_after_all_iterations(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", judged(), iterations=3)
        orchestrator = make_orchestrator(config, registry, judge=FakeJudge(0.1))

        with pytest.raises(JudgeFailure):
            orchestrator.run_test(registry.tests[0], strict=True)

        assert len(orchestrator.ledger.get_runs()) == 3


class TestInfrastructureErrors:
    def test_runner_error_writes_no_entry(self, config: ProjectConfig, reporter: RecordingReporter):
        registry = TestRegistry()
        registry.test("t", judged())
        runner = FakeRunner(error=InfrastructureError("agent crashed"))
        orchestrator = make_orchestrator(config, registry, runners=[runner], reporter=reporter)

        [run] = orchestrator.run_all()

        assert run.status == "ERROR"
        assert not run.passed
        assert run.iterations[0].stage is PipelineStage.FAILED
        assert orchestrator.ledger.get_runs() == []
        assert reporter.events[-2][0] == "error"
        assert reporter.events[-2][2] == "agent crashed"
        assert reporter.events[-1] == ("run_end", 0, 1)

    @pytest.mark.parametrize(
        "error",
        [InfrastructureError("disk full"), OSError("disk full")],
    )
    def test_setup_failure_still_tears_down(self, config: ProjectConfig, error: Exception):
        registry = TestRegistry()
        registry.test("t", judged())
        environment = BrokenSetupEnvironment(error)
        orchestrator = make_orchestrator(config, registry, environment=environment)

        [run] = orchestrator.run_all()

        iteration = run.iterations[0]
        assert isinstance(iteration.error, InfrastructureError)
        assert "disk full" in str(iteration.error)
        assert environment.teardowns == 1
        assert orchestrator.ledger.get_runs() == []

    def test_ledger_write_failure_does_not_stop_the_run(
        self, config: ProjectConfig, reporter: RecordingReporter
    ):
        registry = TestRegistry()
        registry.test("t", judged())
        registry.test("u", judged())
        runner = FakeRunner()
        orchestrator = TestOrchestrator(
            config,
            registry,
            FullDiskLedger(config.output_path),
            judge=FakeJudge(0.9),
            runners=[runner],
            reporter=reporter,
        )

        results = orchestrator.run_all()

        assert [r.status for r in results] == ["ERROR", "ERROR"]
        assert len(runner.prompts) == 2
        error = results[0].iterations[0].error
        assert isinstance(error, InfrastructureError)
        assert "Ledger write failed: disk full" in str(error)
        assert ("step", "persist", "error") in reporter.events
        assert reporter.events[-1] == ("run_end", 0, 2)

    def test_strict_reraises_infrastructure_error(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", judged())
        orchestrator = make_orchestrator(
            config,
            registry,
            runners=[FakeRunner(error=InfrastructureError("agent crashed"))],
        )

        with pytest.raises(InfrastructureError, match="agent crashed"):
            orchestrator.run_test(registry.tests[0], strict=True)

    def test_not_a_repository(self, tmp_path: Path):
        registry = TestRegistry()
        registry.test("t", judged())

        [run] = make_orchestrator(ProjectConfig(root_dir=tmp_path), registry).run_all()

        assert run.status == "ERROR"
        assert "not a git repository" in str(run.iterations[0].error)


class TestDeclarativeMode:
    """agent.instruct() with tasks judged separately and aggregated by weight."""

    @staticmethod
    def declarative(agent, ctx):
        agent.instruct("Create hello.txt")
        ctx.add_task(
            name="exists",
            action=lambda: ctx.exec("test -f hello.txt"),
            criteria="The file exists",
            weight=3,
        )
        ctx.add_task(name="content", action=lambda: ctx.exec("cat hello.txt"), criteria="It says hello")

    def test_weighted_aggregate(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("declarative", self.declarative)
        judge = FakeJudge(1.0, 0.0)
        runner = FakeRunner()
        orchestrator = make_orchestrator(config, registry, judge=judge, runners=[runner])

        [run] = orchestrator.run_all()

        entry = run.entries[0]
        assert entry.score == 0.75
        assert entry.status == "WARN"
        assert "### exists" in entry.reason
        assert "### content" in entry.reason
        assert runner.prompts == ["Create hello.txt"]
        assert [c.command for c in entry.context.commands] == ["echo ok", "test -f hello.txt", "cat hello.txt"]
        assert len(judge.prompts) == 2
        assert "### Task 1: exists (weight: 3)" in judge.prompts[0]
        assert 'The agent was asked to: "Create hello.txt"' in judge.prompts[0]
        assert "It says hello" in judge.prompts[1]

    def test_all_tasks_run_after_a_failing_one(self, config: ProjectConfig):
        def fn(agent, ctx):
            agent.instruct("Do it")
            ctx.add_task(name="first", action=lambda: ctx.exec("exit 1"), criteria="fails")
            ctx.add_task(name="second", action=lambda: ctx.exec("echo second"), criteria="runs")

        registry = TestRegistry()
        registry.test("t", fn)

        [run] = make_orchestrator(config, registry, judge=FakeJudge(0.0, 0.4)).run_all()

        commands = run.entries[0].context.commands
        assert [c.exit_code for c in commands[1:]] == [1, 0]
        assert run.entries[0].status == "FAIL"
        assert isinstance(run.iterations[0].judge_failure, JudgeFailure)

    @pytest.mark.parametrize(
        "fn",
        [
            lambda agent, ctx: agent.instruct("no tasks"),
            lambda agent, ctx: (agent.instruct("a"), agent.instruct("b")),
            lambda agent, ctx: (agent.run("a"), agent.instruct("b")),
        ],
        ids=["no-tasks", "instruct-twice", "run-then-instruct"],
    )
    def test_misuse_is_validation_error(self, config: ProjectConfig, fn):
        registry = TestRegistry()
        registry.test("t", fn)
        orchestrator = make_orchestrator(config, registry)

        [run] = orchestrator.run_all()

        assert run.status == "ERROR"
        assert isinstance(run.iterations[0].error, ValidationError)
        assert orchestrator.ledger.get_runs() == []


class TestThresholdsAndIterations:
    def test_iterations_sequential_worst_status(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", judged(), iterations=3)

        [run] = make_orchestrator(config, registry, judge=FakeJudge(0.9, 0.6, 0.95)).run_all()

        assert [e.status for e in run.entries] == ["PASS", "WARN", "PASS"]
        assert [e.id for e in run.entries] == [1, 2, 3]
        assert run.status == "WARN"
        assert run.passed

    def test_test_thresholds_beat_config(self, empty_repo: Path):
        config = ProjectConfig(root_dir=empty_repo, thresholds=Thresholds(warn=0.5, fail=0.2))
        strict = Thresholds(warn=0.95, fail=0.85)
        registry = TestRegistry()
        registry.test("strict", judged(), thresholds=strict)
        registry.test("lenient", judged())

        results = make_orchestrator(config, registry, judge=FakeJudge(0.9)).run_all()

        by_test = {r.test.title: r.entries[0] for r in results}
        assert by_test["strict"].status == "WARN"
        assert by_test["strict"].thresholds == strict
        assert by_test["lenient"].status == "PASS"
        assert by_test["lenient"].thresholds == Thresholds(warn=0.5, fail=0.2)

    def test_expect_thresholds_recorded(self, config: ProjectConfig):
        lenient = Thresholds(warn=0.3, fail=0.1)
        registry = TestRegistry()
        registry.test("t", judged(thresholds=lenient))

        [run] = make_orchestrator(config, registry, judge=FakeJudge(0.4)).run_all()

        assert run.entries[0].status == "PASS"
        assert run.entries[0].thresholds == lenient


class TestRunnersAndHooks:
    def test_each_runner_gets_own_result(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("t", judged())

        results = make_orchestrator(
            config, registry, runners=[FakeRunner("claude"), FakeRunner("aider")]
        ).run_all()

        assert [r.runner for r in results] == ["claude", "aider"]
        assert [r.entries[0].agent_runner for r in results] == ["claude", "aider"]

    def test_matrix_filter(self, empty_repo: Path):
        config = ProjectConfig(root_dir=empty_repo, matrix_runners=["aider"])
        registry = TestRegistry()
        registry.test("t", judged())

        orchestrator = make_orchestrator(config, registry, runners=[FakeRunner("claude"), FakeRunner("aider")])

        assert [r.name for r in orchestrator.runners] == ["aider"]

    def test_hook_order(self, config: ProjectConfig):
        calls: list[str] = []
        registry = TestRegistry()
        with registry.describe("Suite"):
            registry.before_each(lambda ctx: calls.append("suite-before"))
            registry.after_each(lambda ctx: calls.append("suite-after"))

            @registry.test("t")
            def fn(agent, ctx):
                calls.append("test")
                agent.run("go")
                expect(ctx).to_pass_judge("ok")

        make_orchestrator(
            config,
            registry,
            before_each=[lambda ctx: calls.append("config-before")],
        ).run_all()

        assert calls == ["config-before", "suite-before", "test", "suite-after"]

    def test_file_writes_reported(self, config: ProjectConfig, reporter: RecordingReporter):
        registry = TestRegistry()
        registry.test("t", judged())

        make_orchestrator(
            config,
            registry,
            runners=[FakeRunner(files={"a.txt": "a", "b/c.txt": "c"})],
            reporter=reporter,
        ).run_all()

        writes = [event[2] for event in reporter.events if event[0] == "file_write"]
        assert writes == ["a.txt", "b/c.txt"]


class TestConstruction:
    def test_judge_required(self, empty_repo: Path):
        with pytest.raises(ValidationError, match="No judge configured"):
            TestOrchestrator(
                ProjectConfig(root_dir=empty_repo),
                TestRegistry(),
                build_ledger("json", empty_repo / ".agenteval"),
                runners=[FakeRunner()],
            )

    def test_invalid_plugin_rejected(self, empty_repo: Path):
        with pytest.raises(ValidationError, match="Plugin configuration errors detected"):
            TestOrchestrator(
                ProjectConfig(root_dir=empty_repo),
                TestRegistry(),
                object(),  # type: ignore[arg-type]
                judge=FakeJudge(),
            )

    def test_runs_tests_from_iterable(self, config: ProjectConfig):
        registry = TestRegistry()
        registry.test("a", judged())
        registry.test("b", judged())
        orchestrator = TestOrchestrator(
            config,
            registry.tests[:1],
            build_ledger("json", config.output_path),
            judge=FakeJudge(),
            runners=[FakeRunner()],
        )

        results = orchestrator.run_all()

        assert [r.test.title for r in results] == ["a"]
