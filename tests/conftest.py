"""Shared test fixtures for the agent evaluation harness."""

import subprocess
from pathlib import Path

import pytest

from agenteval.judge import JudgePlugin
from agenteval.ledger import JsonLedger
from agenteval.reporter import RecordingReporter
from agenteval.runners import RunnerContext, RunnerExecResult, RunnerPlugin
from agenteval.schemas import EvidenceSnapshot, JudgeResult, LedgerEntry, ProjectConfig

GIT_IDENTITY = [
    "-c",
    "user.name=agenteval",
    "-c",
    "user.email=agenteval@example.com",
    "-c",
    "commit.gpgsign=false",
]


def git(repo: Path, *args: str) -> str:
    """Run a git command in ``repo`` that must succeed."""
    result = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def commit_all(repo: Path, message: str = "update") -> None:
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", message)


class FakeJudge(JudgePlugin):
    """Judge returning scripted scores, one per call (the last one repeats)."""

    name = "fake"
    provider = "fake"
    model = "judge-1"

    def __init__(self, *scores: float, reason: str = "Looks right") -> None:
        self.scores = list(scores) or [0.9]
        self.reason = reason
        self.prompts: list[str] = []

    def identity(self, model: str | None = None) -> str:
        return f"fake/{model or self.model}"

    def judge(self, prompt: str, model: str | None = None) -> JudgeResult:
        self.prompts.append(prompt)
        score = self.scores[min(len(self.prompts), len(self.scores)) - 1]
        return JudgeResult(
            pass_=score >= 0.5,
            score=score,
            reason=self.reason,
            improvement="" if score == 1.0 else "Add tests",
        )


class FakeRunner(RunnerPlugin):
    """Runner that writes a fixed set of files instead of calling an agent."""

    provider = "fake"
    model = "agent-1"

    def __init__(
        self,
        name: str = "fake-agent",
        files: dict[str, str] | None = None,
        exit_code: int = 0,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.files = files if files is not None else {"hello.txt": "hello\n"}
        self.exit_code = exit_code
        self.error = error
        self.prompts: list[str] = []

    def execute(self, prompt: str, context: RunnerContext) -> RunnerExecResult:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        for path, content in self.files.items():
            target = context.cwd / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        return RunnerExecResult(
            stdout="done",
            exit_code=self.exit_code,
            files_written=tuple(self.files),
        )


@pytest.fixture
def empty_repo(tmp_path: Path) -> Path:
    """A git repository with no commits."""
    repo = tmp_path / "empty"
    repo.mkdir()
    git(repo, "init", "-q")
    return repo


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A git repository with one committed README."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    (repo / "README.md").write_text("# Demo\n")
    commit_all(repo, "init")
    return repo


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def fake_judge() -> FakeJudge:
    return FakeJudge(0.9)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def project_config(git_repo: Path) -> ProjectConfig:
    return ProjectConfig(root_dir=git_repo)


@pytest.fixture
def json_ledger(tmp_path: Path) -> JsonLedger:
    return JsonLedger(tmp_path / "ledger")


def make_entry(
    test_id: str = "adds a button",
    *,
    runner: str = "claude",
    score: float = 0.9,
    timestamp: str = "2026-01-01T00:00:00.000Z",
    suite_path: tuple[str, ...] = (),
) -> LedgerEntry:
    status = "PASS" if score >= 0.8 else "WARN" if score >= 0.5 else "FAIL"
    return LedgerEntry(
        test_id=test_id,
        suite_path=list(suite_path),
        timestamp=timestamp,
        agent_runner=runner,
        judge_model="openai/gpt-4o",
        score=score,
        pass_=status != "FAIL",
        status=status,
        reason="reason",
        context=EvidenceSnapshot(diff="", commands=[]),
    )
