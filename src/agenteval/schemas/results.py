"""Result schemas: command evidence, judge verdicts, ledger records.

Fields named ``pass`` on the wire are ``pass_`` in Python.
"""

from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

TestStatus = Literal["PASS", "WARN", "FAIL"]


class Thresholds(BaseModel):
    """Score cut points mapping a raw score to a status tier."""

    model_config = ConfigDict(frozen=True)

    warn: float = Field(default=0.8, ge=0, le=1, description="Minimum score for PASS")
    fail: float = Field(default=0.5, ge=0, le=1, description="Minimum score for WARN")

    @model_validator(mode="after")
    def _ordered(self) -> "Thresholds":
        if self.fail > self.warn:
            raise ValueError(f"fail threshold ({self.fail}) must not exceed warn ({self.warn})")
        return self


class CommandResult(BaseModel):
    """Captured outcome of one shell command."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Label shown in logs and the judge prompt")
    command: str = Field(description="Command text as executed")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    exit_code: int = Field(description="Process exit code")
    duration_ms: int = Field(default=0, ge=0, description="Wall-clock duration")


class JudgeResult(BaseModel):
    """Structured verdict returned by a judge.

    Strict: a response must already have the right types; nothing is coerced.
    """

    model_config = ConfigDict(strict=True, populate_by_name=True)

    pass_: bool = Field(alias="pass", description="Whether the output meets the criteria")
    score: float = Field(ge=0, le=1, description="Score from 0.0 (failure) to 1.0 (perfect)")
    reason: str = Field(description="Markdown explanation of the evaluation")
    improvement: str = Field(
        default="",
        description="Markdown suggestions to improve the score",
    )
    status: TestStatus | None = Field(
        default=None,
        description="Status tier computed from thresholds (set by the harness, not the judge)",
    )


class FileOperation(BaseModel):
    """A full-content file write requested by a model-driven agent."""

    model_config = ConfigDict(strict=True)

    path: str = Field(description="Relative file path from project root")
    content: str = Field(description="Full file content to write")


class AgentFileOutput(BaseModel):
    """Structured response of a model-driven agent."""

    model_config = ConfigDict(strict=True)

    files: list[FileOperation] = Field(
        default_factory=list,
        description="Files to create or modify",
    )


class EvidenceSnapshot(BaseModel):
    """Diff and command outputs captured during an iteration."""

    diff: str | None = None
    commands: list[CommandResult] = Field(default_factory=list)


class ScoreOverride(BaseModel):
    """Human-in-the-loop score override for a recorded run."""

    model_config = ConfigDict(populate_by_name=True)

    run_id: int = Field(description="Ledger id of the overridden run")
    score: float = Field(ge=0, le=1)
    pass_: bool = Field(alias="pass")
    status: TestStatus
    reason: str
    timestamp: str = Field(description="ISO timestamp of the override")


class LedgerEntry(BaseModel):
    """Durable record of one completed iteration."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = Field(default=None, description="Assigned by the ledger at append time")
    test_id: str
    suite_path: list[str] = Field(default_factory=list)
    timestamp: str = Field(description="ISO timestamp of the iteration")
    agent_runner: str
    judge_model: str
    score: float = Field(ge=0, le=1)
    pass_: bool = Field(alias="pass")
    status: TestStatus
    reason: str = ""
    improvement: str = ""
    context: EvidenceSnapshot = Field(default_factory=EvidenceSnapshot)
    duration_ms: int = Field(default=0, ge=0)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    override: ScoreOverride | None = Field(
        default=None,
        description="Latest override, attached on read only",
    )

    @property
    def effective_score(self) -> float:
        return self.override.score if self.override else self.score

    @property
    def effective_pass(self) -> bool:
        return self.override.pass_ if self.override else self.pass_

    def stored(self) -> "LedgerEntry":
        """Copy without read-side decorations, as written to storage."""
        return self.model_copy(update={"override": None})


class RunnerStats(BaseModel):
    """Aggregate effective statistics for one runner."""

    agent_runner: str
    avg_score: float
    total_runs: int
    pass_rate: float


class TestTreeNode(BaseModel):
    """A suite or test in the hierarchy built from recorded suite paths."""

    __test__: ClassVar[bool] = False

    name: str
    type: Literal["suite", "test"]
    test_id: str | None = None
    children: list["TestTreeNode"] = Field(default_factory=list)
