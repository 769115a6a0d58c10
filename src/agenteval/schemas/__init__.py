"""Schemas for agenteval configuration and results."""

from .project import (
    AfterEachCommand,
    ApiModelConfig,
    EnvironmentConfig,
    JudgeConfig,
    ProjectConfig,
    RunnerConfig,
)
from .results import (
    AgentFileOutput,
    CommandResult,
    EvidenceSnapshot,
    FileOperation,
    JudgeResult,
    LedgerEntry,
    RunnerStats,
    ScoreOverride,
    TestStatus,
    TestTreeNode,
    Thresholds,
)

__all__ = [
    "AfterEachCommand",
    "AgentFileOutput",
    "ApiModelConfig",
    "CommandResult",
    "EnvironmentConfig",
    "EvidenceSnapshot",
    "FileOperation",
    "JudgeConfig",
    "JudgeResult",
    "LedgerEntry",
    "ProjectConfig",
    "RunnerConfig",
    "RunnerStats",
    "ScoreOverride",
    "TestStatus",
    "TestTreeNode",
    "Thresholds",
]
