"""agenteval: evaluation harness for AI coding agents.

Isolate a workspace, run an agent, capture the diff and command output, have a
judge score the evidence, and record every verdict in an append-only ledger.
"""

from .context import EvalContext, TaskSpec
from .environment import (
    DockerEnvironment,
    EnvironmentPlugin,
    LocalEnvironment,
    PreservingLocalEnvironment,
    build_environment,
)
from .errors import (
    AgentEvalError,
    InfrastructureError,
    JudgeFailure,
    JudgeParseError,
    ValidationError,
)
from .expect import expect
from .judge import CLIJudge, JudgePlugin, ModelJudge, build_judge
from .ledger import JsonLedger, LedgerPlugin, SqliteLedger, build_ledger
from .llm import ModelPlugin, build_model
from .orchestrator import IterationResult, PipelineStage, TestOrchestrator, TestRunResult
from .plugins import validate_plugin
from .registry import (
    TestDefinition,
    TestRegistry,
    after_each,
    before_each,
    default_registry,
    describe,
    skip,
    tagged,
    test,
)
from .reporter import ConsoleReporter, Reporter
from .runners import APIRunner, CLIRunner, RunnerPlugin, build_runner
from .schemas import JudgeResult, LedgerEntry, ProjectConfig, Thresholds

__version__ = "0.1.0"

__all__ = [
    "APIRunner",
    "AgentEvalError",
    "CLIJudge",
    "CLIRunner",
    "ConsoleReporter",
    "DockerEnvironment",
    "EnvironmentPlugin",
    "EvalContext",
    "InfrastructureError",
    "IterationResult",
    "JsonLedger",
    "JudgeFailure",
    "JudgeParseError",
    "JudgePlugin",
    "JudgeResult",
    "LedgerEntry",
    "LedgerPlugin",
    "LocalEnvironment",
    "ModelJudge",
    "ModelPlugin",
    "PipelineStage",
    "PreservingLocalEnvironment",
    "ProjectConfig",
    "Reporter",
    "RunnerPlugin",
    "SqliteLedger",
    "TaskSpec",
    "TestDefinition",
    "TestOrchestrator",
    "TestRegistry",
    "TestRunResult",
    "Thresholds",
    "ValidationError",
    "after_each",
    "before_each",
    "build_environment",
    "build_judge",
    "build_ledger",
    "build_model",
    "build_runner",
    "default_registry",
    "describe",
    "expect",
    "skip",
    "tagged",
    "test",
    "validate_plugin",
]
