"""Agent runners."""

from .api import APIRunner
from .base import RunnerContext, RunnerExecResult, RunnerPlugin
from .cli import CLIRunner, render_command
from .registry import RunnerRegistry, build_runner

__all__ = [
    "APIRunner",
    "CLIRunner",
    "RunnerContext",
    "RunnerExecResult",
    "RunnerPlugin",
    "RunnerRegistry",
    "build_runner",
    "render_command",
]
