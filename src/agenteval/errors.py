"""Error taxonomy for the evaluation pipeline.

Non-zero exits from agent or verification commands are not errors: they are
captured as CommandResult data. Everything below interrupts something.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import cycles avoided at runtime
    from .schemas.results import JudgeResult


class AgentEvalError(Exception):
    """Base class for harness errors."""


class InfrastructureError(AgentEvalError):
    """The harness itself broke: environment setup/teardown, judge transport or parsing."""


class JudgeParseError(InfrastructureError):
    """A judge responded, but not with a valid verdict."""


class ValidationError(AgentEvalError, ValueError):
    """Malformed configuration or input, rejected before any side effect."""


class JudgeFailure(AgentEvalError, AssertionError):
    """The judge returned a valid verdict whose score falls in the FAIL tier."""

    def __init__(self, result: JudgeResult) -> None:
        self.result = result
        super().__init__(
            f"Judge evaluation failed (score: {result.score:.2f})\n\n"
            f"{result.reason}\n\n"
            f"Improvement suggestions:\n{result.improvement}"
        )

    @property
    def score(self) -> float:
        return self.result.score

    @property
    def reason(self) -> str:
        return self.result.reason
