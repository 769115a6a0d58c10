"""``expect(ctx).to_pass_judge(...)``: judge the evidence collected so far."""

from __future__ import annotations

from collections.abc import Sequence

from .context import EvalContext
from .errors import JudgeFailure, ValidationError
from .judge import build_judge_prompt
from .schemas import JudgeResult, Thresholds
from .scoring import compute_status, is_passing, resolve_thresholds


def finalize_verdict(raw: JudgeResult, thresholds: Thresholds) -> JudgeResult:
    """Stamp status and pass from thresholds onto a judge verdict."""
    status = compute_status(raw.score, thresholds)
    return raw.model_copy(update={"status": status, "pass_": is_passing(status)})


class Expectation:
    def __init__(self, ctx: EvalContext) -> None:
        self.ctx = ctx

    def to_pass_judge(
        self,
        criteria: str,
        *,
        model: str | None = None,
        expected_files: Sequence[str] | None = None,
        thresholds: Thresholds | None = None,
    ) -> JudgeResult:
        """Judge the context once against ``criteria``.

        The verdict is recorded on the context before anything is raised, so the
        orchestrator can persist it.

        Raises:
            ValidationError: no judge is configured for this context
            JudgeFailure: the score falls in the FAIL tier
        """
        if not criteria.strip():
            raise ValidationError("to_pass_judge needs non-empty criteria")
        judge = self.ctx.judge
        if judge is None:
            raise ValidationError("No judge configured. Run the test through the orchestrator.")

        prompt = build_judge_prompt(
            criteria,
            self.ctx.logs,
            diff=self.ctx.diff,
            expected_files=expected_files,
        )
        applied = resolve_thresholds(thresholds, self.ctx.thresholds)
        result = finalize_verdict(judge.judge(prompt, model=model), applied)
        self.ctx.record_judge_result(result, applied, model=model)

        if result.status == "FAIL":
            raise JudgeFailure(result)
        return result


def expect(ctx: EvalContext) -> Expectation:
    return Expectation(ctx)
