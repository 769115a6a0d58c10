"""Judge contract and the model-backed judge."""

from __future__ import annotations

from ..llm import ModelPlugin
from ..schemas import JudgeResult


class JudgePlugin:
    """Base contract: score a rendered prompt."""

    name: str = "judge"
    provider: str | None = None
    model: str | None = None

    def identity(self, model: str | None = None) -> str:
        """Judge identity recorded with each ledger entry."""
        return self.name

    def judge(self, prompt: str, model: str | None = None) -> JudgeResult:
        raise NotImplementedError


class ModelJudge(JudgePlugin):
    """Judge backed by a model provider's structured output."""

    name = "model"

    def __init__(self, model: ModelPlugin) -> None:
        self.model_plugin = model
        self.provider = model.provider
        self.model = model.model

    def identity(self, model: str | None = None) -> str:
        return f"{self.provider}/{model or self.model}"

    def judge(self, prompt: str, model: str | None = None) -> JudgeResult:
        return self.model_plugin.evaluate(prompt, model=model)
