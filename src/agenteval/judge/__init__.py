"""Judging: prompt rendering plus model-backed and command-line judges."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..llm import build_model
from ..runners import RunnerPlugin
from ..schemas import JudgeConfig
from .base import JudgePlugin, ModelJudge
from .cli_judge import CLIJudge, extract_judge_json
from .prompt import build_file_scope_section, build_judge_prompt, extract_changed_files

logger = logging.getLogger(__name__)


def build_judge(config: JudgeConfig) -> JudgePlugin:
    """Instantiate the judge described by ``config``."""
    if config.type == "cli":
        return CLIJudge(
            command=config.command or "",
            max_retries=config.max_retries,
            timeout_ms=config.timeout_ms,
        )
    model = build_model(
        config.provider or "",
        config.model,
        api_key=config.api_key,
        base_url=config.base_url,
    )
    return ModelJudge(model)


def warn_if_self_judging(judge: JudgePlugin, runners: Iterable[RunnerPlugin]) -> list[str]:
    """Log a warning for each runner that shares the judge's provider and model."""
    flagged: list[str] = []
    if judge.provider is None:
        return flagged
    for runner in runners:
        if runner.provider == judge.provider and runner.model == judge.model:
            logger.warning(
                "Runner %s is judged by its own model (%s/%s); prefer a different judge",
                runner.name,
                judge.provider,
                judge.model,
            )
            flagged.append(runner.name)
    return flagged


__all__ = [
    "CLIJudge",
    "JudgePlugin",
    "ModelJudge",
    "build_file_scope_section",
    "build_judge",
    "build_judge_prompt",
    "extract_changed_files",
    "extract_judge_json",
    "warn_if_self_judging",
]
