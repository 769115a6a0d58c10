"""Judge that shells out to an external command printing a JSON verdict."""

from __future__ import annotations

import json
import logging
import re
import shlex
import tempfile
from pathlib import Path

import pydantic

from ..config import settings
from ..environment.shell import TIMEOUT_EXIT_CODE, run_process
from ..errors import InfrastructureError, JudgeParseError
from ..schemas import JudgeResult
from .base import JudgePlugin

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"```(?:json)?\s*")


def extract_judge_json(stdout: str) -> JudgeResult:
    """Find and validate the verdict object in raw command output.

    Tolerates markdown code fences and preamble text around the object.
    """
    stripped = CODE_FENCE.sub("", stdout)
    decoder = json.JSONDecoder()

    payload: dict | None = None
    for match in re.finditer(r"\{", stripped):
        try:
            candidate, _ = decoder.raw_decode(stripped, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(candidate, dict) and "pass" in candidate:
            payload = candidate
            break

    if payload is None:
        raise JudgeParseError(
            "CLI judge output does not contain valid JSON with { pass, score, reason }.\n"
            f"Output: {stdout[:500]}"
        )

    payload.pop("status", None)
    try:
        return JudgeResult.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise JudgeParseError(f"CLI judge verdict failed validation: {exc}") from exc


class CLIJudge(JudgePlugin):
    """Runs a command template with ``{{prompt}}`` or ``{{prompt_file}}``."""

    name = "cli"

    def __init__(
        self,
        command: str,
        max_retries: int | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        self.command = command
        self.max_retries = settings.judge.cli_max_retries if max_retries is None else max_retries
        self.timeout_ms = timeout_ms or settings.timeouts.judge_cli_ms
        self.model = command

    def identity(self, model: str | None = None) -> str:
        return self.command

    def render(self, prompt: str, prompt_file: Path) -> str:
        return self.command.replace("{{prompt}}", shlex.quote(prompt)).replace(
            "{{prompt_file}}", shlex.quote(str(prompt_file))
        )

    def judge(self, prompt: str, model: str | None = None) -> JudgeResult:
        with tempfile.TemporaryDirectory(prefix="agenteval-judge-") as tmp_dir:
            prompt_file = Path(tmp_dir) / "prompt.txt"
            prompt_file.write_text(prompt, encoding="utf-8")
            command = self.render(prompt, prompt_file)

            attempt = 1
            while True:
                result = run_process(command, timeout_ms=self.timeout_ms)
                if result.exit_code == TIMEOUT_EXIT_CODE:
                    raise InfrastructureError(f"CLI judge timed out after {self.timeout_ms}ms")
                if not result.ok:
                    raise InfrastructureError(
                        f"CLI judge exited with code {result.exit_code}: {result.stderr.strip()[:500]}"
                    )
                try:
                    return extract_judge_json(result.stdout)
                except JudgeParseError:
                    if attempt > self.max_retries:
                        raise
                    logger.warning(
                        "CLI judge attempt %d/%d returned invalid JSON, retrying",
                        attempt,
                        self.max_retries + 1,
                    )
                attempt += 1
