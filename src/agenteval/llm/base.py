"""Shared structured-output logic for hosted and local model providers.

Providers only describe how to address a model through litellm (prefix,
key variable, endpoint). Evaluation and generation both request a JSON schema
derived from the pydantic models and validate the reply strictly.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, TypeVar

import pydantic
from litellm import completion
from pydantic import BaseModel

from ..config import settings
from ..errors import InfrastructureError, JudgeParseError
from ..schemas import AgentFileOutput, JudgeResult

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)

GENERATION_PROMPT = """You are an expert coding agent. You must complete the following task by modifying or creating files in a project.

Task: {prompt}

Respond with the list of files to create or modify. Each file must include the full content (not a diff). Only include files that need changes."""


def response_schema(model_cls: type[BaseModel], exclude: tuple[str, ...] = ()) -> dict[str, Any]:
    """JSON schema for a response model, minus harness-owned fields."""
    schema = model_cls.model_json_schema()
    properties = schema.get("properties", {})
    for field in exclude:
        properties.pop(field, None)
    schema["required"] = [name for name in schema.get("required", []) if name not in exclude]
    return schema


class ModelPlugin:
    """Base model capability: ``evaluate`` for judging, ``generate`` for agents."""

    name: str = "model"
    prefix: str = ""
    api_key_env: str | None = None
    default_model: str = ""
    default_base_url: str | None = None

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.model = model or self.default_model
        self.api_key = api_key or (os.environ.get(self.api_key_env) if self.api_key_env else None)
        self.base_url = base_url or self.default_base_url

    @property
    def provider(self) -> str:
        return self.name

    def litellm_model(self, model: str | None = None) -> str:
        """Render the litellm model argument (``anthropic/claude-...``)."""
        return f"{self.prefix}{model or self.model}"

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------
    def evaluate(self, prompt: str, model: str | None = None) -> JudgeResult:
        """Ask the model for a verdict; a non-conforming reply is a JudgeParseError."""
        return self._structured(
            prompt,
            JudgeResult,
            model=model,
            schema_name="judge_result",
            exclude=("status",),
            error_cls=JudgeParseError,
        )

    def generate(self, prompt: str, model: str | None = None) -> AgentFileOutput:
        """Ask the model for full-content file writes completing a task."""
        return self._structured(
            GENERATION_PROMPT.format(prompt=prompt),
            AgentFileOutput,
            model=model,
            schema_name="file_operations",
            error_cls=InfrastructureError,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def completion_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["api_base"] = self.base_url
        return kwargs

    def _complete(self, prompt: str, model: str | None, response_format: dict[str, Any]) -> str:
        max_retries = settings.llm.max_retries
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                response = completion(
                    model=self.litellm_model(model),
                    messages=[{"role": "user", "content": prompt}],
                    response_format=response_format,
                    max_tokens=settings.llm.max_tokens,
                    temperature=settings.llm.temperature,
                    timeout=settings.llm.timeout_sec,
                    **self.completion_kwargs(),
                )
                return response.choices[0].message.content or ""
            except Exception as e:
                last_error = e
                if attempt < max_retries:
                    logger.warning(
                        "%s request failed (attempt %d/%d): %s",
                        self.litellm_model(model),
                        attempt + 1,
                        max_retries + 1,
                        e,
                    )
                    continue

        raise InfrastructureError(
            f"{self.litellm_model(model)} unavailable after {max_retries + 1} attempts: {last_error}"
        ) from last_error

    def _structured(
        self,
        prompt: str,
        response_cls: type[ResponseT],
        *,
        model: str | None,
        schema_name: str,
        exclude: tuple[str, ...] = (),
        error_cls: type[InfrastructureError] = InfrastructureError,
    ) -> ResponseT:
        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": schema_name,
                "schema": response_schema(response_cls, exclude),
            },
        }
        content = self._complete(prompt, model, response_format)
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise error_cls(
                f"{self.litellm_model(model)} returned non-JSON output: {content[:200]}"
            ) from exc
        if not isinstance(payload, dict):
            raise error_cls(
                f"{self.litellm_model(model)} returned {type(payload).__name__}, expected an object"
            )
        for field in exclude:
            payload.pop(field, None)
        try:
            return response_cls.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise error_cls(
                f"{self.litellm_model(model)} response failed schema validation: {exc}"
            ) from exc
