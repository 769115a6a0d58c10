"""Pydantic models for the project configuration (agenteval.yaml)."""

from pathlib import Path
from typing import Literal

import pydantic
import yaml
from pydantic import BaseModel, Field, model_validator

from ..errors import ValidationError
from .results import Thresholds

Provider = Literal["anthropic", "openai", "ollama"]


class ApiModelConfig(BaseModel):
    """Hosted or local model endpoint used by an API runner or judge."""

    provider: Provider = Field(description="Model provider")
    model: str = Field(description="Model identifier within provider")
    base_url: str | None = Field(default=None, description="Endpoint override")
    api_key: str | None = Field(
        default=None,
        description="API key; falls back to the provider's environment variable",
    )


class RunnerConfig(BaseModel):
    """A named agent runner."""

    name: str = Field(description="Unique runner name (copilot, aider, claude...)")
    type: Literal["cli", "api"] = Field(description="Shell command or direct model call")
    command: str | None = Field(
        default=None,
        description="CLI command template; {{prompt}} is replaced by the instruction",
    )
    api: ApiModelConfig | None = Field(default=None, description="API model configuration")

    @model_validator(mode="after")
    def _check_variant(self) -> "RunnerConfig":
        if self.type == "cli" and not self.command:
            raise ValueError(f'Runner "{self.name}" has type "cli" but no command defined')
        if self.type == "api" and self.api is None:
            raise ValueError(f'Runner "{self.name}" has type "api" but no api config defined')
        return self


class JudgeConfig(BaseModel):
    """Judge configuration: hosted model (api) or external command (cli)."""

    type: Literal["api", "cli"] = Field(default="api", description="Judge variant")
    provider: Provider | None = Field(default=None, description="Provider for api judges")
    model: str | None = Field(default=None, description="Model for api judges")
    base_url: str | None = None
    api_key: str | None = None
    command: str | None = Field(
        default=None,
        description="CLI judge template using {{prompt}} or {{prompt_file}}",
    )
    max_retries: int | None = Field(
        default=None,
        ge=0,
        description="Retries when a CLI judge prints invalid JSON",
    )
    timeout_ms: int | None = Field(default=None, gt=0, description="CLI judge timeout")

    @model_validator(mode="after")
    def _check_variant(self) -> "JudgeConfig":
        if self.type == "cli" and not self.command:
            raise ValueError('CLI judge requires a "command" field in judge config.')
        if self.type == "api" and (not self.provider or not self.model):
            raise ValueError('API judge requires "provider" and "model" fields in judge config.')
        return self

    @property
    def identity(self) -> str:
        """Judge model identity recorded in the ledger."""
        if self.type == "cli":
            return self.command or "unknown"
        return f"{self.provider}/{self.model}"


class AfterEachCommand(BaseModel):
    """Command run automatically after each agent execution."""

    name: str = Field(description="Label used in logs and the judge prompt")
    command: str = Field(description="Shell command to execute")


class EnvironmentConfig(BaseModel):
    """Execution environment selection."""

    type: Literal["local", "preserving-local", "docker"] = Field(default="local")
    image: str | None = Field(default=None, description="Docker image")
    dockerfile: str | None = Field(default=None, description="Dockerfile to build instead")
    work_dir: str = Field(default="/workspace", description="Mount point inside the container")
    docker_args: list[str] = Field(default_factory=list, description="Extra docker create flags")

    @model_validator(mode="after")
    def _check_docker(self) -> "EnvironmentConfig":
        if self.type == "docker" and not (self.image or self.dockerfile):
            raise ValueError('Docker environment requires an "image" or a "dockerfile".')
        return self


class ProjectConfig(BaseModel):
    """Complete project configuration matching the YAML format."""

    root_dir: Path = Field(default_factory=Path.cwd, description="Workspace root")
    test_files: list[str] = Field(
        default_factory=lambda: ["**/*.eval.py"],
        description="Glob patterns for eval files, relative to root_dir",
    )
    runners: list[RunnerConfig] = Field(default_factory=list)
    judge: JudgeConfig | None = Field(default=None)
    after_each: list[AfterEachCommand] = Field(default_factory=list)
    thresholds: Thresholds | None = Field(
        default=None,
        description="Global thresholds; per-test thresholds override these",
    )
    output_dir: str = Field(default=".agenteval", description="Ledger directory")
    ledger: Literal["json", "sqlite"] = Field(default="json")
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    timeout_ms: int | None = Field(default=None, gt=0, description="Agent run timeout")
    matrix_runners: list[str] | None = Field(
        default=None,
        description="Restrict execution to these runner names",
    )

    @property
    def output_path(self) -> Path:
        output = Path(self.output_dir)
        return output if output.is_absolute() else self.root_dir / output

    @classmethod
    def from_yaml(cls, path: Path) -> "ProjectConfig":
        """Load a project configuration from a YAML file."""
        with path.open() as f:
            data = yaml.safe_load(f) or {}
        data.setdefault("root_dir", str(path.parent.resolve()))
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid config {path}: {exc}") from exc

    def to_yaml(self, path: Path) -> None:
        """Save the configuration to a YAML file."""
        with path.open("w") as f:
            yaml.dump(self.model_dump(mode="json", exclude_none=True), f, sort_keys=False)
