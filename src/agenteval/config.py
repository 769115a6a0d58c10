"""Centralized configuration using pydantic-settings.

All tunable defaults for the evaluation harness live here.
Values can be overridden via environment variables with AGENTEVAL_ prefix.

Example:
    AGENTEVAL_TIMEOUTS__COMMAND_MS=60000
    AGENTEVAL_LLM__MAX_RETRIES=3
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TimeoutSettings(BaseSettings):
    """Timeout values in milliseconds for external calls."""

    model_config = SettingsConfigDict(env_prefix="AGENTEVAL_TIMEOUTS__")

    command_ms: int = Field(default=120_000, gt=0, description="Verification command timeout")
    agent_ms: int = Field(default=600_000, gt=0, description="Agent (runner) timeout")
    docker_build_ms: int = Field(default=300_000, gt=0, description="Image build timeout")
    docker_ms: int = Field(
        default=60_000,
        gt=0,
        description="Container create/start/remove timeout",
    )
    judge_cli_ms: int = Field(default=300_000, gt=0, description="CLI judge command timeout")
    git_ms: int = Field(default=60_000, gt=0, description="Git bookkeeping command timeout")


class ThresholdSettings(BaseSettings):
    """Process-wide score thresholds used when no config or test overrides them."""

    model_config = SettingsConfigDict(env_prefix="AGENTEVAL_THRESHOLDS__")

    warn: float = Field(default=0.8, ge=0, le=1, description="Minimum score for PASS")
    fail: float = Field(default=0.5, ge=0, le=1, description="Minimum score for WARN")


class LLMSettings(BaseSettings):
    """Hosted model call configuration."""

    model_config = SettingsConfigDict(env_prefix="AGENTEVAL_LLM__")

    timeout_sec: float = Field(default=120.0, gt=0, description="Per-request timeout")
    max_retries: int = Field(default=2, ge=0, description="Retries for transport failures")
    max_tokens: int = Field(default=4096, gt=0, description="Max tokens for a response")
    temperature: float = Field(default=0.0, ge=0, description="Sampling temperature")


class JudgeSettings(BaseSettings):
    """Judge defaults."""

    model_config = SettingsConfigDict(env_prefix="AGENTEVAL_JUDGE__")

    cli_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries when a CLI judge prints invalid JSON",
    )
    max_task_output_chars: int = Field(
        default=2000,
        gt=0,
        description="Max stdout characters per task in the judge prompt",
    )
    max_task_stderr_chars: int = Field(
        default=500,
        gt=0,
        description="Max stderr characters per task in the judge prompt",
    )


class LedgerSettings(BaseSettings):
    """Ledger storage defaults."""

    model_config = SettingsConfigDict(env_prefix="AGENTEVAL_LEDGER__")

    output_dir: str = Field(default=".agenteval", description="Ledger directory")
    backend: str = Field(default="json", description="Ledger backend (json or sqlite)")


class EvalSettings(BaseSettings):
    """Root configuration for the evaluation harness.

    All settings can be overridden via environment variables with AGENTEVAL_ prefix.
    Nested settings use double underscore: AGENTEVAL_TIMEOUTS__AGENT_MS=900000
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTEVAL_",
        env_nested_delimiter="__",
    )

    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    judge: JudgeSettings = Field(default_factory=JudgeSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)


# Singleton instance
settings = EvalSettings()
