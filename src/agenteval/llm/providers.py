"""Model providers addressed through litellm."""

from __future__ import annotations

from collections.abc import Callable

from ..errors import ValidationError
from .base import ModelPlugin


class AnthropicModel(ModelPlugin):
    """Anthropic hosted models (key from ANTHROPIC_API_KEY)."""

    name = "anthropic"
    prefix = "anthropic/"
    api_key_env = "ANTHROPIC_API_KEY"
    default_model = "claude-sonnet-4-20250514"


class OpenAIModel(ModelPlugin):
    """OpenAI or any OpenAI-compatible endpoint via ``base_url``."""

    name = "openai"
    prefix = "openai/"
    api_key_env = "OPENAI_API_KEY"
    default_model = "gpt-4o"


class OllamaModel(ModelPlugin):
    """Local Ollama server; no API key."""

    name = "ollama"
    prefix = "ollama_chat/"
    default_model = "llama3"
    default_base_url = "http://localhost:11434"


ModelFactory = Callable[..., ModelPlugin]

PROVIDERS: dict[str, ModelFactory] = {
    "anthropic": AnthropicModel,
    "openai": OpenAIModel,
    "ollama": OllamaModel,
}


def build_model(
    provider: str,
    model: str | None = None,
    api_key: str | None = None,
    base_url: str | None = None,
) -> ModelPlugin:
    if provider not in PROVIDERS:
        raise ValidationError(
            f"Unknown model provider {provider!r}; expected one of {', '.join(sorted(PROVIDERS))}"
        )
    return PROVIDERS[provider](model=model, api_key=api_key, base_url=base_url)
