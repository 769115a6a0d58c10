"""Model capability: structured evaluation and file generation via litellm."""

from .base import GENERATION_PROMPT, ModelPlugin, response_schema
from .providers import PROVIDERS, AnthropicModel, OllamaModel, OpenAIModel, build_model

__all__ = [
    "GENERATION_PROMPT",
    "PROVIDERS",
    "AnthropicModel",
    "ModelPlugin",
    "OllamaModel",
    "OpenAIModel",
    "build_model",
    "response_schema",
]
