"""Runner registry wiring runner types to their implementations."""

from __future__ import annotations

from collections.abc import Callable

from ..errors import ValidationError
from ..llm import build_model
from ..schemas import RunnerConfig
from .api import APIRunner
from .base import RunnerPlugin
from .cli import CLIRunner

RunnerFactory = Callable[[RunnerConfig], RunnerPlugin]


def _cli_runner(config: RunnerConfig) -> RunnerPlugin:
    return CLIRunner(name=config.name, command=config.command or "")


def _api_runner(config: RunnerConfig) -> RunnerPlugin:
    api = config.api
    if api is None:
        raise ValidationError(f'Runner "{config.name}" has type "api" but no api config defined')
    model = build_model(api.provider, api.model, api_key=api.api_key, base_url=api.base_url)
    return APIRunner(name=config.name, model=model)


class RunnerRegistry:
    """Simple registry mapping runner types to factories."""

    def __init__(self) -> None:
        self._factories: dict[str, RunnerFactory] = {}

    def register(self, runner_type: str, factory: RunnerFactory) -> None:
        self._factories[runner_type] = factory

    def resolve(self, config: RunnerConfig) -> RunnerPlugin:
        if config.type not in self._factories:
            raise ValidationError(f"No runner registered for type {config.type}")
        return self._factories[config.type](config)


registry = RunnerRegistry()

registry.register("cli", _cli_runner)
registry.register("api", _api_runner)


def build_runner(config: RunnerConfig) -> RunnerPlugin:
    return registry.resolve(config)
