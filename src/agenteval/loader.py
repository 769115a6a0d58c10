"""Project config discovery and eval file loading."""

from __future__ import annotations

import importlib.util
import logging
import re
import sys
from pathlib import Path

from .errors import ValidationError
from .registry import TestDefinition, TestRegistry
from .schemas import JudgeConfig, ProjectConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("agenteval.yaml", "agenteval.yml")
DEFAULT_JUDGE = ("openai", "gpt-4o")
IGNORED_DIRS = frozenset({".git", ".agenteval", "node_modules", ".venv", "venv", "__pycache__", "dist"})


def find_config(cwd: Path) -> Path | None:
    for filename in CONFIG_FILENAMES:
        candidate = cwd / filename
        if candidate.is_file():
            return candidate
    return None


def load_config(cwd: Path, config_path: Path | None = None) -> ProjectConfig:
    """Load the project config; defaults rooted at ``cwd`` when there is none."""
    resolved = config_path or find_config(cwd)
    if resolved is None:
        logger.debug("No config file in %s, using defaults", cwd)
        return ProjectConfig(
            root_dir=cwd.resolve(),
            judge=JudgeConfig(provider=DEFAULT_JUDGE[0], model=DEFAULT_JUDGE[1]),
        )
    if not resolved.is_file():
        raise ValidationError(f"Config file not found: {resolved}")
    return ProjectConfig.from_yaml(resolved)


def discover_eval_files(config: ProjectConfig) -> list[Path]:
    """Eval files matching ``config.test_files`` under the root, sorted."""
    root = config.root_dir
    found: set[Path] = set()
    for pattern in config.test_files:
        for path in root.glob(pattern):
            relative = path.relative_to(root)
            if path.is_file() and not IGNORED_DIRS.intersection(relative.parts[:-1]):
                found.add(path.resolve())
    return sorted(found)


def _module_name(path: Path) -> str:
    return "agenteval_eval_" + re.sub(r"\W", "_", path.as_posix())


def load_eval_file(path: Path, registry: TestRegistry) -> list[TestDefinition]:
    """Execute an eval file with ``registry`` collecting; returns what it declared."""
    before = len(registry)
    name = _module_name(path)
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ValidationError(f"Cannot load eval file {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        with registry.collecting():
            spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(name, None)
        raise ValidationError(f"Failed to load {path}: {exc}") from exc
    return registry.tests[before:]
