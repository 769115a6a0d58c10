"""Plugin contract checks run before a plugin is used."""

from __future__ import annotations

from typing import Any

from .errors import ValidationError

REQUIRED_MEMBERS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    # kind: (properties, methods)
    "environment": (("name",), ("setup", "execute", "get_diff", "teardown")),
    "runner": (("name",), ("execute",)),
    "model": (("name", "provider", "model"), ("evaluate",)),
    "judge": (("name",), ("judge", "identity")),
    "ledger": (
        ("name",),
        (
            "initialize",
            "record_run",
            "get_runs",
            "get_run_by_id",
            "get_test_ids",
            "get_test_tree",
            "get_latest_entries",
            "get_stats",
            "override_run_score",
            "get_run_overrides",
        ),
    ),
}


def missing_members(obj: Any, kind: str) -> list[str]:
    """Human-readable problems with ``obj`` as a ``kind`` plugin, empty when valid."""
    if kind not in REQUIRED_MEMBERS:
        raise ValueError(f"Unknown plugin kind: {kind}")
    label = f"{kind.capitalize()}Plugin"
    if obj is None:
        return [f"{label} must not be None"]

    properties, methods = REQUIRED_MEMBERS[kind]
    problems = [
        f"{label} is missing required property '{prop}'"
        for prop in properties
        if getattr(obj, prop, None) is None
    ]
    problems.extend(
        f"{label} is missing required method '{method}()'"
        for method in methods
        if not callable(getattr(obj, method, None))
    )
    return problems


def validate_plugin(obj: Any, kind: str) -> Any:
    """Return ``obj`` unchanged, or raise ValidationError listing what is missing."""
    problems = missing_members(obj, kind)
    if problems:
        lines = "\n".join(f"  {i}. {problem}" for i, problem in enumerate(problems, start=1))
        raise ValidationError(f"Plugin configuration errors detected:\n{lines}")
    return obj
