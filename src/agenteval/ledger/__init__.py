"""Durable run ledger with JSONL and SQLite backends."""

from __future__ import annotations

from pathlib import Path

from ..errors import ValidationError
from .base import (
    LedgerPlugin,
    build_test_tree,
    latest_entries,
    latest_override,
    runner_stats,
    utc_timestamp,
    validate_override,
)
from .json_ledger import JsonLedger
from .sqlite_ledger import SqliteLedger

BACKENDS: dict[str, type[LedgerPlugin]] = {
    "json": JsonLedger,
    "sqlite": SqliteLedger,
}


def build_ledger(kind: str = "json", output_dir: str | Path = ".agenteval") -> LedgerPlugin:
    if kind not in BACKENDS:
        raise ValidationError(f"Unknown ledger backend {kind!r}; expected json or sqlite")
    return BACKENDS[kind](output_dir)


__all__ = [
    "BACKENDS",
    "JsonLedger",
    "LedgerPlugin",
    "SqliteLedger",
    "build_ledger",
    "build_test_tree",
    "latest_entries",
    "latest_override",
    "runner_stats",
    "utc_timestamp",
    "validate_override",
]
