"""JSONL ledger: ``ledger.jsonl`` for runs, ``overrides.jsonl`` for overrides."""

from __future__ import annotations

from pathlib import Path

from ..schemas import LedgerEntry, ScoreOverride
from .base import LedgerPlugin, attach_overrides


class JsonLedger(LedgerPlugin):
    """One JSON record per line. Appends never rewrite existing lines."""

    name = "json"

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)
        self.runs_file = self.output_dir / "ledger.jsonl"
        self.overrides_file = self.output_dir / "overrides.jsonl"
        self._next_id: int | None = None

    def initialize(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._next_id = self._last_id() + 1

    def record_run(self, entry: LedgerEntry) -> LedgerEntry:
        run_id = self._next_id if self._next_id is not None else self._last_id() + 1
        stored = entry.stored().model_copy(update={"id": run_id})
        self._append(self.runs_file, stored.model_dump_json(by_alias=True, exclude={"override"}))
        self._next_id = run_id + 1
        return stored

    def _last_id(self) -> int:
        return max((run.id or 0 for run in self._read_runs()), default=0)

    def get_runs(self, test_id: str | None = None) -> list[LedgerEntry]:
        runs = self._read_runs()
        if test_id is not None:
            runs = [run for run in runs if run.test_id == test_id]
        return attach_overrides(runs, self._read_overrides())

    def get_run_by_id(self, run_id: int) -> LedgerEntry | None:
        for run in self._read_runs():
            if run.id == run_id:
                return attach_overrides([run], self._read_overrides())[0]
        return None

    def get_run_overrides(self, run_id: int) -> list[ScoreOverride]:
        return [override for override in self._read_overrides() if override.run_id == run_id]

    def _append_override(self, override: ScoreOverride) -> None:
        self._append(self.overrides_file, override.model_dump_json(by_alias=True))

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------
    def _append(self, path: Path, line: str) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _read_lines(self, path: Path) -> list[str]:
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [line for line in f.read().splitlines() if line.strip()]

    def _read_runs(self) -> list[LedgerEntry]:
        return [LedgerEntry.model_validate_json(line) for line in self._read_lines(self.runs_file)]

    def _read_overrides(self) -> list[ScoreOverride]:
        return [
            ScoreOverride.model_validate_json(line) for line in self._read_lines(self.overrides_file)
        ]
