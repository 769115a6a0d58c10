"""SQLite ledger: ``ledger.sqlite`` with ``runs`` and ``overrides`` tables.

WAL journaling lets the CLI read while a run is appending.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from ..schemas import EvidenceSnapshot, LedgerEntry, ScoreOverride, Thresholds
from .base import LedgerPlugin, attach_overrides

SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    test_id TEXT NOT NULL,
    suite_path TEXT NOT NULL DEFAULT '[]',
    timestamp TEXT NOT NULL,
    agent_runner TEXT NOT NULL,
    judge_model TEXT NOT NULL,
    score REAL NOT NULL,
    pass INTEGER NOT NULL,
    status TEXT NOT NULL,
    reason TEXT NOT NULL DEFAULT '',
    improvement TEXT NOT NULL DEFAULT '',
    context TEXT NOT NULL,
    duration_ms INTEGER NOT NULL DEFAULT 0,
    thresholds TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_runs_test_id ON runs(test_id);
CREATE TABLE IF NOT EXISTS overrides (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL REFERENCES runs(id),
    score REAL NOT NULL,
    pass INTEGER NOT NULL,
    status TEXT NOT NULL,
    reason TEXT NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_overrides_run_id ON overrides(run_id);
"""

RUN_COLUMNS = (
    "id, test_id, suite_path, timestamp, agent_runner, judge_model, score, pass, "
    "status, reason, improvement, context, duration_ms, thresholds"
)


def _row_to_entry(row: sqlite3.Row) -> LedgerEntry:
    return LedgerEntry(
        id=row["id"],
        test_id=row["test_id"],
        suite_path=json.loads(row["suite_path"]),
        timestamp=row["timestamp"],
        agent_runner=row["agent_runner"],
        judge_model=row["judge_model"],
        score=row["score"],
        pass_=bool(row["pass"]),
        status=row["status"],
        reason=row["reason"],
        improvement=row["improvement"],
        context=EvidenceSnapshot.model_validate_json(row["context"]),
        duration_ms=row["duration_ms"],
        thresholds=Thresholds.model_validate_json(row["thresholds"]),
    )


def _row_to_override(row: sqlite3.Row) -> ScoreOverride:
    return ScoreOverride(
        run_id=row["run_id"],
        score=row["score"],
        pass_=bool(row["pass"]),
        status=row["status"],
        reason=row["reason"],
        timestamp=row["timestamp"],
    )


class SqliteLedger(LedgerPlugin):
    """Embedded relational ledger."""

    name = "sqlite"

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)
        self.db_path = self.output_dir / "ledger.sqlite"
        self._conn: sqlite3.Connection | None = None

    def initialize(self) -> None:
        self._connection()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def record_run(self, entry: LedgerEntry) -> LedgerEntry:
        conn = self._connection()
        with conn:
            cursor = conn.execute(
                "INSERT INTO runs (test_id, suite_path, timestamp, agent_runner, judge_model, "
                "score, pass, status, reason, improvement, context, duration_ms, thresholds) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.test_id,
                    json.dumps(entry.suite_path),
                    entry.timestamp,
                    entry.agent_runner,
                    entry.judge_model,
                    entry.score,
                    int(entry.pass_),
                    entry.status,
                    entry.reason,
                    entry.improvement,
                    entry.context.model_dump_json(),
                    entry.duration_ms,
                    entry.thresholds.model_dump_json(),
                ),
            )
        return entry.stored().model_copy(update={"id": cursor.lastrowid})

    def get_runs(self, test_id: str | None = None) -> list[LedgerEntry]:
        conn = self._connection()
        if test_id is None:
            rows = conn.execute(f"SELECT {RUN_COLUMNS} FROM runs ORDER BY id").fetchall()
        else:
            rows = conn.execute(
                f"SELECT {RUN_COLUMNS} FROM runs WHERE test_id = ? ORDER BY id", (test_id,)
            ).fetchall()
        overrides = [
            _row_to_override(row)
            for row in conn.execute("SELECT * FROM overrides ORDER BY id").fetchall()
        ]
        return attach_overrides([_row_to_entry(row) for row in rows], overrides)

    def get_run_by_id(self, run_id: int) -> LedgerEntry | None:
        conn = self._connection()
        row = conn.execute(f"SELECT {RUN_COLUMNS} FROM runs WHERE id = ?", (run_id,)).fetchone()
        if row is None:
            return None
        return attach_overrides([_row_to_entry(row)], self.get_run_overrides(run_id))[0]

    def get_test_ids(self) -> list[str]:
        rows = self._connection().execute("SELECT DISTINCT test_id FROM runs ORDER BY test_id")
        return [row["test_id"] for row in rows.fetchall()]

    def get_run_overrides(self, run_id: int) -> list[ScoreOverride]:
        rows = self._connection().execute(
            "SELECT * FROM overrides WHERE run_id = ? ORDER BY id", (run_id,)
        )
        return [_row_to_override(row) for row in rows.fetchall()]

    def _append_override(self, override: ScoreOverride) -> None:
        conn = self._connection()
        with conn:
            conn.execute(
                "INSERT INTO overrides (run_id, score, pass, status, reason, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    override.run_id,
                    override.score,
                    int(override.pass_),
                    override.status,
                    override.reason,
                    override.timestamp,
                ),
            )

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            self._conn = conn
        return self._conn
