"""Ledger contract and the read-side aggregation shared by every backend.

Entries are append-only. Human overrides are stored separately and layered on
top when reading: the latest override (by timestamp, then append order) is the
effective one.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone

from ..errors import ValidationError
from ..schemas import LedgerEntry, RunnerStats, ScoreOverride, TestTreeNode
from ..scoring import compute_status, is_passing


def utc_timestamp() -> str:
    """ISO 8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _safe_ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator


def _safe_average(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def latest_override(overrides: Iterable[ScoreOverride]) -> ScoreOverride | None:
    """Latest override by timestamp; later appends win ties."""
    latest: ScoreOverride | None = None
    for override in overrides:
        if latest is None or override.timestamp >= latest.timestamp:
            latest = override
    return latest


def attach_overrides(
    entries: Iterable[LedgerEntry],
    overrides: Iterable[ScoreOverride],
) -> list[LedgerEntry]:
    """Copies of ``entries`` with their effective override attached."""
    by_run: dict[int, list[ScoreOverride]] = {}
    for override in overrides:
        by_run.setdefault(override.run_id, []).append(override)
    return [
        entry.model_copy(update={"override": latest_override(by_run.get(entry.id or -1, []))})
        for entry in entries
    ]


def latest_entries(entries: Iterable[LedgerEntry]) -> dict[str, LedgerEntry]:
    """One entry per test id: max timestamp, ties broken by the higher id."""
    latest: dict[str, LedgerEntry] = {}
    for entry in entries:
        current = latest.get(entry.test_id)
        if current is None or (entry.timestamp, entry.id or 0) >= (current.timestamp, current.id or 0):
            latest[entry.test_id] = entry
    return latest


def build_test_tree(entries: Iterable[LedgerEntry]) -> list[TestTreeNode]:
    """Suite/test hierarchy from the first recorded suite path of each test."""
    seen: dict[str, list[str]] = {}
    for entry in entries:
        seen.setdefault(entry.test_id, list(entry.suite_path))

    root: list[TestTreeNode] = []
    for test_id, suite_path in seen.items():
        level = root
        for suite_name in suite_path:
            node = next((n for n in level if n.type == "suite" and n.name == suite_name), None)
            if node is None:
                node = TestTreeNode(name=suite_name, type="suite")
                level.append(node)
            level = node.children
        level.append(TestTreeNode(name=test_id, type="test", test_id=test_id))
    return root


def runner_stats(entries: Iterable[LedgerEntry]) -> list[RunnerStats]:
    """Per-runner effective average score and pass rate, best first."""
    buckets: dict[str, list[LedgerEntry]] = {}
    for entry in entries:
        buckets.setdefault(entry.agent_runner, []).append(entry)

    stats = [
        RunnerStats(
            agent_runner=runner,
            avg_score=_safe_average([e.effective_score for e in runs]),
            total_runs=len(runs),
            pass_rate=_safe_ratio(sum(1 for e in runs if e.effective_pass), len(runs)),
        )
        for runner, runs in buckets.items()
    ]
    return sorted(stats, key=lambda s: s.avg_score, reverse=True)


def validate_override(score: float, reason: str) -> str:
    """Check an override request; returns the stripped reason."""
    if isinstance(score, bool) or not isinstance(score, (int, float)) or math.isnan(score):
        raise ValidationError(f"Score must be a number, got {score!r}")
    if score < 0 or score > 1:
        raise ValidationError("Score must be between 0 and 1")
    if not reason or not reason.strip():
        raise ValidationError("Reason is required")
    return reason.strip()


class LedgerPlugin:
    """Base contract for ledger backends.

    Backends implement storage (``initialize``, ``record_run``, ``get_runs``,
    ``get_run_by_id``, ``get_run_overrides``, ``_append_override``); the
    aggregations below work on top of those.
    """

    name: str = "ledger"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        raise NotImplementedError

    def record_run(self, entry: LedgerEntry) -> LedgerEntry:
        """Append an entry and return it with its assigned id."""
        raise NotImplementedError

    def get_runs(self, test_id: str | None = None) -> list[LedgerEntry]:
        """Entries in append order, effective override attached."""
        raise NotImplementedError

    def get_run_by_id(self, run_id: int) -> LedgerEntry | None:
        raise NotImplementedError

    def get_run_overrides(self, run_id: int) -> list[ScoreOverride]:
        """Override history for a run, oldest first."""
        raise NotImplementedError

    def _append_override(self, override: ScoreOverride) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources. Optional."""

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    def get_test_ids(self) -> list[str]:
        return sorted({entry.test_id for entry in self.get_runs()})

    def get_test_tree(self) -> list[TestTreeNode]:
        return build_test_tree(self.get_runs())

    def get_latest_entries(self) -> dict[str, LedgerEntry]:
        return latest_entries(self.get_runs())

    def get_stats(self, test_id: str | None = None) -> list[RunnerStats]:
        return runner_stats(self.get_runs(test_id))

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------
    def override_run_score(self, run_id: int, score: float, reason: str) -> ScoreOverride:
        """Layer a human score on top of a recorded run.

        Raises:
            ValidationError: score outside [0, 1], blank reason or unknown run id
        """
        reason = validate_override(score, reason)
        run = self.get_run_by_id(run_id)
        if run is None:
            raise ValidationError(f"Run #{run_id} not found")

        status = compute_status(float(score), run.thresholds)
        override = ScoreOverride(
            run_id=run_id,
            score=float(score),
            pass_=is_passing(status),
            status=status,
            reason=reason,
            timestamp=utc_timestamp(),
        )
        self._append_override(override)
        return override

    def __enter__(self) -> LedgerPlugin:
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
