"""Status tiers from scores: thresholds, weighted aggregation, worst-of."""

from collections.abc import Iterable

from ..config import settings
from ..schemas.results import TestStatus, Thresholds

_SEVERITY: dict[str, int] = {"PASS": 0, "WARN": 1, "FAIL": 2}


def default_thresholds() -> Thresholds:
    """Process-wide default thresholds from settings."""
    return Thresholds(warn=settings.thresholds.warn, fail=settings.thresholds.fail)


def resolve_thresholds(*candidates: Thresholds | None) -> Thresholds:
    """Return the first explicitly set thresholds, most specific first."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return default_thresholds()


def compute_status(score: float, thresholds: Thresholds | None = None) -> TestStatus:
    """Map a raw score to PASS / WARN / FAIL.

    Args:
        score: Score between 0 and 1
        thresholds: Cut points; process defaults when omitted

    Returns:
        PASS when score >= warn, WARN when score >= fail, else FAIL
    """
    cut = thresholds or default_thresholds()
    if score >= cut.warn:
        return "PASS"
    if score >= cut.fail:
        return "WARN"
    return "FAIL"


def is_passing(status: TestStatus) -> bool:
    """PASS and WARN both count as passing."""
    return status != "FAIL"


def weighted_score(scored: Iterable[tuple[float, float | None]]) -> float:
    """Weighted average of (score, weight) pairs; a missing weight counts as 1.

    Formula: sum(score * weight) / sum(weight), 0.0 when total weight is zero.
    """
    total = 0.0
    total_weight = 0.0
    for score, weight in scored:
        w = 1.0 if weight is None else weight
        total += score * w
        total_weight += w
    if total_weight == 0:
        return 0.0
    return round(total / total_weight, 6)


def worst_status(statuses: Iterable[TestStatus]) -> TestStatus | None:
    """Aggregate iteration statuses: FAIL beats WARN beats PASS."""
    worst: TestStatus | None = None
    for status in statuses:
        if worst is None or _SEVERITY[status] > _SEVERITY[worst]:
            worst = status
    return worst
