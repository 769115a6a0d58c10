"""Scoring: thresholds and status tiers."""

from .thresholds import (
    compute_status,
    default_thresholds,
    is_passing,
    resolve_thresholds,
    weighted_score,
    worst_status,
)

__all__ = [
    "compute_status",
    "default_thresholds",
    "is_passing",
    "resolve_thresholds",
    "weighted_score",
    "worst_status",
]
