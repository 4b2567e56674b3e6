"""Statistical utilities for ribobench."""

from ribobench.stats.aggregate import CurveAccumulator
from ribobench.stats.evaluation import (
    confusion_counts,
    evaluate_thresholds,
    fdr_grid,
    validate_thresholds,
)
from ribobench.stats.scoring import bh_fdr

__all__ = [
    "CurveAccumulator",
    "bh_fdr",
    "confusion_counts",
    "evaluate_thresholds",
    "fdr_grid",
    "validate_thresholds",
]
