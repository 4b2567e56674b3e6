"""Threshold sweeps and confusion counts against simulated ground truth."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from ribobench.exceptions import ConfigurationError

CURVE_COLUMNS = [
    "detector",
    "threshold",
    "tp",
    "fn",
    "fp",
    "tn",
    "sensitivity",
    "specificity",
]


def fdr_grid(start: float = 0.0, stop: float = 0.2, step: float = 0.001) -> np.ndarray:
    """Inclusive, evenly spaced threshold grid."""
    if float(step) <= 0.0:
        raise ConfigurationError("fdrThresholds", "step must be positive.")
    if float(stop) < float(start):
        raise ConfigurationError("fdrThresholds", "stop must be >= start.")
    n = int(round((float(stop) - float(start)) / float(step))) + 1
    grid = np.round(float(start) + float(step) * np.arange(n), 10)
    return validate_thresholds(grid)


def validate_thresholds(thresholds: Sequence[float] | np.ndarray) -> np.ndarray:
    arr = np.asarray(thresholds, dtype=float).ravel()
    if arr.size == 0:
        raise ConfigurationError("fdrThresholds", "at least one threshold is required.")
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError("fdrThresholds", "thresholds must be finite.")
    if np.any(arr < 0.0) or np.any(arr > 1.0):
        raise ConfigurationError("fdrThresholds", "thresholds must lie in [0, 1].")
    if arr.size > 1 and np.any(np.diff(arr) <= 0.0):
        raise ConfigurationError("fdrThresholds", "thresholds must be strictly increasing.")
    return arr


def _aligned_truth(table: pd.DataFrame, labels: pd.Series) -> np.ndarray:
    aligned = labels.reindex(table.index)
    if aligned.isna().any():
        missing = list(table.index[aligned.isna().to_numpy()][:5])
        raise ValueError(f"labels missing for features: {missing}")
    return aligned.to_numpy(dtype=bool)


def _scores(table: pd.DataFrame, detector: str) -> np.ndarray:
    vals = pd.to_numeric(table[detector], errors="coerce").to_numpy(dtype=float)
    # Undefined scores are never called, at any threshold.
    return np.where(np.isfinite(vals), vals, np.inf)


def evaluate_thresholds(
    table: pd.DataFrame,
    labels: pd.Series,
    thresholds: Sequence[float] | np.ndarray,
) -> pd.DataFrame:
    """Sensitivity/specificity per detector at every threshold.

    A feature is called when its adjusted value is <= the threshold. Undefined
    values count as false negatives among true features and true negatives
    among false features. Sensitivity is NaN when there are no true features,
    specificity when there are no false features.
    """
    thr = validate_thresholds(thresholds)
    truth = _aligned_truth(table, labels)
    n_true = int(truth.sum())
    n_false = int(truth.size - n_true)

    frames = []
    for detector in table.columns:
        vals = _scores(table, detector)
        called = vals[None, :] <= thr[:, None]
        tp = (called & truth[None, :]).sum(axis=1)
        fp = (called & ~truth[None, :]).sum(axis=1)
        fn = n_true - tp
        tn = n_false - fp
        frames.append(
            pd.DataFrame(
                {
                    "detector": str(detector),
                    "threshold": thr,
                    "tp": tp.astype(int),
                    "fn": fn.astype(int),
                    "fp": fp.astype(int),
                    "tn": tn.astype(int),
                    "sensitivity": tp / n_true if n_true > 0 else np.nan,
                    "specificity": tn / n_false if n_false > 0 else np.nan,
                }
            )
        )
    if not frames:
        return pd.DataFrame(columns=CURVE_COLUMNS)
    return pd.concat(frames, ignore_index=True)[CURVE_COLUMNS]


def confusion_counts(
    table: pd.DataFrame, labels: pd.Series, threshold: float = 0.05
) -> pd.DataFrame:
    """Confusion counts per detector at one operating threshold."""
    thr = float(validate_thresholds([threshold])[0])
    truth = _aligned_truth(table, labels)
    rows = []
    for detector in table.columns:
        vals = _scores(table, detector)
        called = vals <= thr
        tp = int(np.sum(called & truth))
        fp = int(np.sum(called & ~truth))
        rows.append(
            {
                "detector": str(detector),
                "threshold": thr,
                "tp": tp,
                "fn": int(np.sum(truth)) - tp,
                "fp": fp,
                "tn": int(np.sum(~truth)) - fp,
                "n_undefined": int(np.sum(~np.isfinite(vals))),
                "observed_fdr": float(fp / max(1, tp + fp)),
            }
        )
    return pd.DataFrame(rows)
