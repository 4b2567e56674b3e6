"""Streaming mean/SD aggregation of per-trial curves."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import pandas as pd

from ribobench.stats.evaluation import validate_thresholds

CONFUSION_FIELDS = ("tp", "fn", "fp", "tn", "n_undefined")
_METRICS = ("sensitivity", "specificity")


def _mean_sd(n: np.ndarray, s: np.ndarray, ss: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    with np.errstate(divide="ignore", invalid="ignore"):
        mean = np.where(n > 0, s / n, np.nan)
        var = np.where(n > 1, (ss - s * s / n) / (n - 1), 0.0)
    sd = np.sqrt(np.clip(var, 0.0, None))
    sd = np.where(n > 0, sd, np.nan)
    return mean, sd


@dataclass
class CurveAccumulator:
    """Sum and sum-of-squares per (detector, threshold).

    `merge` is associative and commutative, so trial results may be folded in
    any order. With one contributing trial the SD is reported as 0.
    """

    detectors: Sequence[str]
    thresholds: np.ndarray
    n_trials: int = 0
    _n: dict[str, np.ndarray] = field(default_factory=dict, repr=False)
    _sum: dict[str, np.ndarray] = field(default_factory=dict, repr=False)
    _sumsq: dict[str, np.ndarray] = field(default_factory=dict, repr=False)
    _confusion_sum: np.ndarray | None = field(default=None, repr=False)
    _confusion_n: int = field(default=0, repr=False)

    def __post_init__(self) -> None:
        self.detectors = tuple(str(d) for d in self.detectors)
        if len(set(self.detectors)) != len(self.detectors):
            raise ValueError("detector names must be unique.")
        self.thresholds = validate_thresholds(self.thresholds)
        shape = (len(self.detectors), self.thresholds.size)
        for metric in _METRICS:
            self._n.setdefault(metric, np.zeros(shape, dtype=float))
            self._sum.setdefault(metric, np.zeros(shape, dtype=float))
            self._sumsq.setdefault(metric, np.zeros(shape, dtype=float))
        if self._confusion_sum is None:
            self._confusion_sum = np.zeros(
                (len(self.detectors), len(CONFUSION_FIELDS)), dtype=float
            )

    def _metric_matrix(self, curves: pd.DataFrame, metric: str) -> np.ndarray:
        out = np.full((len(self.detectors), self.thresholds.size), np.nan)
        for i, det in enumerate(self.detectors):
            sub = curves.loc[curves["detector"] == det].sort_values("threshold")
            if sub.empty:
                raise ValueError(f"curves missing detector '{det}'.")
            thr = sub["threshold"].to_numpy(dtype=float)
            if thr.size != self.thresholds.size or not np.allclose(thr, self.thresholds):
                raise ValueError(f"curves for '{det}' use a different threshold grid.")
            out[i] = sub[metric].to_numpy(dtype=float)
        return out

    def add(self, curves: pd.DataFrame, confusion: pd.DataFrame | None = None) -> None:
        """Fold one complete trial into the running sums."""
        mats = {metric: self._metric_matrix(curves, metric) for metric in _METRICS}
        conf = None
        if confusion is not None:
            conf = (
                confusion.set_index("detector")
                .reindex(list(self.detectors))[list(CONFUSION_FIELDS)]
                .to_numpy(dtype=float)
            )
            if np.any(~np.isfinite(conf)):
                raise ValueError("confusion counts missing for some detectors.")

        for metric, mat in mats.items():
            ok = np.isfinite(mat)
            self._n[metric] += ok
            self._sum[metric] += np.where(ok, mat, 0.0)
            self._sumsq[metric] += np.where(ok, mat * mat, 0.0)
        if conf is not None:
            self._confusion_sum += conf
            self._confusion_n += 1
        self.n_trials += 1

    def merge(self, other: "CurveAccumulator") -> "CurveAccumulator":
        if tuple(other.detectors) != tuple(self.detectors):
            raise ValueError("cannot merge accumulators with different detectors.")
        if other.thresholds.size != self.thresholds.size or not np.allclose(
            other.thresholds, self.thresholds
        ):
            raise ValueError("cannot merge accumulators with different thresholds.")
        out = CurveAccumulator(self.detectors, self.thresholds)
        for metric in _METRICS:
            out._n[metric] = self._n[metric] + other._n[metric]
            out._sum[metric] = self._sum[metric] + other._sum[metric]
            out._sumsq[metric] = self._sumsq[metric] + other._sumsq[metric]
        out._confusion_sum = self._confusion_sum + other._confusion_sum
        out._confusion_n = self._confusion_n + other._confusion_n
        out.n_trials = self.n_trials + other.n_trials
        return out

    def summary(self) -> pd.DataFrame:
        """Long table: detector, threshold, n_trials, mean/SD per metric."""
        n_det, n_thr = len(self.detectors), self.thresholds.size
        data: dict[str, np.ndarray] = {
            "detector": np.repeat(np.array(self.detectors, dtype=object), n_thr),
            "threshold": np.tile(self.thresholds, n_det),
        }
        for metric in _METRICS:
            mean, sd = _mean_sd(self._n[metric], self._sum[metric], self._sumsq[metric])
            data[f"{metric}_n"] = self._n[metric].astype(int).ravel()
            data[f"{metric}_mean"] = mean.ravel()
            data[f"{metric}_sd"] = sd.ravel()
        out = pd.DataFrame(data)
        out.insert(2, "n_trials", int(self.n_trials))
        return out

    def confusion_summary(self) -> pd.DataFrame:
        """Mean fixed-threshold confusion counts per detector."""
        n = float(self._confusion_n)
        means = self._confusion_sum / n if n > 0 else np.full_like(self._confusion_sum, np.nan)
        out = pd.DataFrame(means, columns=[f"{c}_mean" for c in CONFUSION_FIELDS])
        out.insert(0, "detector", list(self.detectors))
        out.insert(1, "n_trials", int(self._confusion_n))
        return out
