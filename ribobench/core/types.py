"""Typed containers shared across simulation, filtering and evaluation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np
import pandas as pd

MODALITIES = ("rna", "ribo")


def _readonly(values: np.ndarray, dtype) -> np.ndarray:
    arr = np.array(values, dtype=dtype, copy=True).ravel()
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class NBParams:
    """Fitted count model for one modality.

    - `mean`: per-feature mean of the non-zero counts.
    - `zero_prob`: per-feature fraction of zero samples.
    - `size_fit`: callable mapping log-mean to log-size (NB dispersion).
    - `log_mean_range`: fitted abscissa range; predictions clamp into it.
    """

    feature_ids: pd.Index
    mean: np.ndarray
    zero_prob: np.ndarray
    size_fit: Callable[[np.ndarray], np.ndarray]
    log_mean_range: tuple[float, float]
    label: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "mean", _readonly(self.mean, float))
        object.__setattr__(self, "zero_prob", _readonly(self.zero_prob, float))
        if self.mean.size != self.zero_prob.size or self.mean.size != len(self.feature_ids):
            raise ValueError("mean, zero_prob and feature_ids must have equal length.")

    @property
    def n_features(self) -> int:
        return int(self.mean.size)

    def log_size(self, log_mu: np.ndarray) -> np.ndarray:
        arr = np.asarray(log_mu, dtype=float)
        lo, hi = self.log_mean_range
        clamped = np.clip(arr, float(lo), float(hi))
        return np.asarray(self.size_fit(clamped.ravel()), dtype=float).reshape(arr.shape)


@dataclass(frozen=True)
class EffectAssignment:
    """Ground truth for one trial; arrays are read-only once created."""

    feature_ids: pd.Index
    label: np.ndarray
    rna_coef: np.ndarray
    ribo_coef: np.ndarray
    batch_coef: np.ndarray
    batch_selected: np.ndarray | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "feature_ids", pd.Index(self.feature_ids))
        if self.batch_selected is None:
            object.__setattr__(self, "batch_selected", np.asarray(self.batch_coef) != 0.0)
        object.__setattr__(self, "label", _readonly(self.label, bool))
        object.__setattr__(self, "rna_coef", _readonly(self.rna_coef, float))
        object.__setattr__(self, "ribo_coef", _readonly(self.ribo_coef, float))
        object.__setattr__(self, "batch_coef", _readonly(self.batch_coef, float))
        object.__setattr__(self, "batch_selected", _readonly(self.batch_selected, bool))
        n = len(self.feature_ids)
        for name in ("label", "rna_coef", "ribo_coef", "batch_coef", "batch_selected"):
            if getattr(self, name).size != n:
                raise ValueError(f"{name} length must match feature_ids ({n}).")
        if not self.feature_ids.is_unique:
            raise ValueError("feature_ids must be unique.")

    @property
    def n_features(self) -> int:
        return int(len(self.feature_ids))

    @property
    def true_positive_ids(self) -> pd.Index:
        return self.feature_ids[self.label]

    @property
    def batch_ids(self) -> pd.Index:
        return self.feature_ids[self.batch_selected]

    def modality_coef(self, modality: str) -> np.ndarray:
        if modality == "rna":
            return self.rna_coef
        if modality == "ribo":
            return self.ribo_coef
        raise ValueError(f"Unknown modality '{modality}'. Expected one of {MODALITIES}.")

    def labels(self) -> pd.Series:
        return pd.Series(np.array(self.label), index=self.feature_ids, name="label")

    def subset(self, mask: np.ndarray) -> "EffectAssignment":
        keep = np.asarray(mask, dtype=bool).ravel()
        if keep.size != self.n_features:
            raise ValueError("mask length must match the number of features.")
        return EffectAssignment(
            feature_ids=self.feature_ids[keep],
            label=self.label[keep],
            rna_coef=self.rna_coef[keep],
            ribo_coef=self.ribo_coef[keep],
            batch_coef=self.batch_coef[keep],
            batch_selected=self.batch_selected[keep],
        )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "label": np.array(self.label),
                "rna_coef": np.array(self.rna_coef),
                "ribo_coef": np.array(self.ribo_coef),
                "batch_coef": np.array(self.batch_coef),
                "batch_selected": np.array(self.batch_selected),
            },
            index=self.feature_ids,
        )


@dataclass(frozen=True)
class FilteredData:
    """Output of the low-count filter: row-aligned matrices and ground truth."""

    rna: pd.DataFrame
    ribo: pd.DataFrame
    effects: EffectAssignment
    n_input: int
    n_after_rna: int

    @property
    def n_features(self) -> int:
        return int(self.rna.shape[0])

    @property
    def labels(self) -> pd.Series:
        return self.effects.labels()


@dataclass(frozen=True)
class DetectorFailureRecord:
    detector: str
    kind: str
    message: str
    trial_index: int | None = None


@dataclass
class TrialResult:
    """Outcome of one full simulate-filter-detect-evaluate run."""

    trial_index: int
    seed: int
    curves: pd.DataFrame
    confusion: pd.DataFrame
    n_features: int
    n_retained: int
    n_true_positive_retained: int
    failures: list[DetectorFailureRecord] = field(default_factory=list)
    diagnostics: dict[str, Any] = field(default_factory=dict)
