"""Ground-truth effect assignment for one simulated trial."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from ribobench.core.types import EffectAssignment

BASELINE_GAMMA_SHAPE = 0.6
BASELINE_GAMMA_SCALE = 0.5
DIFFERENTIAL_SHIFT = 1.5


def fraction_to_count(percent: float, n_features: int) -> int:
    """Round `percent` of `n_features` to a feature count (half-to-even)."""
    pct = float(percent)
    if not 0.0 <= pct <= 100.0:
        raise ValueError("percent must be in [0, 100].")
    return int(round(pct * int(n_features) / 100.0))


def default_feature_ids(n_features: int) -> pd.Index:
    width = max(5, len(str(int(n_features))))
    return pd.Index([f"feature_{i + 1:0{width}d}" for i in range(int(n_features))])


def _random_signs(rng: np.random.Generator, size: int) -> np.ndarray:
    return rng.choice(np.array([-1.0, 1.0]), size=int(size))


def sample_effects(
    n_features: int,
    tp_percent: float,
    batch_percent: float,
    batch_coefficient: float,
    rng: np.random.Generator,
    feature_ids: Sequence[str] | pd.Index | None = None,
) -> EffectAssignment:
    """Draw true positives, baseline fold changes and batch-carrying features.

    Every feature gets a Gamma-distributed baseline effect with a random sign.
    True positives additionally receive a +/-1.5 shift in the Ribo
    coefficient only. Batch-carrying features are drawn from the true
    positives first and padded from the complement once those run out.
    """
    n = int(n_features)
    if n < 1:
        raise ValueError("n_features must be >= 1.")
    if float(batch_coefficient) < 0.0:
        raise ValueError("batch_coefficient must be >= 0.")
    ids = default_feature_ids(n) if feature_ids is None else pd.Index(feature_ids)
    if len(ids) != n:
        raise ValueError("feature_ids length must equal n_features.")

    n_tp = fraction_to_count(tp_percent, n)
    n_batch = fraction_to_count(batch_percent, n)

    tp_idx = rng.choice(n, size=n_tp, replace=False)
    magnitude = rng.gamma(shape=BASELINE_GAMMA_SHAPE, scale=BASELINE_GAMMA_SCALE, size=n)
    baseline = magnitude * _random_signs(rng, n)

    if n_batch <= n_tp:
        batch_idx = rng.choice(tp_idx, size=n_batch, replace=False)
    else:
        rest = np.setdiff1d(np.arange(n), tp_idx, assume_unique=True)
        extra = rng.choice(rest, size=n_batch - n_tp, replace=False)
        batch_idx = np.concatenate([tp_idx, extra])

    batch_coef = np.zeros(n, dtype=float)
    batch_coef[batch_idx] = float(batch_coefficient) * _random_signs(rng, n_batch)

    label = np.zeros(n, dtype=bool)
    label[tp_idx] = True
    batch_selected = np.zeros(n, dtype=bool)
    batch_selected[batch_idx] = True
    ribo_coef = baseline.copy()
    ribo_coef[tp_idx] += DIFFERENTIAL_SHIFT * _random_signs(rng, n_tp)

    return EffectAssignment(
        feature_ids=ids,
        label=label,
        rna_coef=baseline,
        ribo_coef=ribo_coef,
        batch_coef=batch_coef,
        batch_selected=batch_selected,
    )
