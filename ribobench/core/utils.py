"""Small pure helpers for count-matrix handling."""

from __future__ import annotations

import numpy as np
import pandas as pd


def as_count_frame(name: str, counts: pd.DataFrame | np.ndarray) -> pd.DataFrame:
    """Coerce a features x samples matrix to a non-negative integer DataFrame."""
    if isinstance(counts, pd.DataFrame):
        df = counts
    else:
        arr = np.asarray(counts)
        if arr.ndim != 2:
            raise ValueError(f"{name} must be a 2D features x samples matrix.")
        df = pd.DataFrame(arr)
    if df.ndim != 2 or df.shape[0] == 0 or df.shape[1] == 0:
        raise ValueError(f"{name} must be a non-empty features x samples matrix.")
    values = df.to_numpy(dtype=float)
    if not np.all(np.isfinite(values)):
        raise ValueError(f"{name} must be finite.")
    if np.any(values < 0):
        raise ValueError(f"{name} must be non-negative.")
    if not np.all(values == np.round(values)):
        raise ValueError(f"{name} must contain integer counts.")
    if not df.index.is_unique:
        raise ValueError(f"{name} feature ids must be unique.")
    return pd.DataFrame(values.astype(np.int64), index=df.index, columns=df.columns)


def nonzero_per_feature(counts: pd.DataFrame) -> np.ndarray:
    return (counts.to_numpy() > 0).sum(axis=1)


def log_cpm(counts: pd.DataFrame, prior: float = 0.5) -> pd.DataFrame:
    """log2 counts-per-million with a small prior count."""
    values = counts.to_numpy(dtype=float)
    lib = values.sum(axis=0)
    lib = np.where(lib > 0, lib, 1.0)
    cpm = (values + float(prior)) / (lib + 1.0)[None, :] * 1e6
    return pd.DataFrame(np.log2(cpm), index=counts.index, columns=counts.columns)
