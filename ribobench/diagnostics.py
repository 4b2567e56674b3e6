"""Batch-effect diagnostics observed alongside, not inside, the evaluation."""

from __future__ import annotations

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from ribobench.core.design import merge_modalities
from ribobench.core.types import FilteredData
from ribobench.core.utils import log_cpm


def _sum_to_zero(values: pd.Series) -> np.ndarray:
    levels = list(pd.unique(values))
    if len(levels) < 2:
        return np.zeros((values.size, 0))
    last = (values == levels[-1]).to_numpy(dtype=float)
    return np.column_stack(
        [(values == lvl).to_numpy(dtype=float) - last for lvl in levels[:-1]]
    )


def _kept_design(merged: pd.DataFrame) -> np.ndarray:
    levels = list(pd.unique(merged["condition"]))
    cond = np.column_stack(
        [(merged["condition"] == lvl).to_numpy(dtype=float) for lvl in levels[1:]]
    )
    assay = (merged["assay"] == "RIBO").to_numpy(dtype=float)[:, None]
    return np.hstack([np.ones((merged.shape[0], 1)), cond, assay, cond * assay])


def remove_batch_effect(values: np.ndarray, merged_design: pd.DataFrame) -> np.ndarray:
    """Regress batch out of samples x features values, keeping the design terms."""
    Y = np.asarray(values, dtype=float)
    batch = _sum_to_zero(merged_design["batch"])
    if batch.shape[1] == 0:
        return Y.copy()
    keep = _kept_design(merged_design)
    X = np.hstack([keep, batch])
    beta, _, _, _ = np.linalg.lstsq(X, Y, rcond=None)
    return Y - batch @ beta[keep.shape[1] :]


def _pca_scores(values: np.ndarray, n_components: int) -> tuple[np.ndarray, np.ndarray]:
    k = max(1, min(int(n_components), values.shape[0], values.shape[1]))
    pca = PCA(n_components=k)
    scores = pca.fit_transform(values)
    return scores, pca.explained_variance_ratio_


class BatchPCAObserver:
    """PCA of merged log-CPM values before and after batch removal, per trial."""

    def __init__(self, name: str = "batch_pca", n_components: int = 2, prior_count: float = 0.5):
        self.name = str(name)
        self.n_components = int(n_components)
        self.prior_count = float(prior_count)

    def observe(self, filtered: FilteredData, design: pd.DataFrame) -> pd.DataFrame:
        counts, merged = merge_modalities(filtered.rna, filtered.ribo, design)
        Y = log_cpm(counts, self.prior_count).to_numpy().T
        frames = []
        for stage, values in (("before", Y), ("after", remove_batch_effect(Y, merged))):
            scores, ratio = _pca_scores(values, self.n_components)
            frame = merged[["condition", "batch", "assay"]].copy()
            frame.insert(0, "stage", stage)
            for i in range(scores.shape[1]):
                frame[f"PC{i + 1}"] = scores[:, i]
                frame[f"PC{i + 1}_var_ratio"] = float(ratio[i])
            frames.append(frame.reset_index())
        return pd.concat(frames, ignore_index=True)
