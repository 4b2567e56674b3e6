"""Linear-model detector testing the condition x assay interaction."""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy.stats import f as f_dist

from ribobench.core.design import merge_modalities
from ribobench.core.utils import log_cpm
from ribobench.exceptions import DetectorFailure
from ribobench.stats.scoring import bh_fdr

EPS = 1e-12


def _dummies(values: pd.Series) -> np.ndarray:
    levels = list(pd.unique(values))
    if len(levels) < 2:
        return np.zeros((values.size, 0))
    return np.column_stack([(values == lvl).to_numpy(dtype=float) for lvl in levels[1:]])


def interaction_design(merged: pd.DataFrame, include_batch: bool) -> tuple[np.ndarray, int]:
    """Full design matrix and the number of trailing interaction columns."""
    condition = _dummies(merged["condition"])
    assay = (merged["assay"] == "RIBO").to_numpy(dtype=float)[:, None]
    cols = [np.ones((merged.shape[0], 1)), condition, assay]
    if include_batch:
        cols.append(_dummies(merged["batch"]))
    interaction = condition * assay
    cols.append(interaction)
    return np.hstack(cols), int(interaction.shape[1])


def _rss(X: np.ndarray, Y: np.ndarray) -> tuple[np.ndarray, int]:
    beta, _, rank, _ = np.linalg.lstsq(X, Y, rcond=None)
    resid = Y - X @ beta
    return (resid**2).sum(axis=0), int(rank)


class InteractionModelDetector:
    """Nested-model F-test of condition x assay terms on merged log-CPM values.

    Features whose Ribo/RNA relationship shifts with condition show a
    non-zero interaction. `include_batch` adds batch indicators to both
    models so batch shifts are absorbed.
    """

    def __init__(
        self,
        name: str = "interaction_lm",
        include_batch: bool = False,
        prior_count: float = 0.5,
    ):
        self.name = str(name)
        self.include_batch = bool(include_batch)
        self.prior_count = float(prior_count)

    def __repr__(self) -> str:
        return (
            f"InteractionModelDetector(name={self.name!r}, "
            f"include_batch={self.include_batch})"
        )

    def detect(
        self, rna: pd.DataFrame, ribo: pd.DataFrame, design: pd.DataFrame
    ) -> pd.Series:
        counts, merged = merge_modalities(rna, ribo, design)
        Y = log_cpm(counts, self.prior_count).to_numpy().T
        X_full, n_inter = interaction_design(merged, self.include_batch)
        X_red = X_full[:, : X_full.shape[1] - n_inter]

        rss_full, rank_full = _rss(X_full, Y)
        rss_red, rank_red = _rss(X_red, Y)
        df_num = rank_full - rank_red
        df_resid = X_full.shape[0] - rank_full
        if df_num < 1 or df_resid < 1:
            raise DetectorFailure(
                f"{self.name}: interaction not estimable "
                f"(df_num={df_num}, df_resid={df_resid})."
            )

        defined = rss_full > EPS
        pvals = np.full(Y.shape[1], np.nan)
        stat = ((rss_red[defined] - rss_full[defined]) / df_num) / (
            rss_full[defined] / df_resid
        )
        pvals[defined] = f_dist.sf(np.clip(stat, 0.0, None), df_num, df_resid)
        return pd.Series(bh_fdr(pvals), index=rna.index, name=self.name)
