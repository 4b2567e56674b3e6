"""Ribo/RNA log-ratio detector with a one-way ANOVA across conditions."""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy.stats import f as f_dist

from ribobench.core.utils import log_cpm
from ribobench.exceptions import DetectorFailure
from ribobench.stats.scoring import bh_fdr

EPS = 1e-12


def oneway_anova_rows(values: np.ndarray, groups: np.ndarray) -> np.ndarray:
    """Row-wise one-way ANOVA p-values; rows without within-group spread are NaN."""
    x = np.asarray(values, dtype=float)
    g = np.asarray(groups)
    levels = pd.unique(g)
    n = g.size
    k = len(levels)
    df_between = k - 1
    df_within = n - k
    if df_between < 1 or df_within < 1:
        raise DetectorFailure(
            f"ANOVA needs >= 2 groups and replicates (groups={k}, samples={n})."
        )

    grand = x.mean(axis=1, keepdims=True)
    ss_between = np.zeros(x.shape[0])
    ss_within = np.zeros(x.shape[0])
    for lvl in levels:
        sub = x[:, g == lvl]
        mean_g = sub.mean(axis=1, keepdims=True)
        ss_between += sub.shape[1] * ((mean_g - grand) ** 2).ravel()
        ss_within += ((sub - mean_g) ** 2).sum(axis=1)

    defined = ss_within > EPS
    stat = np.full(x.shape[0], np.nan)
    stat[defined] = (ss_between[defined] / df_between) / (ss_within[defined] / df_within)
    pvals = np.full(x.shape[0], np.nan)
    pvals[defined] = f_dist.sf(stat[defined], df_between, df_within)
    return pvals


class LogRatioDetector:
    """Tests whether the library-normalized Ribo/RNA ratio changes with condition."""

    def __init__(self, name: str = "log_ratio", prior_count: float = 0.5):
        self.name = str(name)
        self.prior_count = float(prior_count)

    def __repr__(self) -> str:
        return f"LogRatioDetector(name={self.name!r}, prior_count={self.prior_count})"

    def detect(
        self, rna: pd.DataFrame, ribo: pd.DataFrame, design: pd.DataFrame
    ) -> pd.Series:
        ratio = log_cpm(ribo, self.prior_count) - log_cpm(rna, self.prior_count)
        groups = design.loc[list(rna.columns), "condition"].to_numpy()
        pvals = oneway_anova_rows(ratio.to_numpy(), groups)
        return pd.Series(bh_fdr(pvals), index=rna.index, name=self.name)
