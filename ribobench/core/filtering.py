"""Low-count feature filtering across the two modalities."""

from __future__ import annotations

import numpy as np
import pandas as pd

from ribobench.core.types import EffectAssignment, FilteredData

DEFAULT_MIN_COUNT = 5
DEFAULT_MIN_SAMPLES = 2


def _expressed(counts: pd.DataFrame, min_count: int, min_samples: int) -> np.ndarray:
    return (counts.to_numpy() > int(min_count)).sum(axis=1) >= int(min_samples)


def filter_low_counts(
    rna: pd.DataFrame,
    ribo: pd.DataFrame,
    effects: EffectAssignment,
    min_count: int = DEFAULT_MIN_COUNT,
    min_samples: int = DEFAULT_MIN_SAMPLES,
) -> FilteredData:
    """Keep features with more than `min_count` reads in `min_samples` samples.

    Applied as two sequential passes: the RNA pass first, then the Ribo pass
    on what the RNA pass retained. Ground truth is subset with the same masks.
    """
    if not (rna.index.equals(ribo.index) and rna.index.equals(effects.feature_ids)):
        raise ValueError("RNA, Ribo and effect assignment must share one feature index.")
    if int(min_count) < 0 or int(min_samples) < 0:
        raise ValueError("min_count and min_samples must be non-negative.")

    keep_rna = _expressed(rna, min_count, min_samples)
    rna_1 = rna.loc[keep_rna]
    ribo_1 = ribo.loc[keep_rna]
    effects_1 = effects.subset(keep_rna)

    keep_ribo = _expressed(ribo_1, min_count, min_samples)
    return FilteredData(
        rna=rna_1.loc[keep_ribo],
        ribo=ribo_1.loc[keep_ribo],
        effects=effects_1.subset(keep_ribo),
        n_input=int(rna.shape[0]),
        n_after_rna=int(rna_1.shape[0]),
    )
