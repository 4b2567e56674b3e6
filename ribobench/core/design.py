"""Sample design, model matrices and modality merging."""

from __future__ import annotations

import numpy as np
import pandas as pd

from ribobench.core.types import EffectAssignment

ASSAY_LEVELS = {"rna": "RNA", "ribo": "RIBO"}


def build_design(n_per_condition: int, n_conditions: int) -> pd.DataFrame:
    """Per-sample condition/batch table.

    Samples are grouped by condition, then ordered by batch index; batch level
    `r` is shared by replicate `r` of every condition.
    """
    n_rep = int(n_per_condition)
    n_cond = int(n_conditions)
    if n_rep < 1:
        raise ValueError("n_per_condition must be >= 1.")
    if n_cond < 2:
        raise ValueError("n_conditions must be >= 2.")

    rows = []
    for c in range(n_cond):
        for r in range(n_rep):
            rows.append(
                {
                    "sample": f"cond{c + 1}_rep{r + 1}",
                    "condition": f"cond{c + 1}",
                    "condition_index": c,
                    "batch": f"batch{r + 1}",
                }
            )
    return pd.DataFrame(rows).set_index("sample")


def batch_levels(design: pd.DataFrame) -> list[str]:
    return list(pd.unique(design["batch"]))


def model_matrix(design: pd.DataFrame) -> np.ndarray:
    """One indicator column per batch level (no intercept) plus condition index."""
    levels = batch_levels(design)
    batch = design["batch"].to_numpy()
    indicators = np.column_stack([(batch == lvl).astype(float) for lvl in levels])
    condition = design["condition_index"].to_numpy(dtype=float)[:, None]
    return np.hstack([indicators, condition])


def coefficient_matrix(
    effects: EffectAssignment, design: pd.DataFrame, modality: str
) -> np.ndarray:
    """Features x regressors coefficients aligned with `model_matrix(design)`.

    The first batch level is the reference and carries no shift.
    """
    n_levels = len(batch_levels(design))
    beta = np.zeros((effects.n_features, n_levels + 1), dtype=float)
    if n_levels > 1:
        beta[:, 1:n_levels] = np.asarray(effects.batch_coef, dtype=float)[:, None]
    beta[:, n_levels] = effects.modality_coef(modality)
    return beta


def merge_modalities(
    rna: pd.DataFrame, ribo: pd.DataFrame, design: pd.DataFrame
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Concatenate RNA then Ribo columns and tag each sample with its assay."""
    if not rna.index.equals(ribo.index):
        raise ValueError("RNA and Ribo matrices must share the same feature index.")
    parts = []
    designs = []
    for modality, counts in (("rna", rna), ("ribo", ribo)):
        if list(counts.columns) != list(design.index):
            raise ValueError(f"{modality} columns must match the design sample order.")
        renamed = counts.rename(columns=lambda s, m=modality: f"{m}_{s}")
        parts.append(renamed)
        sub = design.copy()
        sub.index = [f"{modality}_{s}" for s in design.index]
        sub["assay"] = ASSAY_LEVELS[modality]
        designs.append(sub)
    merged_design = pd.concat(designs)
    merged_design.index.name = "sample"
    return pd.concat(parts, axis=1), merged_design
