from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from ribobench.core.design import (
    build_design,
    coefficient_matrix,
    merge_modalities,
    model_matrix,
)
from ribobench.core.effects import sample_effects
from ribobench.core.fitting import fit_nb_params
from ribobench.core.simulate import simulate_counts
from ribobench.core.types import EffectAssignment
from ribobench.exceptions import EstimationError


def _reference(n_features: int = 120, n_samples: int = 6, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    mu = np.exp(rng.uniform(np.log(20.0), np.log(2000.0), size=n_features))
    size = rng.uniform(2.0, 8.0, size=n_features)
    counts = rng.negative_binomial(
        size[:, None], (size / (size + mu))[:, None], size=(n_features, n_samples)
    )
    counts[:, :2] = np.maximum(counts[:, :2], 1)
    return pd.DataFrame(counts, index=[f"gene_{i:04d}" for i in range(n_features)])


def test_build_design_groups_by_condition_then_batch():
    design = build_design(2, 3)
    assert list(design.index) == [
        "cond1_rep1",
        "cond1_rep2",
        "cond2_rep1",
        "cond2_rep2",
        "cond3_rep1",
        "cond3_rep2",
    ]
    assert list(design["batch"]) == ["batch1", "batch2"] * 3
    assert list(design["condition_index"]) == [0, 0, 1, 1, 2, 2]
    with pytest.raises(ValueError):
        build_design(0, 2)
    with pytest.raises(ValueError):
        build_design(2, 1)


def test_model_and_coefficient_matrices_align():
    design = build_design(3, 2)
    X = model_matrix(design)
    assert X.shape == (6, 4)
    np.testing.assert_array_equal(X[:, :3].sum(axis=1), 1.0)
    np.testing.assert_array_equal(X[:, 3], [0, 0, 0, 1, 1, 1])

    eff = sample_effects(50, 10, 20, 2.0, np.random.default_rng(0))
    beta = coefficient_matrix(eff, design, "ribo")
    assert beta.shape == (50, 4)
    np.testing.assert_array_equal(beta[:, 0], 0.0)
    np.testing.assert_array_equal(beta[:, 1], eff.batch_coef)
    np.testing.assert_array_equal(beta[:, 2], eff.batch_coef)
    np.testing.assert_array_equal(beta[:, 3], eff.ribo_coef)
    with pytest.raises(ValueError):
        coefficient_matrix(eff, design, "protein")


def test_merge_modalities_prefixes_columns_and_tags_assay():
    design = build_design(2, 2)
    rna = pd.DataFrame(np.ones((3, 4), dtype=int), index=list("abc"), columns=design.index)
    ribo = rna * 2
    counts, merged = merge_modalities(rna, ribo, design)
    assert counts.shape == (3, 8)
    assert list(counts.columns[:2]) == ["rna_cond1_rep1", "rna_cond1_rep2"]
    assert list(merged["assay"]) == ["RNA"] * 4 + ["RIBO"] * 4
    assert list(merged.index) == list(counts.columns)


def test_simulate_counts_shape_and_reproducibility():
    params = fit_nb_params(_reference())
    design = build_design(3, 2)
    eff = sample_effects(80, 10, 10, 1.0, np.random.default_rng(1))

    a = simulate_counts(params, design, eff, "rna", seed=42)
    b = simulate_counts(params, design, eff, "rna", seed=42)
    c = simulate_counts(params, design, eff, "rna", seed=43)

    assert a.shape == (80, 6)
    assert a.index.equals(eff.feature_ids)
    assert list(a.columns) == list(design.index)
    assert a.dtypes.eq(np.int64).all()
    assert (a.to_numpy() >= 0).all()
    pd.testing.assert_frame_equal(a, b)
    assert not a.equals(c)


def test_selected_batch_features_without_coefficient_change_nothing():
    params = fit_nb_params(_reference(seed=4))
    design = build_design(3, 2)
    eff = sample_effects(60, 10, 0, 0.0, np.random.default_rng(2))
    reselected = EffectAssignment(
        feature_ids=eff.feature_ids,
        label=eff.label,
        rna_coef=eff.rna_coef,
        ribo_coef=eff.ribo_coef,
        batch_coef=np.zeros(eff.n_features),
        batch_selected=np.arange(eff.n_features) % 2 == 0,
    )
    for modality in ("rna", "ribo"):
        pd.testing.assert_frame_equal(
            simulate_counts(params, design, eff, modality, seed=7),
            simulate_counts(params, design, reselected, modality, seed=7),
        )


def test_condition_coefficient_shifts_counts():
    params = fit_nb_params(_reference(seed=5))
    design = build_design(3, 2)
    n = 100
    eff = EffectAssignment(
        feature_ids=[f"f{i}" for i in range(n)],
        label=np.zeros(n, dtype=bool),
        rna_coef=np.zeros(n),
        ribo_coef=np.full(n, 3.0),
        batch_coef=np.zeros(n),
    )
    ribo = simulate_counts(params, design, eff, "ribo", seed=0)
    cond1 = ribo.loc[:, design["condition"] == "cond1"].to_numpy().sum()
    cond2 = ribo.loc[:, design["condition"] == "cond2"].to_numpy().sum()
    assert cond2 > 5 * cond1


def test_requesting_more_features_than_fitted_is_an_estimation_error():
    params = fit_nb_params(_reference(n_features=30))
    eff = sample_effects(31, 10, 0, 0.0, np.random.default_rng(0))
    with pytest.raises(EstimationError, match="Cannot draw 31 features"):
        simulate_counts(params, build_design(2, 2), eff, "rna", seed=0)
