from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from ribobench.core.fitting import fit_nb_params, usable_reference_mask
from ribobench.exceptions import EstimationError


def _reference(n_features: int = 150, n_samples: int = 6, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    mu = np.exp(rng.uniform(np.log(20.0), np.log(2000.0), size=n_features))
    size = rng.uniform(2.0, 8.0, size=n_features)
    counts = rng.negative_binomial(
        size[:, None], (size / (size + mu))[:, None], size=(n_features, n_samples)
    )
    counts[:, :2] = np.maximum(counts[:, :2], 1)
    return pd.DataFrame(
        counts,
        index=[f"gene_{i:04d}" for i in range(n_features)],
        columns=[f"s{j + 1}" for j in range(n_samples)],
    )


def test_fit_nb_params_moments_over_nonzero_samples():
    ref = _reference()
    ref.iloc[0] = [0, 10, 20, 0, 30, 40]
    params = fit_nb_params(ref, label="rna")

    assert params.n_features == ref.shape[0]
    assert params.label == "rna"
    assert params.mean[0] == pytest.approx(25.0)
    assert params.zero_prob[0] == pytest.approx(2.0 / 6.0)
    assert np.all((params.zero_prob >= 0.0) & (params.zero_prob <= 1.0))
    assert params.feature_ids.equals(ref.index)


def test_log_size_is_finite_and_clamped_to_fitted_range():
    params = fit_nb_params(_reference(seed=1))
    lo, hi = params.log_mean_range
    vals = params.log_size(np.array([lo - 10.0, lo, hi, hi + 10.0]))
    assert np.all(np.isfinite(vals))
    assert vals[0] == pytest.approx(vals[1])
    assert vals[3] == pytest.approx(vals[2])


def test_log_size_preserves_input_shape():
    params = fit_nb_params(_reference(seed=2))
    grid = np.full((4, 3), np.mean(params.log_mean_range))
    assert params.log_size(grid).shape == (4, 3)


def test_feature_with_single_nonzero_sample_is_an_estimation_error():
    ref = _reference(n_features=20)
    ref.iloc[3] = [0, 0, 0, 7, 0, 0]
    with pytest.raises(EstimationError, match="fewer than 2 non-zero"):
        fit_nb_params(ref)


def test_no_overdispersion_is_an_estimation_error():
    ref = pd.DataFrame(np.full((6, 4), 5), index=[f"g{i}" for i in range(6)])
    with pytest.raises(EstimationError, match="over-dispersed"):
        fit_nb_params(ref)


def test_invalid_counts_are_an_estimation_error():
    ref = _reference(n_features=10)
    ref.iloc[0, 0] = -1
    with pytest.raises(EstimationError, match="non-negative"):
        fit_nb_params(ref)


def test_few_distinct_means_fall_back_with_warning():
    ref = pd.DataFrame(
        [[1, 10, 1, 10], [2, 20, 2, 20], [3, 30, 3, 30]],
        index=["a", "b", "c"],
    )
    with pytest.warns(RuntimeWarning, match="distinct mean"):
        params = fit_nb_params(ref)
    assert np.all(np.isfinite(params.log_size(np.log(params.mean))))


def test_usable_reference_mask_requires_both_modalities():
    a = pd.DataFrame([[1, 1, 0], [0, 0, 4], [3, 3, 3]])
    b = pd.DataFrame([[2, 0, 2], [5, 5, 5], [0, 0, 1]])
    np.testing.assert_array_equal(usable_reference_mask(a, b), [True, False, False])


def test_near_poisson_features_get_a_large_size():
    rng = np.random.default_rng(7)
    mu = np.linspace(800.0, 3000.0, 20)
    dispersed = rng.negative_binomial(2, (2.0 / (2.0 + mu))[:, None], size=(20, 6)) + 1
    steady = np.array([96, 100, 104, 98, 102, 100])[None, :] + np.arange(20)[:, None]
    ref = pd.DataFrame(
        np.vstack([dispersed, steady]), index=[f"g{i:02d}" for i in range(40)]
    )
    params = fit_nb_params(ref)

    size_at_100 = float(np.exp(params.log_size(np.log(100.0 + 1e-4))))
    assert size_at_100 > 50.0
