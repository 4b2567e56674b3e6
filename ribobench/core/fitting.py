"""Negative-binomial parameter estimation from a reference count matrix."""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
from numpy.polynomial import Polynomial
from scipy.interpolate import make_smoothing_spline

from ribobench.core.types import NBParams
from ribobench.core.utils import as_count_frame, nonzero_per_feature
from ribobench.exceptions import EstimationError

EPS_SIZE = 1e-4
MIN_SPLINE_POINTS = 5
# NB size standing in for the Poisson limit.
POISSON_SIZE = 1e4


def usable_reference_mask(
    reference_a: pd.DataFrame, reference_b: pd.DataFrame, min_nonzero: int = 2
) -> np.ndarray:
    """Rows with at least `min_nonzero` non-zero samples in both references."""
    if reference_a.shape[0] != reference_b.shape[0]:
        raise ValueError("Reference matrices must have the same number of features.")
    ok_a = nonzero_per_feature(reference_a) >= int(min_nonzero)
    ok_b = nonzero_per_feature(reference_b) >= int(min_nonzero)
    return np.asarray(ok_a & ok_b, dtype=bool)


def _fit_size_curve(
    log_mu: np.ndarray, log_size: np.ndarray
) -> tuple[object, tuple[float, float]]:
    grouped = (
        pd.DataFrame({"x": log_mu, "y": log_size})
        .groupby("x", sort=True)["y"]
        .agg(["mean", "size"])
    )
    x = grouped.index.to_numpy(dtype=float)
    y = grouped["mean"].to_numpy(dtype=float)
    w = grouped["size"].to_numpy(dtype=float)
    x_range = (float(x.min()), float(x.max()))

    if x.size >= MIN_SPLINE_POINTS:
        return make_smoothing_spline(x, y, w=w), x_range

    warnings.warn(
        f"Only {x.size} distinct mean(s) available; using a "
        f"{'linear' if x.size >= 2 else 'constant'} mean-dispersion fit.",
        RuntimeWarning,
        stacklevel=3,
    )
    if x.size >= 2:
        return Polynomial.fit(x, y, deg=1, w=w), x_range
    return Polynomial([float(y[0])]), x_range


def fit_nb_params(reference: pd.DataFrame | np.ndarray, *, label: str = "") -> NBParams:
    """Fit per-feature mean, zero probability and a mean-dispersion curve.

    Means and variances are taken over non-zero samples only; zero inflation is
    modelled separately through `zero_prob`. The dispersion (NB size) is
    moment-matched per feature and smoothed as a function of log-mean;
    under-dispersed features get the Poisson-limit size `POISSON_SIZE`.

    Raises:
        EstimationError: a feature has fewer than two non-zero samples, or no
            feature is over-dispersed.
    """
    name = label or "reference"
    try:
        counts = as_count_frame(name, reference)
    except ValueError as exc:
        raise EstimationError(str(exc)) from exc

    values = counts.to_numpy(dtype=float)
    nonzero = values > 0
    n_nonzero = nonzero.sum(axis=1)
    degenerate = n_nonzero < 2
    if np.any(degenerate):
        head = ", ".join(str(x) for x in counts.index[degenerate][:5])
        raise EstimationError(
            f"{name}: {int(degenerate.sum())} feature(s) have fewer than 2 non-zero "
            f"samples, dispersion is undefined (e.g. {head})."
        )

    zero_prob = 1.0 - n_nonzero / float(values.shape[1])
    masked = np.where(nonzero, values, np.nan)
    mu = np.nanmean(masked, axis=1)
    s2 = np.nanvar(masked, axis=1, ddof=1)

    with np.errstate(divide="ignore", invalid="ignore"):
        size = mu**2 / (s2 - mu + EPS_SIZE)
    positive = np.isfinite(size) & (size > 0)
    if not np.any(positive):
        raise EstimationError(f"{name}: no over-dispersed feature; cannot fit dispersion.")
    # Under-dispersed features are near-Poisson.
    size = np.where(positive, np.minimum(size, POISSON_SIZE), POISSON_SIZE)

    fit, x_range = _fit_size_curve(np.log(mu + EPS_SIZE), np.log(size))
    return NBParams(
        feature_ids=counts.index,
        mean=mu,
        zero_prob=zero_prob,
        size_fit=fit,
        log_mean_range=x_range,
        label=name,
    )
