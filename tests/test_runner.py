from __future__ import annotations

import json
import logging

import numpy as np
import pandas as pd
import pytest

from ribobench.config import BenchmarkConfig
from ribobench.exceptions import EmptyFeatureSetError, EstimationError
from ribobench.pipeline import trial as trial_module
from ribobench.pipeline.io import write_benchmark_outputs
from ribobench.pipeline.runner import fit_references, mean_auc, run_benchmark
from ribobench.pipeline.seeding import trial_seed
from ribobench.pipeline.trial import TrialTask, run_trial_task

THRESHOLDS = [0.01, 0.05, 0.1, 0.2]


def _reference(n_features: int = 120, n_samples: int = 6, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    mu = np.exp(rng.uniform(np.log(50.0), np.log(3000.0), size=n_features))
    size = rng.uniform(3.0, 10.0, size=n_features)
    counts = rng.negative_binomial(
        size[:, None], (size / (size + mu))[:, None], size=(n_features, n_samples)
    )
    counts[:, :2] = np.maximum(counts[:, :2], 1)
    return pd.DataFrame(counts, index=[f"gene_{i:04d}" for i in range(n_features)])


class _Broken:
    name = "broken"

    def detect(self, rna, ribo, design):
        raise RuntimeError("boom")


def _config(**overrides) -> BenchmarkConfig:
    cfg = {
        "referenceRna": _reference(seed=1),
        "referenceRibo": _reference(seed=2),
        "detectors": ["log_ratio", "interaction_lm"],
        "numSamplesPerCondition": 3,
        "truePositiveFraction": 20,
        "batchFeatureFraction": 10,
        "batchCoefficient": 1.0,
        "fdrThresholds": THRESHOLDS,
        "numTrials": 3,
        "masterSeed": 7,
    }
    cfg.update(overrides)
    return BenchmarkConfig.from_dict(cfg)


def test_small_benchmark_end_to_end():
    result = run_benchmark(_config())

    assert result.n_completed == 3
    assert result.n_dropped == 0
    assert result.curves.shape[0] == 2 * len(THRESHOLDS)
    assert set(result.curves["detector"]) == {"log_ratio", "interaction_lm"}
    assert (result.curves["n_trials"] == 3).all()
    sens = result.curves["sensitivity_mean"].to_numpy()
    spec = result.curves["specificity_mean"].to_numpy()
    assert np.all((sens >= 0.0) & (sens <= 1.0))
    assert np.all((spec >= 0.0) & (spec <= 1.0))

    curve = result.curve("log_ratio")
    assert np.all(np.diff(curve["sensitivity_mean"]) >= 0.0)
    assert np.all(np.diff(curve["specificity_mean"]) <= 0.0)
    assert list(result.trial_summaries["trial_index"]) == [0, 1, 2]
    assert (result.trial_summaries["n_retained"] <= 120).all()
    assert set(result.confusion["detector"]) == {"log_ratio", "interaction_lm"}
    with pytest.raises(KeyError):
        result.curve("missing")


def test_results_do_not_depend_on_parallelism():
    cfg = _config()
    params = fit_references(cfg)
    serial = run_benchmark(cfg, params=params)
    again = run_benchmark(cfg, params=params)
    threaded = run_benchmark(cfg, n_jobs=2, backend="threading", params=params)
    pd.testing.assert_frame_equal(serial.curves, again.curves)
    pd.testing.assert_frame_equal(serial.curves, threaded.curves)
    pd.testing.assert_frame_equal(serial.trial_summaries, threaded.trial_summaries)


def test_trial_seeds_derive_from_master_seed():
    cfg = _config(numTrials=2)
    rna_params, ribo_params = fit_references(cfg)
    outcome = run_trial_task(
        TrialTask(trial_index=1, seed=trial_seed(7, 1)),
        config=cfg,
        rna_params=rna_params,
        ribo_params=ribo_params,
    )
    result = run_benchmark(cfg, params=(rna_params, ribo_params))
    assert outcome.completed
    assert result.trial_summaries.loc[1, "seed"] == trial_seed(7, 1)
    assert result.trial_summaries.loc[1, "n_retained"] == outcome.result.n_retained


def test_detector_failure_is_recorded_and_logged(caplog):
    caplog.set_level(logging.WARNING, logger="ribobench")
    cfg = BenchmarkConfig.from_dict(
        {
            "referenceRna": _reference(seed=1),
            "referenceRibo": _reference(seed=2),
            "detectors": ["log_ratio", _Broken()],
            "numSamplesPerCondition": 3,
            "fdrThresholds": THRESHOLDS,
            "numTrials": 2,
        }
    )
    result = run_benchmark(cfg)

    assert result.n_completed == 2
    assert result.detector_failures.shape[0] == 2
    assert set(result.detector_failures["kind"]) == {"failure"}
    assert list(result.detector_failures["trial_index"]) == [0, 1]
    broken = result.curve("broken")
    np.testing.assert_array_equal(broken["sensitivity_mean"], 0.0)
    np.testing.assert_array_equal(broken["specificity_mean"], 1.0)
    assert "Detector 'broken' failure in trial 0" in caplog.text
    assert "Detector 'broken' failure in trial 1" in caplog.text
    assert result.summary_dict()["detector_failure_counts"] == {"broken:failure": 2}


def test_trial_with_no_surviving_features_is_dropped(caplog):
    caplog.set_level(logging.WARNING, logger="ribobench")
    result = run_benchmark(_config(minCount=10**9, numTrials=2))

    assert result.n_completed == 0
    assert result.n_dropped == 2
    assert set(result.dropped_trials["kind"]) == {"EmptyFeatureSetError"}
    assert result.curves["sensitivity_mean"].isna().all()
    assert "Trial 0 dropped (EmptyFeatureSetError)" in caplog.text
    assert "No trial completed" in caplog.text


def test_single_failed_trial_does_not_abort_the_others(monkeypatch):
    real = trial_module.run_trial

    def _flaky(config, rna_params, ribo_params, *, trial_index, seed, observers=()):
        if trial_index == 1:
            raise EstimationError("non-finite dispersion")
        return real(
            config,
            rna_params,
            ribo_params,
            trial_index=trial_index,
            seed=seed,
            observers=observers,
        )

    monkeypatch.setattr(trial_module, "run_trial", _flaky)
    result = run_benchmark(_config())

    assert result.n_completed == 2
    assert list(result.dropped_trials["trial_index"]) == [1]
    assert result.dropped_trials.loc[0, "reason"] == "non-finite dispersion"
    assert result.dropped_trials.loc[0, "seed"] == trial_seed(7, 1)
    assert (result.curves["n_trials"] == 2).all()


def test_unexpected_errors_propagate(monkeypatch):
    def _explode(*_args, **_kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(trial_module, "run_trial", _explode)
    with pytest.raises(RuntimeError, match="unexpected"):
        run_benchmark(_config(numTrials=1))


def test_degenerate_reference_fails_before_any_trial():
    rna = _reference(seed=1)
    rna.iloc[0] = 0
    rna.iloc[0, 0] = 3
    with pytest.raises(EstimationError, match="fewer than 2 non-zero"):
        run_benchmark(_config(referenceRna=rna))


def test_empty_feature_set_error_is_a_dropped_outcome():
    cfg = _config(minCount=10**9, numTrials=1)
    rna_params, ribo_params = fit_references(cfg)
    outcome = run_trial_task(
        TrialTask(trial_index=0, seed=1),
        config=cfg,
        rna_params=rna_params,
        ribo_params=ribo_params,
    )
    assert not outcome.completed
    assert outcome.error_kind == EmptyFeatureSetError.__name__


def test_zero_batch_coefficient_makes_batch_selection_irrelevant():
    shared = {
        "detectors": ["log_ratio"],
        "batchCoefficient": 0.0,
        "fdrThresholds": [0.05, 0.1],
        "numTrials": 24,
    }
    cfg_a = _config(batchFeatureFraction=10, masterSeed=1, **shared)
    cfg_b = _config(batchFeatureFraction=60, masterSeed=2, **shared)
    params = fit_references(cfg_a)
    a = run_benchmark(cfg_a, params=params).curves
    b = run_benchmark(cfg_b, params=params).curves

    for metric in ("sensitivity", "specificity"):
        diff = np.abs(a[f"{metric}_mean"] - b[f"{metric}_mean"]).to_numpy()
        se = np.sqrt((a[f"{metric}_sd"] ** 2 + b[f"{metric}_sd"] ** 2) / 24).to_numpy()
        assert np.all(diff <= 4.0 * se + 0.02)


def test_mean_auc_and_outputs(tmp_path):
    result = run_benchmark(_config(numTrials=2))
    auc = mean_auc(result)
    assert auc.name == "partial_auc"
    assert set(auc.index) == {"log_ratio", "interaction_lm"}
    assert np.all((auc.to_numpy() >= 0.0) & (auc.to_numpy() <= 1.0))

    paths = write_benchmark_outputs(result, tmp_path / "out")
    for path in paths.values():
        assert path.exists()
    summary = json.loads(paths["summary"].read_text(encoding="utf-8"))
    assert summary["n_trials_requested"] == 2
    assert summary["n_trials_completed"] == 2
    curves = pd.read_csv(paths["curves"])
    assert curves.shape == result.curves.shape
