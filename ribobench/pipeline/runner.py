"""Repeated-trial benchmark runner and result aggregation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Iterable, Sequence

import numpy as np
import pandas as pd

from ribobench.config import BenchmarkConfig
from ribobench.core.fitting import fit_nb_params
from ribobench.core.types import NBParams
from ribobench.pipeline.parallel import parallel_map
from ribobench.pipeline.seeding import trial_seed
from ribobench.pipeline.trial import TrialObserver, TrialOutcome, TrialTask, run_trial_task
from ribobench.stats.aggregate import CurveAccumulator

DROPPED_COLUMNS = ["trial_index", "seed", "kind", "reason"]
FAILURE_COLUMNS = ["trial_index", "detector", "kind", "message"]
TRIAL_COLUMNS = [
    "trial_index",
    "seed",
    "n_features",
    "n_retained",
    "n_true_positive_retained",
    "n_detector_failures",
]


@dataclass
class BenchmarkResult:
    """Aggregated curves plus the bookkeeping of every requested trial."""

    curves: pd.DataFrame
    confusion: pd.DataFrame
    trial_summaries: pd.DataFrame
    dropped_trials: pd.DataFrame
    detector_failures: pd.DataFrame
    n_trials_requested: int
    diagnostics: dict[int, dict[str, Any]] = field(default_factory=dict)
    runtime_sec: float = 0.0

    @property
    def n_completed(self) -> int:
        return int(self.trial_summaries.shape[0])

    @property
    def n_dropped(self) -> int:
        return int(self.dropped_trials.shape[0])

    def curve(self, detector: str) -> pd.DataFrame:
        """Aggregated curve of one detector, ordered by threshold."""
        sub = self.curves.loc[self.curves["detector"] == str(detector)]
        if sub.empty:
            raise KeyError(f"Unknown detector '{detector}'.")
        return sub.sort_values("threshold").reset_index(drop=True)

    def summary_dict(self) -> dict[str, Any]:
        failures = (
            self.detector_failures.groupby(["detector", "kind"]).size()
            if not self.detector_failures.empty
            else pd.Series(dtype=int)
        )
        return {
            "n_trials_requested": int(self.n_trials_requested),
            "n_trials_completed": self.n_completed,
            "n_trials_dropped": self.n_dropped,
            "detector_failure_counts": {
                f"{det}:{kind}": int(n) for (det, kind), n in failures.items()
            },
            "runtime_sec": float(self.runtime_sec),
        }


def fit_references(config: BenchmarkConfig) -> tuple[NBParams, NBParams]:
    """Fit RNA and Ribo count models once; the results are shared read-only."""
    rna_ref, ribo_ref = config.reference_frames()
    return fit_nb_params(rna_ref, label="rna"), fit_nb_params(ribo_ref, label="ribo")


def collect_outcomes(
    config: BenchmarkConfig,
    outcomes: Iterable[TrialOutcome],
    logger: logging.Logger | None = None,
) -> BenchmarkResult:
    """Fold completed trials into the aggregate; record every dropped trial."""
    log = logger or logging.getLogger("ribobench")
    acc = CurveAccumulator(config.detector_names, config.fdr_thresholds)
    trial_rows: list[dict[str, Any]] = []
    dropped_rows: list[dict[str, Any]] = []
    failure_rows: list[dict[str, Any]] = []
    diagnostics: dict[int, dict[str, Any]] = {}

    for outcome in sorted(outcomes, key=lambda o: o.trial_index):
        if outcome.result is None:
            log.warning(
                "Trial %d dropped (%s): %s",
                outcome.trial_index,
                outcome.error_kind,
                outcome.error,
            )
            dropped_rows.append(
                {
                    "trial_index": outcome.trial_index,
                    "seed": outcome.seed,
                    "kind": outcome.error_kind,
                    "reason": outcome.error,
                }
            )
            continue

        res = outcome.result
        for failure in res.failures:
            log.warning(
                "Detector '%s' %s in trial %d; scored as undefined: %s",
                failure.detector,
                failure.kind,
                res.trial_index,
                failure.message,
            )
            failure_rows.append(
                {
                    "trial_index": res.trial_index,
                    "detector": failure.detector,
                    "kind": failure.kind,
                    "message": failure.message,
                }
            )
        acc.add(res.curves, res.confusion)
        trial_rows.append(
            {
                "trial_index": res.trial_index,
                "seed": res.seed,
                "n_features": res.n_features,
                "n_retained": res.n_retained,
                "n_true_positive_retained": res.n_true_positive_retained,
                "n_detector_failures": len(res.failures),
            }
        )
        if res.diagnostics:
            diagnostics[res.trial_index] = res.diagnostics

    if acc.n_trials == 0:
        log.error("No trial completed; aggregated curves are undefined.")

    return BenchmarkResult(
        curves=acc.summary(),
        confusion=acc.confusion_summary(),
        trial_summaries=pd.DataFrame(trial_rows, columns=TRIAL_COLUMNS),
        dropped_trials=pd.DataFrame(dropped_rows, columns=DROPPED_COLUMNS),
        detector_failures=pd.DataFrame(failure_rows, columns=FAILURE_COLUMNS),
        n_trials_requested=int(config.num_trials),
        diagnostics=diagnostics,
    )


def run_benchmark(
    config: BenchmarkConfig,
    *,
    n_jobs: int = 1,
    backend: str = "loky",
    observers: Sequence[TrialObserver] = (),
    params: tuple[NBParams, NBParams] | None = None,
    logger: logging.Logger | None = None,
) -> BenchmarkResult:
    """Run `config.num_trials` independent trials and aggregate their curves.

    Trial `i` is seeded from `(master_seed, "trial", i)`, so results do not
    depend on `n_jobs` or scheduling order. A failed reference fit raises
    `EstimationError` before any trial starts.
    """
    log = logger or logging.getLogger("ribobench")
    t0 = time.time()
    rna_params, ribo_params = params if params is not None else fit_references(config)
    log.info(
        "Fitted references: rna=%d features, ribo=%d features; simulating %d features "
        "x %d samples per modality",
        rna_params.n_features,
        ribo_params.n_features,
        config.resolved_num_features,
        config.num_samples_per_condition * config.num_conditions,
    )

    tasks = [
        TrialTask(trial_index=i, seed=trial_seed(config.master_seed, i))
        for i in range(config.num_trials)
    ]
    func = partial(
        run_trial_task,
        config=config,
        rna_params=rna_params,
        ribo_params=ribo_params,
        observers=tuple(observers),
    )
    outcomes = parallel_map(func, tasks, n_jobs=n_jobs, backend=backend, logger=log)
    result = collect_outcomes(config, outcomes, logger=log)
    result.runtime_sec = float(time.time() - t0)

    log.info(
        "Benchmark complete: %d/%d trials aggregated, %d dropped, %d detector failures "
        "(%.1fs)",
        result.n_completed,
        result.n_trials_requested,
        result.n_dropped,
        int(result.detector_failures.shape[0]),
        result.runtime_sec,
    )
    return result


def mean_auc(result: BenchmarkResult) -> pd.Series:
    """Trapezoid area under mean sensitivity vs. (1 - specificity), per detector."""
    out = {}
    for det, grp in result.curves.groupby("detector", sort=False):
        grp = grp.sort_values("threshold")
        fpr = 1.0 - grp["specificity_mean"].to_numpy(dtype=float)
        tpr = grp["sensitivity_mean"].to_numpy(dtype=float)
        ok = np.isfinite(fpr) & np.isfinite(tpr)
        x, y = fpr[ok], tpr[ok]
        out[str(det)] = (
            float(np.sum(np.diff(x) * (y[1:] + y[:-1]) / 2.0)) if x.size > 1 else float("nan")
        )
    return pd.Series(out, name="partial_auc")
