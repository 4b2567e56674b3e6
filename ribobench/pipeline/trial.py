"""One benchmark trial: sample, simulate, filter, detect, evaluate."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Protocol, Sequence

import pandas as pd

from ribobench.config import BenchmarkConfig
from ribobench.core.design import build_design
from ribobench.core.effects import sample_effects
from ribobench.core.filtering import filter_low_counts
from ribobench.core.simulate import simulate_counts
from ribobench.core.types import FilteredData, NBParams, TrialResult
from ribobench.detectors.adapter import run_detectors
from ribobench.exceptions import EmptyFeatureSetError, EstimationError
from ribobench.pipeline.seeding import rng_from_seed, stable_seed
from ribobench.stats.evaluation import confusion_counts, evaluate_thresholds


class TrialObserver(Protocol):
    """Side-channel consumer of a trial's filtered matrices."""

    name: str

    def observe(self, filtered: FilteredData, design: pd.DataFrame) -> Any: ...


@dataclass(frozen=True)
class TrialTask:
    trial_index: int
    seed: int


@dataclass(frozen=True)
class TrialOutcome:
    trial_index: int
    seed: int
    result: TrialResult | None = None
    error_kind: str | None = None
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.result is not None


def run_trial(
    config: BenchmarkConfig,
    rna_params: NBParams,
    ribo_params: NBParams,
    *,
    trial_index: int,
    seed: int,
    observers: Sequence[TrialObserver] = (),
) -> TrialResult:
    """Run the full pipeline once; all randomness derives from `seed`.

    Raises:
        EstimationError: simulation from the fitted parameters failed.
        EmptyFeatureSetError: no feature passed the low-count filter.
    """
    effects = sample_effects(
        config.resolved_num_features,
        config.true_positive_fraction,
        config.batch_feature_fraction,
        config.batch_coefficient,
        rng_from_seed(stable_seed(seed, "effects")),
    )
    design = build_design(config.num_samples_per_condition, config.num_conditions)

    count_seed = stable_seed(seed, "counts")
    filtered = filter_low_counts(
        simulate_counts(rna_params, design, effects, "rna", count_seed),
        simulate_counts(ribo_params, design, effects, "ribo", count_seed),
        effects,
        min_count=config.min_count,
        min_samples=config.min_samples,
    )
    if filtered.n_features == 0:
        raise EmptyFeatureSetError(
            f"no feature passed the low-count filter (min_count={config.min_count}, "
            f"min_samples={config.min_samples})."
        )

    table, failures = run_detectors(
        config.detectors,
        filtered.rna,
        filtered.ribo,
        design,
        timeout=config.detector_timeout,
        parallel=config.parallel_detectors,
    )
    labels = filtered.labels
    return TrialResult(
        trial_index=int(trial_index),
        seed=int(seed),
        curves=evaluate_thresholds(table, labels, config.fdr_thresholds),
        confusion=confusion_counts(table, labels, config.fixed_threshold),
        n_features=effects.n_features,
        n_retained=filtered.n_features,
        n_true_positive_retained=int(labels.sum()),
        failures=[replace(f, trial_index=int(trial_index)) for f in failures],
        diagnostics={obs.name: obs.observe(filtered, design) for obs in observers},
    )


def run_trial_task(
    task: TrialTask,
    *,
    config: BenchmarkConfig,
    rna_params: NBParams,
    ribo_params: NBParams,
    observers: Sequence[TrialObserver] = (),
) -> TrialOutcome:
    """Run one trial, converting trial-fatal errors into a dropped outcome."""
    try:
        result = run_trial(
            config,
            rna_params,
            ribo_params,
            trial_index=task.trial_index,
            seed=task.seed,
            observers=observers,
        )
    except (EstimationError, EmptyFeatureSetError) as exc:
        return TrialOutcome(
            trial_index=task.trial_index,
            seed=task.seed,
            error_kind=type(exc).__name__,
            error=str(exc),
        )
    return TrialOutcome(trial_index=task.trial_index, seed=task.seed, result=result)
