"""ribobench public API."""

from ribobench._version import __version__
from ribobench.config import BenchmarkConfig, load_benchmark_config, load_json_config
from ribobench.core import (
    build_design,
    filter_low_counts,
    fit_nb_params,
    sample_effects,
    simulate_counts,
)
from ribobench.detectors import (
    Detector,
    InteractionModelDetector,
    LogRatioDetector,
    run_detectors,
)
from ribobench.exceptions import (
    ConfigurationError,
    DetectorFailure,
    DetectorTimeout,
    EmptyFeatureSetError,
    EstimationError,
)
from ribobench.stats import CurveAccumulator, confusion_counts, evaluate_thresholds


def run_benchmark(*args, **kwargs):
    """Lazy wrapper to avoid importing joblib at import time."""
    from ribobench.pipeline.runner import run_benchmark as _run_benchmark

    return _run_benchmark(*args, **kwargs)


__all__ = [
    "__version__",
    "BenchmarkConfig",
    "ConfigurationError",
    "CurveAccumulator",
    "Detector",
    "DetectorFailure",
    "DetectorTimeout",
    "EmptyFeatureSetError",
    "EstimationError",
    "InteractionModelDetector",
    "LogRatioDetector",
    "build_design",
    "confusion_counts",
    "evaluate_thresholds",
    "filter_low_counts",
    "fit_nb_params",
    "load_benchmark_config",
    "load_json_config",
    "run_benchmark",
    "run_detectors",
    "sample_effects",
    "simulate_counts",
]
