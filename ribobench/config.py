"""Configuration loading and validation for benchmark runs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

from ribobench.core.fitting import usable_reference_mask
from ribobench.core.utils import as_count_frame
from ribobench.detectors.adapter import detector_names
from ribobench.detectors.base import Detector
from ribobench.detectors.registry import build_detector
from ribobench.exceptions import ConfigurationError
from ribobench.pipeline.io import read_count_table
from ribobench.stats.evaluation import fdr_grid, validate_thresholds

# Public option name -> dataclass field.
OPTION_FIELDS = {
    "referenceRibo": "reference_ribo",
    "referenceRna": "reference_rna",
    "batchCoefficient": "batch_coefficient",
    "batchFeatureFraction": "batch_feature_fraction",
    "truePositiveFraction": "true_positive_fraction",
    "numSamplesPerCondition": "num_samples_per_condition",
    "numConditions": "num_conditions",
    "fdrThresholds": "fdr_thresholds",
    "numTrials": "num_trials",
    "detectors": "detectors",
    "numFeatures": "num_features",
    "minCount": "min_count",
    "minSamples": "min_samples",
    "fixedThreshold": "fixed_threshold",
    "masterSeed": "master_seed",
    "detectorTimeout": "detector_timeout",
    "parallelDetectors": "parallel_detectors",
    "dropDegenerateFeatures": "drop_degenerate_features",
}
FIELD_OPTIONS = {v: k for k, v in OPTION_FIELDS.items()}


def load_json_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a benchmark config from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ValueError(
            f"Unsupported config format for '{config_path}'. Use a .json config file."
        )

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
            f"column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config root in '{config_path}': expected JSON object, got {type(data).__name__}."
        )
    return data


def _number(option: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool):
        raise ConfigurationError(option, f"expected {kind.__name__}, got bool.")
    try:
        out = kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(option, f"expected {kind.__name__}, got {value!r}.") from exc
    if kind is int and float(value) != float(out):
        raise ConfigurationError(option, f"expected an integer, got {value!r}.")
    if kind is float and not np.isfinite(out):
        raise ConfigurationError(option, "must be finite.")
    return out


@dataclass(frozen=True, eq=False)
class BenchmarkConfig:
    """Validated benchmark configuration; invalid values never construct."""

    reference_ribo: pd.DataFrame
    reference_rna: pd.DataFrame
    detectors: Sequence[Detector]
    batch_coefficient: float = 0.0
    batch_feature_fraction: float = 0.0
    true_positive_fraction: float = 10.0
    num_samples_per_condition: int = 2
    num_conditions: int = 2
    fdr_thresholds: np.ndarray = field(default_factory=fdr_grid)
    num_trials: int = 1
    num_features: int | None = None
    min_count: int = 5
    min_samples: int = 2
    fixed_threshold: float = 0.05
    master_seed: int = 0
    detector_timeout: float | None = None
    parallel_detectors: bool = False
    drop_degenerate_features: bool = False

    def __post_init__(self) -> None:
        for name in ("reference_ribo", "reference_rna"):
            try:
                frame = as_count_frame(name, getattr(self, name))
            except ValueError as exc:
                raise ConfigurationError(FIELD_OPTIONS[name], str(exc)) from exc
            object.__setattr__(self, name, frame)

        object.__setattr__(self, "detectors", tuple(self.detectors))
        detector_names(self.detectors)
        object.__setattr__(self, "fdr_thresholds", validate_thresholds(self.fdr_thresholds))

        for name in ("batch_coefficient", "batch_feature_fraction", "true_positive_fraction", "fixed_threshold"):
            object.__setattr__(self, name, _number(FIELD_OPTIONS[name], getattr(self, name), float))
        for name in ("num_samples_per_condition", "num_conditions", "num_trials", "min_count", "min_samples", "master_seed"):
            object.__setattr__(self, name, _number(FIELD_OPTIONS[name], getattr(self, name), int))
        if self.num_features is not None:
            object.__setattr__(self, "num_features", _number("numFeatures", self.num_features, int))
        if self.detector_timeout is not None:
            object.__setattr__(self, "detector_timeout", _number("detectorTimeout", self.detector_timeout, float))
        self.validate()

    def validate(self) -> None:
        for name in ("batch_feature_fraction", "true_positive_fraction"):
            if not 0.0 <= getattr(self, name) <= 100.0:
                raise ConfigurationError(FIELD_OPTIONS[name], "must be a percentage in [0, 100].")
        if self.batch_coefficient < 0.0:
            raise ConfigurationError("batchCoefficient", "must be >= 0.")
        if self.num_samples_per_condition < 1:
            raise ConfigurationError("numSamplesPerCondition", "must be >= 1.")
        if self.num_conditions < 2:
            raise ConfigurationError("numConditions", "must be >= 2.")
        if self.num_trials < 1:
            raise ConfigurationError("numTrials", "must be >= 1.")
        if self.min_count < 0:
            raise ConfigurationError("minCount", "must be >= 0.")
        if self.min_samples < 0:
            raise ConfigurationError("minSamples", "must be >= 0.")
        if not 0.0 <= self.fixed_threshold <= 1.0:
            raise ConfigurationError("fixedThreshold", "must lie in [0, 1].")
        if self.detector_timeout is not None and self.detector_timeout <= 0.0:
            raise ConfigurationError("detectorTimeout", "must be positive.")
        if self.reference_ribo.shape[0] != self.reference_rna.shape[0]:
            raise ConfigurationError(
                "referenceRibo",
                f"has {self.reference_ribo.shape[0]} features but referenceRna has "
                f"{self.reference_rna.shape[0]}.",
            )
        n_usable = self.n_usable_features
        if n_usable < 1:
            raise ConfigurationError(
                "referenceRna", "no reference feature has >= 2 non-zero samples in both modalities."
            )
        if self.num_features is not None and not 1 <= self.num_features <= n_usable:
            raise ConfigurationError(
                "numFeatures", f"must be between 1 and the {n_usable} usable reference features."
            )

    @property
    def n_usable_features(self) -> int:
        if not self.drop_degenerate_features:
            return int(self.reference_rna.shape[0])
        return int(np.sum(usable_reference_mask(self.reference_rna, self.reference_ribo)))

    @property
    def resolved_num_features(self) -> int:
        return int(self.num_features) if self.num_features is not None else self.n_usable_features

    @property
    def detector_names(self) -> list[str]:
        return detector_names(self.detectors)

    def reference_frames(self) -> tuple[pd.DataFrame, pd.DataFrame]:
        """RNA and Ribo references, minus degenerate rows when requested."""
        if not self.drop_degenerate_features:
            return self.reference_rna, self.reference_ribo
        keep = usable_reference_mask(self.reference_rna, self.reference_ribo)
        return self.reference_rna.loc[keep], self.reference_ribo.loc[keep]

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly snapshot (references summarized by shape)."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, pd.DataFrame):
                value = {"n_features": int(value.shape[0]), "n_samples": int(value.shape[1])}
            elif isinstance(value, np.ndarray):
                value = [float(x) for x in value]
            elif f.name == "detectors":
                value = [repr(d) for d in value]
            out[FIELD_OPTIONS.get(f.name, f.name)] = value
        return out

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], *, base_dir: str | Path | None = None
    ) -> "BenchmarkConfig":
        """Build from public option names (camelCase) or field names.

        References may be DataFrames, arrays or paths to TSV count tables
        (relative paths resolve against `base_dir`). `fdrThresholds` may be a
        list or a `{start, stop, step}` mapping.
        """
        known = set(OPTION_FIELDS) | set(OPTION_FIELDS.values())
        unknown = sorted(k for k in data if k not in known and not str(k).startswith("_"))
        if unknown:
            raise ConfigurationError(str(unknown[0]), "unrecognized option.")

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if str(key).startswith("_"):
                continue
            name = OPTION_FIELDS.get(key, key)
            if name in kwargs:
                raise ConfigurationError(FIELD_OPTIONS.get(name, name), "given more than once.")
            kwargs[name] = value

        for name in ("reference_ribo", "reference_rna"):
            if name not in kwargs:
                raise ConfigurationError(FIELD_OPTIONS[name], "is required.")
            ref = kwargs[name]
            if isinstance(ref, (str, Path)):
                path = Path(ref)
                if not path.is_absolute() and base_dir is not None:
                    path = Path(base_dir) / path
                try:
                    kwargs[name] = read_count_table(path)
                except (FileNotFoundError, ValueError) as exc:
                    raise ConfigurationError(FIELD_OPTIONS[name], str(exc)) from exc

        thr = kwargs.get("fdr_thresholds")
        if isinstance(thr, Mapping):
            try:
                kwargs["fdr_thresholds"] = fdr_grid(**{k: float(v) for k, v in thr.items()})
            except TypeError as exc:
                raise ConfigurationError("fdrThresholds", str(exc)) from exc

        specs = kwargs.get("detectors")
        if not specs:
            raise ConfigurationError("detectors", "at least one detector is required.")
        if isinstance(specs, (str, Mapping)):
            specs = [specs]
        kwargs["detectors"] = [build_detector(spec) for spec in specs]
        return cls(**kwargs)


def load_benchmark_config(path: str | Path) -> BenchmarkConfig:
    """Read a JSON config and resolve reference paths next to it."""
    config_path = Path(path)
    return BenchmarkConfig.from_dict(load_json_config(config_path), base_dir=config_path.parent)
