"""Core simulation subpackage."""

from ribobench.core.design import (
    build_design,
    coefficient_matrix,
    merge_modalities,
    model_matrix,
)
from ribobench.core.effects import fraction_to_count, sample_effects
from ribobench.core.filtering import filter_low_counts
from ribobench.core.fitting import fit_nb_params, usable_reference_mask
from ribobench.core.simulate import simulate_counts
from ribobench.core.types import (
    DetectorFailureRecord,
    EffectAssignment,
    FilteredData,
    NBParams,
    TrialResult,
)

__all__ = [
    "NBParams",
    "EffectAssignment",
    "FilteredData",
    "DetectorFailureRecord",
    "TrialResult",
    "build_design",
    "coefficient_matrix",
    "merge_modalities",
    "model_matrix",
    "fraction_to_count",
    "sample_effects",
    "filter_low_counts",
    "fit_nb_params",
    "usable_reference_mask",
    "simulate_counts",
]
