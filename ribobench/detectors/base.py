"""Capability interface shared by all pluggable detectors."""

from __future__ import annotations

from typing import Protocol, Sequence, Union, runtime_checkable

import pandas as pd

DetectorOutput = Union[pd.Series, pd.DataFrame, Sequence[float]]


@runtime_checkable
class Detector(Protocol):
    """A differential-signal detector.

    `detect` receives the filtered RNA and Ribo count matrices (features x
    samples, same feature index) and the per-sample design, and returns one
    adjusted significance value per feature. A Series keyed by feature id may
    come back in any order; an un-keyed sequence must follow the input order.
    NaN marks a feature the detector could not evaluate.
    """

    name: str

    def detect(
        self, rna: pd.DataFrame, ribo: pd.DataFrame, design: pd.DataFrame
    ) -> DetectorOutput: ...
