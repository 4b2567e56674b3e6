"""Invoke detectors and realign their output to the filtered feature order."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Sequence

import numpy as np
import pandas as pd

from ribobench.core.types import DetectorFailureRecord
from ribobench.detectors.base import Detector, DetectorOutput
from ribobench.exceptions import ConfigurationError, DetectorFailure, DetectorTimeout


def detector_names(detectors: Sequence[Detector]) -> list[str]:
    names = [str(getattr(det, "name", "")) for det in detectors]
    if not names:
        raise ConfigurationError("detectors", "at least one detector is required.")
    if any(not n for n in names):
        raise ConfigurationError("detectors", "every detector needs a non-empty name.")
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigurationError("detectors", f"duplicate detector names: {dupes}")
    return names


def realign_scores(raw: DetectorOutput, features: pd.Index, name: str) -> np.ndarray:
    """Map a detector's output onto `features`; keys not returned become NaN."""
    if isinstance(raw, pd.DataFrame):
        if raw.shape[1] != 1:
            raise DetectorFailure(f"{name} returned {raw.shape[1]} columns; expected 1.")
        raw = raw.iloc[:, 0]

    if isinstance(raw, pd.Series):
        if not raw.index.is_unique:
            raise DetectorFailure(f"{name} returned duplicate feature keys.")
        unknown = ~raw.index.isin(features)
        if np.any(unknown):
            head = list(raw.index[unknown][:5])
            raise DetectorFailure(f"{name} returned unknown feature keys: {head}")
        aligned = pd.to_numeric(raw, errors="coerce").reindex(features)
        vals = aligned.to_numpy(dtype=float)
    else:
        vals = np.asarray(raw, dtype=float).ravel()
        if vals.size != len(features):
            raise DetectorFailure(
                f"{name} returned {vals.size} values for {len(features)} features."
            )

    finite = np.isfinite(vals)
    if np.any((vals[finite] < 0.0) | (vals[finite] > 1.0)):
        raise DetectorFailure(f"{name} returned significance values outside [0, 1].")
    return np.where(finite, vals, np.nan)


def _collect(
    det: Detector,
    fut: Future,
    timeout: float | None,
    features: pd.Index,
) -> tuple[np.ndarray, DetectorFailureRecord | None]:
    undefined = np.full(len(features), np.nan)
    try:
        return realign_scores(fut.result(timeout=timeout), features, det.name), None
    except FutureTimeoutError:
        fut.cancel()
        budget = "" if timeout is None else f" within {timeout:g}s"
        return undefined, DetectorFailureRecord(det.name, "timeout", f"no result{budget}")
    except DetectorTimeout as exc:
        return undefined, DetectorFailureRecord(det.name, "timeout", str(exc))
    except Exception as exc:  # noqa: BLE001
        return undefined, DetectorFailureRecord(
            det.name, "failure", f"{type(exc).__name__}: {exc}"
        )


def run_detectors(
    detectors: Sequence[Detector],
    rna: pd.DataFrame,
    ribo: pd.DataFrame,
    design: pd.DataFrame,
    *,
    timeout: float | None = None,
    parallel: bool = False,
) -> tuple[pd.DataFrame, list[DetectorFailureRecord]]:
    """Run every detector and build the significance table.

    Each invocation runs on a worker thread bounded by `timeout` seconds. A
    detector that fails or times out contributes an all-NaN column and a
    failure record; the remaining detectors are unaffected. Threads cannot be
    interrupted, so a timed-out detector may keep running in the background.
    """
    names = detector_names(detectors)
    if not rna.index.equals(ribo.index):
        raise ValueError("RNA and Ribo matrices must share the same feature index.")
    features = rna.index
    columns: dict[str, np.ndarray] = {}
    failures: list[DetectorFailureRecord] = []

    # One worker per detector, so a timed-out call never blocks the next one.
    executor = ThreadPoolExecutor(max_workers=len(detectors))
    try:
        if parallel:
            submitted = [(det, executor.submit(det.detect, rna, ribo, design)) for det in detectors]
            deadline = None if timeout is None else time.monotonic() + float(timeout)
            for det, fut in submitted:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                columns[det.name], failure = _collect(det, fut, remaining, features)
                if failure is not None:
                    failures.append(failure)
        else:
            budget = None if timeout is None else float(timeout)
            for det in detectors:
                fut = executor.submit(det.detect, rna, ribo, design)
                columns[det.name], failure = _collect(det, fut, budget, features)
                if failure is not None:
                    failures.append(failure)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    table = pd.DataFrame({name: columns[name] for name in names}, index=features)
    return table, failures
