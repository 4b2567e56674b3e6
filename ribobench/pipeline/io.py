"""Pipeline I/O, logging, and count-table helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

ID_COLUMN = "ID"


def ensure_dir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _json_default(obj: Any) -> Any:
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, Path):
        return str(obj)
    return str(obj)


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True, default=_json_default)


def setup_logger(log_path: Path, logger_name: str) -> logging.Logger:
    ensure_dir(log_path.parent)
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    fh = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)
    return logger


def read_count_table(path: str | Path) -> pd.DataFrame:
    """Read a tab-separated count table with an `ID` column and one column per sample."""
    table_path = Path(path)
    if not table_path.exists():
        raise FileNotFoundError(f"Count table not found: {table_path}")
    df = pd.read_csv(table_path, sep="\t")
    if df.shape[1] < 2:
        raise ValueError(f"Count table '{table_path}' needs an ID column and >= 1 sample.")
    id_col = ID_COLUMN if ID_COLUMN in df.columns else df.columns[0]
    df[id_col] = df[id_col].astype(str)
    out = df.set_index(id_col)
    out.index.name = ID_COLUMN
    return out


def write_count_table(counts: pd.DataFrame, path: str | Path) -> Path:
    """Write counts as TSV with header `ID, sample1 ... sampleN`."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    table = counts.copy()
    table.index = table.index.astype(str)
    table.index.name = ID_COLUMN
    table.to_csv(out, sep="\t")
    return out


def write_benchmark_outputs(result: Any, outdir: str | Path) -> dict[str, Path]:
    """Persist the tables of a `BenchmarkResult` plus a JSON summary."""
    root = ensure_dir(outdir)
    paths = {
        "curves": root / "curves.csv",
        "confusion": root / "confusion.csv",
        "trials": root / "trials.csv",
        "dropped_trials": root / "dropped_trials.csv",
        "detector_failures": root / "detector_failures.csv",
        "summary": root / "summary.json",
    }
    result.curves.to_csv(paths["curves"], index=False)
    result.confusion.to_csv(paths["confusion"], index=False)
    result.trial_summaries.to_csv(paths["trials"], index=False)
    result.dropped_trials.to_csv(paths["dropped_trials"], index=False)
    result.detector_failures.to_csv(paths["detector_failures"], index=False)
    write_json(paths["summary"], result.summary_dict())
    return paths
