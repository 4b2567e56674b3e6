"""Detector glue for external command-line tools that exchange TSV files."""

from __future__ import annotations

import subprocess
import tempfile
from pathlib import Path
from typing import Sequence

import pandas as pd

from ribobench.core.design import merge_modalities
from ribobench.exceptions import DetectorFailure, DetectorTimeout
from ribobench.pipeline.io import write_count_table


class CommandLineDetector:
    """Run an external tool on a merged count table.

    `command` is an argv list whose items may reference `{counts}`,
    `{design}`, `{output}` and `{workdir}`. The tool must write a TSV to
    `{output}` holding `id_column` and `padj_column`.
    """

    def __init__(
        self,
        command: Sequence[str],
        name: str = "command_line",
        id_column: str = "ID",
        padj_column: str = "padj",
        timeout: float | None = None,
    ):
        if isinstance(command, str) or not command:
            raise ValueError("command must be a non-empty argv list.")
        self.command = [str(part) for part in command]
        self.name = str(name)
        self.id_column = str(id_column)
        self.padj_column = str(padj_column)
        self.timeout = None if timeout is None else float(timeout)

    def __repr__(self) -> str:
        return f"CommandLineDetector(name={self.name!r}, command={self.command!r})"

    def detect(
        self, rna: pd.DataFrame, ribo: pd.DataFrame, design: pd.DataFrame
    ) -> pd.Series:
        counts, merged = merge_modalities(rna, ribo, design)
        with tempfile.TemporaryDirectory(prefix="ribobench_") as tmp:
            workdir = Path(tmp)
            paths = {
                "counts": workdir / "counts.tsv",
                "design": workdir / "design.tsv",
                "output": workdir / "result.tsv",
                "workdir": workdir,
            }
            write_count_table(counts, paths["counts"])
            merged.to_csv(paths["design"], sep="\t")
            argv = [part.format(**{k: str(v) for k, v in paths.items()}) for part in self.command]

            try:
                proc = subprocess.run(
                    argv,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise DetectorTimeout(
                    f"{self.name}: command exceeded {self.timeout:g}s."
                ) from exc
            except OSError as exc:
                raise DetectorFailure(f"{self.name}: could not start command: {exc}") from exc

            if proc.returncode != 0:
                tail = (proc.stderr or "").strip().splitlines()[-3:]
                raise DetectorFailure(
                    f"{self.name}: command exited with {proc.returncode}: {' | '.join(tail)}"
                )
            if not paths["output"].exists():
                raise DetectorFailure(f"{self.name}: command wrote no output table.")

            result = pd.read_csv(paths["output"], sep="\t")

        missing = [c for c in (self.id_column, self.padj_column) if c not in result.columns]
        if missing:
            raise DetectorFailure(f"{self.name}: output table missing columns {missing}.")
        return pd.Series(
            pd.to_numeric(result[self.padj_column], errors="coerce").to_numpy(dtype=float),
            index=result[self.id_column].astype(str).to_numpy(),
            name=self.name,
        )
