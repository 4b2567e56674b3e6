"""Command-line interface for ribobench benchmark runs."""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
from typing import Iterable

import pandas as pd

from ribobench.config import load_benchmark_config
from ribobench.diagnostics import BatchPCAObserver
from ribobench.exceptions import EstimationError
from ribobench.pipeline.io import setup_logger, write_benchmark_outputs, write_json
from ribobench.pipeline.parallel import BACKENDS
from ribobench.pipeline.runner import mean_auc, run_benchmark


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Benchmark differential Ribo/RNA detectors on simulated counts"
    )
    parser.add_argument("--config", required=True, help="Path to benchmark JSON config")
    parser.add_argument("--outdir", default="ribobench_out", help="Output directory")
    parser.add_argument("--n_jobs", type=int, default=1, help="Parallel trial workers")
    parser.add_argument(
        "--backend", default="loky", choices=sorted(BACKENDS), help="joblib backend"
    )
    parser.add_argument("--master_seed", type=int, default=None, help="Override masterSeed")
    parser.add_argument("--num_trials", type=int, default=None, help="Override numTrials")
    parser.add_argument(
        "--batch_pca",
        action="store_true",
        help="Record per-trial PCA before/after batch removal",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None) -> int:
    """Run a benchmark from a JSON config.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success, 1 if the reference fit failed or no trial
        completed, 2 for invalid config).
    """
    args = _parse_args(argv)
    outdir = Path(args.outdir)
    logger = setup_logger(outdir / "logs" / "ribobench.log", "ribobench")

    try:
        config = load_benchmark_config(args.config)
        overrides = {}
        if args.master_seed is not None:
            overrides["master_seed"] = args.master_seed
        if args.num_trials is not None:
            overrides["num_trials"] = args.num_trials
        if overrides:
            config = replace(config, **overrides)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    observers = [BatchPCAObserver()] if args.batch_pca else []
    try:
        result = run_benchmark(
            config,
            n_jobs=args.n_jobs,
            backend=args.backend,
            observers=observers,
            logger=logger,
        )
    except EstimationError as exc:
        logger.error("Reference fit failed: %s", exc)
        return 1

    write_benchmark_outputs(result, outdir)
    write_json(outdir / "config.json", config.to_dict())
    if result.diagnostics:
        frames = [
            payload["batch_pca"].assign(trial_index=idx)
            for idx, payload in sorted(result.diagnostics.items())
            if "batch_pca" in payload
        ]
        if frames:
            pd.concat(frames, ignore_index=True).to_csv(
                outdir / "diagnostics_batch_pca.csv", index=False
            )

    for det, auc in mean_auc(result).items():
        logger.info("detector=%s partial_auc=%.4f", det, auc)
    logger.info("Results written to %s", outdir.as_posix())
    return 0 if result.n_completed > 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
