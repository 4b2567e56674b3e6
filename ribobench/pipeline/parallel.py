"""Deterministic parallel helpers for trial fan-out."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from joblib import Parallel, delayed

T = TypeVar("T")
R = TypeVar("R")

BACKENDS = {"loky", "multiprocessing", "threading"}


def _item_seed(item: Any) -> int | None:
    if isinstance(item, dict):
        seed = item.get("seed")
    else:
        seed = getattr(item, "seed", None)
    return int(seed) if seed is not None else None


def _validate_items_have_seed(items: list[T]) -> None:
    missing = [idx for idx, item in enumerate(items) if _item_seed(item) is None]
    if missing:
        head = ",".join(str(i) for i in missing[:5])
        raise ValueError(
            "parallel_map requires every item to carry a deterministic `seed` "
            f"(missing at indices: {head}{'...' if len(missing) > 5 else ''})."
        )


def _call_indexed(func: Callable[[T], R], indexed: tuple[int, T]) -> tuple[int, R]:
    idx, item = indexed
    return idx, func(item)


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    *,
    n_jobs: int = 1,
    backend: str = "loky",
    chunk_size: int = 1,
    logger: logging.Logger | None = None,
) -> list[R]:
    """Apply `func` to items with deterministic, order-stable aggregation.

    Notes:
    - Every item must include a deterministic `seed`.
    - Output order is always aligned to input order, independent of scheduling.
    """
    log = logger or logging.getLogger("ribobench")
    seq = list(items)
    if not seq:
        return []
    _validate_items_have_seed(seq)
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend '{backend}'. Expected one of {sorted(BACKENDS)}.")

    jobs = max(1, int(n_jobs))
    if jobs == 1 or len(seq) == 1:
        log.info("serial execution: n_items=%d", len(seq))
        return [func(item) for item in seq]

    log.info(
        "parallel execution: n_items=%d n_jobs=%d backend=%s chunk_size=%d",
        len(seq),
        jobs,
        backend,
        max(1, int(chunk_size)),
    )
    rows = Parallel(n_jobs=jobs, backend=backend, batch_size=max(1, int(chunk_size)))(
        delayed(_call_indexed)(func, pair) for pair in enumerate(seq)
    )
    rows.sort(key=lambda x: x[0])
    return [row for _, row in rows]
