from __future__ import annotations

import logging

import pytest

from ribobench.pipeline.parallel import parallel_map
from ribobench.pipeline.seeding import rng_from_seed, stable_seed, trial_seed
from ribobench.pipeline.trial import TrialTask


def _square_seed(task: TrialTask) -> int:
    return task.seed * task.seed


def test_stable_seed_is_deterministic_and_token_sensitive():
    assert stable_seed(1, "trial", 0) == stable_seed(1, "trial", 0)
    assert stable_seed(1, "trial", 0) != stable_seed(1, "trial", 1)
    assert stable_seed(1, "trial", 0) != stable_seed(2, "trial", 0)
    assert 0 <= stable_seed(123, "x") < 2**32
    assert trial_seed(9, 4) == stable_seed(9, "trial", 4)


def test_rng_from_seed_reproduces_draws():
    assert rng_from_seed(5).integers(0, 1000, size=5).tolist() == rng_from_seed(
        5
    ).integers(0, 1000, size=5).tolist()


@pytest.mark.parametrize("n_jobs,backend", [(1, "loky"), (3, "threading")])
def test_parallel_map_preserves_input_order(n_jobs, backend):
    tasks = [TrialTask(trial_index=i, seed=trial_seed(0, i)) for i in range(7)]
    out = parallel_map(_square_seed, tasks, n_jobs=n_jobs, backend=backend)
    assert out == [t.seed * t.seed for t in tasks]


def test_parallel_map_requires_seeds_and_known_backend():
    with pytest.raises(ValueError, match="seed"):
        parallel_map(lambda x: x, [{"seed": 1}, {"value": 2}])
    with pytest.raises(ValueError, match="Unknown backend"):
        parallel_map(lambda x: x, [{"seed": 1}], backend="dask")
    assert parallel_map(lambda x: x, []) == []


def test_parallel_map_logs_execution_mode(caplog):
    caplog.set_level(logging.INFO, logger="ribobench")
    parallel_map(lambda x: x, [{"seed": 1}, {"seed": 2}], n_jobs=2, backend="threading")
    assert "parallel execution: n_items=2 n_jobs=2 backend=threading" in caplog.text
