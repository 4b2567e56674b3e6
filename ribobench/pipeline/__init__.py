"""Trial and benchmark orchestration entrypoints."""


def run_benchmark(*args, **kwargs):
    """Lazy wrapper to keep detector imports free of runner dependencies."""
    from ribobench.pipeline.runner import run_benchmark as _run_benchmark

    return _run_benchmark(*args, **kwargs)


__all__ = ["run_benchmark"]
