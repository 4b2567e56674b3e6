"""Error taxonomy for benchmark runs."""

from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for all ribobench errors."""


class ConfigurationError(BenchmarkError, ValueError):
    """Invalid benchmark configuration, raised before any simulation runs."""

    def __init__(self, field: str, reason: str):
        self.field = str(field)
        self.reason = str(reason)
        super().__init__(f"Invalid configuration for '{self.field}': {self.reason}")


class EstimationError(BenchmarkError):
    """Distribution fit (or simulation from a fit) could not be computed."""


class EmptyFeatureSetError(BenchmarkError):
    """No feature survived low-count filtering in a trial."""


class DetectorFailure(BenchmarkError):
    """A detector raised or returned unusable output."""


class DetectorTimeout(DetectorFailure):
    """A detector did not return within its time budget."""
