"""Name-based construction of detectors from configuration specs."""

from __future__ import annotations

from typing import Any, Mapping

from ribobench.detectors.base import Detector
from ribobench.detectors.external import CommandLineDetector
from ribobench.detectors.interaction import InteractionModelDetector
from ribobench.detectors.ratio import LogRatioDetector
from ribobench.exceptions import ConfigurationError

DETECTOR_REGISTRY: dict[str, type] = {
    "log_ratio": LogRatioDetector,
    "interaction_lm": InteractionModelDetector,
    "command_line": CommandLineDetector,
}


def build_detector(spec: str | Mapping[str, Any] | Detector) -> Detector:
    """Build a detector from a registry name or `{"type", "name", "params"}` spec."""
    if isinstance(spec, Detector):
        return spec
    if isinstance(spec, str):
        spec = {"type": spec}
    if not isinstance(spec, Mapping):
        raise ConfigurationError("detectors", f"unsupported detector spec {spec!r}.")

    kind = str(spec.get("type", spec.get("name", "")))
    if kind not in DETECTOR_REGISTRY:
        raise ConfigurationError(
            "detectors",
            f"unknown detector type '{kind}'. Known: {sorted(DETECTOR_REGISTRY)}",
        )
    params = dict(spec.get("params", {}) or {})
    params.setdefault("name", str(spec.get("name", kind)))
    try:
        return DETECTOR_REGISTRY[kind](**params)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("detectors", f"cannot build '{kind}': {exc}") from exc
