"""Pluggable detectors and the adapter that runs them."""

from ribobench.detectors.adapter import detector_names, realign_scores, run_detectors
from ribobench.detectors.base import Detector
from ribobench.detectors.external import CommandLineDetector
from ribobench.detectors.interaction import InteractionModelDetector
from ribobench.detectors.ratio import LogRatioDetector
from ribobench.detectors.registry import DETECTOR_REGISTRY, build_detector

__all__ = [
    "Detector",
    "DETECTOR_REGISTRY",
    "CommandLineDetector",
    "InteractionModelDetector",
    "LogRatioDetector",
    "build_detector",
    "detector_names",
    "realign_scores",
    "run_detectors",
]
