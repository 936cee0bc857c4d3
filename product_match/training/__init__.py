"""Threshold learning from human validations."""

from product_match.training.threshold_controller import (
    MatchTypeMetrics,
    ThresholdController,
    increment_version,
)
from product_match.training.validation_service import AccuracyMetrics, ValidationService

__all__ = [
    "AccuracyMetrics",
    "MatchTypeMetrics",
    "ThresholdController",
    "ValidationService",
    "increment_version",
]
