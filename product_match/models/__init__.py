"""SQLModel table/entity definitions. Used by Repository layer only."""

from product_match.models.entities import (
    CorrectionType,
    IdentificationStatus,
    IdentificationValidation,
    MatchType,
    Product,
    ThresholdConfig,
    ValidationSource,
)

__all__ = [
    "CorrectionType",
    "IdentificationStatus",
    "IdentificationValidation",
    "MatchType",
    "Product",
    "ThresholdConfig",
    "ValidationSource",
]
