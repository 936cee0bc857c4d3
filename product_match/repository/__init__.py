"""Repository layer: database access only. No ORM calls in business logic."""

from product_match.repository.catalog_repo import CatalogRepository
from product_match.repository.threshold_config_repo import ThresholdConfigRepository
from product_match.repository.validation_repo import ValidationRepository

__all__ = [
    "CatalogRepository",
    "ThresholdConfigRepository",
    "ValidationRepository",
]
