"""SQLModel table/entity definitions: catalog products, threshold configurations, validations.

JSON columns use JSONB on PostgreSQL and the generic JSON type elsewhere (SQLite in tests).
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Column, Index
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

_log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_column(name: str | None = None) -> Column:
    json_type = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")
    if name is not None:
        return Column(name, json_type)
    return Column(json_type)


def _enum_column(enum_cls: type[Enum], default: Enum) -> Column:
    """Stored as the enum *value* in a plain VARCHAR (no native DB enum type)."""
    return Column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=32,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=default,
    )


# --- Enums (stored as strings in DB) ---


class MatchType(str, Enum):
    """How an identification was produced."""

    exact_barcode = "EXACT_BARCODE"
    exact_hash = "EXACT_HASH"
    brand_model = "BRAND_MODEL"
    vision_match = "VISION_MATCH"
    vector_similarity = "VECTOR_SIMILARITY"
    tag_category = "TAG_CATEGORY"
    multi_factor = "MULTI_FACTOR"
    temporary = "TEMPORARY"


class IdentificationStatus(str, Enum):
    identified = "IDENTIFIED"
    partial_match = "PARTIAL_MATCH"
    new_product_created = "NEW_PRODUCT_CREATED"
    error = "ERROR"


class CorrectionType(str, Enum):
    correct = "CORRECT"
    false_positive = "FALSE_POSITIVE"  # identified as existing, was actually new/other
    false_negative = "FALSE_NEGATIVE"  # not identified, but it existed
    improved = "IMPROVED"


class ValidationSource(str, Enum):
    sale = "SALE"
    stock = "STOCK"
    manual = "MANUAL"


# --- Tables ---


class Product(SQLModel, table=True):
    """One catalog entry. Logo/object detections are stored as structured JSON blobs."""

    __tablename__ = "product"
    __table_args__ = (
        Index("ix_product_brand_model_category", "brand_name", "model_number", "inferred_category"),
    )

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    description: str | None = Field(default=None)
    category_id: int = 1
    image_url: str | None = Field(default=None)
    image_hash: str | None = Field(default=None, index=True)

    brand_name: str | None = Field(default=None)
    model_number: str | None = Field(default=None)
    dominant_colors: str | None = Field(default=None)
    logo_detection: dict[str, Any] | None = Field(default=None, sa_column=_json_column())
    object_detection: dict[str, Any] | None = Field(default=None, sa_column=_json_column())
    inferred_category: str | None = Field(default=None)
    inferred_usage_tags: list[str] | None = Field(default=None, sa_column=_json_column())
    image_tags: list[str] | None = Field(default=None, sa_column=_json_column())

    image_embedding: list[float] | None = Field(default=None, sa_column=_json_column())
    embedding_model: str | None = Field(default=None)
    recognition_accuracy: float | None = Field(default=None)
    recognition_count: int = 0
    last_recognition_at: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def stored_logos(self) -> list[str]:
        """Logos from logo_detection['detected_logos'], or [] if absent/malformed."""
        return _detection_list(self.logo_detection, "detected_logos", self.id)

    def stored_objects(self) -> list[str]:
        """Objects from object_detection['detected_objects'], or [] if absent/malformed."""
        return _detection_list(self.object_detection, "detected_objects", self.id)

    def tag_set(self) -> set[str]:
        """Lowercase union of inferred usage tags and image tags."""
        return {t.lower() for t in [*(self.inferred_usage_tags or []), *(self.image_tags or [])]}


def _detection_list(blob: Any, key: str, product_id: int | None) -> list[str]:
    if blob is None or blob == {}:
        return []
    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except json.JSONDecodeError as e:
            _log.warning("Product %s: malformed %s blob: %s", product_id, key, e)
            return []
    if not isinstance(blob, dict):
        _log.warning("Product %s: %s blob is not an object", product_id, key)
        return []
    values = blob.get(key) or []
    if not isinstance(values, list):
        _log.warning("Product %s: %s is not a list", product_id, key)
        return []
    return [str(v) for v in values]


class ThresholdConfig(SQLModel, table=True):
    """
    Versioned threshold bundle. Exactly one row has is_active = true; new versions are
    appended by retraining and never mutate older rows (only is_active flips on activation).
    """

    __tablename__ = "threshold_config"

    id: int | None = Field(default=None, primary_key=True)
    barcode_min_confidence: float = 0.95
    hash_min_confidence: float = 1.0
    brand_model_min_confidence: float = 0.85
    vector_similarity_min_confidence: float = 0.75
    tag_category_min_confidence: float = 0.60
    auto_approve_threshold: float = 0.95
    manual_validation_threshold: float = 0.75

    total_identifications: int = 0
    correct_identifications: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    accuracy: float | None = Field(default=None)
    last_training_at: datetime | None = Field(default=None)
    training_samples_count: int = 0

    model_version: str = "1.0"
    is_active: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class IdentificationValidation(SQLModel, table=True):
    """One human judgment of a past identification. Append-only."""

    __tablename__ = "identification_validation"
    __table_args__ = (
        Index("ix_identification_validation_created_at", "created_at"),
        Index("ix_identification_validation_match_type", "match_type"),
    )

    id: int | None = Field(default=None, primary_key=True)
    image_hash: str = Field(nullable=False)
    image_url: str | None = Field(default=None)
    suggested_product_id: int | None = Field(default=None)
    actual_product_id: int | None = Field(default=None)
    confidence_score: float = 0.0
    match_type: str = Field(nullable=False)
    similarity_score: float | None = Field(default=None)
    was_correct: bool = False
    correction_type: CorrectionType = Field(
        default=CorrectionType.correct,
        sa_column=_enum_column(CorrectionType, CorrectionType.correct),
    )
    validated_by: int = Field(nullable=False)
    validated_at: datetime = Field(default_factory=_utcnow)
    feedback_notes: str | None = Field(default=None)
    validation_source: ValidationSource = Field(
        default=ValidationSource.manual,
        sa_column=_enum_column(ValidationSource, ValidationSource.manual),
    )
    related_sale_id: int | None = Field(default=None)
    related_stock_id: int | None = Field(default=None)
    # DB column "metadata"; Python attr "extra_metadata" to avoid SQLAlchemy reserved name
    extra_metadata: dict[str, Any] | None = Field(default=None, sa_column=_json_column("metadata"))
    created_at: datetime = Field(default_factory=_utcnow)
