"""initial_catalog_threshold_config_identification_validation

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    # Product (catalog)
    op.create_table(
        "product",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("image_hash", sa.String(), nullable=True),
        sa.Column("brand_name", sa.String(), nullable=True),
        sa.Column("model_number", sa.String(), nullable=True),
        sa.Column("dominant_colors", sa.String(), nullable=True),
        sa.Column("logo_detection", _JSON, nullable=True),
        sa.Column("object_detection", _JSON, nullable=True),
        sa.Column("inferred_category", sa.String(), nullable=True),
        sa.Column("inferred_usage_tags", _JSON, nullable=True),
        sa.Column("image_tags", _JSON, nullable=True),
        sa.Column("image_embedding", _JSON, nullable=True),
        sa.Column("embedding_model", sa.String(), nullable=True),
        sa.Column("recognition_accuracy", sa.Float(), nullable=True),
        sa.Column("recognition_count", sa.Integer(), nullable=False),
        sa.Column("last_recognition_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_product_image_hash"), "product", ["image_hash"], unique=False)
    op.create_index(
        "ix_product_brand_model_category",
        "product",
        ["brand_name", "model_number", "inferred_category"],
        unique=False,
    )

    # ThresholdConfig (versioned; one active row)
    op.create_table(
        "threshold_config",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("barcode_min_confidence", sa.Float(), nullable=False),
        sa.Column("hash_min_confidence", sa.Float(), nullable=False),
        sa.Column("brand_model_min_confidence", sa.Float(), nullable=False),
        sa.Column("vector_similarity_min_confidence", sa.Float(), nullable=False),
        sa.Column("tag_category_min_confidence", sa.Float(), nullable=False),
        sa.Column("auto_approve_threshold", sa.Float(), nullable=False),
        sa.Column("manual_validation_threshold", sa.Float(), nullable=False),
        sa.Column("total_identifications", sa.Integer(), nullable=False),
        sa.Column("correct_identifications", sa.Integer(), nullable=False),
        sa.Column("false_positives", sa.Integer(), nullable=False),
        sa.Column("false_negatives", sa.Integer(), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("last_training_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("training_samples_count", sa.Integer(), nullable=False),
        sa.Column("model_version", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_threshold_config_is_active"), "threshold_config", ["is_active"], unique=False)

    # IdentificationValidation (append-only ledger)
    op.create_table(
        "identification_validation",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("image_hash", sa.String(), nullable=False),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("suggested_product_id", sa.Integer(), nullable=True),
        sa.Column("actual_product_id", sa.Integer(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False),
        sa.Column("similarity_score", sa.Float(), nullable=True),
        sa.Column("was_correct", sa.Boolean(), nullable=False),
        sa.Column("correction_type", sa.String(length=32), nullable=False),
        sa.Column("validated_by", sa.Integer(), nullable=False),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("feedback_notes", sa.String(), nullable=True),
        sa.Column("validation_source", sa.String(length=32), nullable=False),
        sa.Column("related_sale_id", sa.Integer(), nullable=True),
        sa.Column("related_stock_id", sa.Integer(), nullable=True),
        sa.Column("metadata", _JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_identification_validation_created_at",
        "identification_validation",
        ["created_at"],
        unique=False,
    )
    op.create_index(
        "ix_identification_validation_match_type",
        "identification_validation",
        ["match_type"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_identification_validation_match_type", table_name="identification_validation")
    op.drop_index("ix_identification_validation_created_at", table_name="identification_validation")
    op.drop_table("identification_validation")
    op.drop_index(op.f("ix_threshold_config_is_active"), table_name="threshold_config")
    op.drop_table("threshold_config")
    op.drop_index("ix_product_brand_model_category", table_name="product")
    op.drop_index(op.f("ix_product_image_hash"), table_name="product")
    op.drop_table("product")
