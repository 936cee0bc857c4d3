"""Validation service: records human judgments, reports accuracy and drives retraining."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from product_match.core.errors import ConfigNotFoundError
from product_match.matching.protocols import ThresholdConfigStore, ValidationStore
from product_match.matching.scoring import round_half_up
from product_match.models.entities import (
    CorrectionType,
    IdentificationValidation,
    ThresholdConfig,
    ValidationSource,
)
from product_match.training.threshold_controller import ThresholdController

logger = logging.getLogger(__name__)

NO_MATCH_TYPE = "NONE"


@dataclass(frozen=True)
class AccuracyMetrics:
    total: int
    correct: int
    false_positives: int
    false_negatives: int
    accuracy: float


class ValidationService:
    """
    Appends validations to the ledger. Every append is followed by a retraining check, so the
    controller sees each new judgment as soon as it is stored.
    """

    def __init__(
        self,
        validations: ValidationStore,
        configs: ThresholdConfigStore,
        controller: ThresholdController | None = None,
    ) -> None:
        self._validations = validations
        self._configs = configs
        self._controller = controller or ThresholdController(validations, configs)

    async def save_validation(self, record: IdentificationValidation) -> IdentificationValidation:
        logger.info(
            "Saving validation: image=%s... correct=%s correction=%s",
            record.image_hash[:16],
            record.was_correct,
            record.correction_type.value,
        )
        saved = await self._validations.append(record)
        await self._controller.check_and_retrain()
        return saved

    async def record_correct(
        self,
        image_hash: str,
        product_id: int,
        confidence: float,
        match_type: str,
        validated_by: int,
        source: ValidationSource,
        *,
        similarity: float | None = None,
        image_url: str | None = None,
        related_sale_id: int | None = None,
        related_stock_id: int | None = None,
        notes: str | None = None,
    ) -> IdentificationValidation:
        """The suggested product was the right one."""
        return await self.save_validation(
            IdentificationValidation(
                image_hash=image_hash,
                image_url=image_url,
                suggested_product_id=product_id,
                actual_product_id=product_id,
                confidence_score=confidence,
                match_type=match_type,
                similarity_score=similarity,
                was_correct=True,
                correction_type=CorrectionType.correct,
                validated_by=validated_by,
                feedback_notes=notes,
                validation_source=source,
                related_sale_id=related_sale_id,
                related_stock_id=related_stock_id,
            )
        )

    async def record_false_positive(
        self,
        image_hash: str,
        suggested_product_id: int,
        actual_product_id: int | None,
        confidence: float,
        match_type: str,
        validated_by: int,
        source: ValidationSource,
        *,
        image_url: str | None = None,
        related_sale_id: int | None = None,
        related_stock_id: int | None = None,
        notes: str | None = None,
    ) -> IdentificationValidation:
        """An existing product was suggested but the image showed something else (or a new product)."""
        return await self.save_validation(
            IdentificationValidation(
                image_hash=image_hash,
                image_url=image_url,
                suggested_product_id=suggested_product_id,
                actual_product_id=actual_product_id,
                confidence_score=confidence,
                match_type=match_type,
                was_correct=False,
                correction_type=CorrectionType.false_positive,
                validated_by=validated_by,
                feedback_notes=notes,
                validation_source=source,
                related_sale_id=related_sale_id,
                related_stock_id=related_stock_id,
            )
        )

    async def record_false_negative(
        self,
        image_hash: str,
        actual_product_id: int,
        validated_by: int,
        source: ValidationSource,
        *,
        image_url: str | None = None,
        related_sale_id: int | None = None,
        related_stock_id: int | None = None,
        notes: str | None = None,
    ) -> IdentificationValidation:
        """Nothing was suggested although the product was in the catalog."""
        return await self.save_validation(
            IdentificationValidation(
                image_hash=image_hash,
                image_url=image_url,
                suggested_product_id=None,
                actual_product_id=actual_product_id,
                confidence_score=0.0,
                match_type=NO_MATCH_TYPE,
                was_correct=False,
                correction_type=CorrectionType.false_negative,
                validated_by=validated_by,
                feedback_notes=notes,
                validation_source=source,
                related_sale_id=related_sale_id,
                related_stock_id=related_stock_id,
            )
        )

    async def record_improved(
        self,
        image_hash: str,
        suggested_product_id: int | None,
        actual_product_id: int,
        confidence: float,
        match_type: str,
        validated_by: int,
        source: ValidationSource,
        *,
        image_url: str | None = None,
        related_sale_id: int | None = None,
        related_stock_id: int | None = None,
        notes: str | None = None,
    ) -> IdentificationValidation:
        """The suggestion was partly right and a human corrected it."""
        return await self.save_validation(
            IdentificationValidation(
                image_hash=image_hash,
                image_url=image_url,
                suggested_product_id=suggested_product_id,
                actual_product_id=actual_product_id,
                confidence_score=confidence,
                match_type=match_type,
                was_correct=False,
                correction_type=CorrectionType.improved,
                validated_by=validated_by,
                feedback_notes=notes,
                validation_source=source,
                related_sale_id=related_sale_id,
                related_stock_id=related_stock_id,
            )
        )

    async def recent(self, limit: int = 50) -> list[IdentificationValidation]:
        return await self._validations.recent_records(limit)

    async def accuracy_metrics(self) -> AccuracyMetrics:
        total = await self._validations.count_all()
        correct = await self._validations.count_correct()
        false_positives = await self._validations.count_by_correction(CorrectionType.false_positive)
        false_negatives = await self._validations.count_by_correction(CorrectionType.false_negative)
        accuracy = float(round_half_up(Decimal(correct) / Decimal(total))) if total else 0.0
        logger.info("Accuracy metrics: total=%s correct=%s accuracy=%.4f", total, correct, accuracy)
        return AccuracyMetrics(
            total=total,
            correct=correct,
            false_positives=false_positives,
            false_negatives=false_negatives,
            accuracy=accuracy,
        )

    async def trigger_retraining(self) -> ThresholdConfig:
        """Adjust, persist and activate a new configuration regardless of the validation count."""
        logger.info("Manual retraining requested")
        config = await self._controller.adjust_thresholds()
        if config.id is None:
            config = await self._configs.save(config)
        if config.id is None:
            raise ConfigNotFoundError(config.id)
        activated = await self._configs.activate(config.id)
        logger.info("Manual retraining complete; active configuration v%s", activated.model_version)
        return activated
