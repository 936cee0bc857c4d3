"""
Feedback-driven threshold controller.

After 100 validations newer than the latest training, per-match-type accuracy over the most
recent records nudges the learned floors (brand/model, vector similarity, tag/category) by a
fixed step: accuracy >= 95% loosens a floor, accuracy < 90% tightens it. Floors stay within
[0.50, 0.99]. Each adjustment produces a new, inactive configuration whose version follows the
highest existing one; activation is separate.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from product_match.matching.protocols import ThresholdConfigStore, ValidationStore
from product_match.matching.scoring import round_half_up
from product_match.models.entities import (
    CorrectionType,
    IdentificationValidation,
    MatchType,
    ThresholdConfig,
)

logger = logging.getLogger(__name__)

TARGET_ACCURACY = Decimal("0.90")
HIGH_ACCURACY = Decimal("0.95")
MIN_VALIDATIONS_FOR_TRAINING = 100
MIN_SAMPLES_PER_TYPE = 10
THRESHOLD_ADJUSTMENT_STEP = Decimal("0.02")
MAX_THRESHOLD = Decimal("0.99")
MIN_THRESHOLD = Decimal("0.50")
RECENT_VALIDATIONS_LIMIT = 1000
FALLBACK_VERSION = "1.1"

# match type -> ThresholdConfig attribute holding its floor; barcode and hash floors are never learned
THRESHOLD_FIELDS: dict[str, str] = {
    MatchType.brand_model.value: "brand_model_min_confidence",
    MatchType.vector_similarity.value: "vector_similarity_min_confidence",
    MatchType.tag_category.value: "tag_category_min_confidence",
}


@dataclass(frozen=True)
class MatchTypeMetrics:
    match_type: str
    total: int
    correct: int
    accuracy: float
    average_confidence: float


def metrics_by_match_type(records: list[IdentificationValidation]) -> dict[str, MatchTypeMetrics]:
    """Group records by match type and compute accuracy and mean confidence."""
    grouped: dict[str, list[IdentificationValidation]] = defaultdict(list)
    for r in records:
        grouped[r.match_type].append(r)
    result: dict[str, MatchTypeMetrics] = {}
    for match_type, items in grouped.items():
        total = len(items)
        correct = sum(1 for r in items if r.was_correct)
        confidence_sum = sum((Decimal(str(r.confidence_score)) for r in items), Decimal(0))
        result[match_type] = MatchTypeMetrics(
            match_type=match_type,
            total=total,
            correct=correct,
            accuracy=float(round_half_up(Decimal(correct) / Decimal(total))),
            average_confidence=float(round_half_up(confidence_sum / Decimal(total))),
        )
    return result


def adjust_threshold(current: float, metrics: MatchTypeMetrics | None, name: str) -> float:
    """Return the new floor for one match type; unchanged below MIN_SAMPLES_PER_TYPE samples."""
    if metrics is None or metrics.total < MIN_SAMPLES_PER_TYPE:
        logger.debug("%s: not enough samples, keeping %s", name, current)
        return current
    accuracy = Decimal(metrics.correct) / Decimal(metrics.total)
    value = Decimal(str(current))
    if accuracy >= HIGH_ACCURACY:
        value -= THRESHOLD_ADJUSTMENT_STEP
        logger.info("%s: accuracy %.4f, lowering floor %s -> %s", name, accuracy, current, value)
    elif accuracy < TARGET_ACCURACY:
        value += THRESHOLD_ADJUSTMENT_STEP
        logger.info("%s: accuracy %.4f, raising floor %s -> %s", name, accuracy, current, value)
    else:
        logger.info("%s: accuracy %.4f within target band, keeping %s", name, accuracy, current)
    if value > MAX_THRESHOLD:
        logger.warning("%s: floor above maximum, clamping to %s", name, MAX_THRESHOLD)
        value = MAX_THRESHOLD
    elif value < MIN_THRESHOLD:
        logger.warning("%s: floor below minimum, clamping to %s", name, MIN_THRESHOLD)
        value = MIN_THRESHOLD
    return float(round_half_up(value))


def _version_key(version: str) -> tuple[int, int]:
    """'2.3' -> (2, 3); unparseable versions sort first."""
    try:
        parts = version.split(".")
        return int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
    except (ValueError, IndexError):
        return -1, -1


def increment_version(current: str) -> str:
    """'1.4' -> '1.5'; '1.9' -> '2.0'; unparseable -> '1.1'."""
    major, minor = _version_key(current)
    if major < 0:
        logger.warning("Unparseable model version %r; using %s", current, FALLBACK_VERSION)
        return FALLBACK_VERSION
    minor += 1
    if minor >= 10:
        return f"{major + 1}.0"
    return f"{major}.{minor}"


def next_version(versions: list[str]) -> str:
    """Increment the highest of the existing versions."""
    if not versions:
        return FALLBACK_VERSION
    return increment_version(max(versions, key=_version_key))


class ThresholdController:
    """Decides when to retrain and derives the next threshold configuration from the ledger."""

    def __init__(self, validations: ValidationStore, configs: ThresholdConfigStore) -> None:
        self._validations = validations
        self._configs = configs

    async def should_retrain(self) -> bool:
        """True once 100 validations arrived after the newest training of any configuration."""
        since = await self._configs.latest_training_at()
        count = await self._validations.count_since(since)
        if count >= MIN_VALIDATIONS_FOR_TRAINING:
            logger.info("%s validations since last training; retraining", count)
            return True
        logger.debug(
            "%s validations since last training; %s required", count, MIN_VALIDATIONS_FOR_TRAINING
        )
        return False

    async def adjust_thresholds(self) -> ThresholdConfig:
        """
        Build the next configuration from the most recent validations. Nothing is persisted.
        With no validations at all, the active configuration is returned unchanged.
        """
        active = await self._configs.get_active()
        records = await self._validations.recent_records(RECENT_VALIDATIONS_LIMIT)
        if not records:
            logger.warning("No validations to learn from; keeping configuration v%s", active.model_version)
            return active

        metrics = metrics_by_match_type(records)
        floors = {
            field: adjust_threshold(getattr(active, field), metrics.get(match_type), field)
            for match_type, field in THRESHOLD_FIELDS.items()
        }

        total = len(records)
        correct = sum(1 for r in records if r.was_correct)
        accuracy = float(round_half_up(Decimal(correct) / Decimal(total)))
        now = datetime.now(timezone.utc)
        version = next_version(await self._configs.model_versions())
        logger.info("Global accuracy %.4f over %s validations; next version %s", accuracy, total, version)

        return ThresholdConfig(
            **floors,
            barcode_min_confidence=active.barcode_min_confidence,
            hash_min_confidence=active.hash_min_confidence,
            auto_approve_threshold=active.auto_approve_threshold,
            manual_validation_threshold=active.manual_validation_threshold,
            total_identifications=total,
            correct_identifications=correct,
            false_positives=sum(1 for r in records if r.correction_type == CorrectionType.false_positive),
            false_negatives=sum(1 for r in records if r.correction_type == CorrectionType.false_negative),
            accuracy=accuracy,
            last_training_at=now,
            training_samples_count=total,
            model_version=version,
            is_active=False,
            created_at=now,
            updated_at=now,
        )

    async def check_and_retrain(self) -> ThresholdConfig | None:
        """Retrain and persist the new (inactive) configuration when enough validations accumulated."""
        if not await self.should_retrain():
            return None
        config = await self.adjust_thresholds()
        if config.id is not None:
            # nothing to learn from; the active configuration came back unchanged
            return None
        saved = await self._configs.save(config)
        logger.info("Retraining complete; saved configuration v%s (id=%s)", saved.model_version, saved.id)
        return saved
