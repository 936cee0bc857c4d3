"""Tests for feedback-driven threshold adjustment and versioning."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from product_match.models.entities import CorrectionType, ThresholdConfig
from product_match.training.threshold_controller import (
    MatchTypeMetrics,
    ThresholdController,
    adjust_threshold,
    increment_version,
    metrics_by_match_type,
    next_version,
)
from tests.conftest import FakeConfigStore, FakeValidationStore, make_validation


def _metrics(total, correct):
    return MatchTypeMetrics(
        match_type="BRAND_MODEL",
        total=total,
        correct=correct,
        accuracy=correct / total,
        average_confidence=0.9,
    )


def _records(n, correct=None, match_type="BRAND_MODEL", created_at=None):
    correct = n if correct is None else correct
    return [make_validation(match_type, i < correct, created_at=created_at) for i in range(n)]


@pytest.mark.fast
def test_accuracy_in_target_band_keeps_floor():
    """11 of 12 correct (91.7%) is between 90% and 95%: no change."""
    assert adjust_threshold(0.85, _metrics(12, 11), "brand_model") == 0.85


@pytest.mark.fast
def test_high_accuracy_lowers_floor():
    """At or above 95% the floor drops by one step."""
    assert adjust_threshold(0.85, _metrics(20, 19), "brand_model") == 0.83


@pytest.mark.fast
def test_low_accuracy_raises_floor():
    """Below 90% the floor rises by one step."""
    assert adjust_threshold(0.75, _metrics(10, 8), "vector") == 0.77


@pytest.mark.fast
def test_too_few_samples_keeps_floor():
    """Fewer than 10 samples never move the floor."""
    assert adjust_threshold(0.85, _metrics(9, 0), "brand_model") == 0.85
    assert adjust_threshold(0.85, None, "brand_model") == 0.85


@pytest.mark.fast
def test_floor_is_clamped():
    """Floors stay within [0.50, 0.99]."""
    assert adjust_threshold(0.98, _metrics(10, 0), "barcode") == 0.99
    assert adjust_threshold(1.0, _metrics(10, 0), "hash") == 0.99
    assert adjust_threshold(0.51, _metrics(10, 10), "tag_category") == 0.50


@pytest.mark.fast
def test_increment_version():
    """Minor bumps roll over into the major at 10; garbage falls back to 1.1."""
    assert increment_version("1.0") == "1.1"
    assert increment_version("1.4") == "1.5"
    assert increment_version("1.9") == "2.0"
    assert increment_version("3") == "3.1"
    assert increment_version("x") == "1.1"
    assert increment_version("") == "1.1"


@pytest.mark.fast
def test_next_version_follows_highest_existing():
    """The next version increments the highest one on record, not the first or the active one."""
    assert next_version(["1.0", "1.9", "1.2"]) == "2.0"
    assert next_version(["2.1", "10.0", "x"]) == "10.1"
    assert next_version([]) == "1.1"


@pytest.mark.fast
def test_metrics_group_by_raw_match_type():
    """Each match type is measured on its own records."""
    records = _records(4, match_type="VISION_MATCH") + _records(3, correct=1, match_type="BRAND_MODEL")
    metrics = metrics_by_match_type(records)
    assert set(metrics) == {"VISION_MATCH", "BRAND_MODEL"}
    assert metrics["VISION_MATCH"].total == 4
    assert metrics["VISION_MATCH"].accuracy == 1.0
    assert metrics["BRAND_MODEL"].total == 3
    assert metrics["BRAND_MODEL"].correct == 1
    assert metrics["BRAND_MODEL"].accuracy == 0.3333


@pytest.mark.fast
def test_small_groups_are_not_pooled_into_brand_model():
    """Five wrong BRAND_MODEL plus five wrong VISION_MATCH records are two groups under 10: no change."""
    records = _records(5, correct=0, match_type="BRAND_MODEL") + _records(5, correct=0, match_type="VISION_MATCH")
    config = asyncio.run(ThresholdController(FakeValidationStore(records), FakeConfigStore()).adjust_thresholds())
    assert config.brand_model_min_confidence == 0.85


@pytest.mark.fast
def test_barcode_and_hash_floors_are_never_learned():
    """Plenty of wrong EXACT_HASH and EXACT_BARCODE records leave those floors as they were."""
    records = _records(12, correct=0, match_type="EXACT_HASH") + _records(12, correct=0, match_type="EXACT_BARCODE")
    config = asyncio.run(ThresholdController(FakeValidationStore(records), FakeConfigStore()).adjust_thresholds())
    assert config.hash_min_confidence == 1.0
    assert config.barcode_min_confidence == 0.95


@pytest.mark.fast
def test_should_retrain_needs_100_new_validations():
    """Retraining triggers at exactly 100 validations since the last training."""
    configs = FakeConfigStore()
    validations = FakeValidationStore(_records(99))
    controller = ThresholdController(validations, configs)
    assert asyncio.run(controller.should_retrain()) is False
    validations.records.extend(_records(1))
    assert asyncio.run(controller.should_retrain()) is True


@pytest.mark.fast
def test_should_retrain_counts_only_after_last_training():
    """Validations older than the active config's last training are not counted."""
    now = datetime.now(timezone.utc)
    configs = FakeConfigStore([ThresholdConfig(is_active=True, last_training_at=now)])
    validations = FakeValidationStore(_records(150, created_at=now - timedelta(hours=1)))
    assert asyncio.run(ThresholdController(validations, configs).should_retrain()) is False


@pytest.mark.fast
def test_should_retrain_counts_from_newest_inactive_training():
    """A saved but not yet activated retrain resets the count."""
    now = datetime.now(timezone.utc)
    configs = FakeConfigStore(
        [
            ThresholdConfig(model_version="1.0", is_active=True),
            ThresholdConfig(model_version="1.1", is_active=False, last_training_at=now),
        ]
    )
    validations = FakeValidationStore(_records(100, created_at=now - timedelta(minutes=5)) + _records(3))
    assert asyncio.run(ThresholdController(validations, configs).should_retrain()) is False


@pytest.mark.fast
def test_adjust_without_validations_returns_active():
    """No validations at all: the active configuration comes back unchanged."""
    configs = FakeConfigStore()
    controller = ThresholdController(FakeValidationStore(), configs)
    active = asyncio.run(configs.get_active())
    assert asyncio.run(controller.adjust_thresholds()) is active
    assert asyncio.run(controller.check_and_retrain()) is None


@pytest.mark.fast
def test_adjust_builds_next_inactive_version():
    """The next config carries adjusted floors, counts and the bumped version."""
    records = (
        _records(20, match_type="BRAND_MODEL")
        + _records(10, correct=5, match_type="VECTOR_SIMILARITY")
        + _records(5, correct=0, match_type="TAG_CATEGORY")
    )
    records[-1].correction_type = CorrectionType.false_negative
    configs = FakeConfigStore()
    config = asyncio.run(ThresholdController(FakeValidationStore(records), configs).adjust_thresholds())
    assert config.id is None
    assert config.is_active is False
    assert config.model_version == "1.1"
    assert config.brand_model_min_confidence == 0.83
    assert config.vector_similarity_min_confidence == 0.77
    assert config.tag_category_min_confidence == 0.60
    assert config.barcode_min_confidence == 0.95
    assert config.hash_min_confidence == 1.0
    assert config.auto_approve_threshold == 0.95
    assert config.total_identifications == 35
    assert config.correct_identifications == 25
    assert config.false_positives == 9
    assert config.false_negatives == 1
    assert config.accuracy == 0.7143
    assert config.training_samples_count == 35
    assert config.last_training_at is not None


@pytest.mark.fast
def test_check_and_retrain_saves_without_activating():
    """Enough validations produce a persisted, inactive configuration."""
    configs = FakeConfigStore()
    controller = ThresholdController(FakeValidationStore(_records(100)), configs)
    saved = asyncio.run(controller.check_and_retrain())
    assert saved is not None
    assert saved.id is not None
    assert saved.is_active is False
    assert saved.brand_model_min_confidence == 0.83
    active = [c for c in configs.configs if c.is_active]
    assert len(active) == 1
    assert active[0].model_version == "1.0"
