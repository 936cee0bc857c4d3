"""Grouping of per-object detections into product groups with quantity and mean confidence."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from product_match.matching.scoring import round_half_up
from product_match.matching.types import CatalogKey, DetectedProductGroup, DetectedProductMatch

logger = logging.getLogger(__name__)

CONFIRMATION_THRESHOLD = Decimal("0.60")


def _mean_confidence(detections: Iterable[DetectedProductMatch]) -> Decimal:
    values = [Decimal(str(d.confidence)) for d in detections]
    return round_half_up(sum(values, Decimal(0)) / Decimal(len(values)))


def _make_group(key: CatalogKey, detections: list[DetectedProductMatch]) -> DetectedProductGroup:
    mean = _mean_confidence(detections)
    return DetectedProductGroup(
        key=key,
        product=detections[0].product,
        quantity=len(detections),
        average_confidence=float(mean),
        detections=tuple(detections),
        is_confirmed=mean >= CONFIRMATION_THRESHOLD,
    )


def group_detections(
    matches: list[DetectedProductMatch], group_by_product: bool = True
) -> list[DetectedProductGroup]:
    """
    Merge detections that resolved to the same catalog key; placeholders have unique keys and
    never merge. Without grouping every detection is its own group. Groups keep first-seen order.
    """
    if not group_by_product:
        return [_make_group(m.key, [m]) for m in matches]
    buckets: dict[CatalogKey, list[DetectedProductMatch]] = {}
    for m in matches:
        buckets.setdefault(m.key, []).append(m)
    groups = [_make_group(key, detections) for key, detections in buckets.items()]
    for g in groups:
        logger.debug("Group %s x%s (mean confidence %.4f)", g.product.name, g.quantity, g.average_confidence)
    return groups


def filter_and_sort(
    groups: list[DetectedProductGroup], min_confidence: float | None = None
) -> list[DetectedProductGroup]:
    """Drop groups below min_confidence (when given) and sort by mean confidence, highest first."""
    if min_confidence is not None:
        groups = [g for g in groups if g.average_confidence >= min_confidence]
    return sorted(groups, key=lambda g: g.average_confidence, reverse=True)
