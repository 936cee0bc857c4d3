"""
Candidate scoring for exact-field matches.

A candidate that matched on brand, model and category starts at 0.60 and earns up to
0.20 each for overlapping detected logos and detected objects:

    bonus = 0.20 * round(matches / max(|image|, |stored|), 4)

Both lists empty counts as a full match; exactly one empty earns nothing. Arithmetic is
done in Decimal with HALF_UP rounding so scores are stable to 4 places.
"""

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from product_match.ai.schema import VisionResult
from product_match.matching.types import ScoredCandidate
from product_match.models.entities import Product

BASE_SIMILARITY = Decimal("0.60")
MAX_LOGOS_BONUS = Decimal("0.20")
MAX_OBJECTS_BONUS = Decimal("0.20")
MAX_TOTAL = Decimal("1.0")


def round_half_up(value: Decimal, places: int = 4) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def array_bonus(image_items: Sequence[str], stored_items: Sequence[str], max_bonus: Decimal) -> Decimal:
    """Proportional bonus for overlap between two string lists (case-insensitive)."""
    if not image_items and not stored_items:
        return max_bonus
    if not image_items or not stored_items:
        return Decimal(0)
    matches = len({s.lower() for s in image_items} & {s.lower() for s in stored_items})
    ratio = round_half_up(Decimal(matches) / Decimal(max(len(image_items), len(stored_items))))
    return round_half_up(max_bonus * ratio)


def matching_items(image_items: Sequence[str], stored_items: Sequence[str]) -> tuple[str, ...]:
    """Image-side names whose lowercase form appears in the stored list."""
    stored = {s.lower() for s in stored_items}
    return tuple(s for s in image_items if s.lower() in stored)


def score_candidate(product: Product, vision: VisionResult) -> ScoredCandidate:
    """Score one catalog product against one vision result. Pure; total is capped at 1.0."""
    stored_logos = product.stored_logos()
    stored_objects = product.stored_objects()
    logos_bonus = array_bonus(vision.detected_logos, stored_logos, MAX_LOGOS_BONUS)
    objects_bonus = array_bonus(vision.detected_objects, stored_objects, MAX_OBJECTS_BONUS)
    total = min(MAX_TOTAL, BASE_SIMILARITY + logos_bonus + objects_bonus)
    return ScoredCandidate(
        product=product,
        base_similarity=float(BASE_SIMILARITY),
        logos_bonus=float(logos_bonus),
        objects_bonus=float(objects_bonus),
        total_similarity=float(total),
        matching_logos=matching_items(vision.detected_logos, stored_logos),
        matching_objects=matching_items(vision.detected_objects, stored_objects),
    )


def format_percent(value: float) -> str:
    """0.8512 -> '85.1%'."""
    return f"{round_half_up(Decimal(str(value)) * 100, 1)}%"
