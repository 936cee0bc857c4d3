"""Exact-field matcher: brand/model/category lookup, scoring, tag-overlap tie-break."""

import logging

from product_match.ai.schema import VisionResult
from product_match.matching.protocols import CatalogStore
from product_match.matching.scoring import format_percent, score_candidate
from product_match.matching.types import IdentificationMatch, ScoredCandidate
from product_match.models.entities import MatchType

logger = logging.getLogger(__name__)


def _product_tags(candidate: ScoredCandidate) -> set[str]:
    return candidate.product.tag_set()


def disambiguate_by_tags(candidates: list[ScoredCandidate], vision: VisionResult) -> ScoredCandidate:
    """
    Pick the candidate sharing the most tags with the image (first wins a tie).
    With no image tags, pick the highest total similarity instead.
    """
    image_tags = vision.tag_set
    if not image_tags:
        return max(candidates, key=lambda c: c.total_similarity)
    best = candidates[0]
    best_overlap = len(image_tags & _product_tags(best))
    for candidate in candidates[1:]:
        overlap = len(image_tags & _product_tags(candidate))
        logger.debug("Candidate %s: %s matching tags", candidate.product.id, overlap)
        if overlap > best_overlap:
            best, best_overlap = candidate, overlap
    return best


def build_details(candidate: ScoredCandidate) -> str:
    parts = [f"base {format_percent(candidate.base_similarity)}"]
    if candidate.logos_bonus > 0:
        parts.append(f"logos +{format_percent(candidate.logos_bonus)}")
    if candidate.objects_bonus > 0:
        parts.append(f"objects +{format_percent(candidate.objects_bonus)}")
    return f"Vision field match ({', '.join(parts)})"


def to_match(candidate: ScoredCandidate) -> IdentificationMatch:
    return IdentificationMatch(
        product=candidate.product,
        confidence=min(1.0, candidate.total_similarity),
        match_type=MatchType.vision_match,
        details=build_details(candidate),
        similarity=candidate.total_similarity,
        metadata={
            "match_method": "vision_fields",
            "base_similarity": candidate.base_similarity,
            "logos_bonus": candidate.logos_bonus,
            "objects_bonus": candidate.objects_bonus,
            "total_similarity": candidate.total_similarity,
            "matching_logos": list(candidate.matching_logos),
            "matching_objects": list(candidate.matching_objects),
        },
    )


class ExactFieldMatcher:
    """Looks up catalog entries equal on brand, model and category and returns at most one match."""

    def __init__(self, catalog: CatalogStore) -> None:
        self._catalog = catalog

    async def match(self, vision: VisionResult) -> IdentificationMatch | None:
        candidates = await self._catalog.find_by_exact_fields(
            vision.brand_name, vision.model_number, vision.inferred_category
        )
        if not candidates:
            logger.info(
                "No exact-field candidates for brand=%s model=%s category=%s",
                vision.brand_name,
                vision.model_number,
                vision.inferred_category,
            )
            return None
        scored = [score_candidate(p, vision) for p in candidates]
        if len(scored) == 1:
            best = scored[0]
        else:
            logger.info("%s exact-field candidates; breaking tie by tags", len(scored))
            best = disambiguate_by_tags(scored, vision)
        logger.info(
            "Exact-field match: product %s (%s)", best.product.id, format_percent(best.total_similarity)
        )
        return to_match(best)
