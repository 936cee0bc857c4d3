"""Embedding fallback matcher: the single nearest catalog entry above the vector-similarity floor."""

import logging

from product_match.matching.protocols import CatalogStore
from product_match.matching.scoring import format_percent
from product_match.matching.types import IdentificationMatch
from product_match.models.entities import MatchType, ThresholdConfig

logger = logging.getLogger(__name__)


class EmbeddingFallbackMatcher:
    def __init__(self, catalog: CatalogStore) -> None:
        self._catalog = catalog

    async def match(self, embedding: list[float], config: ThresholdConfig) -> IdentificationMatch | None:
        """Nearest neighbour by cosine similarity; None when nothing reaches the configured floor."""
        floor = config.vector_similarity_min_confidence
        product = await self._catalog.find_most_similar(embedding, floor)
        if product is None:
            logger.info("No catalog entry within embedding floor %.2f", floor)
            return None
        similarity = float(product.recognition_accuracy or 0.0)
        if similarity < floor:
            logger.warning(
                "Catalog returned product %s at similarity %.4f below floor %.2f; ignored",
                product.id,
                similarity,
                floor,
            )
            return None
        logger.info("Embedding match: product %s (%s)", product.id, format_percent(similarity))
        return IdentificationMatch(
            product=product,
            confidence=similarity,
            match_type=MatchType.vector_similarity,
            details=f"Embedding similarity match ({format_percent(similarity)})",
            similarity=similarity,
            metadata={"match_method": "embedding", "similarity": similarity},
        )
