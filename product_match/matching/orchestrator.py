"""
Identification orchestrator.

Single-object flow: vision analysis -> exact-field match -> embedding fallback -> either a
(partial) match, a new catalog entry, or a sale refusal.

Multi-object flow: one multi-product vision call, then per detected object (concurrently,
bounded by a semaphore) exact-field match -> crop and embedding fallback (boxed objects only)
-> temporary placeholder, then grouping by catalog key.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from product_match.ai.schema import VisionResult
from product_match.core.errors import CropError, ProductMatchError, UpstreamError
from product_match.core.imaging import crop_image, image_hash, validate_image_bytes
from product_match.core.logging import get_flight_logger
from product_match.matching.embedding_match import EmbeddingFallbackMatcher
from product_match.matching.exact_match import ExactFieldMatcher
from product_match.matching.grouping import filter_and_sort, group_detections
from product_match.matching.protocols import (
    CatalogStore,
    EmbeddingGenerator,
    ThresholdConfigStore,
    VisionAnalyzer,
)
from product_match.matching.types import (
    FULL_IMAGE_BOX,
    DetectedProductMatch,
    Identified,
    IdentificationError,
    IdentificationMatch,
    IdentificationOutcome,
    IdentifyRequest,
    MultipleDetectionRequest,
    MultipleDetectionResult,
    NewProductCreated,
    PartialMatch,
    Placeholder,
)
from product_match.models.entities import (
    IdentificationStatus,
    MatchType,
    Product,
    ThresholdConfig,
    ValidationSource,
)

logger = logging.getLogger(__name__)

PRODUCT_NOT_FOUND_FOR_SALE = "PRODUCT_NOT_FOUND_FOR_SALE"
UNNAMED_PRODUCT = "Unnamed product"
NO_DESCRIPTION = "No description"
DEFAULT_CATEGORY_ID = 1

NEW_PRODUCT_RECOGNITION_ACCURACY = 0.90
LOGO_DETECTION_CONFIDENCE = 0.9
OBJECT_DETECTION_CONFIDENCE = 0.85

TEMPORARY_CONFIDENCE = 0.50
DEFAULT_DETECTION_CONCURRENCY = 4
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _vision_metadata(vision: VisionResult) -> dict[str, object]:
    return {
        "vision_brand": vision.brand_name or "N/A",
        "vision_model": vision.model_number or "N/A",
        "vision_category": vision.inferred_category,
    }


def new_product_from_vision(
    vision: VisionResult,
    embedding: list[float] | None,
    embedding_model: str | None,
    request: IdentifyRequest,
) -> Product:
    """Build an unsaved catalog entry from a vision result and the caller's overrides."""
    now = datetime.now(timezone.utc)
    timestamp = now.isoformat()
    logo_detection = (
        {
            "timestamp": timestamp,
            "confidence": LOGO_DETECTION_CONFIDENCE,
            "detected_logos": list(vision.detected_logos),
        }
        if vision.detected_logos
        else None
    )
    object_detection = (
        {
            "timestamp": timestamp,
            "confidence": OBJECT_DETECTION_CONFIDENCE,
            "detected_objects": list(vision.detected_objects),
        }
        if vision.detected_objects
        else None
    )
    return Product(
        name=request.name or vision.product_name or vision.brand_name or UNNAMED_PRODUCT,
        description=request.description or vision.product_description or NO_DESCRIPTION,
        category_id=request.category_id or DEFAULT_CATEGORY_ID,
        image_hash=image_hash(request.image),
        brand_name=vision.brand_name,
        model_number=vision.model_number,
        dominant_colors=", ".join(vision.dominant_colors) or None,
        logo_detection=logo_detection,
        object_detection=object_detection,
        inferred_category=vision.inferred_category,
        inferred_usage_tags=list(vision.inferred_usage_tags),
        image_tags=list(vision.image_tags),
        image_embedding=embedding,
        embedding_model=embedding_model if embedding is not None else None,
        recognition_accuracy=NEW_PRODUCT_RECOGNITION_ACCURACY,
        recognition_count=1,
        last_recognition_at=now,
    )


def temporary_product(vision: VisionResult, index: int) -> Product:
    """Unsaved stand-in for a detected but unknown object (id stays None)."""
    return Product(
        name=vision.product_name or vision.brand_name or f"Product #{index + 1}",
        description=vision.product_description or "Detected by vision analysis",
        category_id=DEFAULT_CATEGORY_ID,
        brand_name=vision.brand_name,
        model_number=vision.model_number,
        inferred_category=vision.inferred_category,
        inferred_usage_tags=list(vision.inferred_usage_tags),
        image_tags=list(vision.image_tags),
        recognition_accuracy=TEMPORARY_CONFIDENCE,
    )


class IdentificationOrchestrator:
    """
    Composes the exact-field and embedding matchers with the catalog and config stores.

    Holds no mutable state between calls; the active threshold configuration is read
    from the config store at the start of every identification.
    """

    def __init__(
        self,
        vision: VisionAnalyzer,
        embeddings: EmbeddingGenerator,
        catalog: CatalogStore,
        configs: ThresholdConfigStore,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        detection_concurrency: int = DEFAULT_DETECTION_CONCURRENCY,
    ) -> None:
        self._vision = vision
        self._embeddings = embeddings
        self._catalog = catalog
        self._configs = configs
        self._exact = ExactFieldMatcher(catalog)
        self._fallback = EmbeddingFallbackMatcher(catalog)
        self._max_image_bytes = max_image_bytes
        self._concurrency = max(1, detection_concurrency)

    # --- single object ---

    async def identify(self, request: IdentifyRequest) -> IdentificationOutcome:
        """
        Identify the product in one image, or register it as new.

        Raises InvalidImageError before touching any collaborator when the image is empty
        or too large. Vision/embedding failures propagate as UpstreamError.
        """
        validate_image_bytes(request.image, self._max_image_bytes)
        start = time.monotonic()
        try:
            return await self._identify(request, start)
        except ProductMatchError:
            self._dump_forensics("identify", request.image)
            raise

    async def _identify(self, request: IdentifyRequest, start: float) -> IdentificationOutcome:
        config = await self._configs.get_active()
        logger.info("Identifying product (source=%s, config v%s)", request.source.value, config.model_version)

        vision = await self._vision.analyze(request.image)
        logger.debug(
            "Vision: brand=%s model=%s category=%s",
            vision.brand_name,
            vision.model_number,
            vision.inferred_category,
        )

        embedding: list[float] | None = None
        match = await self._exact.match(vision)
        if match is None:
            embedding = await self._embeddings.embed(request.image)
            match = await self._fallback.match(embedding, config)

        if match is not None:
            return self._matched_outcome(match, vision, config, start)

        if request.source == ValidationSource.sale:
            logger.warning("No catalog match for a sale; refusing to create a product")
            return IdentificationError(
                code=PRODUCT_NOT_FOUND_FOR_SALE,
                message="Product not found. A sale cannot be recorded for an unregistered product.",
                vision=vision,
                processing_time_ms=_elapsed_ms(start),
                metadata={
                    "error": PRODUCT_NOT_FOUND_FOR_SALE,
                    "source": request.source.value,
                    **_vision_metadata(vision),
                },
            )

        if embedding is None:
            embedding = await self._embeddings.embed(request.image)
        product = new_product_from_vision(
            vision, embedding, self._embeddings.get_model_card().name, request
        )
        saved = await self._catalog.save(product)
        logger.info("Created product %s (%s)", saved.id, saved.name)
        return NewProductCreated(
            product=saved,
            vision=vision,
            processing_time_ms=_elapsed_ms(start),
            metadata={
                **_vision_metadata(vision),
                "threshold_config_version": config.model_version,
                "detected_logos": list(vision.detected_logos),
                "detected_objects": list(vision.detected_objects),
            },
        )

    def _matched_outcome(
        self,
        match: IdentificationMatch,
        vision: VisionResult,
        config: ThresholdConfig,
        start: float,
    ) -> Identified | PartialMatch:
        metadata = {
            "match_type": match.match_type.value,
            **_vision_metadata(vision),
            "threshold_config_version": config.model_version,
            "auto_approve_threshold": config.auto_approve_threshold,
            **match.metadata,
        }
        elapsed = _elapsed_ms(start)
        if match.confidence < config.auto_approve_threshold:
            logger.info(
                "Partial match: product %s at %.4f (< auto-approve %.2f)",
                match.product.id,
                match.confidence,
                config.auto_approve_threshold,
            )
            return PartialMatch(match=match, vision=vision, processing_time_ms=elapsed, metadata=metadata)
        logger.info("Identified product %s at %.4f", match.product.id, match.confidence)
        return Identified(match=match, vision=vision, processing_time_ms=elapsed, metadata=metadata)

    # --- multiple objects ---

    async def identify_multiple(self, request: MultipleDetectionRequest) -> MultipleDetectionResult:
        """Detect, identify and group every product in one image. Never writes to the catalog."""
        validate_image_bytes(request.image, self._max_image_bytes)
        start = time.monotonic()
        config = await self._configs.get_active()
        logger.info(
            "Multi-object detection (source=%s, grouped=%s, config v%s)",
            request.source.value,
            request.group_by_product,
            config.model_version,
        )
        visions = await self._vision.analyze_multiple(request.image)
        if not visions:
            return MultipleDetectionResult(
                status=IdentificationStatus.error,
                groups=(),
                total_detections=0,
                unique_products=0,
                requires_validation=False,
                processing_time_ms=_elapsed_ms(start),
                metadata={
                    "message": "no products detected",
                    "threshold_config_version": config.model_version,
                },
            )

        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(index: int, vision: VisionResult) -> DetectedProductMatch:
            async with semaphore:
                return await self._resolve_detection(request.image, index, vision, config)

        matches = await asyncio.gather(*(bounded(i, v) for i, v in enumerate(visions)))

        groups = group_detections(list(matches), request.group_by_product)
        groups = filter_and_sort(groups, request.min_confidence)
        logger.info(
            "Detection complete: %s detections, %s groups, %sms",
            len(visions),
            len(groups),
            _elapsed_ms(start),
        )
        return MultipleDetectionResult(
            status=IdentificationStatus.identified if groups else IdentificationStatus.error,
            groups=tuple(groups),
            total_detections=len(visions),
            unique_products=len(groups),
            requires_validation=any(not g.is_confirmed for g in groups),
            processing_time_ms=_elapsed_ms(start),
            metadata={
                "total_detections": len(visions),
                "successful_matches": len(matches),
                "groups_count": len(groups),
                "grouped_by_product": request.group_by_product,
                "threshold_config_version": config.model_version,
            },
        )

    async def _resolve_detection(
        self, image: bytes, index: int, vision: VisionResult, config: ThresholdConfig
    ) -> DetectedProductMatch:
        """
        Match one detected object: exact fields first, then the embedding of its crop.

        Without a bounding box there is no crop to embed, so an object the exact fields miss
        becomes a placeholder. Crop and embedding failures degrade the object to a placeholder;
        catalog errors propagate.
        """
        box = vision.bounding_box or FULL_IMAGE_BOX
        match = await self._exact.match(vision)
        if match is None and vision.bounding_box is not None:
            try:
                region = await asyncio.to_thread(crop_image, image, vision.bounding_box)
                embedding = await self._embeddings.embed(region)
            except (CropError, UpstreamError) as e:
                logger.warning("Detection #%s could not be embedded: %s", index, e)
            else:
                match = await self._fallback.match(embedding, config)

        if match is None or match.product.id is None:
            logger.info("Detection #%s unknown; temporary placeholder", index)
            return DetectedProductMatch(
                key=Placeholder(index),
                product=temporary_product(vision, index),
                bounding_box=box,
                confidence=TEMPORARY_CONFIDENCE,
                match_type=MatchType.temporary,
                object_index=index,
            )
        return DetectedProductMatch(
            key=match.product.id,
            product=match.product,
            bounding_box=box,
            confidence=match.confidence,
            match_type=match.match_type,
            object_index=index,
            similarity=match.similarity,
        )

    def _dump_forensics(self, label: str, image: bytes) -> None:
        flight = get_flight_logger()
        if flight is None:
            return
        try:
            path = flight.dump(label, image_hash(image))
        except OSError as e:
            logger.warning("Could not write forensic log: %s", e)
            return
        logger.info("Forensic log written to %s", path)
