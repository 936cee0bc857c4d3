"""AI module: data contracts and vision/embedding abstractions."""

from product_match.ai.schema import BoundingBox, ModelCard, VisionResult
from product_match.ai.vision_base import (
    BaseEmbeddingGenerator,
    BaseVisionAnalyzer,
    MockEmbeddingGenerator,
    MockVisionAnalyzer,
)
from product_match.ai.factory import get_embedding_generator, get_vision_analyzer

__all__ = [
    "BaseEmbeddingGenerator",
    "BaseVisionAnalyzer",
    "BoundingBox",
    "MockEmbeddingGenerator",
    "MockVisionAnalyzer",
    "ModelCard",
    "VisionResult",
    "get_embedding_generator",
    "get_vision_analyzer",
]
