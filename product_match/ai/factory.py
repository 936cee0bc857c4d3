"""Factory for vision analyzers and embedding generators."""

from product_match.ai.vision_base import BaseEmbeddingGenerator, BaseVisionAnalyzer
from product_match.core.config import Settings


def get_vision_analyzer(analyzer_name: str, settings: Settings | None = None) -> BaseVisionAnalyzer:
    """Return a vision analyzer by name. 'http' needs settings for endpoint and credentials."""
    if analyzer_name == "mock":
        from product_match.ai.vision_base import MockVisionAnalyzer

        return MockVisionAnalyzer()
    if analyzer_name == "http":
        from product_match.ai.vision_http import HttpVisionAnalyzer

        cfg = settings or Settings()
        return HttpVisionAnalyzer(
            api_base=cfg.vision_api_base,
            api_key=cfg.vision_api_key,
            model=cfg.vision_model,
            timeout=cfg.request_timeout_seconds,
        )
    raise ValueError(f"Unknown vision analyzer: {analyzer_name}")


def get_embedding_generator(generator_name: str, settings: Settings | None = None) -> BaseEmbeddingGenerator:
    """Return an embedding generator by name."""
    if generator_name == "mock":
        from product_match.ai.vision_base import MockEmbeddingGenerator

        return MockEmbeddingGenerator()
    if generator_name == "http":
        from product_match.ai.vision_http import HttpEmbeddingGenerator

        cfg = settings or Settings()
        return HttpEmbeddingGenerator(
            api_base=cfg.vision_api_base,
            api_key=cfg.vision_api_key,
            vision_model=cfg.vision_model,
            embedding_model=cfg.embedding_model,
            timeout=cfg.request_timeout_seconds,
        )
    raise ValueError(f"Unknown embedding generator: {generator_name}")
