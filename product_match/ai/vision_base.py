"""Abstract bases and mock implementations for vision analyzers and embedding generators."""

import asyncio
import hashlib
from abc import ABC, abstractmethod

import numpy as np

from product_match.ai.schema import ModelCard, VisionResult

MOCK_EMBEDDING_DIMENSIONS = 64


class BaseVisionAnalyzer(ABC):
    """Abstract base for product image analysis (brand, model, category, tags, detections)."""

    @abstractmethod
    def get_model_card(self) -> ModelCard:
        """Return model identity (name, version)."""
        ...

    @abstractmethod
    async def analyze(self, image: bytes) -> VisionResult:
        """Analyze the whole image as a single product."""
        ...

    @abstractmethod
    async def analyze_multiple(self, image: bytes) -> list[VisionResult]:
        """Detect every product in the image; each result may carry a normalized bounding box."""
        ...


class BaseEmbeddingGenerator(ABC):
    """Abstract base for image embedding generation."""

    @abstractmethod
    def get_model_card(self) -> ModelCard:
        ...

    @abstractmethod
    async def embed(self, image: bytes) -> list[float]:
        """Return a fixed-length embedding vector for the image."""
        ...


class MockVisionAnalyzer(BaseVisionAnalyzer):
    """
    Placeholder analyzer for testing and development.

    Returns the configured result(s); with nothing configured it reports one generic product
    with no brand or model, which never produces an exact-field match.
    """

    def __init__(
        self,
        result: VisionResult | None = None,
        results: list[VisionResult] | None = None,
        latency_seconds: float = 0.0,
    ) -> None:
        self._result = result or VisionResult(
            product_name="Placeholder product",
            image_tags=["mock", "test"],
        )
        self._results = results if results is not None else [self._result]
        self._latency = latency_seconds
        self.calls: list[str] = []

    def get_model_card(self) -> ModelCard:
        return ModelCard(name="mock-analyzer", version="1.0")

    async def analyze(self, image: bytes) -> VisionResult:
        self.calls.append("analyze")
        if self._latency:
            await asyncio.sleep(self._latency)
        return self._result

    async def analyze_multiple(self, image: bytes) -> list[VisionResult]:
        self.calls.append("analyze_multiple")
        if self._latency:
            await asyncio.sleep(self._latency)
        return list(self._results)


class MockEmbeddingGenerator(BaseEmbeddingGenerator):
    """Deterministic embedding: unit vector seeded from the SHA-256 of the image bytes."""

    def __init__(self, dimensions: int = MOCK_EMBEDDING_DIMENSIONS) -> None:
        self._dimensions = dimensions
        self.calls = 0

    def get_model_card(self) -> ModelCard:
        return ModelCard(name="mock-embedding", version="1.0")

    async def embed(self, image: bytes) -> list[float]:
        self.calls += 1
        seed = int.from_bytes(hashlib.sha256(image).digest()[:8], "big")
        vec = np.random.default_rng(seed).standard_normal(self._dimensions)
        vec /= np.linalg.norm(vec)
        return vec.tolist()
