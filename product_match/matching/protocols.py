"""Collaborator interfaces the engine depends on. SQL and HTTP implementations satisfy them structurally."""

from datetime import datetime
from typing import Protocol

from product_match.ai.schema import ModelCard, VisionResult
from product_match.models.entities import (
    CorrectionType,
    IdentificationValidation,
    Product,
    ThresholdConfig,
)


class VisionAnalyzer(Protocol):
    def get_model_card(self) -> ModelCard: ...

    async def analyze(self, image: bytes) -> VisionResult: ...

    async def analyze_multiple(self, image: bytes) -> list[VisionResult]: ...


class EmbeddingGenerator(Protocol):
    def get_model_card(self) -> ModelCard: ...

    async def embed(self, image: bytes) -> list[float]: ...


class CatalogStore(Protocol):
    async def find_by_exact_fields(
        self, brand: str | None, model: str | None, category: str | None
    ) -> list[Product]: ...

    async def find_most_similar(self, vector: list[float], min_similarity: float) -> Product | None: ...

    async def save(self, product: Product) -> Product: ...


class ValidationStore(Protocol):
    async def count_since(self, since: datetime | None) -> int: ...

    async def recent_records(self, limit: int = ...) -> list[IdentificationValidation]: ...

    async def append(self, record: IdentificationValidation) -> IdentificationValidation: ...

    async def count_by_correction(self, correction_type: CorrectionType) -> int: ...

    async def count_all(self) -> int: ...

    async def count_correct(self) -> int: ...


class ThresholdConfigStore(Protocol):
    async def get_active(self) -> ThresholdConfig: ...

    async def save(self, config: ThresholdConfig) -> ThresholdConfig: ...

    async def activate(self, config_id: int) -> ThresholdConfig: ...

    async def history(self, limit: int = ...) -> list[ThresholdConfig]: ...

    async def latest_training_at(self) -> datetime | None: ...

    async def model_versions(self) -> list[str]: ...