"""Pytest fixtures: in-memory SQLite engine, session factory, in-memory collaborator fakes, images."""

import io
from datetime import datetime, timezone

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from product_match.core import config as config_module
from product_match.models.entities import (
    CorrectionType,
    IdentificationValidation,
    Product,
    ThresholdConfig,
)
from product_match.repository.threshold_config_repo import default_threshold_config


@pytest.fixture(autouse=True)
def _reset_config_cache():
    """Every test starts and ends without a cached Settings instance."""
    config_module._config = None  # type: ignore[attr-defined]
    yield
    config_module._config = None  # type: ignore[attr-defined]


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with all tables. StaticPool shares the one connection across threads."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, autocommit=False, autoflush=False, expire_on_commit=False)


def png_bytes(width: int = 100, height: int = 80, color=(200, 30, 30)) -> bytes:
    """Encode a solid-color RGB image as PNG."""
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def image_bytes() -> bytes:
    return png_bytes()


# --- in-memory fakes for the engine's collaborators ---


class FakeCatalog:
    """CatalogStore over a list; records calls so tests can assert on catalog reads and writes."""

    def __init__(
        self,
        exact: list[Product] | None = None,
        nearest: Product | None = None,
    ) -> None:
        self.exact = list(exact or [])
        self.nearest = nearest
        self.saved: list[Product] = []
        self.exact_calls: list[tuple] = []
        self.similar_calls: list[tuple] = []
        self._next_id = 1000

    async def find_by_exact_fields(self, brand, model, category):
        self.exact_calls.append((brand, model, category))
        return list(self.exact)

    async def find_most_similar(self, vector, min_similarity):
        self.similar_calls.append((tuple(vector), min_similarity))
        if self.nearest is None:
            return None
        if (self.nearest.recognition_accuracy or 0.0) < min_similarity:
            return None
        return self.nearest

    async def save(self, product):
        if product.id is None:
            product.id = self._next_id
            self._next_id += 1
        self.saved.append(product)
        return product


class FakeConfigStore:
    """ThresholdConfigStore over a list; get_active creates the default when nothing is active."""

    def __init__(self, configs: list[ThresholdConfig] | None = None) -> None:
        self.configs: list[ThresholdConfig] = list(configs or [])
        self._next_id = max((c.id or 0 for c in self.configs), default=0) + 1
        for c in self.configs:
            if c.id is None:
                c.id = self._take_id()

    def _take_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    async def get_active(self):
        for c in self.configs:
            if c.is_active:
                return c
        config = default_threshold_config()
        config.id = self._take_id()
        self.configs.append(config)
        return config

    async def save(self, config):
        if config.id is None:
            config.id = self._take_id()
            self.configs.append(config)
        return config

    async def activate(self, config_id):
        target = None
        for c in self.configs:
            c.is_active = c.id == config_id
            if c.is_active:
                target = c
        assert target is not None
        return target

    async def history(self, limit=10):
        return list(reversed(self.configs))[:limit]

    async def latest_training_at(self):
        return max((c.last_training_at for c in self.configs if c.last_training_at is not None), default=None)

    async def model_versions(self):
        return [c.model_version for c in self.configs]


class FakeValidationStore:
    """ValidationStore over a list, newest last."""

    def __init__(self, records: list[IdentificationValidation] | None = None) -> None:
        self.records: list[IdentificationValidation] = list(records or [])

    async def count_since(self, since):
        if since is None:
            return len(self.records)
        return sum(1 for r in self.records if r.created_at > since)

    async def recent_records(self, limit=1000):
        return list(reversed(self.records))[:limit]

    async def append(self, record):
        record.id = len(self.records) + 1
        self.records.append(record)
        return record

    async def count_by_correction(self, correction_type):
        return sum(1 for r in self.records if r.correction_type == correction_type)

    async def count_all(self):
        return len(self.records)

    async def count_correct(self):
        return sum(1 for r in self.records if r.was_correct)


def make_validation(
    match_type: str = "BRAND_MODEL",
    was_correct: bool = True,
    confidence: float = 0.9,
    created_at: datetime | None = None,
) -> IdentificationValidation:
    return IdentificationValidation(
        image_hash="a" * 64,
        match_type=match_type,
        confidence_score=confidence,
        was_correct=was_correct,
        correction_type=CorrectionType.correct if was_correct else CorrectionType.false_positive,
        validated_by=1,
        created_at=created_at or datetime.now(timezone.utc),
    )


def make_product(
    id: int | None = 1,
    name: str = "Catalog product",
    brand: str | None = "Stanley",
    model: str | None = "STMT74101",
    category: str = "Herramientas",
    logos: list[str] | None = None,
    objects: list[str] | None = None,
    usage_tags: list[str] | None = None,
    image_tags: list[str] | None = None,
    embedding: list[float] | None = None,
    recognition_accuracy: float | None = None,
) -> Product:
    return Product(
        id=id,
        name=name,
        brand_name=brand,
        model_number=model,
        inferred_category=category,
        logo_detection={"timestamp": "2026-01-01T00:00:00", "confidence": 0.9, "detected_logos": logos}
        if logos is not None
        else None,
        object_detection={"timestamp": "2026-01-01T00:00:00", "confidence": 0.85, "detected_objects": objects}
        if objects is not None
        else None,
        inferred_usage_tags=usage_tags,
        image_tags=image_tags,
        image_embedding=embedding,
        recognition_accuracy=recognition_accuracy,
    )
