"""Catalog repository: exact-field lookup, nearest-neighbour embedding search, product persistence."""

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator

import numpy as np
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from product_match.ai.schema import DEFAULT_CATEGORY
from product_match.models.entities import Product

logger = logging.getLogger(__name__)

MIN_EXACT_CONDITIONS = 2


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """1 - cosine distance; 0.0 when either vector has zero norm."""
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


class CatalogRepository:
    """
    Database access for catalog products.

    Public methods are coroutines; the blocking session work runs in a worker thread.
    Embeddings are stored as JSON float lists and compared in numpy.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session_scope(self, write: bool = False) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            if write:
                session.commit()
        finally:
            session.close()

    # --- exact fields ---

    def _find_by_exact_fields(
        self, brand: str | None, model: str | None, category: str | None
    ) -> list[Product]:
        conditions = []
        if brand and brand.strip():
            conditions.append(func.lower(Product.brand_name) == brand.strip().lower())
        if model and model.strip():
            conditions.append(func.lower(Product.model_number) == model.strip().lower())
        category = category.strip() if category and category.strip() else DEFAULT_CATEGORY
        conditions.append(func.lower(Product.inferred_category) == category.lower())
        if len(conditions) < MIN_EXACT_CONDITIONS:
            logger.debug("Exact lookup skipped: only %s condition(s)", len(conditions))
            return []
        with self._session_scope() as session:
            rows = session.execute(select(Product).where(*conditions).order_by(Product.id))
            return list(rows.scalars().all())

    async def find_by_exact_fields(
        self, brand: str | None, model: str | None, category: str | None
    ) -> list[Product]:
        """
        Products whose brand, model and category equal the given values (case-insensitive).
        The category filter always applies (blank means "Other"). Blank brand/model are ignored;
        fewer than two usable conditions returns [] without querying.
        """
        return await asyncio.to_thread(self._find_by_exact_fields, brand, model, category)

    # --- embedding search ---

    def _find_most_similar(self, vector: list[float], min_similarity: float) -> Product | None:
        query = np.asarray(vector, dtype=np.float64)
        with self._session_scope() as session:
            rows = session.execute(
                select(Product).where(Product.image_embedding.is_not(None)).order_by(Product.id)
            )
            products = list(rows.scalars().all())
        best: Product | None = None
        best_sim = -1.0
        for product in products:
            stored = np.asarray(product.image_embedding, dtype=np.float64)
            if stored.shape != query.shape:
                logger.warning(
                    "Product %s: embedding has %s dimensions, query has %s; skipped",
                    product.id,
                    stored.shape[0] if stored.ndim else 0,
                    query.shape[0],
                )
                continue
            sim = cosine_similarity(query, stored)
            if sim > best_sim:
                best, best_sim = product, sim
        if best is None or best_sim < min_similarity:
            return None
        best.recognition_accuracy = best_sim
        logger.debug("Nearest product %s at similarity %.4f", best.id, best_sim)
        return best

    async def find_most_similar(self, vector: list[float], min_similarity: float) -> Product | None:
        """
        The single closest product by cosine similarity, if its distance is within 1 - min_similarity.
        The returned (detached) product carries the similarity in recognition_accuracy.
        """
        return await asyncio.to_thread(self._find_most_similar, vector, min_similarity)

    # --- persistence ---

    def _save(self, product: Product) -> Product:
        product.updated_at = datetime.now(timezone.utc)
        with self._session_scope(write=True) as session:
            merged = session.merge(product)
            session.flush()
            session.refresh(merged)
            return merged

    async def save(self, product: Product) -> Product:
        """Insert or update a product; return it with its id assigned."""
        return await asyncio.to_thread(self._save, product)

    def _get_by_id(self, product_id: int) -> Product | None:
        with self._session_scope() as session:
            return session.get(Product, product_id)

    async def get_by_id(self, product_id: int) -> Product | None:
        return await asyncio.to_thread(self._get_by_id, product_id)

    def _count(self) -> int:
        with self._session_scope() as session:
            return int(session.execute(select(func.count()).select_from(Product)).scalar() or 0)

    async def count(self) -> int:
        """Number of catalog products."""
        return await asyncio.to_thread(self._count)
