"""Validation repository: append-only ledger of human judgments on identifications."""

import asyncio
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from product_match.models.entities import CorrectionType, IdentificationValidation

DEFAULT_RECENT_LIMIT = 1000


class ValidationRepository:
    """
    Database access for identification_validation rows. Records are only ever inserted.
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

    def _scalar_count(self, *conditions) -> int:
        with self._session_scope() as session:
            stmt = select(func.count()).select_from(IdentificationValidation)
            if conditions:
                stmt = stmt.where(*conditions)
            return int(session.execute(stmt).scalar() or 0)

    def _append(self, record: IdentificationValidation) -> IdentificationValidation:
        with self._session_scope(write=True) as session:
            session.add(record)
            session.flush()
            session.refresh(record)
            return record

    async def append(self, record: IdentificationValidation) -> IdentificationValidation:
        """Insert a validation record; return it with its id assigned."""
        return await asyncio.to_thread(self._append, record)

    async def count_since(self, since: datetime | None) -> int:
        """Records created strictly after `since`; all records when `since` is None."""
        if since is None:
            return await asyncio.to_thread(self._scalar_count)
        return await asyncio.to_thread(
            self._scalar_count, IdentificationValidation.created_at > since
        )

    def _recent_records(self, limit: int) -> list[IdentificationValidation]:
        with self._session_scope() as session:
            rows = session.execute(
                select(IdentificationValidation)
                .order_by(IdentificationValidation.created_at.desc(), IdentificationValidation.id.desc())
                .limit(limit)
            )
            return list(rows.scalars().all())

    async def recent_records(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[IdentificationValidation]:
        """Most recent records first, at most `limit`."""
        return await asyncio.to_thread(self._recent_records, limit)

    async def count_by_correction(self, correction_type: CorrectionType) -> int:
        return await asyncio.to_thread(
            self._scalar_count, IdentificationValidation.correction_type == correction_type
        )

    async def count_all(self) -> int:
        return await asyncio.to_thread(self._scalar_count)

    async def count_correct(self) -> int:
        return await asyncio.to_thread(
            self._scalar_count, IdentificationValidation.was_correct.is_(True)
        )
