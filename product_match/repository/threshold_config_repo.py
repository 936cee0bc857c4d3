"""Threshold configuration repository: active config, versioned history, activation."""

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from product_match.core.errors import ConfigNotFoundError
from product_match.models.entities import ThresholdConfig

logger = logging.getLogger(__name__)

DEFAULT_MODEL_VERSION = "1.0"


def default_threshold_config() -> ThresholdConfig:
    """Version 1.0 with the stock floors, marked active."""
    return ThresholdConfig(model_version=DEFAULT_MODEL_VERSION, is_active=True)


class ThresholdConfigRepository:
    """
    Database access for threshold_config rows.

    Rows are appended by retraining; activation only flips is_active so that exactly
    one row is active afterwards.
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

    def _get_active(self) -> ThresholdConfig:
        with self._session_scope(write=True) as session:
            row = session.execute(
                select(ThresholdConfig)
                .where(ThresholdConfig.is_active.is_(True))
                .order_by(ThresholdConfig.created_at.desc(), ThresholdConfig.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            if row is not None:
                return row
            logger.warning("No active threshold configuration; creating default v%s", DEFAULT_MODEL_VERSION)
            config = default_threshold_config()
            session.add(config)
            session.flush()
            session.refresh(config)
            return config

    async def get_active(self) -> ThresholdConfig:
        """Return the active configuration, creating and persisting the default when none exists."""
        return await asyncio.to_thread(self._get_active)

    def _save(self, config: ThresholdConfig) -> ThresholdConfig:
        config.updated_at = datetime.now(timezone.utc)
        with self._session_scope(write=True) as session:
            merged = session.merge(config)
            session.flush()
            session.refresh(merged)
            logger.info("Saved threshold configuration id=%s version=%s", merged.id, merged.model_version)
            return merged

    async def save(self, config: ThresholdConfig) -> ThresholdConfig:
        """Insert or update a configuration; return it with its id assigned."""
        return await asyncio.to_thread(self._save, config)

    def _activate(self, config_id: int) -> ThresholdConfig:
        with self._session_scope(write=True) as session:
            config = session.get(ThresholdConfig, config_id)
            if config is None:
                raise ConfigNotFoundError(config_id)
            session.execute(
                update(ThresholdConfig)
                .where(ThresholdConfig.id != config_id)
                .values(is_active=False)
            )
            config.is_active = True
            config.updated_at = datetime.now(timezone.utc)
            session.flush()
            session.refresh(config)
            logger.info("Activated threshold configuration id=%s version=%s", config.id, config.model_version)
            return config

    async def activate(self, config_id: int) -> ThresholdConfig:
        """Deactivate every other configuration and mark `config_id` active, in one transaction."""
        return await asyncio.to_thread(self._activate, config_id)

    def _history(self, limit: int) -> list[ThresholdConfig]:
        with self._session_scope() as session:
            rows = session.execute(
                select(ThresholdConfig)
                .order_by(ThresholdConfig.created_at.desc(), ThresholdConfig.id.desc())
                .limit(limit)
            )
            return list(rows.scalars().all())

    async def history(self, limit: int = 10) -> list[ThresholdConfig]:
        """Configurations newest first."""
        return await asyncio.to_thread(self._history, limit)

    def _get_by_id(self, config_id: int) -> ThresholdConfig | None:
        with self._session_scope() as session:
            return session.get(ThresholdConfig, config_id)

    async def get_by_id(self, config_id: int) -> ThresholdConfig | None:
        return await asyncio.to_thread(self._get_by_id, config_id)

    def _latest_training_at(self) -> datetime | None:
        with self._session_scope() as session:
            return session.execute(select(func.max(ThresholdConfig.last_training_at))).scalar_one_or_none()

    async def latest_training_at(self) -> datetime | None:
        """Newest last_training_at across all configurations, active or not."""
        return await asyncio.to_thread(self._latest_training_at)

    def _model_versions(self) -> list[str]:
        with self._session_scope() as session:
            return list(session.execute(select(ThresholdConfig.model_version)).scalars().all())

    async def model_versions(self) -> list[str]:
        return await asyncio.to_thread(self._model_versions)
