"""Verify Alembic migrations: empty DB -> upgrade head -> downgrade base (SQLite file, run with pytest -m migration)."""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

EXPECTED_TABLES = ["identification_validation", "product", "threshold_config"]
MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


@pytest.fixture
def alembic_setup(tmp_path):
    """Alembic config pointing at a fresh SQLite file. No ini file, so test logging is left alone."""
    url = f"sqlite:///{tmp_path / 'migrations.db'}"
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", url)
    engine = create_engine(url)
    try:
        yield cfg, engine
    finally:
        engine.dispose()


@pytest.mark.migration
def test_upgrade_head_creates_tables_and_indexes(alembic_setup):
    """upgrade head on an empty database creates every table and the lookup indexes."""
    cfg, engine = alembic_setup
    command.upgrade(cfg, "head")
    insp = inspect(engine)
    tables = sorted(t for t in insp.get_table_names() if t != "alembic_version")
    assert tables == EXPECTED_TABLES
    product_indexes = {ix["name"] for ix in insp.get_indexes("product")}
    assert {"ix_product_image_hash", "ix_product_brand_model_category"} <= product_indexes
    validation_columns = {c["name"] for c in insp.get_columns("identification_validation")}
    assert "metadata" in validation_columns
    assert {ix["name"] for ix in insp.get_indexes("threshold_config")} == {"ix_threshold_config_is_active"}


@pytest.mark.migration
def test_downgrade_base_drops_tables(alembic_setup):
    """downgrade base after upgrade leaves only the alembic bookkeeping table."""
    cfg, engine = alembic_setup
    command.upgrade(cfg, "head")
    command.downgrade(cfg, "base")
    tables = [t for t in inspect(engine).get_table_names() if t != "alembic_version"]
    assert tables == []
