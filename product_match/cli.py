"""Typer Admin CLI: identify products in images, inspect and activate threshold configs, retrain."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from product_match.ai.factory import get_embedding_generator, get_vision_analyzer
from product_match.core.config import get_config
from product_match.core.errors import ProductMatchError
from product_match.core.logging import setup_logging
from product_match.matching.orchestrator import IdentificationOrchestrator
from product_match.matching.types import (
    IdentificationError,
    IdentifyRequest,
    MultipleDetectionRequest,
    NewProductCreated,
)
from product_match.models.entities import ThresholdConfig, ValidationSource
from product_match.repository.catalog_repo import CatalogRepository
from product_match.repository.threshold_config_repo import ThresholdConfigRepository
from product_match.repository.validation_repo import ValidationRepository
from product_match.training.threshold_controller import ThresholdController
from product_match.training.validation_service import ValidationService

app = typer.Typer(no_args_is_help=True)
config_app = typer.Typer(help="Inspect and activate threshold configurations.")
app.add_typer(config_app, name="config")
train_app = typer.Typer(help="Retrain thresholds from validations.")
app.add_typer(train_app, name="train")
validations_app = typer.Typer(help="Inspect the validation ledger.")
app.add_typer(validations_app, name="validations")
db_app = typer.Typer(help="Database setup.")
app.add_typer(db_app, name="db")


def _get_engine():
    from sqlalchemy import create_engine

    cfg = get_config()
    return create_engine(cfg.database_url, pool_pre_ping=True)


def _get_session_factory():
    from sqlalchemy.orm import sessionmaker

    return sessionmaker(_get_engine(), autocommit=False, autoflush=False, expire_on_commit=False)


def _build_orchestrator() -> IdentificationOrchestrator:
    cfg = get_config()
    session_factory = _get_session_factory()
    return IdentificationOrchestrator(
        vision=get_vision_analyzer(cfg.vision_analyzer, cfg),
        embeddings=get_embedding_generator(cfg.embedding_generator, cfg),
        catalog=CatalogRepository(session_factory),
        configs=ThresholdConfigRepository(session_factory),
        max_image_bytes=cfg.max_image_bytes,
        detection_concurrency=cfg.detection_concurrency,
    )


def _build_validation_service() -> ValidationService:
    session_factory = _get_session_factory()
    return ValidationService(
        ValidationRepository(session_factory), ThresholdConfigRepository(session_factory)
    )


def _parse_source(source: str) -> ValidationSource:
    try:
        return ValidationSource(source.upper())
    except ValueError:
        typer.echo(f"Invalid source: '{source}'. Use SALE, STOCK or MANUAL.", err=True)
        raise typer.Exit(1)


def _read_image(path: Path) -> bytes:
    if not path.is_file():
        typer.echo(f"Image not found: {path}", err=True)
        raise typer.Exit(1)
    return path.read_bytes()


def _config_table(configs: list[ThresholdConfig]) -> Table:
    table = Table(title=None)
    table.add_column("ID", style="dim")
    table.add_column("Version")
    table.add_column("Active")
    table.add_column("Brand/Model")
    table.add_column("Vector")
    table.add_column("Tag/Category")
    table.add_column("Auto-approve")
    table.add_column("Accuracy")
    table.add_column("Samples")
    for c in configs:
        table.add_row(
            str(c.id),
            c.model_version,
            "yes" if c.is_active else "",
            f"{c.brand_model_min_confidence:.4f}",
            f"{c.vector_similarity_min_confidence:.4f}",
            f"{c.tag_category_min_confidence:.4f}",
            f"{c.auto_approve_threshold:.4f}",
            f"{c.accuracy:.4f}" if c.accuracy is not None else "",
            str(c.training_samples_count),
        )
    return table


@app.command("identify")
def identify(
    image: Path = typer.Argument(..., help="Path to the product photo"),
    source: str = typer.Option("MANUAL", "--source", help="SALE, STOCK or MANUAL"),
    name: str | None = typer.Option(None, "--name", help="Name to use if a new product is created"),
    category_id: int | None = typer.Option(None, "--category-id", help="Category for a new product"),
) -> None:
    """Identify the product in one image, or register it as new (except for sales)."""
    setup_logging()
    request = IdentifyRequest(
        image=_read_image(image),
        source=_parse_source(source),
        name=name,
        category_id=category_id,
    )
    try:
        outcome = asyncio.run(_build_orchestrator().identify(request))
    except ProductMatchError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    typer.echo(f"status: {outcome.status.value}")
    if isinstance(outcome, IdentificationError):
        typer.secho(f"{outcome.code}: {outcome.message}", fg=typer.colors.YELLOW)
        raise typer.Exit(2)
    typer.echo(f"product: {outcome.product.id} {outcome.product.name}")
    if not isinstance(outcome, NewProductCreated):
        typer.echo(f"match_type: {outcome.match.match_type.value}")
        typer.echo(f"confidence: {outcome.match.confidence:.4f}")
        typer.echo(f"details: {outcome.match.details}")
    typer.echo(f"requires_validation: {outcome.requires_validation}")
    typer.echo(f"processing_time_ms: {outcome.processing_time_ms}")


@app.command("detect")
def detect(
    image: Path = typer.Argument(..., help="Path to a photo with one or more products"),
    source: str = typer.Option("MANUAL", "--source", help="SALE, STOCK or MANUAL"),
    no_group: bool = typer.Option(False, "--no-group", help="Report every detection separately"),
    min_confidence: float | None = typer.Option(None, "--min-confidence", help="Drop groups below this mean confidence"),
) -> None:
    """Detect every product in an image and group identical ones."""
    setup_logging()
    request = MultipleDetectionRequest(
        image=_read_image(image),
        source=_parse_source(source),
        group_by_product=not no_group,
        min_confidence=min_confidence,
    )
    try:
        result = asyncio.run(_build_orchestrator().identify_multiple(request))
    except ProductMatchError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    table = Table(title=None)
    table.add_column("Product")
    table.add_column("ID", style="dim")
    table.add_column("Qty")
    table.add_column("Confidence")
    table.add_column("Confirmed")
    for g in result.groups:
        table.add_row(
            g.product.name,
            str(g.key) if isinstance(g.key, int) else "new",
            str(g.quantity),
            f"{g.average_confidence:.4f}",
            "yes" if g.is_confirmed else "no",
        )
    Console().print(table)
    typer.echo(
        f"status: {result.status.value}, detections: {result.total_detections}, "
        f"products: {result.unique_products}, requires_validation: {result.requires_validation}"
    )
    if result.status.value == "ERROR":
        raise typer.Exit(2)


@config_app.command("show")
def config_show() -> None:
    """Show the active threshold configuration (creating the default if none exists)."""
    repo = ThresholdConfigRepository(_get_session_factory())
    active = asyncio.run(repo.get_active())
    Console().print(_config_table([active]))


@config_app.command("history")
def config_history(
    limit: int = typer.Option(10, "--limit", help="Maximum number of configurations to show"),
) -> None:
    """List threshold configurations, newest first."""
    repo = ThresholdConfigRepository(_get_session_factory())
    configs = asyncio.run(repo.history(limit))
    if not configs:
        typer.echo("No threshold configurations.")
        return
    Console().print(_config_table(configs))


@config_app.command("activate")
def config_activate(
    config_id: int = typer.Argument(..., help="Threshold configuration id to activate"),
) -> None:
    """Make one configuration the only active one."""
    repo = ThresholdConfigRepository(_get_session_factory())
    try:
        config = asyncio.run(repo.activate(config_id))
    except ProductMatchError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.secho(f"Activated configuration {config.id} (v{config.model_version}).", fg=typer.colors.GREEN)


@train_app.command("check")
def train_check() -> None:
    """Retrain (without activating) if enough validations accumulated since the last training."""
    setup_logging()
    session_factory = _get_session_factory()
    controller = ThresholdController(
        ValidationRepository(session_factory), ThresholdConfigRepository(session_factory)
    )
    saved = asyncio.run(controller.check_and_retrain())
    if saved is None:
        typer.echo("Not enough new validations; nothing to do.")
        return
    typer.echo(f"Saved configuration {saved.id} (v{saved.model_version}); activate it with 'config activate'.")


@train_app.command("run")
def train_run() -> None:
    """Retrain now and activate the result."""
    setup_logging()
    config = asyncio.run(_build_validation_service().trigger_retraining())
    typer.secho(f"Active configuration is now {config.id} (v{config.model_version}).", fg=typer.colors.GREEN)


@validations_app.command("metrics")
def validations_metrics() -> None:
    """Totals and accuracy over the whole validation ledger."""
    metrics = asyncio.run(_build_validation_service().accuracy_metrics())
    typer.echo(f"total: {metrics.total}")
    typer.echo(f"correct: {metrics.correct}")
    typer.echo(f"false_positives: {metrics.false_positives}")
    typer.echo(f"false_negatives: {metrics.false_negatives}")
    typer.echo(f"accuracy: {metrics.accuracy * 100:.2f}%")


@validations_app.command("recent")
def validations_recent(
    limit: int = typer.Option(20, "--limit", help="Maximum number of validations to show"),
    as_json: bool = typer.Option(False, "--json", help="Dump records as JSON"),
) -> None:
    """Most recent validations first."""
    records = asyncio.run(_build_validation_service().recent(limit))
    if as_json:
        payload = [
            {
                "id": r.id,
                "image_hash": r.image_hash,
                "suggested_product_id": r.suggested_product_id,
                "actual_product_id": r.actual_product_id,
                "confidence_score": r.confidence_score,
                "match_type": r.match_type,
                "was_correct": r.was_correct,
                "correction_type": r.correction_type.value,
                "validation_source": r.validation_source.value,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in records
        ]
        typer.echo(json.dumps(payload, indent=2))
        return
    table = Table(title=None)
    table.add_column("ID", style="dim")
    table.add_column("Match Type")
    table.add_column("Confidence")
    table.add_column("Correct")
    table.add_column("Correction")
    table.add_column("Source")
    for r in records:
        table.add_row(
            str(r.id),
            r.match_type,
            f"{r.confidence_score:.4f}",
            "yes" if r.was_correct else "no",
            r.correction_type.value,
            r.validation_source.value,
        )
    Console().print(table)
    typer.echo(f"Showing {len(records)} validation(s).")


@db_app.command("init")
def db_init() -> None:
    """Create all tables (development databases; use 'alembic upgrade head' in production)."""
    from sqlmodel import SQLModel

    import product_match.models.entities  # noqa: F401  (registers tables)

    SQLModel.metadata.create_all(_get_engine())
    typer.echo("Tables created.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
