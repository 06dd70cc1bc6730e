"""Typer-based command line for running the asset pipeline."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path.cwd() / ".env")
load_dotenv(Path.cwd() / ".env.local")

import asyncio
from typing import List, Optional

import typer

from asset_pipeline.config import get_settings
from asset_pipeline.constants import DEFAULT_VARIANTS_DIR
from asset_pipeline.exceptions import PipelineError
from asset_pipeline.logging_config import setup_logging
from asset_pipeline.models.asset_models import RunOptions
from asset_pipeline.models.config_models import PipelineConfig, load_config
from asset_pipeline.services.image_processing import build_variants
from asset_pipeline.services.pipeline import RunSummary, run_pipeline
from asset_pipeline.services.record_store import CsvRecordStore

app = typer.Typer(help="Scrape, download, enrich and upload image assets.")

ConfigOption = typer.Option(
    None, "--config", "-c", help="Pipeline config JSON (defaults to PIPELINE_CONFIG)"
)


def _run_async_with_cleanup(coro):
    """
    Run a coroutine on a fresh event loop, then cancel leftovers and close it.

    Pending tasks are cancelled and async generators shut down even when the
    coroutine raises.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        try:
            pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            loop.close()
            asyncio.set_event_loop(None)


def _parse_targets(raw: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated slug list; blank input selects every target."""
    if not raw:
        return None
    slugs = [slug.strip() for slug in raw.split(",") if slug.strip()]
    return slugs or None


def _load(config_path: Optional[str]) -> PipelineConfig:
    setup_logging()
    return load_config(config_path or get_settings().pipeline_config)


def _echo_summary(summary: RunSummary) -> None:
    typer.echo(f"✓ Targets: {', '.join(summary.targets) or '-'}")
    typer.echo(f"  Scraped: {summary.scraped}  Downloaded: {summary.downloaded}")
    typer.echo(f"  Enriched: {summary.enriched}  Uploaded: {summary.uploaded}")
    typer.echo(f"  Records in store: {summary.total}")


def _execute(config_path: Optional[str], options: RunOptions, checkpoint: bool = True) -> None:
    try:
        config = _load(config_path)
        summary = _run_async_with_cleanup(
            run_pipeline(config, options, checkpoint=checkpoint)
        )
    except (PipelineError, OSError) as e:
        typer.echo(f"✗ Pipeline failed: {e}", err=True)
        raise typer.Exit(1)
    _echo_summary(summary)


@app.command()
def run(
    config: Optional[str] = ConfigOption,
    targets: Optional[str] = typer.Option(
        None, "--targets", "-t", help="Comma-separated target slugs"
    ),
    skip_ai: bool = typer.Option(False, "--skip-ai", help="Skip AI enrichment"),
    skip_upload: bool = typer.Option(False, "--skip-upload", help="Skip COS upload"),
    skip_scrape: bool = typer.Option(
        False, "--skip-scrape", help="Reuse stored records, do not scrape or download"
    ),
    no_checkpoint: bool = typer.Option(
        False, "--no-checkpoint", help="Save the store only once, at the end of the run"
    ),
):
    """Run the full pipeline."""
    options = RunOptions(
        targets=_parse_targets(targets),
        skip_ai=skip_ai,
        skip_upload=skip_upload,
        skip_scrape=skip_scrape,
    )
    _execute(config, options, checkpoint=not no_checkpoint)


@app.command()
def upload(config: Optional[str] = ConfigOption):
    """Upload stored records that have no remote URL yet."""
    _execute(config, RunOptions(skip_scrape=True, skip_ai=True))


async def _build_all_variants(config: PipelineConfig, output_dir: str) -> int:
    records = await CsvRecordStore(config.csv_path).load()
    built = 0
    for record in records:
        if not record.local_path or not Path(record.local_path).exists():
            continue
        await asyncio.to_thread(build_variants, record.local_path, output_dir)
        built += 1
    return built


@app.command()
def variants(
    config: Optional[str] = ConfigOption,
    output: str = typer.Option(
        DEFAULT_VARIANTS_DIR, "--output", "-o", help="Root directory for device variants"
    ),
):
    """Build mobile, pad and desktop variants of every stored image."""
    try:
        pipeline_config = _load(config)
        built = _run_async_with_cleanup(_build_all_variants(pipeline_config, output))
    except (PipelineError, OSError) as e:
        typer.echo(f"✗ Variant build failed: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Built variants for {built} images in {output}")


if __name__ == "__main__":
    app()
