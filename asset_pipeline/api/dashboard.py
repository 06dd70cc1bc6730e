"""Dashboard endpoints: store overview, previews, run and upload triggers.

Configuration, store and pipeline entry point are FastAPI dependencies so
tests can swap them through ``app.dependency_overrides``.
"""

import asyncio
from dataclasses import asdict
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import logfire
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from pydantic import BaseModel

from asset_pipeline.config import get_settings
from asset_pipeline.constants import DASHBOARD_RECENT_RECORDS
from asset_pipeline.models.asset_models import PipelineRecord, RunOptions
from asset_pipeline.models.config_models import PipelineConfig, load_config
from asset_pipeline.services.pipeline import RunSummary, run_pipeline
from asset_pipeline.services.record_store import CsvRecordStore, RecordStore

router = APIRouter()

PipelineRun = Callable[[PipelineConfig, RunOptions], Awaitable[RunSummary]]

# One run at a time per process; the record store has no file locking.
_run_lock = asyncio.Lock()


class RunRequest(BaseModel):
    """Body of ``POST /run``."""

    targets: Optional[List[str]] = None
    skip_ai: bool = False
    skip_upload: bool = False


def get_pipeline_config() -> PipelineConfig:
    """Load the pipeline configuration named by ``PIPELINE_CONFIG``."""
    return load_config(get_settings().pipeline_config)


def get_record_store(config: PipelineConfig = Depends(get_pipeline_config)) -> RecordStore:
    return CsvRecordStore(config.csv_path)


def get_pipeline_run() -> PipelineRun:
    return run_pipeline


def compute_stats(records: List[PipelineRecord]) -> dict:
    """Count stored, not yet uploaded and AI-tagged records."""
    return {
        "total": len(records),
        "pending_upload": sum(1 for record in records if not record.remote_url),
        "with_ai": sum(1 for record in records if record.ai_tags),
    }


def recent_records(records: List[PipelineRecord], limit: int = DASHBOARD_RECENT_RECORDS) -> List[PipelineRecord]:
    return sorted(records, key=lambda record: record.updated_at, reverse=True)[:limit]


@router.get("/")
async def overview(
    config: PipelineConfig = Depends(get_pipeline_config),
    store: RecordStore = Depends(get_record_store),
):
    """Store statistics, configured targets and the latest records."""
    records = await store.load()
    return {
        "stats": compute_stats(records),
        "targets": [{"slug": slug, "name": name} for slug, name in config.target_names().items()],
        "recent": [asdict(record) for record in recent_records(records)],
        "running": _run_lock.locked(),
    }


@router.get("/preview")
async def preview(path: Optional[str] = Query(None)):
    """Serve a local image, restricted to the working directory."""
    if not path:
        raise HTTPException(status_code=400, detail="Missing path")
    root = Path.cwd().resolve()
    resolved = (root / path).resolve()
    if not resolved.is_relative_to(root):
        logfire.warn("Preview outside working directory refused", path=path)
        raise HTTPException(status_code=403, detail="Forbidden")
    if not resolved.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(resolved)


async def _run_exclusive(run: PipelineRun, config: PipelineConfig, options: RunOptions) -> dict:
    if _run_lock.locked():
        raise HTTPException(status_code=409, detail="A pipeline run is already in progress")
    async with _run_lock:
        logfire.info(
            "Dashboard run started",
            targets=options.targets,
            skip_ai=options.skip_ai,
            skip_upload=options.skip_upload,
            skip_scrape=options.skip_scrape,
        )
        summary = await run(config, options)
    return {"ok": True, **summary.as_dict()}


@router.post("/run")
async def trigger_run(
    request: RunRequest,
    config: PipelineConfig = Depends(get_pipeline_config),
    run: PipelineRun = Depends(get_pipeline_run),
):
    """Run the pipeline for the selected targets."""
    options = RunOptions(
        targets=request.targets or None,
        skip_ai=request.skip_ai,
        skip_upload=request.skip_upload,
    )
    return await _run_exclusive(run, config, options)


@router.post("/upload")
async def trigger_upload(
    config: PipelineConfig = Depends(get_pipeline_config),
    run: PipelineRun = Depends(get_pipeline_run),
):
    """Upload stored records lacking a remote URL."""
    return await _run_exclusive(run, config, RunOptions(skip_scrape=True, skip_ai=True))
