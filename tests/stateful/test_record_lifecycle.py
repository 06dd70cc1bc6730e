"""Stateful tests for a record across a sequence of partial runs."""

import itertools
from dataclasses import fields

import pytest

from asset_pipeline.models.asset_models import (
    AiAnalysis,
    DownloadedImage,
    RunOptions,
    ScrapedImage,
)
from asset_pipeline.services.pipeline import PipelineRunner
from asset_pipeline.services.uploader import ObjectStorageUploader


class SiteState:
    """A target listing whose downloaded bytes can change between runs."""

    def __init__(self):
        self.sha = "1" * 64
        self.analyze_calls = 0

    async def scrape(self, target):
        if target.slug != "wallhaven":
            return []
        return [
            ScrapedImage(
                id="wallhaven-a",
                source="wallhaven",
                page_url="https://wallhaven.example/search",
                image_url="https://wallhaven.example/full/a.jpg",
            )
        ]

    async def download(self, items, base_dir):
        return [
            DownloadedImage(
                **{f.name: getattr(item, f.name) for f in fields(ScrapedImage)},
                file_name="wallhaven-a.jpg",
                local_path=f"{base_dir}/wallhaven/raw/wallhaven-a.jpg",
                sha256=self.sha,
                bytes=100,
                ext="jpg",
            )
            for item in items
        ]

    def analyzer_factory(self, config):
        return self

    async def analyze(self, image):
        self.analyze_calls += 1
        return AiAnalysis(compressed_path="c/wallhaven-a-compressed.jpg", tags=["sky"])


@pytest.mark.asyncio
async def test_record_lifecycle_across_partial_runs(pipeline_config, memory_store, fake_s3):
    """Scrape only, then enrich, then upload, then re-download: nothing recorded is lost."""
    site = SiteState()
    ticks = itertools.count(1)
    runner = PipelineRunner(
        pipeline_config,
        store=memory_store,
        scrape=site.scrape,
        download=site.download,
        analyzer_factory=site.analyzer_factory,
        uploader_factory=lambda config: ObjectStorageUploader(config.cos, client=fake_s3),
        clock=lambda: f"t{next(ticks):03d}",
    )

    await runner.run(RunOptions(skip_ai=True, skip_upload=True))
    (record,) = memory_store.records
    assert record.ai_tags is None and record.remote_url is None

    await runner.run(RunOptions(skip_upload=True))
    (record,) = memory_store.records
    assert record.ai_tags == ["sky"]
    assert record.compressed_path == "c/wallhaven-a-compressed.jpg"
    assert site.analyze_calls == 1

    await runner.run(RunOptions(skip_scrape=True))
    (record,) = memory_store.records
    assert record.remote_url.endswith("/wallpapers/wallhaven-a-compressed.jpg")
    uploaded_at = record.updated_at

    site.sha = "2" * 64
    await runner.run(RunOptions())
    (record,) = memory_store.records
    assert record.sha256 == "2" * 64
    assert record.ai_tags == ["sky"]
    assert record.remote_url.endswith("/wallpapers/wallhaven-a-compressed.jpg")
    assert record.updated_at > uploaded_at
    assert site.analyze_calls == 1
    assert len(fake_s3.calls) == 1


@pytest.mark.asyncio
async def test_selective_runs_touch_only_selected_targets(pipeline_config, memory_store, make_record):
    site = SiteState()
    steam = make_record("steam-x", source="steam", updated_at="t000")
    memory_store.records = [steam]
    runner = PipelineRunner(
        pipeline_config,
        store=memory_store,
        scrape=site.scrape,
        download=site.download,
        analyzer_factory=site.analyzer_factory,
        clock=lambda: "t999",
    )

    await runner.run(RunOptions(targets=["wallhaven"], skip_upload=True, skip_ai=True))

    by_id = {record.id: record for record in memory_store.records}
    assert by_id["steam-x"] is steam
    assert by_id["wallhaven-a"].updated_at == "t999"
