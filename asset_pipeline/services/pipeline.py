"""Pipeline orchestration: scrape, download, merge, enrich, upload, save.

One run owns an ordered ``id -> PipelineRecord`` accumulator. Stage helpers
take the accumulator and return a new one; only the merge step decides which
field values survive.

Example:
    >>> runner = PipelineRunner(config, store=CsvRecordStore(config.csv_path))
    >>> summary = await runner.run(RunOptions(targets=["wallhaven"], skip_upload=True))
"""

import asyncio
from dataclasses import dataclass, field, fields, replace
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

import logfire

from asset_pipeline.config import get_settings
from asset_pipeline.models.asset_models import (
    AiAnalysis,
    DownloadedImage,
    PipelineRecord,
    RunOptions,
    ScrapedImage,
    utc_now_iso,
)
from asset_pipeline.models.config_models import PipelineConfig, ScrapeTarget
from asset_pipeline.services.ai_analyzer import AiAnalyzer
from asset_pipeline.services.downloader import download_images
from asset_pipeline.services.record_store import CsvRecordStore, RecordStore
from asset_pipeline.services.scraper import scrape_target
from asset_pipeline.services.uploader import ObjectStorageUploader

Accumulator = Dict[str, PipelineRecord]

# Enrichment and upload fields, kept from the stored record when the incoming value is absent.
PRESERVED_FIELDS = (
    "compressed_path",
    "ai_tags",
    "ai_categories",
    "ai_colors",
    "ai_caption",
    "categories",
    "tags",
)


class Analyzer(Protocol):
    async def analyze(self, image: DownloadedImage) -> AiAnalysis: ...


class Uploader(Protocol):
    async def upload(self, records: Sequence[PipelineRecord]) -> List[PipelineRecord]: ...


ScrapeFn = Callable[[ScrapeTarget], Awaitable[List[ScrapedImage]]]
DownloadFn = Callable[[Sequence[ScrapedImage], str], Awaitable[List[DownloadedImage]]]
AnalyzerFactory = Callable[[PipelineConfig], Analyzer]
UploaderFactory = Callable[[PipelineConfig], Uploader]


@dataclass
class RunSummary:
    """Outcome of one pipeline run."""

    targets: List[str] = field(default_factory=list)
    scraped: int = 0
    downloaded: int = 0
    enriched: int = 0
    uploaded: int = 0
    records: List[PipelineRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records)

    def as_dict(self) -> dict:
        return {
            "targets": self.targets,
            "scraped": self.scraped,
            "downloaded": self.downloaded,
            "enriched": self.enriched,
            "uploaded": self.uploaded,
            "total": self.total,
        }


def filter_targets(config: PipelineConfig, options: RunOptions) -> List[ScrapeTarget]:
    """Targets selected by ``options.targets``; unknown slugs match nothing."""
    if not options.targets:
        return list(config.targets)
    selected = set(options.targets)
    return [target for target in config.targets if target.slug in selected]


def record_from_download(image: DownloadedImage, now: str) -> PipelineRecord:
    """Wrap a downloaded asset as a record without enrichment."""
    values = {f.name: getattr(image, f.name) for f in fields(DownloadedImage)}
    return PipelineRecord(**values, updated_at=now)


def merge_record(base: Optional[PipelineRecord], incoming: PipelineRecord, now: str) -> PipelineRecord:
    """
    Upsert ``incoming`` over ``base``.

    Incoming values win, except that absent enrichment values fall back to the
    base record and the remote URL is only replaced by a non-empty one. The
    timestamp is refreshed on every merge.
    """
    if base is None:
        return replace(incoming, updated_at=now)

    kept = {
        name: getattr(base, name)
        for name in PRESERVED_FIELDS
        if getattr(incoming, name) is None
    }
    return replace(
        incoming,
        **kept,
        remote_url=incoming.remote_url or base.remote_url,
        updated_at=now,
    )


def needs_enrichment(base: Optional[PipelineRecord]) -> bool:
    """True while a record has never received AI tags."""
    return base is None or not base.ai_tags


def apply_analysis(record: PipelineRecord, analysis: AiAnalysis) -> PipelineRecord:
    return replace(
        record,
        compressed_path=analysis.compressed_path,
        ai_tags=analysis.tags,
        ai_categories=analysis.categories,
        ai_colors=analysis.dominant_colors,
        ai_caption=analysis.caption,
    )


def _default_uploader(config: PipelineConfig) -> Uploader:
    return ObjectStorageUploader(config.cos)


class PipelineRunner:
    """Run the pipeline for one configuration.

    Every stage is injectable; defaults are the production services.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        store: Optional[RecordStore] = None,
        scrape: ScrapeFn = scrape_target,
        download: DownloadFn = download_images,
        analyzer_factory: AnalyzerFactory = AiAnalyzer.from_config,
        uploader_factory: UploaderFactory = _default_uploader,
        clock: Callable[[], str] = utc_now_iso,
        checkpoint: bool = True,
        enrich_concurrency: Optional[int] = None,
    ):
        self.config = config
        self.store = store if store is not None else CsvRecordStore(config.csv_path)
        self._scrape = scrape
        self._download = download
        self._analyzer_factory = analyzer_factory
        self._uploader_factory = uploader_factory
        self._clock = clock
        self.checkpoint = checkpoint
        self._enrich_concurrency = enrich_concurrency or get_settings().enrich_concurrency

    def _merge(self, records: Accumulator, incoming: PipelineRecord) -> Accumulator:
        merged = merge_record(records.get(incoming.id), incoming, self._clock())
        return {**records, merged.id: merged}

    async def _load(self) -> Accumulator:
        return {record.id: record for record in await self.store.load()}

    async def _save(self, records: Accumulator) -> None:
        await self.store.save(list(records.values()))

    async def _enrich(
        self,
        records: Accumulator,
        candidates: List[DownloadedImage],
        analyzer: Analyzer,
        summary: RunSummary,
    ) -> Accumulator:
        limit = asyncio.Semaphore(self._enrich_concurrency)

        async def analyze(image: DownloadedImage) -> Optional[AiAnalysis]:
            async with limit:
                try:
                    return await analyzer.analyze(image)
                except Exception as e:
                    logfire.error(
                        "Enrichment failed, will retry next run",
                        asset_id=image.id,
                        error=str(e),
                    )
                    return None

        analyses = await asyncio.gather(*(analyze(image) for image in candidates))
        for image, analysis in zip(candidates, analyses):
            if analysis is None:
                continue
            records = self._merge(records, apply_analysis(records[image.id], analysis))
            summary.enriched += 1
        return records

    async def _process_target(
        self,
        records: Accumulator,
        target: ScrapeTarget,
        options: RunOptions,
        summary: RunSummary,
    ) -> Accumulator:
        with logfire.span("process_target", target=target.slug):
            scraped = await self._scrape(target)
            downloaded = await self._download(scraped, self.config.output_dir)
            summary.scraped += len(scraped)
            summary.downloaded += len(downloaded)

            enrich = self.config.ai_enabled and not options.skip_ai
            candidates: List[DownloadedImage] = []
            for image in downloaded:
                if enrich and needs_enrichment(records.get(image.id)):
                    candidates.append(image)
                records = self._merge(records, record_from_download(image, self._clock()))

            if candidates:
                records = await self._enrich(
                    records, candidates, self._analyzer_factory(self.config), summary
                )

            logfire.info(
                "Target processed",
                target=target.slug,
                scraped=len(scraped),
                downloaded=len(downloaded),
                enrichment_candidates=len(candidates),
            )
        return records

    async def _upload(self, records: Accumulator, summary: RunSummary) -> Accumulator:
        pending = [record for record in records.values() if not record.remote_url]
        if not pending:
            logfire.info("Nothing to upload")
            return records
        uploader = self._uploader_factory(self.config)
        for uploaded in await uploader.upload(pending):
            records = self._merge(records, uploaded)
        summary.uploaded += sum(1 for record in pending if records[record.id].remote_url)
        return records

    async def run(self, options: Optional[RunOptions] = None) -> RunSummary:
        """
        Execute one run and persist the resulting record set.

        Raises:
            PipelineError: If a target's scrape or the upload batch fails; with
                checkpointing on, targets finished before the failure are saved
        """
        options = options or RunOptions()
        targets = filter_targets(self.config, options)
        summary = RunSummary(targets=[target.slug for target in targets])

        with logfire.span("pipeline_run", targets=summary.targets):
            records = await self._load()
            logfire.info("Record store loaded", records=len(records))

            if not options.skip_scrape:
                for target in targets:
                    records = await self._process_target(records, target, options, summary)
                    if self.checkpoint:
                        await self._save(records)

            if self.config.upload_enabled and not options.skip_upload:
                records = await self._upload(records, summary)

            await self._save(records)

        summary.records = list(records.values())
        logfire.info("Pipeline run completed", **summary.as_dict())
        return summary


async def run_pipeline(
    config: PipelineConfig, options: Optional[RunOptions] = None, **overrides
) -> RunSummary:
    """Run the pipeline with production stages; ``overrides`` go to :class:`PipelineRunner`."""
    return await PipelineRunner(config, **overrides).run(options)
