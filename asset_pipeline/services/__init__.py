"""Pipeline stages and the orchestrator that reconciles them."""

from asset_pipeline.services.pipeline import (
    PipelineRunner,
    RunSummary,
    filter_targets,
    merge_record,
    run_pipeline,
)
from asset_pipeline.services.record_store import CsvRecordStore, RecordStore

__all__ = [
    "PipelineRunner",
    "RunSummary",
    "filter_targets",
    "merge_record",
    "run_pipeline",
    "CsvRecordStore",
    "RecordStore",
]
