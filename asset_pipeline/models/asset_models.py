"""Models for assets flowing through the pipeline.

``ScrapedImage`` -> ``DownloadedImage`` -> ``PipelineRecord`` each extend the
previous stage's fields. Records are replaced, never mutated in place:
stages use :func:`dataclasses.replace` to derive new values.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


def utc_now_iso() -> str:
    """Return UTC timestamp in ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(kw_only=True)
class ScrapedImage:
    """Asset discovered on a target page, before download."""

    id: str
    source: str
    page_url: str
    image_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    categories: Optional[List[str]] = None
    tags: Optional[List[str]] = None


@dataclass(kw_only=True)
class DownloadedImage(ScrapedImage):
    """Scraped asset whose bytes exist on local disk."""

    file_name: str
    local_path: str
    sha256: str
    bytes: int
    ext: str


@dataclass(kw_only=True)
class PipelineRecord(DownloadedImage):
    """Durable row of the record store, one per asset id."""

    compressed_path: Optional[str] = None
    remote_url: Optional[str] = None
    ai_tags: Optional[List[str]] = None
    ai_categories: Optional[List[str]] = None
    ai_colors: Optional[List[str]] = None
    ai_caption: Optional[str] = None
    updated_at: str = field(default_factory=utc_now_iso)


@dataclass
class ModelAnalysis:
    """Fields produced by an analysis model backend."""

    tags: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    caption: Optional[str] = None


@dataclass
class AiAnalysis:
    """Result of enriching one downloaded asset."""

    compressed_path: Optional[str] = None
    tags: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    dominant_colors: Optional[List[str]] = None
    caption: Optional[str] = None


@dataclass
class RunOptions:
    """Caller's selection for one pipeline run."""

    targets: Optional[List[str]] = None
    skip_ai: bool = False
    skip_upload: bool = False
    skip_scrape: bool = False
