"""CSV-backed record store.

The store is the durable state of the pipeline: one row per known asset id.
Every save is a full snapshot, written to a temporary sibling file and moved
over the store so readers never observe a half-written table.

Operational constraint: the store has no locking. Two runs writing the same
file race, and the last save wins.
"""

import asyncio
import csv
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence

import logfire

from asset_pipeline.constants import LIST_FIELD_DELIMITER, LIST_FIELD_SEPARATOR
from asset_pipeline.models.asset_models import PipelineRecord

# (CSV header, record attribute)
COLUMNS = (
    ("id", "id"),
    ("source", "source"),
    ("pageUrl", "page_url"),
    ("imageUrl", "image_url"),
    ("localPath", "local_path"),
    ("compressedPath", "compressed_path"),
    ("remoteUrl", "remote_url"),
    ("title", "title"),
    ("description", "description"),
    ("categories", "categories"),
    ("tags", "tags"),
    ("aiTags", "ai_tags"),
    ("aiCategories", "ai_categories"),
    ("aiColors", "ai_colors"),
    ("aiCaption", "ai_caption"),
    ("sha256", "sha256"),
    ("bytes", "bytes"),
    ("ext", "ext"),
    ("updatedAt", "updated_at"),
)

HEADER = [header for header, _ in COLUMNS]

LIST_FIELDS = frozenset(
    ("categories", "tags", "ai_tags", "ai_categories", "ai_colors")
)


def encode_list(values: Optional[Iterable[str]]) -> str:
    """Join list values into one cell. ``None`` and ``[]`` both encode to ``""``."""
    if not values:
        return ""
    return LIST_FIELD_SEPARATOR.join(values)


def decode_list(value: Optional[str]) -> Optional[List[str]]:
    """Split a list cell, trimming parts and dropping empty ones.

    An empty cell decodes to ``None``; the format cannot tell an empty list
    from an absent one.
    """
    if not value:
        return None
    parts = [part.strip() for part in value.split(LIST_FIELD_DELIMITER)]
    return [part for part in parts if part] or None


def _optional(value: Optional[str]) -> Optional[str]:
    return value if value else None


def row_to_record(row: dict) -> PipelineRecord:
    """Decode one CSV row into a record."""
    local_path = row.get("localPath") or ""
    raw_bytes = (row.get("bytes") or "").strip()
    return PipelineRecord(
        id=row["id"],
        source=row.get("source") or "",
        page_url=row.get("pageUrl") or "",
        image_url=row.get("imageUrl") or "",
        file_name=Path(local_path).name,
        local_path=local_path,
        compressed_path=_optional(row.get("compressedPath")),
        remote_url=_optional(row.get("remoteUrl")),
        title=_optional(row.get("title")),
        description=_optional(row.get("description")),
        categories=decode_list(row.get("categories")),
        tags=decode_list(row.get("tags")),
        ai_tags=decode_list(row.get("aiTags")),
        ai_categories=decode_list(row.get("aiCategories")),
        ai_colors=decode_list(row.get("aiColors")),
        ai_caption=_optional(row.get("aiCaption")),
        sha256=row.get("sha256") or "",
        bytes=int(raw_bytes) if raw_bytes else 0,
        ext=row.get("ext") or "",
        updated_at=row.get("updatedAt") or "",
    )


def record_to_row(record: PipelineRecord) -> dict:
    """Encode one record into a CSV row."""
    row = {}
    for header, attribute in COLUMNS:
        value = getattr(record, attribute)
        if attribute in LIST_FIELDS:
            row[header] = encode_list(value)
        elif value is None:
            row[header] = ""
        else:
            row[header] = str(value)
    return row


class RecordStore(Protocol):
    """Durable table of pipeline records."""

    async def load(self) -> List[PipelineRecord]:
        """Return every stored record, or an empty list if nothing is stored."""
        ...

    async def save(self, records: Sequence[PipelineRecord]) -> None:
        """Replace the stored table with ``records``."""
        ...


class CsvRecordStore:
    """Record store persisted as a CSV file with a fixed header."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self) -> List[PipelineRecord]:
        return await asyncio.to_thread(self._read)

    async def save(self, records: Sequence[PipelineRecord]) -> None:
        await asyncio.to_thread(self._write, list(records))
        logfire.info("Record store saved", path=str(self.path), records=len(records))

    def _read(self) -> List[PipelineRecord]:
        try:
            with self.path.open("r", encoding="utf-8", newline="") as handle:
                reader = csv.DictReader(handle)
                records = [row_to_record(row) for row in reader if row.get("id")]
        except FileNotFoundError:
            logfire.info("Record store not found, starting empty", path=str(self.path))
            return []
        logfire.info("Record store loaded", path=str(self.path), records=len(records))
        return records

    def _write(self, records: List[PipelineRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                writer = csv.DictWriter(handle, fieldnames=HEADER)
                writer.writeheader()
                for record in records:
                    writer.writerow(record_to_row(record))
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
