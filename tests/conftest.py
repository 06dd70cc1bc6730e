"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Infrastructure: mock_settings, mock_logfire, respx_mock
2. Configuration: pipeline_config_data, pipeline_config, config_file
3. Records: make_record, make_downloaded, image_file
4. Fakes: InMemoryRecordStore, FakeS3Client
"""

import json
import os
from contextlib import contextmanager
from dataclasses import fields
from unittest.mock import MagicMock, Mock

import pytest

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

import respx
from PIL import Image

from asset_pipeline.models.asset_models import DownloadedImage, PipelineRecord
from asset_pipeline.models.config_models import PipelineConfig

LOGFIRE_MODULES = [
    "asset_pipeline.services.scraper",
    "asset_pipeline.services.downloader",
    "asset_pipeline.services.ai_analyzer",
    "asset_pipeline.services.uploader",
    "asset_pipeline.services.pipeline",
    "asset_pipeline.services.record_store",
    "asset_pipeline.logging_config",
    "asset_pipeline.api.dashboard",
    "asset_pipeline.main",
]

SETTINGS_MODULES = [
    "asset_pipeline.config",
    "asset_pipeline.services.scraper",
    "asset_pipeline.services.downloader",
    "asset_pipeline.services.uploader",
    "asset_pipeline.services.pipeline",
    "asset_pipeline.logging_config",
    "asset_pipeline.api.dashboard",
    "asset_pipeline.cli.pipeline_cli",
    "asset_pipeline.main",
]


@pytest.fixture
def respx_mock():
    """Respx mock fixture for HTTP mocking."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture(autouse=True)
def mock_settings(monkeypatch):
    """Deterministic process settings: no polite delay, fake COS credentials."""
    from asset_pipeline.config import Settings

    settings = Settings(
        pipeline_config="pipeline.config.json",
        tencent_secret_id="AKIDtestsecretid",
        tencent_secret_key="test-secret-key",
        env="local",
        logfire_token=None,
        sentry_dsn=None,
        polite_delay_seconds=0,
        http_timeout_seconds=5,
        download_concurrency=4,
        upload_concurrency=3,
        enrich_concurrency=1,
    )
    for module in SETTINGS_MODULES:
        monkeypatch.setattr(f"{module}.get_settings", lambda: settings)
    return settings


@pytest.fixture(autouse=True)
def mock_logfire(monkeypatch):
    """
    Replace logfire in every module that logs.

    Auto-applied so tests never need a configured Logfire project.
    """

    @contextmanager
    def mock_span(*args, **kwargs):
        yield MagicMock()

    mock_logfire_module = MagicMock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warn = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.debug = Mock()
    mock_logfire_module.span = mock_span
    mock_logfire_module.configure = Mock()
    mock_logfire_module.instrument_fastapi = Mock()
    mock_logfire_module.instrument_pydantic = Mock()

    for module in LOGFIRE_MODULES:
        monkeypatch.setattr(f"{module}.logfire", mock_logfire_module)
    return mock_logfire_module


@pytest.fixture
def pipeline_config_data(tmp_path):
    """Raw camelCase config document rooted in a temporary directory."""
    return {
        "outputDir": str(tmp_path / "images"),
        "csvPath": str(tmp_path / "records.csv"),
        "compression": {
            "outputDir": str(tmp_path / "compressed"),
            "maxWidth": 64,
            "quality": 80,
        },
        "ai": {"enabled": True, "maxTags": 3},
        "cos": {
            "enabled": True,
            "bucket": "assets-1250000000",
            "region": "ap-shanghai",
            "folder": "wallpapers",
        },
        "targets": [
            {
                "name": "Wallhaven",
                "slug": "wallhaven",
                "url": "https://wallhaven.example/search",
                "baseUrl": "https://wallhaven.example",
                "itemSelector": "figure.thumb",
                "image": {"selector": "img", "dataAttr": "src"},
                "title": {"selector": ".title"},
                "category": "anime",
                "tags": {"selector": ".tags", "split": ","},
            },
            {
                "name": "Steam Workshop",
                "slug": "steam",
                "url": "https://steam.example/browse",
                "itemSelector": "div.item",
                "image": {"selector": "img.preview"},
            },
        ],
    }


@pytest.fixture
def pipeline_config(pipeline_config_data) -> PipelineConfig:
    return PipelineConfig.model_validate(pipeline_config_data)


@pytest.fixture
def config_file(tmp_path, pipeline_config_data):
    """Config document written to disk."""
    path = tmp_path / "pipeline.config.json"
    path.write_text(json.dumps(pipeline_config_data), encoding="utf-8")
    return path


@pytest.fixture
def make_record():
    """Factory for PipelineRecord with sensible defaults."""

    def _make(id: str = "wallhaven-0123456789abcdef", **overrides) -> PipelineRecord:
        values = {
            "id": id,
            "source": "wallhaven",
            "page_url": "https://wallhaven.example/search",
            "image_url": f"https://wallhaven.example/full/{id}.jpg",
            "file_name": f"{id}.jpg",
            "local_path": f"data/images/wallhaven/raw/{id}.jpg",
            "sha256": "a" * 64,
            "bytes": 1024,
            "ext": "jpg",
            "updated_at": "2024-01-01T00:00:00+00:00",
        }
        values.update(overrides)
        return PipelineRecord(**values)

    return _make


@pytest.fixture
def make_downloaded(make_record):
    """Factory for DownloadedImage built from the record defaults."""

    def _make(id: str = "wallhaven-0123456789abcdef", **overrides) -> DownloadedImage:
        record = make_record(id, **overrides)
        return DownloadedImage(
            **{f.name: getattr(record, f.name) for f in fields(DownloadedImage)}
        )

    return _make


@pytest.fixture
def image_file(tmp_path):
    """A 200x100 RGB PNG on disk."""
    path = tmp_path / "source.png"
    image = Image.new("RGB", (200, 100), (200, 30, 30))
    for x in range(150, 200):
        for y in range(100):
            image.putpixel((x, y), (20, 20, 200))
    image.save(path, "PNG")
    return path


class InMemoryRecordStore:
    """Record store keeping snapshots in memory."""

    def __init__(self, records=None):
        self.records = list(records or [])
        self.saves = []

    async def load(self):
        return list(self.records)

    async def save(self, records):
        self.records = list(records)
        self.saves.append(list(records))


class FakeS3Client:
    """Stands in for a boto3 S3 client, recording uploads."""

    def __init__(self, fail_keys=()):
        self.calls = []
        self.fail_keys = set(fail_keys)

    def upload_file(self, filename, bucket, key, Config=None):
        self.calls.append((filename, bucket, key))
        if key in self.fail_keys:
            raise OSError(f"rejected {key}")


@pytest.fixture
def memory_store():
    return InMemoryRecordStore()


@pytest.fixture
def fake_s3():
    return FakeS3Client()
