"""Tests for the COS uploader."""

import threading
import time
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from asset_pipeline.exceptions import StorageError
from asset_pipeline.models.config_models import ObjectStorageConfig
from asset_pipeline.services.uploader import (
    ObjectStorageUploader,
    build_remote_url,
    create_cos_client,
    resolve_key,
)

COS = ObjectStorageConfig(bucket="assets-1250000000", region="ap-guangzhou", folder="wp")


def fixed_clock():
    return "2030-01-01T00:00:00+00:00"


class TestKeys:
    """Test key and URL derivation."""

    def test_key_prefers_compressed_path(self, make_record):
        record = make_record("a", compressed_path="data/compressed/wallhaven/a-compressed.jpg")

        assert resolve_key(record, "wp") == "wp/a-compressed.jpg"

    def test_key_without_folder(self, make_record):
        assert resolve_key(make_record("a"), None) == "a.jpg"

    def test_remote_url(self):
        assert (
            build_remote_url("b-1", "ap-guangzhou", "wp/a.jpg")
            == "https://b-1.cos.ap-guangzhou.myqcloud.com/wp/a.jpg"
        )


class TestClientCreation:
    """Test credential handling."""

    def test_missing_credentials_fail_fast(self, mock_settings):
        settings = mock_settings.model_copy(update={"tencent_secret_key": None})

        with pytest.raises(StorageError, match="TENCENT_SECRET"):
            ObjectStorageUploader(COS, settings)

    def test_client_uses_cos_endpoint(self, mock_settings):
        with patch("asset_pipeline.services.uploader.boto3.client") as client_factory:
            create_cos_client(COS.model_copy(update={"force_path_style": True}), mock_settings)

        kwargs = client_factory.call_args.kwargs
        assert client_factory.call_args.args == ("s3",)
        assert kwargs["endpoint_url"] == "https://cos.ap-guangzhou.myqcloud.com"
        assert kwargs["aws_access_key_id"] == "AKIDtestsecretid"
        assert kwargs["config"].s3 == {"addressing_style": "path"}

    def test_secret_id_is_masked_in_logs(self, mock_settings, mock_logfire):
        with patch("asset_pipeline.services.uploader.boto3.client"):
            create_cos_client(COS, mock_settings)

        logged = mock_logfire.info.call_args.kwargs
        assert logged["secret_id"] != mock_settings.tencent_secret_id
        assert logged["secret_id"].endswith("etid")
        assert "AKID" not in logged["secret_id"]


class TestUpload:
    """Test batch upload semantics."""

    @pytest.mark.asyncio
    async def test_five_record_batch(self, make_record, fake_s3):
        done = make_record("done", remote_url="https://x/done.jpg")
        records = [make_record(f"r{i}") for i in range(4)] + [done]
        uploader = ObjectStorageUploader(COS, client=fake_s3, clock=fixed_clock)

        results = await uploader.upload(records)

        assert len(fake_s3.calls) == 4
        assert results[4] is done
        assert results[0].remote_url == "https://assets-1250000000.cos.ap-guangzhou.myqcloud.com/wp/r0.jpg"
        assert results[0].updated_at == fixed_clock()
        assert records[0].remote_url is None

    @pytest.mark.asyncio
    async def test_failure_raised_after_batch_settles(self, make_record, fake_s3):
        fake_s3.fail_keys = {"wp/r0.jpg"}
        records = [make_record(f"r{i}") for i in range(3)]
        uploader = ObjectStorageUploader(COS, client=fake_s3, concurrency=1)

        with pytest.raises(StorageError, match="r0"):
            await uploader.upload(records)

        assert len(fake_s3.calls) == 3

    @pytest.mark.asyncio
    async def test_client_error_becomes_storage_error(self, make_record):
        class RejectingClient:
            def upload_file(self, *args, **kwargs):
                raise ClientError({"Error": {"Code": "AccessDenied"}}, "PutObject")

        uploader = ObjectStorageUploader(COS, client=RejectingClient())

        with pytest.raises(StorageError) as exc_info:
            await uploader.upload([make_record("a")])

        assert isinstance(exc_info.value.__cause__, ClientError)

    @pytest.mark.asyncio
    async def test_in_flight_uploads_bounded(self, make_record):
        class SlowClient:
            def __init__(self):
                self.lock = threading.Lock()
                self.in_flight = 0
                self.peak = 0

            def upload_file(self, *args, **kwargs):
                with self.lock:
                    self.in_flight += 1
                    self.peak = max(self.peak, self.in_flight)
                time.sleep(0.05)
                with self.lock:
                    self.in_flight -= 1

        client = SlowClient()
        uploader = ObjectStorageUploader(COS, client=client, concurrency=2)

        results = await uploader.upload([make_record(f"r{i}") for i in range(6)])

        assert all(record.remote_url for record in results)
        assert client.peak == 2
