"""Upload of local assets to Tencent COS through its S3-compatible API."""

import asyncio
import posixpath
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, List, Sequence

import boto3
import logfire
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from asset_pipeline.config import Settings, get_settings
from asset_pipeline.constants import UPLOAD_MULTIPART_CHUNK_BYTES
from asset_pipeline.exceptions import StorageError
from asset_pipeline.logging_config import mask_credential
from asset_pipeline.models.asset_models import PipelineRecord, utc_now_iso
from asset_pipeline.models.config_models import ObjectStorageConfig


def resolve_key(record: PipelineRecord, folder: str | None = None) -> str:
    """Object key of a record: the uploaded file's name under ``folder``."""
    file_name = Path(record.compressed_path or record.local_path).name
    if not folder:
        return file_name
    return posixpath.join(folder.replace("\\", "/"), file_name)


def build_remote_url(bucket: str, region: str, key: str) -> str:
    """Public URL of an object in a COS bucket."""
    normalized_key = key.replace("\\", "/")
    return f"https://{bucket}.cos.{region}.myqcloud.com/{normalized_key}"


def create_cos_client(cos: ObjectStorageConfig, settings: Settings) -> Any:
    """
    Create an S3 client for the COS region.

    Raises:
        StorageError: If COS credentials are not configured
    """
    if not settings.tencent_secret_id or not settings.tencent_secret_key:
        raise StorageError(
            "Missing TENCENT_SECRET_ID or TENCENT_SECRET_KEY environment variables."
        )
    addressing_style = "path" if cos.force_path_style else "virtual"
    logfire.info(
        "Creating object storage client",
        bucket=cos.bucket,
        region=cos.region,
        secret_id=mask_credential(settings.tencent_secret_id),
        addressing_style=addressing_style,
    )
    return boto3.client(
        "s3",
        region_name=cos.region,
        endpoint_url=f"https://cos.{cos.region}.myqcloud.com",
        aws_access_key_id=settings.tencent_secret_id,
        aws_secret_access_key=settings.tencent_secret_key,
        config=BotoConfig(s3={"addressing_style": addressing_style}),
    )


class ObjectStorageUploader:
    """Upload records lacking a remote URL, with bounded parallelism.

    Records are never mutated: ``upload`` returns new records for uploaded
    items and the original objects for items that already had a remote URL.
    """

    def __init__(
        self,
        cos: ObjectStorageConfig,
        settings: Settings | None = None,
        *,
        client: Any | None = None,
        concurrency: int | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ):
        """
        Initialize the uploader.

        Args:
            cos: Bucket, region and key prefix
            settings: Process settings holding credentials (cached settings if omitted)
            client: Optional pre-built S3 client, used as is
            concurrency: Maximum in-flight uploads (settings default)
            clock: Timestamp source for ``updated_at``

        Raises:
            StorageError: If no client is given and credentials are missing
        """
        settings = settings or get_settings()
        self._cos = cos
        self._client = client if client is not None else create_cos_client(cos, settings)
        self._concurrency = concurrency or settings.upload_concurrency
        self._clock = clock
        self._transfer_config = TransferConfig(multipart_chunksize=UPLOAD_MULTIPART_CHUNK_BYTES)

    def _upload_file(self, file_path: str, key: str) -> None:
        self._client.upload_file(file_path, self._cos.bucket, key, Config=self._transfer_config)

    async def _upload_one(self, record: PipelineRecord, limit: asyncio.Semaphore) -> PipelineRecord:
        if record.remote_url:
            return record
        file_path = record.compressed_path or record.local_path
        key = resolve_key(record, self._cos.folder)
        async with limit:
            try:
                await asyncio.to_thread(self._upload_file, file_path, key)
            except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as e:
                raise StorageError(f"Upload of {record.id} ({file_path}) failed: {e}") from e
        logfire.debug("Asset uploaded", asset_id=record.id, key=key)
        return replace(
            record,
            remote_url=build_remote_url(self._cos.bucket, self._cos.region, key),
            updated_at=self._clock(),
        )

    async def upload(self, records: Sequence[PipelineRecord]) -> List[PipelineRecord]:
        """
        Upload a batch of records.

        Every upload settles before the first failure is raised, so sibling
        uploads already in flight are never cancelled.

        Raises:
            StorageError: If any upload failed
        """
        limit = asyncio.Semaphore(self._concurrency)
        with logfire.span("upload_records", records=len(records)):
            results = await asyncio.gather(
                *(self._upload_one(record, limit) for record in records),
                return_exceptions=True,
            )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            logfire.error(
                "Upload batch failed",
                records=len(records),
                failed=len(failures),
                error=str(failures[0]),
            )
            raise failures[0]
        logfire.info("Upload batch completed", records=len(records))
        return list(results)
