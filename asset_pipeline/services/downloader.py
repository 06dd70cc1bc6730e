"""Bounded-parallel, idempotent image downloads."""

import asyncio
import hashlib
import os
from dataclasses import fields
from pathlib import Path
from typing import List, Sequence

import httpx
import logfire

from asset_pipeline.config import get_settings
from asset_pipeline.constants import RAW_SUBDIRECTORY
from asset_pipeline.exceptions import FetchError
from asset_pipeline.models.asset_models import DownloadedImage, ScrapedImage
from asset_pipeline.utils import file_name_with_ext, guess_extension_from_url


def destination_for(item: ScrapedImage, base_dir: str | Path) -> Path:
    """Deterministic local path of an asset: ``<base>/<slug>/raw/<id>.<ext>``."""
    ext = guess_extension_from_url(item.image_url)
    return Path(base_dir) / item.source / RAW_SUBDIRECTORY / file_name_with_ext(item.id, ext)


def _write_atomic(destination: Path, data: bytes) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    partial.write_bytes(data)
    os.replace(partial, destination)


async def _fetch_bytes(client: httpx.AsyncClient, url: str, headers: dict) -> bytes:
    try:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise FetchError(url, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise FetchError(url, str(e) or type(e).__name__) from e
    return response.content


async def _download_one(
    client: httpx.AsyncClient,
    item: ScrapedImage,
    base_dir: str | Path,
    limit: asyncio.Semaphore,
    user_agent: str,
) -> DownloadedImage | None:
    destination = destination_for(item, base_dir)
    async with limit:
        try:
            if destination.exists():
                data = await asyncio.to_thread(destination.read_bytes)
                logfire.debug("Reusing local file", asset_id=item.id, path=str(destination))
            else:
                headers = {"User-Agent": user_agent, "Referer": item.page_url}
                data = await _fetch_bytes(client, item.image_url, headers)
                await asyncio.to_thread(_write_atomic, destination, data)
        except (FetchError, OSError) as e:
            logfire.warn(
                "Download failed, dropping asset",
                asset_id=item.id,
                url=item.image_url,
                error=str(e),
            )
            return None

    scraped = {f.name: getattr(item, f.name) for f in fields(ScrapedImage)}
    return DownloadedImage(
        **scraped,
        file_name=destination.name,
        local_path=str(destination),
        sha256=hashlib.sha256(data).hexdigest(),
        bytes=len(data),
        ext=destination.suffix.lstrip("."),
    )


async def download_images(
    items: Sequence[ScrapedImage],
    base_dir: str | Path,
    *,
    concurrency: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> List[DownloadedImage]:
    """
    Ensure local bytes exist for each descriptor.

    A file already present at the deterministic destination is hashed instead
    of fetched again. A failed item is logged and left out of the result; it
    never aborts the batch.

    Args:
        items: Scraped descriptors, unique by id
        base_dir: Root directory of raw downloads
        concurrency: Maximum in-flight downloads (settings default)
        client: Optional shared HTTP client

    Returns:
        Downloaded assets in input order, failures omitted
    """
    if not items:
        return []
    settings = get_settings()
    limit = asyncio.Semaphore(concurrency or settings.download_concurrency)

    async def run(http: httpx.AsyncClient) -> List[DownloadedImage | None]:
        return await asyncio.gather(
            *(
                _download_one(http, item, base_dir, limit, settings.user_agent)
                for item in items
            )
        )

    with logfire.span("download_images", assets=len(items)):
        if client is None:
            async with httpx.AsyncClient(
                timeout=settings.http_timeout_seconds, follow_redirects=True
            ) as owned_client:
                results = await run(owned_client)
        else:
            results = await run(client)

    downloaded = [result for result in results if result is not None]
    logfire.info(
        "Downloads settled",
        requested=len(items),
        downloaded=len(downloaded),
        failed=len(items) - len(downloaded),
    )
    return downloaded
