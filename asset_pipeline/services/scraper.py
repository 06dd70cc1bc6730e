"""Selector-driven scraping of image listings."""

import asyncio
import re
import time
from typing import List

import httpx
import logfire
from bs4 import BeautifulSoup
from bs4.element import Tag

from asset_pipeline.config import get_settings
from asset_pipeline.constants import DEFAULT_IMAGE_SELECTOR
from asset_pipeline.exceptions import ExtractionError, FetchError
from asset_pipeline.models.asset_models import ScrapedImage
from asset_pipeline.models.config_models import FieldSelector, LiteralValue, ScrapeTarget
from asset_pipeline.utils import create_deterministic_id, ensure_absolute

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def build_page_urls(target: ScrapeTarget) -> List[str]:
    """
    List the listing pages of a target.

    ``pageParam`` pagination sets ``?<param>=N`` on the target URL,
    ``increment`` appends ``N`` as a path segment. Both ranges are inclusive.
    """
    pagination = target.pagination
    if pagination is None:
        return [target.url]

    numbers = range(pagination.start, pagination.end + 1, pagination.step)
    if pagination.type == "pageParam":
        base = httpx.URL(target.url)
        return [str(base.copy_set_param(pagination.param, str(n))) for n in numbers]

    base = target.url if target.url.endswith("/") else f"{target.url}/"
    return [ensure_absolute(base, str(n)) for n in numbers]


def _attribute_value(node: Tag, name: str) -> str | None:
    value = node.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return value


def _data_attribute_name(name: str) -> str:
    if name.startswith("data-"):
        return name
    return "data-" + _CAMEL_BOUNDARY.sub("-", name).lower()


def extract_field(item: Tag, rule: FieldSelector | None) -> str | None:
    """
    Extract a trimmed text or attribute value from an item.

    Raises:
        ExtractionError: If a required selector matches nothing
    """
    if rule is None:
        return None
    node = item.select_one(rule.selector)
    if node is None:
        if rule.required:
            raise ExtractionError(f"Missing required selector {rule.selector}")
        return None
    if rule.attr:
        value = _attribute_value(node, rule.attr)
    else:
        value = node.get_text()
    if not value:
        return None
    return value.strip() or None


def resolve_values(value: str | None, splitter: str | None) -> List[str] | None:
    """Split a field value into a list, dropping blank parts."""
    if not value:
        return None
    if not splitter:
        return [value]
    parts = [part.strip() for part in value.split(splitter)]
    return [part for part in parts if part] or None


def derive_image_url(item: Tag, target: ScrapeTarget) -> str | None:
    """Locate the image of an item and resolve it against the target's base URL."""
    locator = target.image
    node = item.select_one(locator.selector or DEFAULT_IMAGE_SELECTOR)
    if node is None:
        return None
    src = None
    if locator.data_attr:
        src = _attribute_value(node, _data_attribute_name(locator.data_attr))
    if not src and locator.attr:
        src = _attribute_value(node, locator.attr)
    if not src:
        src = _attribute_value(node, "src") or _attribute_value(node, "data-src")
    if not src:
        return None
    return ensure_absolute(target.base_url or target.url, src.strip())


def _extract_categories(item: Tag, target: ScrapeTarget) -> List[str] | None:
    category = target.category
    if category is None:
        return None
    if isinstance(category, LiteralValue):
        return resolve_values(category.value, None)
    return resolve_values(extract_field(item, category), category.split)


def parse_items(html: str, page_url: str, target: ScrapeTarget) -> List[ScrapedImage]:
    """Parse every item of a listing page into scraped image descriptors."""
    soup = BeautifulSoup(html, "html.parser")
    results: List[ScrapedImage] = []
    for item in soup.select(target.item_selector):
        image_url = derive_image_url(item, target)
        if not image_url:
            continue
        tags_rule = target.tags
        results.append(
            ScrapedImage(
                id=f"{target.slug}-{create_deterministic_id(page_url, image_url)}",
                source=target.slug,
                page_url=page_url,
                image_url=image_url,
                title=extract_field(item, target.title),
                description=extract_field(item, target.description),
                categories=_extract_categories(item, target),
                tags=resolve_values(
                    extract_field(item, tags_rule), tags_rule.split if tags_rule else None
                ),
            )
        )
    return results


async def _fetch_page(client: httpx.AsyncClient, url: str, headers: dict) -> str:
    """
    Fetch one listing page.

    Raises:
        FetchError: On non-2xx status, network failure or timeout
    """
    try:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise FetchError(url, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise FetchError(url, str(e) or type(e).__name__) from e
    logfire.info(
        "Page fetched",
        url=url,
        status_code=response.status_code,
        content_length=len(response.text),
    )
    return response.text


async def _scrape_pages(
    client: httpx.AsyncClient, target: ScrapeTarget, page_urls: List[str]
) -> List[ScrapedImage]:
    settings = get_settings()
    headers = {
        "User-Agent": settings.user_agent,
        "Accept": "text/html,application/xhtml+xml",
        **(target.request_headers or {}),
    }
    deduped: dict[str, ScrapedImage] = {}
    for index, page_url in enumerate(page_urls):
        html = await _fetch_page(client, page_url, headers)
        for image in parse_items(html, page_url, target):
            deduped[image.id] = image
        if index < len(page_urls) - 1:
            await asyncio.sleep(settings.polite_delay_seconds)
    return list(deduped.values())


async def scrape_target(
    target: ScrapeTarget, *, client: httpx.AsyncClient | None = None
) -> List[ScrapedImage]:
    """
    Scrape every listing page of a target into deduplicated descriptors.

    Pages are fetched sequentially. An image listed twice on the same page
    yields one descriptor, kept at its first position.

    Args:
        target: Target definition from the pipeline configuration
        client: Optional shared HTTP client; one is created when omitted

    Returns:
        Scraped image descriptors, unique by id

    Raises:
        FetchError: If any page in the pagination range cannot be retrieved
        ExtractionError: If a required field is missing on an item
    """
    start_time = time.time()
    page_urls = build_page_urls(target)
    logfire.info("Starting target scrape", target=target.slug, pages=len(page_urls))

    if client is None:
        settings = get_settings()
        async with httpx.AsyncClient(
            timeout=settings.http_timeout_seconds, follow_redirects=True
        ) as owned_client:
            images = await _scrape_pages(owned_client, target, page_urls)
    else:
        images = await _scrape_pages(client, target, page_urls)

    logfire.info(
        "Target scrape completed",
        target=target.slug,
        pages_scraped=len(page_urls),
        assets=len(images),
        total_time_ms=(time.time() - start_time) * 1000,
    )
    return images
