"""Image resizing, re-encoding, perceptual hashing and color analysis.

All functions are blocking; async callers run them via ``asyncio.to_thread``.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import List

import imagehash
from PIL import Image

from asset_pipeline.constants import (
    COLOR_SAMPLE_SIZE,
    DOMINANT_COLOR_PALETTE_SIZE,
    PERCEPTUAL_HASH_MAX_SIDE,
    PERCEPTUAL_HASH_SIZE,
    VARIANT_JPEG_QUALITY,
    VARIANT_TARGETS,
    VARIANT_WEBP_QUALITY,
)

logger = logging.getLogger(__name__)


def rgb_to_hex(r: float, g: float, b: float) -> str:
    """Format an RGB triple as ``#rrggbb``, clamping each channel to 0..255."""

    def clamp(value: float) -> int:
        return max(0, min(255, round(value)))

    return "#" + "".join(f"{clamp(v):02x}" for v in (r, g, b))


def compress_image(source: str | Path, destination: str | Path, max_width: int, quality: int) -> Path:
    """Write a JPEG preview no wider than ``max_width``; never enlarges.

    An existing destination is reused as is.
    """
    destination = Path(destination)
    if destination.exists():
        return destination
    destination.parent.mkdir(parents=True, exist_ok=True)
    with Image.open(source) as raw_image:
        image = raw_image.convert("RGB")
    if image.width > max_width:
        height = max(1, round(image.height * max_width / image.width))
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)
    image.save(destination, "JPEG", quality=quality)
    logger.debug("Compressed %s -> %s", source, destination)
    return destination


def dominant_colors(path: str | Path) -> List[str]:
    """Return the dominant and the average color of an image as hex strings.

    The dominant color is the most frequent entry of a small adaptive
    palette; duplicates are collapsed.
    """
    with Image.open(path) as raw_image:
        image = raw_image.convert("RGB")
    sample = image.resize((COLOR_SAMPLE_SIZE, COLOR_SAMPLE_SIZE))
    quantized = sample.quantize(colors=DOMINANT_COLOR_PALETTE_SIZE)
    _, index = max(quantized.getcolors())
    palette = quantized.getpalette()
    dominant = rgb_to_hex(*palette[index * 3 : index * 3 + 3])
    average = rgb_to_hex(*image.resize((1, 1), Image.Resampling.BOX).getpixel((0, 0)))
    return list(dict.fromkeys([dominant, average]))


def perceptual_hash(source: str | Path | bytes) -> str:
    """Hex pHash of an image file or of raw image bytes.

    The image is first fitted inside a 1024px box, so large originals and
    their downscaled copies hash alike.
    """
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    with Image.open(source) as raw_image:
        image = raw_image.convert("RGB")
    image.thumbnail((PERCEPTUAL_HASH_MAX_SIDE, PERCEPTUAL_HASH_MAX_SIDE), Image.Resampling.LANCZOS)
    return str(imagehash.phash(image, hash_size=PERCEPTUAL_HASH_SIZE))


def build_variants(source: str | Path, output_root: str | Path) -> List[Path]:
    """Write WebP and JPEG device variants of an image.

    Each variant fits inside its device box and is never enlarged. Files land
    at ``<output_root>/<device>/<stem>.{webp,jpg}``.
    """
    stem = Path(source).stem
    written: List[Path] = []
    with Image.open(source) as raw_image:
        image = raw_image.convert("RGB")
    for name, max_width, max_height in VARIANT_TARGETS:
        out_dir = Path(output_root) / name
        out_dir.mkdir(parents=True, exist_ok=True)
        variant = image.copy()
        variant.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
        webp_path = out_dir / f"{stem}.webp"
        jpg_path = out_dir / f"{stem}.jpg"
        variant.save(webp_path, "WEBP", quality=VARIANT_WEBP_QUALITY)
        variant.save(jpg_path, "JPEG", quality=VARIANT_JPEG_QUALITY, optimize=True)
        written.extend([webp_path, jpg_path])
    return written
