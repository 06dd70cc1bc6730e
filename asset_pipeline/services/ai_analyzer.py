"""AI enrichment of downloaded assets.

Enrichment always produces the local results (compressed preview and
dominant colors). Tags, categories and captions come from a
:class:`ModelBackend`; a backend whose models cannot be loaded answers
``None`` from ``try_analyze`` instead of raising, so a missing model is a
normal, testable state rather than an error path.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol

import logfire

from asset_pipeline.constants import (
    CAPTION_MAX_NEW_TOKENS,
    DEFAULT_CAPTION_MODEL,
    DEFAULT_CLASSIFIER_MODEL,
    DEFAULT_MAX_TAGS,
    MAX_AI_CATEGORIES,
)
from asset_pipeline.exceptions import ModelUnavailableError
from asset_pipeline.models.asset_models import AiAnalysis, DownloadedImage, ModelAnalysis
from asset_pipeline.models.config_models import PipelineConfig
from asset_pipeline.services.image_processing import compress_image, dominant_colors
from asset_pipeline.utils import file_name_with_ext

CLASSIFICATION_TASK = "image-classification"
CAPTION_TASK = "image-to-text"


class ModelBackend(Protocol):
    """Optional model capability behind enrichment."""

    async def try_analyze(self, image_path: str) -> ModelAnalysis | None:
        """Analyze an image, or return None when no model is available."""
        ...


class TransformersBackend:
    """Hugging Face ``transformers`` pipelines for tagging and captioning.

    Pipelines are built on first use and reused for the lifetime of the
    backend. A pipeline that fails to load is reported once and treated as
    absent from then on.
    """

    def __init__(
        self,
        classifier_model: str | None = None,
        caption_model: str | None = None,
        max_tags: int = DEFAULT_MAX_TAGS,
    ):
        self.classifier_model = classifier_model or DEFAULT_CLASSIFIER_MODEL
        self.caption_model = caption_model or DEFAULT_CAPTION_MODEL
        self.max_tags = max_tags
        self._pipelines: dict[str, Any] = {}
        self._unavailable: set[str] = set()
        self._lock = threading.Lock()

    def _load_pipeline(self, task: str, model: str) -> Any:
        """
        Build a transformers pipeline.

        Raises:
            ModelUnavailableError: If transformers is missing or the model cannot load
        """
        try:
            from transformers import pipeline
        except ImportError as e:
            raise ModelUnavailableError("transformers is not installed") from e
        try:
            return pipeline(task, model=model)
        except Exception as e:
            raise ModelUnavailableError(f"Failed to load {model}: {e}") from e

    def get_pipeline(self, task: str, model: str) -> Any | None:
        """Return the cached pipeline for ``task``, loading it on first use."""
        with self._lock:
            if task in self._pipelines:
                return self._pipelines[task]
            if task in self._unavailable:
                return None
            try:
                self._pipelines[task] = self._load_pipeline(task, model)
            except ModelUnavailableError as e:
                self._unavailable.add(task)
                logfire.warn(
                    "Analysis model unavailable, continuing without it",
                    task=task,
                    model=model,
                    error=str(e),
                )
                return None
            logfire.info("Analysis model loaded", task=task, model=model)
            return self._pipelines[task]

    def _analyze_sync(self, image_path: str) -> ModelAnalysis | None:
        classifier = self.get_pipeline(CLASSIFICATION_TASK, self.classifier_model)
        captioner = self.get_pipeline(CAPTION_TASK, self.caption_model)
        if classifier is None and captioner is None:
            return None

        analysis = ModelAnalysis()
        if classifier is not None:
            try:
                predictions = classifier(image_path, top_k=self.max_tags)
                labels = [p["label"] for p in predictions] if isinstance(predictions, list) else []
                analysis.tags = labels[: self.max_tags]
                analysis.categories = labels[:MAX_AI_CATEGORIES]
            except Exception as e:
                logfire.warn("Failed to classify image", path=image_path, error=str(e))

        if captioner is not None:
            try:
                generated = captioner(image_path, max_new_tokens=CAPTION_MAX_NEW_TOKENS)
                if isinstance(generated, list) and generated:
                    generated = generated[0]
                if isinstance(generated, dict):
                    analysis.caption = generated.get("generated_text") or generated.get("caption")
            except Exception as e:
                logfire.warn("Failed to caption image", path=image_path, error=str(e))

        return analysis

    async def try_analyze(self, image_path: str) -> ModelAnalysis | None:
        return await asyncio.to_thread(self._analyze_sync, image_path)


@lru_cache()
def get_model_backend(
    classifier_model: str | None = None,
    caption_model: str | None = None,
    max_tags: int = DEFAULT_MAX_TAGS,
) -> TransformersBackend:
    """Get the process-wide backend for a model combination."""
    return TransformersBackend(classifier_model, caption_model, max_tags)


@dataclass
class AiAnalyzerOptions:
    """Settings of one analyzer instance."""

    output_dir: str
    max_width: int
    quality: int
    classifier_model: str | None = None
    caption_model: str | None = None
    max_tags: int = DEFAULT_MAX_TAGS


class AiAnalyzer:
    """Produce previews, colors and optional model output for downloaded assets.

    Example:
        >>> analyzer = AiAnalyzer.from_config(config)
        >>> analysis = await analyzer.analyze(image)
        >>> analysis.compressed_path
        'data/compressed/wallhaven/wallhaven-0a1b2c3d4e5f6a7b-compressed.jpg'
    """

    def __init__(self, options: AiAnalyzerOptions, backend: ModelBackend | None = None):
        self.options = options
        self._backend = backend

    @classmethod
    def from_config(cls, config: PipelineConfig, backend: ModelBackend | None = None) -> "AiAnalyzer":
        ai = config.ai
        return cls(
            AiAnalyzerOptions(
                output_dir=config.compression.output_dir,
                max_width=config.compression.max_width,
                quality=config.compression.quality,
                classifier_model=ai.classifier_model if ai else None,
                caption_model=ai.caption_model if ai else None,
                max_tags=ai.max_tags if ai else DEFAULT_MAX_TAGS,
            ),
            backend=backend,
        )

    @property
    def backend(self) -> ModelBackend:
        """Get or create the model backend."""
        if self._backend is None:
            self._backend = get_model_backend(
                self.options.classifier_model,
                self.options.caption_model,
                self.options.max_tags,
            )
        return self._backend

    def compressed_path_for(self, image: DownloadedImage) -> Path:
        return Path(self.options.output_dir) / image.source / file_name_with_ext(
            f"{image.id}-compressed", "jpg"
        )

    async def analyze(self, image: DownloadedImage) -> AiAnalysis:
        """
        Enrich one downloaded asset.

        Model problems never raise here; only local file errors (an unreadable
        or non-image download) propagate to the caller.
        """
        compressed = await asyncio.to_thread(
            compress_image,
            image.local_path,
            self.compressed_path_for(image),
            self.options.max_width,
            self.options.quality,
        )
        colors = await asyncio.to_thread(dominant_colors, compressed)
        analysis = AiAnalysis(compressed_path=str(compressed), dominant_colors=colors)

        model_result = await self.backend.try_analyze(str(compressed))
        if model_result is not None:
            analysis.tags = model_result.tags
            analysis.categories = model_result.categories
            analysis.caption = model_result.caption

        logfire.info(
            "Asset analyzed",
            asset_id=image.id,
            has_model_output=model_result is not None,
            tag_count=len(analysis.tags or []),
        )
        return analysis
