"""Pipeline configuration models.

The pipeline configuration is a JSON document with camelCase keys. It is
validated once at load time; any constraint violation raises
:class:`~asset_pipeline.exceptions.ConfigValidationError` before a stage runs.
"""

from pathlib import Path
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from asset_pipeline.constants import DEFAULT_MAX_TAGS, DEFAULT_PAGE_PARAM
from asset_pipeline.exceptions import ConfigValidationError


class _ConfigModel(BaseModel):
    """Base model accepting camelCase keys and snake_case attribute names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_http_url(value: str | None) -> str | None:
    if value is None:
        return value
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"invalid URL: {value!r}")
    return value


class FieldSelector(_ConfigModel):
    """Rule extracting one field from a scraped item."""

    selector: str
    attr: str | None = None
    type: Literal["text", "attr"] | None = None
    split: str | None = None
    required: bool = False


class LiteralValue(_ConfigModel):
    """Fixed value used instead of a selector (e.g. a constant category)."""

    value: str

    @model_validator(mode="before")
    @classmethod
    def _wrap_plain_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"value": data}
        return data


def _category_kind(value: Any) -> str:
    if isinstance(value, (str, LiteralValue)):
        return "literal"
    if isinstance(value, dict) and set(value) == {"value"}:
        return "literal"
    return "rule"


CategoryRule = Annotated[
    Union[
        Annotated[LiteralValue, Tag("literal")],
        Annotated[FieldSelector, Tag("rule")],
    ],
    Discriminator(_category_kind),
]


class ImageLocator(_ConfigModel):
    """Where to find the image URL inside an item."""

    selector: str | None = None
    attr: str | None = None
    data_attr: str | None = None


class Pagination(_ConfigModel):
    """Page range of a paginated listing."""

    type: Literal["pageParam", "increment"] = "pageParam"
    start: int = 1
    end: int
    param: str = DEFAULT_PAGE_PARAM
    step: int = Field(default=1, ge=1)


class ScrapeTarget(_ConfigModel):
    """A named, slugged source of assets."""

    name: str
    slug: str = Field(
        ...,
        pattern=r"^[A-Za-z0-9-]+$",
        description="Alphanumeric with dashes; partitions on-disk storage",
    )
    url: str
    base_url: str | None = None
    item_selector: str
    image: ImageLocator
    title: FieldSelector | None = None
    description: FieldSelector | None = None
    category: CategoryRule | None = None
    tags: FieldSelector | None = None
    pagination: Pagination | None = None
    request_headers: dict[str, str] | None = None

    @field_validator("url", "base_url")
    @classmethod
    def _validate_urls(cls, value: str | None) -> str | None:
        return _check_http_url(value)


class CompressionConfig(_ConfigModel):
    """Settings of the compressed preview."""

    output_dir: str
    max_width: int = Field(..., gt=0)
    quality: int = Field(..., ge=1, le=100)


class AiConfig(_ConfigModel):
    """Optional AI enrichment settings."""

    enabled: bool = False
    classifier_model: str | None = None
    caption_model: str | None = None
    max_tags: int = Field(default=DEFAULT_MAX_TAGS, gt=0)


class ObjectStorageConfig(_ConfigModel):
    """Optional Tencent COS upload settings."""

    enabled: bool = False
    bucket: str
    region: str
    folder: str | None = None
    force_path_style: bool | None = None


class PipelineConfig(_ConfigModel):
    """Complete pipeline configuration."""

    output_dir: str
    csv_path: str
    compression: CompressionConfig
    ai: AiConfig | None = None
    cos: ObjectStorageConfig | None = None
    targets: list[ScrapeTarget] = Field(..., min_length=1)

    @property
    def ai_enabled(self) -> bool:
        return bool(self.ai and self.ai.enabled)

    @property
    def upload_enabled(self) -> bool:
        return bool(self.cos and self.cos.enabled)

    def target_names(self) -> dict[str, str]:
        """Map target slug to display name."""
        return {target.slug: target.name for target in self.targets}


def load_config(config_path: str | Path) -> PipelineConfig:
    """
    Read and validate a JSON pipeline configuration.

    Args:
        config_path: Absolute path, or path relative to the working directory

    Returns:
        Validated PipelineConfig

    Raises:
        ConfigValidationError: If the file is missing or violates the schema
    """
    path = Path(config_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigValidationError(f"Config file not found: {path}") from e
    try:
        return PipelineConfig.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid pipeline config {path}: {e}") from e
