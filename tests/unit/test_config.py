"""Tests for settings and pipeline configuration loading."""

import json

import pytest

from asset_pipeline.config import Settings
from asset_pipeline.exceptions import ConfigValidationError
from asset_pipeline.models.config_models import (
    FieldSelector,
    LiteralValue,
    PipelineConfig,
    load_config,
)


class TestSettings:
    """Test process settings from the environment."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_CONFIG", "configs/prod.json")
        monkeypatch.setenv("TENCENT_SECRET_ID", "id-123")
        monkeypatch.setenv("DOWNLOAD_CONCURRENCY", "8")

        settings = Settings(_env_file=None)

        assert settings.pipeline_config == "configs/prod.json"
        assert settings.tencent_secret_id == "id-123"
        assert settings.download_concurrency == 8

    def test_defaults(self, monkeypatch):
        for name in ("PIPELINE_CONFIG", "ENV", "TENCENT_SECRET_ID", "TENCENT_SECRET_KEY"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.pipeline_config == "pipeline.config.json"
        assert settings.env == "local"
        assert settings.tencent_secret_key is None
        assert settings.upload_concurrency == 3


class TestLoadConfig:
    """Test JSON config validation."""

    def test_loads_camel_case_document(self, config_file):
        config = load_config(config_file)

        assert config.output_dir.endswith("images")
        assert config.compression.max_width == 64
        assert config.ai_enabled
        assert config.upload_enabled
        assert config.target_names() == {"wallhaven": "Wallhaven", "steam": "Steam Workshop"}

    def test_relative_path_resolved_from_cwd(self, config_file, monkeypatch):
        monkeypatch.chdir(config_file.parent)

        assert load_config(config_file.name).targets[0].slug == "wallhaven"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="not found"):
            load_config(tmp_path / "nope.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            load_config(path)

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d["targets"][0].update(slug="bad slug"),
            lambda d: d["targets"][0].update(url="ftp://files.example/x"),
            lambda d: d["targets"][0].update(baseUrl="not-a-url"),
            lambda d: d["compression"].update(quality=0),
            lambda d: d["compression"].update(quality=101),
            lambda d: d["compression"].update(maxWidth=0),
            lambda d: d["ai"].update(maxTags=0),
            lambda d: d.update(targets=[]),
            lambda d: d["targets"][0].update(pagination={"start": 1, "end": 2, "step": 0}),
        ],
    )
    def test_constraint_violations(self, tmp_path, pipeline_config_data, mutate):
        mutate(pipeline_config_data)
        path = tmp_path / "invalid.json"
        path.write_text(json.dumps(pipeline_config_data), encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            load_config(path)

    def test_optional_sections_default_off(self, pipeline_config_data):
        del pipeline_config_data["ai"]
        del pipeline_config_data["cos"]

        config = PipelineConfig.model_validate(pipeline_config_data)

        assert not config.ai_enabled
        assert not config.upload_enabled


class TestCategoryVariant:
    """Test the literal/rule category variant."""

    def test_plain_string_is_literal(self, pipeline_config):
        category = pipeline_config.targets[0].category

        assert isinstance(category, LiteralValue)
        assert category.value == "anime"

    def test_selector_object_is_rule(self, pipeline_config_data):
        pipeline_config_data["targets"][0]["category"] = {"selector": ".cat", "split": "/"}

        category = PipelineConfig.model_validate(pipeline_config_data).targets[0].category

        assert isinstance(category, FieldSelector)
        assert category.split == "/"

    def test_value_object_is_literal(self, pipeline_config_data):
        pipeline_config_data["targets"][0]["category"] = {"value": "games"}

        category = PipelineConfig.model_validate(pipeline_config_data).targets[0].category

        assert category == LiteralValue(value="games")
