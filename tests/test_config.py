"""Tests for configuration loading and API style selection."""
import dataclasses
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from glucosnap.config import (
    ApiStyle,
    DEFAULT_ALLOWED_EXTENSIONS,
    ServiceConfig,
    load_config,
    normalize_language,
    select_api_style,
)

ENV_VARS = [
    "DIFY_API_KEY", "DIFY_BASE_URL", "DIFY_USER", "ANALYSIS_TIMEOUT_SECONDS",
    "MAX_UPLOAD_BYTES", "ALLOWED_IMAGE_EXTENSIONS", "DEFAULT_LANGUAGE",
    "MEDICAL_DISCLAIMER_ENABLED", "LOG_JSON", "LOG_LEVEL", "CORS_ORIGINS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSelectApiStyle:
    """Test select_api_style."""

    def test_app_prefix_is_workflow(self):
        assert select_api_style("app-QrakcrmHgHy1E0XLd1yhqXFU") == ApiStyle.WORKFLOW

    def test_other_prefix_is_completion(self):
        assert select_api_style("sk-abc") == ApiStyle.COMPLETION

    def test_prefix_is_case_sensitive(self):
        assert select_api_style("APP-abc") == ApiStyle.COMPLETION

    def test_missing_key(self):
        assert select_api_style(None) == ApiStyle.COMPLETION
        assert select_api_style("") == ApiStyle.COMPLETION


class TestNormalizeLanguage:
    """Test normalize_language."""

    def test_supported(self):
        assert normalize_language("en") == "en"
        assert normalize_language("zh") == "zh"

    def test_region_tags(self):
        assert normalize_language("zh-CN") == "zh"
        assert normalize_language("en_US") == "en"

    def test_unknown_and_missing(self):
        assert normalize_language("de") == "zh"
        assert normalize_language(None) == "zh"
        assert normalize_language("", default="en") == "en"


class TestServiceConfig:
    """Test ServiceConfig."""

    def test_style_derived_once(self):
        config = ServiceConfig(api_key="app-123")
        assert config.api_style == ApiStyle.WORKFLOW

    def test_frozen(self):
        config = ServiceConfig(api_key="app-123")
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.api_key = "sk-other"

    def test_extensions_normalized(self):
        config = ServiceConfig(allowed_extensions={".PNG", "jpg"})
        assert config.allowed_extensions == frozenset({"png", "jpg"})

    def test_base_url_trailing_slash(self):
        assert ServiceConfig(base_url="https://api.dify.ai/v1/").base_url == "https://api.dify.ai/v1"

    def test_masked_key(self):
        assert ServiceConfig(api_key="app-QrakcrmHgHy").masked_key() == "app-Qrak..."
        assert ServiceConfig().masked_key() == ""


class TestLoadConfig:
    """Test load_config from environment variables."""

    def test_defaults(self, clean_env):
        config = load_config()
        assert config.api_key is None
        assert config.has_credential is False
        assert config.base_url == "https://api.dify.ai/v1"
        assert config.timeout_seconds == 30.0
        assert config.max_upload_bytes == 10 * 1024 * 1024
        assert config.allowed_extensions == DEFAULT_ALLOWED_EXTENSIONS
        assert config.default_language == "zh"
        assert config.disclaimer_enabled is False

    def test_from_environment(self, clean_env):
        clean_env.setenv("DIFY_API_KEY", "app-env-key")
        clean_env.setenv("ANALYSIS_TIMEOUT_SECONDS", "12.5")
        clean_env.setenv("MAX_UPLOAD_BYTES", "2048")
        clean_env.setenv("ALLOWED_IMAGE_EXTENSIONS", "png, jpg")
        clean_env.setenv("DEFAULT_LANGUAGE", "en")
        clean_env.setenv("MEDICAL_DISCLAIMER_ENABLED", "true")
        clean_env.setenv("CORS_ORIGINS", "https://a.example,https://b.example")

        config = load_config()
        assert config.api_style == ApiStyle.WORKFLOW
        assert config.timeout_seconds == 12.5
        assert config.max_upload_bytes == 2048
        assert config.allowed_extensions == frozenset({"png", "jpg"})
        assert config.default_language == "en"
        assert config.disclaimer_enabled is True
        assert config.cors_origins == ("https://a.example", "https://b.example")

    def test_invalid_numbers_fall_back(self, clean_env):
        clean_env.setenv("ANALYSIS_TIMEOUT_SECONDS", "soon")
        clean_env.setenv("MAX_UPLOAD_BYTES", "big")
        config = load_config()
        assert config.timeout_seconds == 30.0
        assert config.max_upload_bytes == 10 * 1024 * 1024
