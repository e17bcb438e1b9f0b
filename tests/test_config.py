"""Tests for configuration loading."""

import json

import pytest

from report_extractor.core.config import (
    DEFAULT_OPENAI_BASE_URL,
    GEMINI_BASE_URL,
    ExtractorConfig,
    get_config,
    load_app_config,
)
from report_extractor.core.config_store import ConfigStore
from report_extractor.core.errors import ConfigError

ENV_VARS = [
    "EXTRACTOR_PROVIDER",
    "EXTRACTOR_API_KEY",
    "EXTRACTOR_BASE_URL",
    "EXTRACTOR_MODEL",
    "EXTRACTOR_INITIAL_CONCURRENCY",
    "EXTRACTOR_MAX_CONCURRENCY",
    "EXTRACTOR_TASK_TIMEOUT",
    "EXTRACTOR_MAX_REQUESTS_PER_MINUTE",
    "EXTRACTOR_MIN_BACKOFF",
    "EXTRACTOR_MAX_BACKOFF",
    "EXTRACTOR_RATE_LIMIT_MIN_BACKOFF",
    "EXTRACTOR_MAX_RATE_LIMIT_ERRORS",
    "EXTRACTOR_HTTP_DEBUG",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestGetConfig:
    """Tests for environment-based configuration."""

    def test_defaults(self, clean_env):
        config = get_config()

        assert config.provider == "openai"
        assert config.base_url == DEFAULT_OPENAI_BASE_URL
        assert config.api_key == ""
        assert config.initial_concurrency == 1
        assert config.max_concurrency == 50
        assert config.max_requests_per_minute == 3
        assert config.task_timeout is None

    def test_reads_environment(self, clean_env):
        clean_env.setenv("EXTRACTOR_API_KEY", "sk-env")
        clean_env.setenv("EXTRACTOR_MODEL", "gpt-4o-mini")
        clean_env.setenv("EXTRACTOR_MAX_CONCURRENCY", "8")
        clean_env.setenv("EXTRACTOR_MAX_REQUESTS_PER_MINUTE", "500")
        clean_env.setenv("EXTRACTOR_TASK_TIMEOUT", "90")
        clean_env.setenv("EXTRACTOR_HTTP_DEBUG", "true")

        config = get_config()

        assert config.api_key == "sk-env"
        assert config.model == "gpt-4o-mini"
        assert config.max_concurrency == 8
        assert config.max_requests_per_minute == 500
        assert config.task_timeout == 90.0
        assert config.http_debug

    def test_reads_rate_limit_settings(self, clean_env):
        clean_env.setenv("EXTRACTOR_RATE_LIMIT_MIN_BACKOFF", "2.5")
        clean_env.setenv("EXTRACTOR_MAX_RATE_LIMIT_ERRORS", "3")

        config = get_config()

        assert config.rate_limit_min_backoff == 2.5
        assert config.max_rate_limit_errors == 3

    def test_rate_limit_defaults(self, clean_env):
        config = get_config()

        assert config.rate_limit_min_backoff == 10.0
        assert config.max_rate_limit_errors == 5

    @pytest.mark.parametrize(
        "name,value",
        [
            ("EXTRACTOR_MAX_CONCURRENCY", "many"),
            ("EXTRACTOR_MAX_REQUESTS_PER_MINUTE", "1.5"),
            ("EXTRACTOR_TASK_TIMEOUT", "soon"),
            ("EXTRACTOR_MAX_RATE_LIMIT_ERRORS", "five"),
        ],
    )
    def test_malformed_number_raises_config_error(self, clean_env, name, value):
        clean_env.setenv(name, value)

        with pytest.raises(ConfigError, match=name):
            get_config()

    def test_gemini_detected_from_url(self, clean_env):
        clean_env.setenv("EXTRACTOR_BASE_URL", GEMINI_BASE_URL)

        assert get_config().provider == "gemini"

    def test_gemini_detected_from_key(self, clean_env):
        clean_env.setenv("GEMINI_API_KEY", "g-key")

        config = get_config()

        assert config.provider == "gemini"
        assert config.api_key == "g-key"
        assert config.base_url == GEMINI_BASE_URL

    def test_provider_argument_wins(self, clean_env):
        clean_env.setenv("EXTRACTOR_PROVIDER", "openai")
        clean_env.setenv("OPENAI_API_KEY", "sk-openai")
        clean_env.setenv("GEMINI_API_KEY", "g-key")

        config = get_config("gemini")

        assert config.provider == "gemini"
        assert config.api_key == "g-key"

    def test_validate_reports_problems(self):
        config = ExtractorConfig(
            provider="acme", api_key="", initial_concurrency=4, max_concurrency=2
        )

        errors = config.validate()

        assert "Unknown provider: acme" in errors
        assert "EXTRACTOR_API_KEY is required" in errors
        assert any("EXTRACTOR_MAX_CONCURRENCY" in e for e in errors)

    def test_validate_ok(self):
        assert ExtractorConfig(provider="openai", api_key="sk").validate() == []


class TestLoadAppConfig:
    """Tests for the prompt/schema config file."""

    def test_inline_and_file_schemas(self, tmp_path):
        schema_dir = tmp_path / "schemas"
        schema_dir.mkdir()
        (schema_dir / "b.json").write_text(json.dumps({"title": "B", "properties": {}}))
        config_path = tmp_path / "config.json"
        config_path.write_text(
            json.dumps(
                {
                    "systemPrompt": "Extract.",
                    "schemaFiles": [{"title": "A", "properties": {}}, "schemas/b.json"],
                }
            )
        )

        app_config = load_app_config(config_path)

        assert app_config.system_prompt == "Extract."
        assert [s["title"] for s in app_config.schema_files] == ["A", "B"]
        assert app_config.schema_file_urls == ["schemas/b.json"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_app_config(tmp_path / "missing.json")

    def test_missing_schema_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"systemPrompt": "x", "schemaFiles": ["nope.json"]}))

        with pytest.raises(ConfigError):
            load_app_config(config_path)

    def test_invalid_shape(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"systemPrompt": ["not", "a", "string"]}))

        with pytest.raises(ConfigError):
            load_app_config(config_path)


class TestConfigStore:
    """Tests for remembered preferences."""

    def test_remembers_selection(self, tmp_path):
        path = tmp_path / "prefs" / "preferences.json"
        ConfigStore(path).remember_selection("gemini", "gemini-flash-latest")

        store = ConfigStore(path)

        assert store.get_last_provider() == "gemini"
        assert store.get_last_model("gemini") == "gemini-flash-latest"
        assert store.get_last_model("openai") is None

    def test_models_remembered_per_provider(self, tmp_path):
        path = tmp_path / "preferences.json"
        store = ConfigStore(path)

        store.remember_selection("openai", "gpt-4o")
        store.remember_selection("gemini", "gemini-pro-latest")

        reloaded = ConfigStore(path)
        assert reloaded.get_last_provider() == "gemini"
        assert reloaded.get_last_model("openai") == "gpt-4o"
        assert reloaded.get("models.acme", "fallback") == "fallback"

    def test_corrupt_file_ignored(self, tmp_path):
        path = tmp_path / "preferences.json"
        path.write_text("{not json")

        assert ConfigStore(path).get_last_model("openai") is None
