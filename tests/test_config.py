"""
Tests for settings resolution: defaults, YAML file, environment.
"""

import pytest

from taskpilot.config import Settings, load_settings


class TestDefaults:

    def test_code_defaults(self):
        settings = Settings()
        assert settings.llm_provider == "openai"
        assert settings.execution_start_delay_seconds == 1.0
        assert settings.service_success_rate == 0.9
        assert settings.ws_cleanup_interval_seconds == 30.0
        assert settings.ws_inactive_timeout_seconds == 300.0

    def test_missing_file_keeps_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TASKPILOT_PORT", raising=False)
        settings = load_settings(str(tmp_path / "missing.yaml"))
        assert settings.port == 8000


class TestYamlFile:

    def test_nested_root_key(self, tmp_path):
        config = tmp_path / "taskpilot.yaml"
        config.write_text("taskpilot:\n  port: 9100\n  llm_model: gpt-4o-mini\n")
        settings = load_settings(str(config))
        assert settings.port == 9100
        assert settings.llm_model == "gpt-4o-mini"

    def test_flat_file(self, tmp_path):
        config = tmp_path / "flat.yaml"
        config.write_text("service_success_rate: 0.5\n")
        assert load_settings(str(config)).service_success_rate == 0.5

    def test_unknown_keys_are_ignored(self, tmp_path):
        config = tmp_path / "extra.yaml"
        config.write_text("taskpilot:\n  not_a_setting: 1\n  port: 8100\n")
        assert load_settings(str(config)).port == 8100

    def test_broken_yaml_falls_back_to_defaults(self, tmp_path):
        config = tmp_path / "broken.yaml"
        config.write_text("taskpilot: [unclosed\n")
        assert load_settings(str(config)).port == 8000


class TestEnvironment:

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        config = tmp_path / "taskpilot.yaml"
        config.write_text("taskpilot:\n  port: 9100\n")
        monkeypatch.setenv("TASKPILOT_PORT", "9200")
        monkeypatch.setenv("TASKPILOT_LLM_SUMMARIES", "true")
        monkeypatch.setenv("TASKPILOT_SERVICE_SUCCESS_RATE", "0.75")

        settings = load_settings(str(config))
        assert settings.port == 9200
        assert settings.llm_summaries is True
        assert settings.service_success_rate == 0.75

    def test_with_env_explicit_mapping(self):
        settings = Settings().with_env({"TASKPILOT_LLM_PROVIDER": "anthropic"})
        assert settings.llm_provider == "anthropic"

    def test_invalid_number_raises(self):
        with pytest.raises(ValueError):
            Settings().with_env({"TASKPILOT_PORT": "eighty"})
