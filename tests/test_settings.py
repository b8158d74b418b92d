"""Tests for environment settings and YAML preferences."""

import pytest

from domain import ConnectionMode
from prompt_schema import DEFAULT_BUILTIN_TOGGLES
from settings import Settings
from utils import load_preferences, preferences_from_dict

ENV_VARS = [
    "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_BASE_URL", "REDRAFT_MAX_TOKENS",
    "REDRAFT_CONNECTION_MODE", "REDRAFT_PLUGIN_URL", "REDRAFT_REQUEST_TIMEOUT",
    "REDRAFT_MAX_BODY_BYTES", "REDRAFT_POV_MIXED_THRESHOLD", "REDRAFT_PROXY_CONFIG",
    "REDRAFT_METADATA_PATH", "REDRAFT_PREFERENCES",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettingsLoad:
    def test_environment_overrides(self, clean_env, tmp_path) -> None:
        clean_env.setenv("OPENAI_API_KEY", "sk-env-key-0000")
        clean_env.setenv("OPENAI_MODEL", "local-model")
        clean_env.setenv("REDRAFT_CONNECTION_MODE", "PLUGIN")
        clean_env.setenv("REDRAFT_PLUGIN_URL", "http://host:8000/")
        clean_env.setenv("REDRAFT_REQUEST_TIMEOUT", "12.5")
        clean_env.setenv("REDRAFT_MAX_TOKENS", "2048")
        clean_env.setenv("REDRAFT_POV_MIXED_THRESHOLD", "0.3")
        clean_env.setenv("REDRAFT_METADATA_PATH", str(tmp_path / "m.json"))

        s = Settings.load()
        assert s.openai_api_key == "sk-env-key-0000"
        assert s.openai_model == "local-model"
        assert s.connection_mode is ConnectionMode.PLUGIN
        assert s.plugin_url == "http://host:8000"
        assert s.request_timeout_s == 12.5
        assert s.max_tokens == 2048
        assert s.pov_mixed_threshold == 0.3
        assert s.metadata_path == str(tmp_path / "m.json")

    def test_bad_values_fall_back_to_defaults(self, clean_env) -> None:
        clean_env.setenv("REDRAFT_CONNECTION_MODE", "carrier-pigeon")
        clean_env.setenv("REDRAFT_REQUEST_TIMEOUT", "soon")
        clean_env.setenv("REDRAFT_MAX_TOKENS", "-1")
        clean_env.setenv("REDRAFT_MAX_BODY_BYTES", "big")

        s = Settings.load()
        assert s.connection_mode is ConnectionMode.DIRECT
        assert s.request_timeout_s == 30.0
        assert s.max_tokens == 4096
        assert s.max_body_size_bytes == 512 * 1024

    def test_preferences_file_from_environment(self, clean_env, tmp_path) -> None:
        prefs_file = tmp_path / "prefs.yaml"
        prefs_file.write_text("pov: 3rd\n", encoding="utf-8")
        clean_env.setenv("REDRAFT_PREFERENCES", str(prefs_file))
        assert Settings.load().preferences.pov == "3rd"


class TestPreferences:
    def test_defaults(self) -> None:
        prefs = preferences_from_dict(None)
        assert prefs.builtin_rules == DEFAULT_BUILTIN_TOGGLES
        assert prefs.custom_rules == []
        assert prefs.pov == "auto"
        assert prefs.show_diff_after_refine is True

    def test_yaml_file(self, tmp_path) -> None:
        path = tmp_path / "redraft.yaml"
        path.write_text(
            "builtin_rules:\n"
            "  grammar: false\n"
            "  ending: true\n"
            "  sarcasm: true\n"
            "custom_rules:\n"
            "  - Keep it short\n"
            "  - {text: Use metric units, enabled: false, label: Units}\n"
            "pov: 1.5\n"
            "system_prompt: Be brief\n",
            encoding="utf-8",
        )
        prefs = load_preferences(str(path))
        assert prefs.builtin_rules["grammar"] is False
        assert prefs.builtin_rules["ending"] is True
        assert "sarcasm" not in prefs.builtin_rules
        assert [r.text for r in prefs.custom_rules] == ["Keep it short", "Use metric units"]
        assert prefs.custom_rules[1].enabled is False
        assert prefs.custom_rules[1].label == "Units"
        assert prefs.pov == "1.5"
        assert prefs.system_prompt == "Be brief"

    def test_unknown_pov_becomes_auto(self) -> None:
        assert preferences_from_dict({"pov": "4th"}).pov == "auto"

    def test_explicit_missing_file_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_preferences(str(tmp_path / "absent.yaml"))

    def test_bundled_default_file(self) -> None:
        prefs = load_preferences()
        assert prefs.builtin_rules == DEFAULT_BUILTIN_TOGGLES
