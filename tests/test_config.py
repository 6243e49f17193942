"""
Tests for autoblog.config module.

Covers:
    - StageTimeoutsConfig defaults, env overrides and get()
    - Settings defaults and from_yaml (YAML values, env overrides, errors)
    - Singleton get_settings / reset_settings behaviour
    - validate_env() with alias groups
"""

import pytest

from autoblog.config import (
    Settings,
    StageTimeoutsConfig,
    get_settings,
    reset_settings,
    validate_env,
)
from autoblog.exceptions import ConfigurationError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_singleton():
    """Ensure the Settings singleton is cleared before and after each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def yaml_file(tmp_path):
    def _write(text):
        path = tmp_path / "settings.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


# ===========================================================================
# 1. StageTimeoutsConfig
# ===========================================================================


class TestStageTimeoutsConfig:
    """Per-stage time budgets."""

    def test_every_stage_has_a_budget(self):
        budgets = StageTimeoutsConfig().as_dict()
        for stage in (
            "gather_context",
            "select_topic",
            "write_outline",
            "research",
            "write_draft",
            "refine",
            "polish",
            "extract_metadata",
            "validate",
            "illustrate",
            "persist",
            "tool_post",
        ):
            assert budgets[stage] > 0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("STAGE_TIMEOUT_RESEARCH", "42")
        assert StageTimeoutsConfig().research == 42

    def test_invalid_env_override_keeps_default(self, monkeypatch):
        monkeypatch.setenv("STAGE_TIMEOUT_POLISH", "soon")
        assert StageTimeoutsConfig().polish == 120

    def test_get_unknown_stage_uses_default(self):
        assert StageTimeoutsConfig().get("unknown", default=7) == 7


# ===========================================================================
# 2. Settings
# ===========================================================================


class TestSettingsDefaults:
    def test_defaults(self):
        settings = Settings()
        assert settings.text_model == "gemini-2.5-flash"
        assert settings.research_max_points is None
        assert settings.image_bucket == "blogs"
        assert settings.words_per_minute == 225
        assert settings.post_author == "Gemini"
        assert settings.call_timeout == 120.0


class TestSettingsFromYaml:
    """YAML loading and environment overrides."""

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = Settings.from_yaml(tmp_path / "absent.yaml")
        assert settings == Settings()

    def test_yaml_values(self, yaml_file):
        path = yaml_file(
            "text_model: gemini-2.5-pro\n"
            "research_max_points: 4\n"
            "stage_timeouts:\n"
            "  research: 60\n"
        )
        settings = Settings.from_yaml(path)
        assert settings.text_model == "gemini-2.5-pro"
        assert settings.research_max_points == 4
        assert settings.stage_timeouts.research == 60
        assert settings.stage_timeouts.polish == 120

    def test_unknown_keys_are_ignored(self, yaml_file):
        settings = Settings.from_yaml(
            yaml_file("no_such_key: 1\nstage_timeouts:\n  no_such_stage: 5\n")
        )
        assert not hasattr(settings, "no_such_key")

    def test_env_overrides_yaml(self, yaml_file, monkeypatch):
        monkeypatch.setenv("GEMINI_TEXT_MODEL", "gemini-env")
        monkeypatch.setenv("RESEARCH_MAX_POINTS", "2")
        settings = Settings.from_yaml(yaml_file("text_model: gemini-yaml\n"))
        assert settings.text_model == "gemini-env"
        assert settings.research_max_points == 2

    def test_call_timeout_from_yaml_and_env(self, yaml_file, monkeypatch):
        path = yaml_file("call_timeout: 45\n")
        assert Settings.from_yaml(path).call_timeout == 45
        monkeypatch.setenv("LLM_CALL_TIMEOUT", "7.5")
        assert Settings.from_yaml(path).call_timeout == 7.5

    def test_env_timeout_beats_yaml(self, yaml_file, monkeypatch):
        monkeypatch.setenv("STAGE_TIMEOUT_RESEARCH", "15")
        settings = Settings.from_yaml(yaml_file("stage_timeouts:\n  research: 60\n"))
        assert settings.stage_timeouts.research == 15

    def test_invalid_env_override_raises(self, yaml_file, monkeypatch):
        monkeypatch.setenv("RESEARCH_MAX_POINTS", "many")
        with pytest.raises(ConfigurationError):
            Settings.from_yaml(yaml_file(""))

    def test_invalid_yaml_raises(self, yaml_file):
        with pytest.raises(ConfigurationError):
            Settings.from_yaml(yaml_file("text_model: [unclosed\n"))

    def test_non_mapping_raises(self, yaml_file):
        with pytest.raises(ConfigurationError):
            Settings.from_yaml(yaml_file("- a\n- b\n"))


# ===========================================================================
# 3. Singleton
# ===========================================================================


class TestSingleton:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_reset(self):
        first = get_settings()
        reset_settings()
        assert get_settings() is not first


# ===========================================================================
# 4. validate_env()
# ===========================================================================


class TestValidateEnv:
    """Required variables accept any alias of their group."""

    def test_missing_raises(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_env()
        assert "GEMINI_API_KEY or GOOGLE_API_KEY" in str(exc_info.value)

    def test_non_strict_reports(self):
        status = validate_env(strict=False)
        assert status["GEMINI_API_KEY"] is False
        assert status["RESEARCH_MAX_POINTS"] is False

    def test_aliases_satisfy(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "k")
        monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_URL", "https://p.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "s")
        status = validate_env()
        assert status["GEMINI_API_KEY"] is True
        assert status["SUPABASE_URL"] is True
