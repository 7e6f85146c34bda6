"""
Tests for environment-driven settings.
"""

import pytest

from core.config import ConfigurationError, Settings


class TestSettings:
    """Settings built from environment mappings."""

    def test_defaults(self):
        """An empty environment gives the documented defaults."""
        settings = Settings.from_env({})

        assert settings.renderer_enabled is False
        assert settings.renderer_wait == "domcontentloaded"
        assert settings.renderer_timeout_ms == 12000
        assert settings.batch_size == 12
        assert settings.parse_gap_seconds == 1.0
        assert settings.drain_budget_seconds == 300.0
        assert settings.llm_configured is False
        assert settings.capabilities() == {
            "renderer": False, "llm_extract": False, "llm_notes": False, "database": False,
        }

    def test_env_values(self):
        """Values are parsed, clamped and normalised."""
        settings = Settings.from_env({
            "RENDERER_URL": "https://render.example",
            "RENDERER_TIMEOUT_MS": "45000",
            "BATCH_SIZE": "5",
            "REQUESTS_PER_MINUTE": "30",
            "NOTES_PER_MINUTE": "120",
            "LOG_LEVEL": "debug",
            "INTERNAL_API_KEY": "  ",
        })

        assert settings.renderer_enabled
        assert settings.renderer_timeout_ms == 20000
        assert settings.batch_size == 5
        assert settings.parse_gap_seconds == 2.0
        assert settings.notes_gap_seconds == 0.5
        assert settings.log_level == "DEBUG"
        assert settings.internal_api_key is None

    @pytest.mark.parametrize("env", [
        {"BATCH_SIZE": "many"},
        {"BATCH_SIZE": "0"},
        {"DRAIN_BUDGET_SECONDS": "soon"},
    ])
    def test_invalid_values(self, env):
        """Malformed numbers raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            Settings.from_env(env)

    def test_llm_needs_endpoint_and_key(self):
        """LLM features need both endpoint and key plus their flag."""
        assert not Settings.from_env({"LLM_ENDPOINT": "https://llm.example"}).llm_configured

        settings = Settings.from_env({
            "LLM_ENDPOINT": "https://llm.example", "LLM_API_KEY": "k", "USE_EXTRACT_LLM": "false",
        })
        assert settings.llm_notes_enabled
        assert not settings.llm_extract_enabled
        assert settings.extraction_model == settings.llm_model

    def test_extraction_model_override(self):
        """EXTRACT_LLM_MODEL overrides the model for extraction only."""
        settings = Settings.from_env({"EXTRACT_LLM_MODEL": "tiny", "LLM_MODEL": "big"})
        assert settings.extraction_model == "tiny"
        assert settings.llm_model == "big"
