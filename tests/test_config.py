"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from serviceswarm.config import (
    AppConfig,
    BusinessConfig,
    DialogueConfig,
    ModelConfig,
    ServerConfig,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_unknown_timezone(self):
        config = replace(AppConfig(), business=replace(BusinessConfig(), timezone="Not/AZone"))
        with pytest.raises(ValueError, match="BUSINESS_TIMEZONE"):
            _validate_config(config)

    def test_invalid_temperature_too_high(self):
        config = replace(AppConfig(), model=replace(ModelConfig(), llm_temperature=3.0))
        with pytest.raises(ValueError, match="LLM_TEMPERATURE"):
            _validate_config(config)

    def test_invalid_temperature_negative(self):
        config = replace(AppConfig(), model=replace(ModelConfig(), llm_temperature=-0.5))
        with pytest.raises(ValueError, match="LLM_TEMPERATURE"):
            _validate_config(config)

    def test_invalid_nlu_timeout(self):
        config = replace(AppConfig(), model=replace(ModelConfig(), nlu_timeout_sec=0))
        with pytest.raises(ValueError, match="NLU_TIMEOUT"):
            _validate_config(config)

    def test_invalid_max_reprompts(self):
        config = replace(AppConfig(), dialogue=replace(DialogueConfig(), max_reprompts=0))
        with pytest.raises(ValueError, match="MAX_REPROMPTS"):
            _validate_config(config)

    def test_invalid_session_ttl(self):
        config = replace(AppConfig(), dialogue=replace(DialogueConfig(), session_ttl_seconds=0))
        with pytest.raises(ValueError, match="SESSION_TTL_SECONDS"):
            _validate_config(config)

    def test_unknown_capture_mode(self):
        config = replace(AppConfig(), dialogue=replace(DialogueConfig(), capture_mode="dtmf"))
        with pytest.raises(ValueError, match="CAPTURE_MODE"):
            _validate_config(config)

    def test_invalid_port(self):
        config = replace(AppConfig(), server=replace(ServerConfig(), port=70000))
        with pytest.raises(ValueError, match="PORT"):
            _validate_config(config)

    def test_safe_int_parsing(self):
        from serviceswarm.config import _safe_int

        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_rejects_garbage(self, monkeypatch):
        from serviceswarm.config import _safe_int

        monkeypatch.setenv("SERVICESWARM_TEST_INT", "three")
        with pytest.raises(ValueError, match="SERVICESWARM_TEST_INT"):
            _safe_int("SERVICESWARM_TEST_INT", "3")

    def test_safe_float_parsing(self):
        from serviceswarm.config import _safe_float

        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)
