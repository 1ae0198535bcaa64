"""Tests for settings parsing and production safety checks."""

import pytest

from flowdeploy_engine.common.config import FlowDeploySettings


class TestLLMKeyPool:
    def test_comma_separated(self):
        settings = FlowDeploySettings(llm_keys="sk-one, sk-two,,")
        assert settings.llm_key_pool == ["sk-one", "sk-two"]

    def test_json_list(self):
        settings = FlowDeploySettings(llm_keys='["sk-one", "sk-two"]')
        assert settings.llm_key_pool == ["sk-one", "sk-two"]

    def test_empty(self):
        assert FlowDeploySettings(llm_keys="").llm_key_pool == []

    def test_malformed_json(self):
        settings = FlowDeploySettings(llm_keys='["sk-one",')
        with pytest.raises(ValueError, match="FLOWDEPLOY_LLM_KEYS"):
            settings.llm_key_pool

    def test_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("FLOWDEPLOY_LLM_KEYS", "sk-env")
        assert FlowDeploySettings().llm_key_pool == ["sk-env"]


class TestProviderSettings:
    def test_oauth_client_per_provider(self):
        settings = FlowDeploySettings(
            gmail_client_id="g-id",
            gmail_client_secret="g-secret",
            outlook_client_id="o-id",
            outlook_client_secret="o-secret",
        )
        assert settings.oauth_client("gmail") == ("g-id", "g-secret")
        assert settings.oauth_client("outlook") == ("o-id", "o-secret")

    def test_token_url(self):
        settings = FlowDeploySettings()
        assert "googleapis" in settings.token_url("gmail")
        assert "microsoftonline" in settings.token_url("outlook")

    def test_resilience_defaults(self):
        settings = FlowDeploySettings()
        assert settings.retry_max_attempts == 3
        assert settings.breaker_failure_threshold == 5
        assert settings.breaker_reset_timeout == 60.0
        assert settings.breaker_success_threshold == 3


class TestProductionValidation:
    def test_insecure_key_rejected_outside_development(self):
        settings = FlowDeploySettings(environment="production")
        with pytest.raises(RuntimeError, match="FLOWDEPLOY_API_KEY"):
            settings.validate_for_production()

    def test_insecure_key_warns_in_development(self):
        settings = FlowDeploySettings(environment="development")
        with pytest.warns(UserWarning):
            settings.validate_for_production()

    def test_secure_key_passes(self):
        settings = FlowDeploySettings(environment="production", api_key="a-long-random-secret")
        settings.validate_for_production()
