"""FlowDeploy-Engine configuration via pydantic-settings."""

import json
import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "api_key": "insecure-admin-key-change-me",
}


class FlowDeploySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FLOWDEPLOY_")

    environment: str = "development"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/flowdeploy.db"

    # API
    api_title: str = "FlowDeploy-Engine"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Remote workflow engine
    engine_base_url: str = "http://localhost:5678"
    engine_api_key: str = ""
    engine_timeout: float = 30.0

    # Mailbox OAuth apps
    gmail_client_id: str = ""
    gmail_client_secret: str = ""
    gmail_token_url: str = "https://oauth2.googleapis.com/token"
    outlook_client_id: str = ""
    outlook_client_secret: str = ""
    outlook_token_url: str = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
    outlook_scope: str = "offline_access Mail.ReadWrite Mail.Send"

    # LLM key pool: JSON list ('["sk-1", "sk-2"]') or comma-separated string.
    llm_keys: str = ""
    shared_llm_credential_id: str = ""
    datastore_credential_id: str = ""
    classifier_model: str = "gpt-4o-mini"
    draft_model: str = "gpt-4o-mini"

    # Templates; empty means the packaged templates
    template_dir: str = ""

    # Retry / circuit breaker
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds
    retry_backoff_multiplier: float = 2.0
    retry_max_delay: float = 30.0
    breaker_failure_threshold: int = 5
    breaker_reset_timeout: float = 60.0  # seconds
    breaker_success_threshold: int = 3

    # Reactivation cycle
    reactivation_settle_delay: float = 1.0  # seconds
    reactivation_poll_timeout: float = 5.0
    reactivation_poll_interval: float = 0.25

    @property
    def llm_key_pool(self) -> list[str]:
        """Return the LLM key pool as a list, in configured order.

        Accepts a JSON list or a comma-separated string. Blank entries are
        dropped.
        """
        raw = self.llm_keys.strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                keys = json.loads(raw)
            except (json.JSONDecodeError, TypeError) as exc:
                raise ValueError(
                    f"FLOWDEPLOY_LLM_KEYS must be a JSON list or comma-separated string, got: {raw[:20]!r}..."
                ) from exc
        else:
            keys = raw.split(",")
        return [str(k).strip() for k in keys if str(k).strip()]

    def oauth_client(self, provider: str) -> tuple[str, str]:
        """Return (client_id, client_secret) for a mailbox provider."""
        if provider == "outlook":
            return self.outlook_client_id, self.outlook_client_secret
        return self.gmail_client_id, self.gmail_client_secret

    def token_url(self, provider: str) -> str:
        return self.outlook_token_url if provider == "outlook" else self.gmail_token_url

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"FLOWDEPLOY_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default API key — set FLOWDEPLOY_API_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> FlowDeploySettings:
    settings = FlowDeploySettings()
    settings.validate_for_production()
    return settings
