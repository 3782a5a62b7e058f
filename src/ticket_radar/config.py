"""Configuration loaded from the environment (and a local .env file)."""
from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL = "claude-haiku-4-5"


def _env(name: str, env: str):
    return AliasChoices(name, env)


class Settings(BaseSettings):
    """Runtime settings. Nothing here is persisted."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Model
    anthropic_api_key: str | None = None
    model: str = Field(DEFAULT_MODEL, validation_alias=_env("model", "TICKET_RADAR_MODEL"))
    max_retries: int = Field(3, ge=1, validation_alias=_env("max_retries", "TICKET_RADAR_MAX_RETRIES"))
    timeout: float = Field(60.0, gt=0, validation_alias=_env("timeout", "TICKET_RADAR_TIMEOUT"))
    model_assist: bool = Field(False, validation_alias=_env("model_assist", "TICKET_RADAR_MODEL_ASSIST"))

    # Pipeline
    rules_path: str | None = Field(None, validation_alias=_env("rules_path", "TICKET_RADAR_RULES"))
    min_comment_length: int = Field(
        20, ge=0, validation_alias=_env("min_comment_length", "TICKET_RADAR_MIN_COMMENT_LENGTH")
    )

    # Zendesk
    zendesk_subdomain: str = ""
    zendesk_email: str = ""
    zendesk_api_token: str = ""

    @property
    def model_configured(self) -> bool:
        return bool(self.anthropic_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
