"""
Steward Configuration

Process-wide settings read from the environment once at startup.
The encryption key and fallback credential live here and nowhere else.

Usage:
    from steward.config import Settings

    settings = Settings.from_env()
"""

from __future__ import annotations

from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from steward.exceptions import ConfigurationError

# Smallest hard cap that still fits a digest with every list trimmed away
MIN_DIGEST_HARD_BYTES = 1024


class Settings(BaseSettings):
    """Runtime settings for the orchestration core, from ``STEWARD_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="STEWARD_",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Storage
    database_url: str = "steward.db"
    encryption_key: SecretStr | None = None

    # System fallback credential
    fallback_provider: str = "groq"
    fallback_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("STEWARD_FALLBACK_API_KEY", "GROQ_API_KEY"),
    )
    fallback_model: str | None = None

    # Caches and digest size
    provider_cache_ttl: float = Field(default=60.0, gt=0)
    digest_cache_ttl: float = Field(default=600.0, gt=0)
    digest_soft_bytes: int = Field(default=3200, gt=0)
    digest_hard_bytes: int = Field(default=4096, ge=MIN_DIGEST_HARD_BYTES)

    # Timeouts (seconds)
    model_timeout: float = Field(default=60.0, gt=0)
    validation_timeout: float = Field(default=10.0, gt=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("fallback_provider")
    @classmethod
    def _lower_provider(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_digest_sizes(self) -> Settings:
        if self.digest_soft_bytes > self.digest_hard_bytes:
            raise ValueError("digest_soft_bytes must not exceed digest_hard_bytes")
        return self

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from the environment.

        ``GROQ_API_KEY`` is accepted as the fallback key when
        ``STEWARD_FALLBACK_API_KEY`` is unset.

        Raises:
            ConfigurationError: a variable is malformed or out of range.
        """
        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid Steward configuration: {e}") from e
