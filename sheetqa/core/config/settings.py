#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
question-answering bot. All configuration is centralized here so that the
workflow, the adapters and the HTTP surface read the same values.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms (reload_settings)

Author: System Architect
Date: 2026-02-10
"""

from typing import Literal

from pydantic import Field, PrivateAttr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class _SectionSettings(BaseSettings):
    """Shared loading rules: flat, case-sensitive names read from env or .env."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class RedisSettings(_SectionSettings):
    """
    Redis configuration for the TTL key-value store.

    STAGE-0.1: Redis connection configuration
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")


class DiscordSettings(_SectionSettings):
    """
    Discord application configuration.

    STAGE-0.2: Delivery sink and inbound verification
    """

    DISCORD_APPLICATION_ID: str = Field(default="", description="Discord application id")
    DISCORD_PUBLIC_KEY: str = Field(default="", description="Ed25519 public key (hex)")
    DISCORD_TOKEN: str | None = Field(default=None, description="Bot token (command registration)")
    DISCORD_API_BASE: str = Field(default="https://discord.com/api/v10", description="Discord API base URL")
    DISCORD_TIMEOUT: int = Field(default=10, description="Webhook request timeout")


class GeminiSettings(_SectionSettings):
    """
    Generative model configuration.

    STAGE-0.3: Gemini configuration
    """

    GEMINI_API_KEY: str = Field(default="", description="Google Gemini API key")
    GEMINI_MODEL: str = Field(default="gemini-3-flash-preview", description="Streaming answer model")
    GEMINI_SUMMARY_MODEL: str = Field(default="gemini-2.5-flash-lite", description="Thinking summarizer model")
    GEMINI_TEMPERATURE: float = Field(default=1.0, description="Sampling temperature")
    GEMINI_MAX_OUTPUT_TOKENS: int = Field(default=8192, description="Max output tokens")
    GEMINI_MODELS_URL: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Model listing endpoint used by the health check",
    )


class SheetsSettings(_SectionSettings):
    """
    Reference-data source configuration.

    STAGE-0.4: Google Sheets configuration
    """

    GOOGLE_SERVICE_ACCOUNT: str = Field(default="", description="Service account JSON")
    SPREADSHEET_ID: str = Field(
        default="1sPOk2XqSB3ZB-O0eKl2ZkKYVr_OgvVCZX0xS79FTNfg", description="Spreadsheet document id"
    )
    DATA_SHEET_NAME: str = Field(default="test", description="Sheet holding the reference table")
    DATA_HEADER_ROW: int = Field(default=2, description="1-based row holding the table header")
    DESCRIPTION_SHEET_NAME: str = Field(default="description", description="Sheet whose A1 describes the data")
    SHEETS_API_BASE: str = Field(
        default="https://sheets.googleapis.com/v4/spreadsheets", description="Sheets REST base URL"
    )
    SHEETS_TIMEOUT: int = Field(default=15, description="Sheets request timeout")


class GitHubSettings(_SectionSettings):
    """
    Issue tracker configuration for error reporting.

    STAGE-0.5: GitHub configuration (reporting is disabled without a token)
    """

    GITHUB_TOKEN: str | None = Field(default=None, description="GitHub token for issue reporting")
    GITHUB_REPOSITORY: str = Field(default="henzai/yangbingyibot", description="owner/repo for issues")
    GITHUB_API_BASE: str = Field(default="https://api.github.com", description="GitHub API base URL")
    GITHUB_TIMEOUT: int = Field(default=10, description="Issue tracker and health probe request timeout")
    ERROR_REPORTED_TTL: int = Field(default=3600, description="Local dedup key TTL (seconds)")


class CacheSettings(_SectionSettings):
    """
    TTLs for reference data and conversation history.

    STAGE-2: Cache TTL configuration
    """

    CACHE_REFERENCE_TTL: int = Field(default=300, description="Reference data cache TTL (5 minutes)")
    CACHE_HISTORY_TTL: int = Field(default=300, description="Conversation history TTL (5 minutes)")
    CACHE_CHECKPOINT_TTL: int = Field(default=86400, description="Workflow step checkpoint TTL")


class StreamingSettings(_SectionSettings):
    """
    Streaming throttle and workflow step policy.

    STAGE-3: Throttle thresholds

    Thinking output is summarized so it tolerates coarser batching;
    response output is the deliverable and uses the tighter interval.
    """

    STREAM_RESPONSE_INTERVAL_MS: int = Field(default=1500, description="Min ms between response edits")
    STREAM_RESPONSE_MIN_CHARS: int = Field(default=50, description="Min new chars per response edit")
    STREAM_THINKING_INTERVAL_MS: int = Field(default=1000, description="Min ms between thinking edits")
    STREAM_THINKING_MIN_CHARS: int = Field(default=200, description="Min new chars per thinking edit")
    STREAM_STEP_TIMEOUT: int = Field(default=90, description="Hard timeout of the streaming step (seconds)")
    STREAM_STEP_RETRIES: int = Field(default=2, description="Step-level retries of the streaming step")
    STREAM_STEP_RETRY_DELAY_MS: int = Field(default=1000, description="Initial step retry delay")
    THINKING_FALLBACK_TEXT: str = Field(default="考え中...", description="Shown when summarizing fails")
    ERROR_MESSAGE_PREFIX: str = Field(
        default=":rotating_light: エラーが発生しました: ", description="Prefix of the failure message"
    )

    @field_validator("STREAM_THINKING_INTERVAL_MS")
    @classmethod
    def validate_thinking_interval(cls, v, info):
        """Thinking edits must not be throttled harder than response edits."""
        response_interval = info.data.get("STREAM_RESPONSE_INTERVAL_MS")
        if response_interval is not None and v > response_interval:
            raise ValueError("STREAM_THINKING_INTERVAL_MS must be <= STREAM_RESPONSE_INTERVAL_MS")
        return v


class LoggingSettings(_SectionSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()


class ApplicationSettings(_SectionSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    APP_NAME: str = Field(default="Sheet QA Bot", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    VERIFY_SIGNATURES: bool = Field(default=True, description="Verify inbound interaction signatures")


_SECTIONS: dict[str, type[BaseSettings]] = {
    "redis": RedisSettings,
    "discord": DiscordSettings,
    "gemini": GeminiSettings,
    "sheets": SheetsSettings,
    "github": GitHubSettings,
    "cache": CacheSettings,
    "streaming": StreamingSettings,
    "logging": LoggingSettings,
    "app": ApplicationSettings,
}


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        settings = get_settings()
        ttl = settings.cache.CACHE_REFERENCE_TTL
        key = settings.gemini.GEMINI_API_KEY

    Each section is loaded from the same environment / .env file, so the
    flat variable names stay the only source of truth.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    _sections: dict[str, BaseSettings] = PrivateAttr(default_factory=dict)

    def __init__(self, **overrides):
        super().__init__()
        for name, section_cls in _SECTIONS.items():
            fields = {k: v for k, v in overrides.items() if k in section_cls.model_fields}
            self._sections[name] = section_cls(**fields)

    @property
    def redis(self) -> RedisSettings:
        return self._sections["redis"]

    @property
    def discord(self) -> DiscordSettings:
        return self._sections["discord"]

    @property
    def gemini(self) -> GeminiSettings:
        return self._sections["gemini"]

    @property
    def sheets(self) -> SheetsSettings:
        return self._sections["sheets"]

    @property
    def github(self) -> GitHubSettings:
        return self._sections["github"]

    @property
    def cache(self) -> CacheSettings:
        return self._sections["cache"]

    @property
    def streaming(self) -> StreamingSettings:
        return self._sections["streaming"]

    @property
    def logging(self) -> LoggingSettings:
        return self._sections["logging"]

    @property
    def app(self) -> ApplicationSettings:
        return self._sections["app"]


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings(**overrides) -> Settings:
    """
    Reload settings (useful for testing).

    Keyword overrides take precedence over the environment, e.g.
    ``reload_settings(GITHUB_TOKEN=None)``.
    """
    global _settings
    _settings = Settings(**overrides)
    return _settings
