"""Configuration management for chatmover.

Uses pydantic-settings for environment variable validation and type safety.
All configuration is loaded from environment variables (or a ``.env`` file)
with sensible defaults. Command line flags override these values.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_AUTH_SERVICES: frozenset[str] = frozenset(
    {"", "gitlab", "ldap", "saml", "google", "office365"}
)


class AppSettings(BaseSettings):
    """Application-level configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        alias="LOG_FORMAT",
        description="Log output format: 'json' for log files, 'console' for development",
    )
    log_file: str | None = Field(
        default=None,
        alias="LOG_FILE",
        description="Write logs to this file instead of stdout",
    )
    app_name: str = Field(
        default="chatmover",
        description="Application name for logging and identification",
    )


class TransformSettings(BaseSettings):
    """Defaults for the transform commands."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CHATMOVER_",
        extra="ignore",
    )

    attachments_dir: str = Field(
        default="data",
        description="Directory that receives the bulk-export-attachments folder",
    )
    output: str = Field(
        default="bulk-export.jsonl",
        description="Output path of the JSONL import file",
    )
    result_file: str = Field(
        default="conversion_result.json",
        description="File with conversion result information",
    )
    default_email_domain: str = Field(
        default="",
        description="Domain used to build emails for users that have none",
    )
    skip_empty_emails: bool = Field(
        default=False,
        description="Export users without email instead of failing",
    )
    auth_service: str = Field(
        default="",
        description="Authentication service for imported users",
    )
    max_message_length: int = Field(
        default=16383,
        ge=0,
        description="Messages longer than this are split into replies (0 disables)",
    )
    max_chunk_size: int = Field(
        default=0,
        ge=0,
        description="Maximum posts per output file (0 disables chunking)",
    )

    @field_validator("auth_service")
    @classmethod
    def validate_auth_service(cls, v: str) -> str:
        """Validate that the auth service is one the import supports."""
        if v not in VALID_AUTH_SERVICES:
            raise ValueError("Auth service must be one of gitlab, ldap, saml, google, office365")
        return v


class GridSettings(BaseSettings):
    """Configuration for Enterprise Grid partitioning."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CHATMOVER_GRID_",
        extra="ignore",
    )

    work_dir: str = Field(
        default="tmp/slack_grid",
        description="Directory the grid export is extracted into, relative to the cwd",
    )
    output_dir: str = Field(
        default=".",
        description="Directory receiving the per-team zip archives",
    )


class SyncSettings(BaseSettings):
    """Connection to the server used to reconcile import users."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MM_",
        extra="ignore",
    )

    site_url: str = Field(
        default="",
        description="Base URL of the server, e.g. https://chat.example.com",
    )
    admin_token: str = Field(
        default="",
        description="Personal access token of a system admin",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for user lookups",
    )


class Settings(BaseSettings):
    """Main settings class that aggregates all configuration sections.

    Usage:
        from chatmover.config import get_settings

        settings = get_settings()
        attachments_dir = settings.transform.attachments_dir
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    transform: TransformSettings = Field(default_factory=TransformSettings)
    grid: GridSettings = Field(default_factory=GridSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
