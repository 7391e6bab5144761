"""
Settings Module for Model Vitals

Configuration management using Pydantic Settings.
Supports environment variables, .env files and mounted secret files.
Includes validation, type checking and sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from croniter import croniter
from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import Defaults, RunMode


LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


def validate_schedule_expression(value: str) -> str:
    """
    Validate a schedule expression.

    Accepts ``@once`` or any cron expression croniter understands
    (5 fields, or 6 with seconds).
    """
    value = value.strip()
    if value == Defaults.ONCE_SCHEDULE:
        return value
    if not croniter.is_valid(value):
        raise ValueError(f"Invalid cron expression: {value!r}")
    return value


def validate_http_url(value: str) -> str:
    """
    Validate an absolute http(s) URL the way httpx will parse it.

    Raises:
        ValueError: If httpx rejects the URL or it has no http(s) scheme/host
    """
    value = value.strip()
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as e:
        raise ValueError(f"Invalid URL {value!r}: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ValueError(f"Invalid URL {value!r}: expected an absolute http(s) URL")
    return value


class ExporterSettings(BaseSettingsConfig):
    """
    Exporter Configuration Settings

    The exporter base URL is either given literally (``EXPORTER_BASE_URL``)
    or resolved from a mounted secret file (``EXPORTER_BASE_URL_FILE``),
    the file form of a Kubernetes ``secretKeyRef``.
    """

    model_config = SettingsConfigDict(
        env_prefix="EXPORTER_",
        env_file=".env",
        extra="ignore"
    )

    base_url: Optional[SecretStr] = Field(
        default=None,
        description="Base URL for pings, e.g. https://cronitor.link/p/<key>"
    )
    base_url_file: Optional[Path] = Field(
        default=None,
        description="File holding the base URL (secret reference)"
    )
    environment: str = Field(
        default=Defaults.ENVIRONMENT,
        min_length=1,
        description="Environment tag sent with every ping and stored row"
    )
    host: Optional[str] = Field(
        default=None,
        description="Originating host identifier (defaults to the hostname)"
    )

    # Delivery
    timeout_seconds: float = Field(
        default=Defaults.EXPORTER_TIMEOUT,
        gt=0,
        le=60,
        description="Per-request timeout for exporter pings"
    )
    max_attempts: int = Field(
        default=Defaults.EXPORTER_ATTEMPTS,
        ge=1,
        le=10,
        description="Attempts per ping before giving up"
    )
    retry_delay: float = Field(
        default=Defaults.EXPORTER_RETRY_DELAY,
        ge=0,
        le=30,
        description="Initial back-off between attempts (doubles each retry)"
    )

    # Monitor enrichment; all of these require an API key to take effect
    api_key: Optional[SecretStr] = Field(
        default=None,
        description="Exporter API key used to enrich monitors on first run ping"
    )
    api_url: str = Field(
        default=Defaults.EXPORTER_API_URL,
        description="Exporter monitors API endpoint"
    )
    group: Optional[str] = Field(
        default=None,
        description="Group to put monitors in"
    )
    consecutive_failures: Optional[int] = Field(
        default=None,
        ge=1,
        le=255,
        description="Failed pings needed to trigger an alert"
    )
    consecutive_missing: Optional[int] = Field(
        default=None,
        ge=1,
        le=255,
        description="Missing pings needed to trigger an alert (needs a schedule)"
    )
    min_success_freq: Optional[int] = Field(
        default=None,
        ge=1,
        le=255,
        description="Require one successful run per this many minutes"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        if v is None or not v.get_secret_value().strip():
            return None
        try:
            return SecretStr(validate_http_url(v.get_secret_value()))
        except ValueError:
            # The URL embeds the exporter key; keep it out of the error
            raise ValueError("Invalid exporter base URL: expected an absolute http(s) URL") from None

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        return validate_http_url(v)

    def resolve_base_url(self) -> Optional[str]:
        """
        Resolve the exporter base URL.

        Returns:
            The literal URL, else the stripped content of ``base_url_file``,
            else None. Trailing slashes are removed.
        """
        if self.base_url is not None:
            url = self.base_url.get_secret_value().strip()
        elif self.base_url_file is not None:
            url = self.base_url_file.read_text(encoding="utf-8").strip()
        else:
            return None
        return url.rstrip("/") or None


class ProbeSettings(BaseSettingsConfig):
    """
    Probe Configuration Settings
    """

    model_config = SettingsConfigDict(
        env_prefix="PROBE_",
        env_file=".env",
        extra="ignore"
    )

    timeout_seconds: float = Field(
        default=Defaults.PROBE_TIMEOUT,
        gt=0,
        le=3600,
        description="Hard wall-clock bound for one probe execution"
    )
    default_schedule: str = Field(
        default=Defaults.SCHEDULE,
        description="Cron expression (or @once) for probes without an override"
    )
    targets_file: Path = Field(
        default=Path("targets.yaml"),
        description="YAML file listing endpoints and model probes"
    )
    collection_runner: str = Field(
        default=Defaults.COLLECTION_RUNNER,
        min_length=1,
        description="Executable used to run request collections"
    )
    user_agent: str = Field(
        default=Defaults.USER_AGENT,
        description="User-Agent header sent by HTTP probes"
    )

    @field_validator("default_schedule")
    @classmethod
    def validate_default_schedule(cls, v: str) -> str:
        return validate_schedule_expression(v)


class DatabaseSettings(BaseSettingsConfig):
    """
    Result Store Configuration Settings

    Supports SQLite (aiosqlite) and PostgreSQL (asyncpg) URLs.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=False,
        description="Persist terminal outcomes to the result store"
    )
    url: SecretStr = Field(
        default=SecretStr("sqlite+aiosqlite:///data/model_vitals.db"),
        description="SQLAlchemy async database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )
    write_attempts: int = Field(
        default=Defaults.DB_WRITE_ATTEMPTS,
        ge=1,
        le=10,
        description="Attempts per result write"
    )
    pool_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Connection pool size (non-SQLite only)"
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, v: Any) -> Any:
        """Accept plain postgres:// URLs and switch them to the async driver."""
        raw = v.get_secret_value() if isinstance(v, SecretStr) else v
        if isinstance(raw, str):
            for prefix in ("postgres://", "postgresql://"):
                if raw.startswith(prefix):
                    return "postgresql+asyncpg://" + raw[len(prefix):]
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.url.get_secret_value().startswith("sqlite")


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    json_format: bool = Field(
        default=False,
        description="Serialize console records as JSON"
    )
    colorize: bool = Field(
        default=True,
        description="Colorize console output"
    )
    file_path: Optional[Path] = Field(
        default=None,
        description="Optional rotating log file"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size/time"
    )
    file_retention: str = Field(
        default="7 days",
        description="Log retention period"
    )

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v: Any) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v!r}")
        return level


class WebSettings(BaseSettingsConfig):
    """
    Results Server Settings

    The server only runs in recurring mode.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEB_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=False,
        description="Serve /health and the results API"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Bind address"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Bind port"
    )


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_name: str = Field(
        default="Model Vitals",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    run_mode: RunMode = Field(
        default=RunMode.ONCE,
        description="once: run every probe once and exit; recurring: follow schedules"
    )

    # Nested settings
    exporter: ExporterSettings = Field(
        default_factory=ExporterSettings
    )
    probe: ProbeSettings = Field(
        default_factory=ProbeSettings
    )
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )
    web: WebSettings = Field(
        default_factory=WebSettings
    )

    @property
    def is_recurring(self) -> bool:
        return self.run_mode == RunMode.RECURRING

    @model_validator(mode="after")
    def configure_for_mode(self) -> "Settings":
        """The results server has nothing to serve in one-shot mode."""
        if not self.is_recurring:
            self.web.enabled = False
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to a dictionary with secrets masked."""
        return self.model_dump(mode="json")
