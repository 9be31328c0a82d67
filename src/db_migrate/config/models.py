"""Settings models for migration configuration.

Each group is a pydantic-settings ``BaseSettings`` that reads its own
environment variables (and the ``.env`` file) through per-field
``validation_alias``.  ``MigrationSettings`` is built once at process
entry (see ``db_migrate.config.loader``) and passed explicitly to every
component.  All models are frozen.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class DuplicateStrategy(str, Enum):
    """How to treat source rows whose id already exists in the destination."""

    UPDATE = "update"  # upsert, source wins
    SKIP = "skip"  # keep destination row
    ERROR = "error"  # abort on first collision
    APPEND = "append"  # bulk insert, ignore key semantics


# Shared by every settings group: blank variables fall back to defaults,
# unrelated keys in ``.env`` are ignored, field names work in code.  Each
# field also reads ``DB_MIGRATE_<FIELD NAME>`` when its documented
# variable is unset.
_SETTINGS_CONFIG = SettingsConfigDict(
    env_prefix="DB_MIGRATE_",
    env_file=".env",
    env_file_encoding="utf-8",
    env_ignore_empty=True,
    case_sensitive=False,
    extra="ignore",
    populate_by_name=True,
    frozen=True,
)


# ============================================================================
# Store Settings
# ============================================================================


class SourceSettings(BaseSettings):
    """Connection parameters for the source PostgreSQL database."""

    model_config = _SETTINGS_CONFIG

    host: str = Field(default="localhost", validation_alias="SOURCE_DB_HOST")
    port: int = Field(default=5432, validation_alias="SOURCE_DB_PORT")
    database: str | None = Field(default=None, validation_alias="SOURCE_DB_NAME")
    user: str | None = Field(default=None, validation_alias="SOURCE_DB_USER")
    password: str | None = Field(default=None, validation_alias="SOURCE_DB_PASSWORD")
    connect_timeout_ms: int = Field(default=30000, gt=0, validation_alias="CONNECTION_TIMEOUT")
    # Overrides the discrete fields when set
    url: str | None = Field(default=None, validation_alias="SOURCE_DATABASE_URL")
    schema_name: str = Field(default="public", validation_alias="SOURCE_SCHEMA")

    @property
    def connect_timeout(self) -> float:
        """Connect timeout in seconds."""
        return self.connect_timeout_ms / 1000

    def resolved_url(self) -> str:
        """Return the connection URL, building it from parts if needed."""
        if self.url:
            return self.url
        return URL.create(
            "postgresql+asyncpg",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        ).render_as_string(hide_password=False)


class DestinationSettings(BaseSettings):
    """Destination store selection and credentials."""

    model_config = _SETTINGS_CONFIG

    provider: Literal["supabase", "postgres"] = Field(
        default="supabase", validation_alias="DESTINATION_PROVIDER"
    )
    supabase_url: str | None = Field(default=None, validation_alias="SUPABASE_URL")
    supabase_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY"),
    )
    database_url: str | None = Field(default=None, validation_alias="DESTINATION_DATABASE_URL")


# ============================================================================
# Run Settings
# ============================================================================


class MigrationSettings(BaseSettings):
    """Complete, immutable configuration for one migration run.

    Durations are held in milliseconds, matching the environment
    variables; the ``retry_delay`` and ``batch_timeout`` properties
    expose seconds for ``asyncio``.

    Example:
        >>> settings = MigrationSettings(_env_file=None)
        >>> settings.batch_size, settings.duplicate_strategy.value
        (1000, 'update')
        >>> settings.batch_timeout
        30.0
    """

    model_config = _SETTINGS_CONFIG

    duplicate_strategy: DuplicateStrategy = Field(
        default=DuplicateStrategy.UPDATE, validation_alias="DUPLICATE_STRATEGY"
    )
    batch_size: int = Field(default=1000, gt=0, validation_alias="BATCH_SIZE")
    max_retries: int = Field(default=3, gt=0, validation_alias="MAX_RETRIES")
    retry_delay_ms: int = Field(default=5000, ge=0, validation_alias="RETRY_DELAY")
    batch_timeout_ms: int = Field(default=30000, gt=0, validation_alias="BATCH_TIMEOUT")

    source: SourceSettings = Field(default_factory=SourceSettings)
    destination: DestinationSettings = Field(default_factory=DestinationSettings)

    progress_dir: Path = Field(default=Path("logs"), validation_alias="PROGRESS_DIR")
    log_dir: Path = Field(default=Path("logs"), validation_alias="LOG_DIR")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    environment: str = Field(default="development", validation_alias="APP_ENV")

    @field_validator("duplicate_strategy", mode="before")
    @classmethod
    def _lowercase_strategy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def retry_delay(self) -> float:
        """Delay between attempts in seconds."""
        return self.retry_delay_ms / 1000

    @property
    def batch_timeout(self) -> float:
        """Per-batch wall-clock budget in seconds."""
        return self.batch_timeout_ms / 1000

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"
