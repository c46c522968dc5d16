"""Centralized configuration loading."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from app.core.formatter import DEFAULT_FIELD_MAPPING, FieldMapping, validate_field_mapping
from app.errors.exceptions import ConfigurationError
from app.schemas.common import AuditBackend


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    # Audit backend
    audit_backend: AuditBackend
    insights_api_key: str | None

    # Cloud Tasks
    project_id: str
    tasks_queue: str
    tasks_queue_location: str
    service_url: str

    # BigQuery
    bq_dataset: str
    bq_table: str
    bq_location: str

    # Timeouts
    lighthouse_timeout: float
    psi_timeout: float

    # Browser settings
    chrome_debugging_port: int  # first CDP port tried; each session reserves its own
    browser_launch_timeout: int
    lighthouse_config_path: Path | None

    # Fan-out
    task_chunk_size: int
    task_schedule_step_seconds: int

    storage_write_attempts: int

    field_mapping: FieldMapping = field(default=DEFAULT_FIELD_MAPPING)

    @property
    def queue_configured(self) -> bool:
        """True when every Cloud Tasks setting is present."""
        return all(
            (self.project_id, self.tasks_queue, self.tasks_queue_location, self.service_url)
        )

    @property
    def storage_configured(self) -> bool:
        """True when a BigQuery dataset and table are set."""
        return bool(self.bq_dataset and self.bq_table)


def _get_optional_env(key: str, default: str) -> str:
    """Get optional environment variable with default."""
    value = os.getenv(key)
    return value.strip() if value else default


def _get_int_env(key: str, default: int, minimum: int = 1) -> int:
    """Get an integer environment variable, rejecting values below minimum."""
    raw = _get_optional_env(key, str(default))
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _get_float_env(key: str, default: float) -> float:
    """Get a positive number of seconds from the environment."""
    raw = _get_optional_env(key, str(default))
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{key} must be > 0, got {value}")
    return value


def _parse_backend(raw: str) -> AuditBackend:
    try:
        return AuditBackend(raw.lower())
    except ValueError as e:
        choices = ", ".join(b.value for b in AuditBackend)
        raise ConfigurationError(f"AUDIT_BACKEND must be one of {choices}, got {raw!r}") from e


def load_config() -> Config:
    """Load and validate configuration from environment."""
    load_dotenv()
    config_path_env = os.getenv("LIGHTHOUSE_CONFIG_PATH")

    config = Config(
        audit_backend=_parse_backend(_get_optional_env("AUDIT_BACKEND", "lighthouse")),
        insights_api_key=_get_optional_env("GOOGLE_INSIGHTS_KEY", "") or None,
        project_id=_get_optional_env("GOOGLE_CLOUD_PROJECT", ""),
        tasks_queue=_get_optional_env("CLOUD_TASKS_QUEUE", ""),
        tasks_queue_location=_get_optional_env("CLOUD_TASKS_QUEUE_LOCATION", ""),
        service_url=_get_optional_env("SERVICE_URL", "").rstrip("/"),
        bq_dataset=_get_optional_env("BQ_DATASET", ""),
        bq_table=_get_optional_env("BQ_TABLE", ""),
        bq_location=_get_optional_env("BQ_LOCATION", "US"),
        lighthouse_timeout=_get_float_env("LIGHTHOUSE_TIMEOUT", 300),
        psi_timeout=_get_float_env("PSI_TIMEOUT", 120),
        chrome_debugging_port=_get_int_env("CHROME_DEBUGGING_PORT", 9222),
        browser_launch_timeout=_get_int_env("BROWSER_LAUNCH_TIMEOUT", 30),
        lighthouse_config_path=Path(config_path_env) if config_path_env else None,
        task_chunk_size=_get_int_env("TASK_CHUNK_SIZE", 1),
        task_schedule_step_seconds=_get_int_env("TASK_SCHEDULE_STEP_SECONDS", 10),
        storage_write_attempts=_get_int_env("STORAGE_WRITE_ATTEMPTS", 3),
    )
    validate_field_mapping(config.field_mapping)
    return config


# Singleton config instance (lazy loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the configuration singleton."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset config singleton (useful for testing)."""
    global _config
    _config = None
