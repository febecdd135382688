"""Application settings with Pydantic Settings validation.

Values come from ``AGENDA_ALERTS_*`` environment variables, optionally read
from a ``.env`` file in the working directory. List-valued options accept
either JSON or a separator-delimited string, e.g.::

    AGENDA_ALERTS_AGENDA_FILES=~/org/work.org:~/org/home.org
    AGENDA_ALERTS_DEFAULT_INTERVALS=10:high,30:medium,60:low
"""

import json
import os
from pathlib import Path
from typing import Annotated, Any, Final, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from agenda_alerts.domain.models import (
    DEFAULT_INTERVALS,
    AlertInterval,
    Severity,
    sort_intervals,
)

LOOKAHEAD_MINUTES_DEFAULT: Final[int] = 24 * 60
REFRESH_PERIOD_SECONDS_DEFAULT: Final[float] = 300.0
STARTUP_DELAY_SECONDS_DEFAULT: Final[float] = 5.0
RETRY_MAX_SECONDS_DEFAULT: Final[float] = 3600.0
SUMMARY_MAX_ITEMS_DEFAULT: Final[int] = 3
DONE_STATES_DEFAULT: Final[tuple[str, ...]] = ("DONE", "CANCELLED", "CANCELED")


def _split_list(value: str, separator: str) -> list[str]:
    return [item.strip() for item in value.split(separator) if item.strip()]


def parse_interval_spec(spec: str) -> list[AlertInterval]:
    """Parse a compact ladder like ``"10:high,30:medium"``.

    Severity may be omitted (``"10,30"``) and defaults to medium.

    Raises:
        ValueError: If a threshold or severity is invalid
    """
    intervals: list[AlertInterval] = []
    for chunk in _split_list(spec, ","):
        threshold_raw, _, severity_raw = chunk.partition(":")
        try:
            threshold = int(threshold_raw.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid interval threshold: {chunk!r}") from exc
        severity = Severity(severity_raw.strip().lower()) if severity_raw else Severity.MEDIUM
        intervals.append(AlertInterval(threshold_minutes=threshold, severity=severity))
    return intervals


class Settings(BaseSettings):
    """Application settings.

    Only the refresh core's knobs live here; the parser and presenter are
    configured by pointing at them (``parser``, ``notify_command``).
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENDA_ALERTS_",
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SOURCES ===

    agenda_files: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Agenda source paths (os.pathsep- or JSON-list-separated)",
    )
    done_states: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DONE_STATES_DEFAULT),
        description="State markers that exclude an entry from collection",
    )
    parser: str | None = Field(
        default=None,
        description="Parser import target in 'package.module:attribute' form",
    )

    # === SCHEDULING ===

    lookahead_minutes: int = Field(
        default=LOOKAHEAD_MINUTES_DEFAULT,
        ge=0,
        description="Events due within this many minutes are kept in the snapshot",
    )
    refresh_period_seconds: float = Field(
        default=REFRESH_PERIOD_SECONDS_DEFAULT,
        gt=0,
        description="Cadence of refresh cycles",
    )
    startup_delay_seconds: float = Field(
        default=STARTUP_DELAY_SECONDS_DEFAULT,
        ge=0,
        description="Delay before the first cycle after activation",
    )
    retry_max_seconds: float = Field(
        default=RETRY_MAX_SECONDS_DEFAULT,
        gt=0,
        description="Upper bound for validation retry backoff",
    )
    default_intervals: Annotated[list[AlertInterval], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_INTERVALS),
        description="Fallback alert ladder for events without explicit tiers",
    )

    # === PRESENTATION ===

    notify_command: str | None = Field(
        default=None,
        description="Notification command (e.g. 'notify-send'); log-only when unset",
    )
    summary_max_items: int = Field(
        default=SUMMARY_MAX_ITEMS_DEFAULT,
        ge=1,
        description="Maximum events named in the status-line summary",
    )

    # === OBSERVABILITY ===

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    json_logs: bool = Field(default=False, description="Emit JSON logs")
    metrics_port: int | None = Field(
        default=None, description="Expose Prometheus metrics on this port"
    )

    @field_validator("agenda_files", mode="before")
    @classmethod
    def _parse_agenda_files(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value.lstrip().startswith("["):
                return json.loads(value)
            return _split_list(value, os.pathsep)
        return value

    @field_validator("agenda_files")
    @classmethod
    def _expand_agenda_files(cls, value: list[str]) -> list[str]:
        return [os.path.expanduser(item) for item in value]

    @field_validator("done_states", mode="before")
    @classmethod
    def _parse_done_states(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _split_list(value, ",")
        return value

    @field_validator("done_states")
    @classmethod
    def _normalize_done_states(cls, value: list[str]) -> list[str]:
        return [item.upper() for item in value]

    @field_validator("default_intervals", mode="before")
    @classmethod
    def _parse_default_intervals(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value.lstrip().startswith("["):
                return json.loads(value)
            return parse_interval_spec(value)
        return value

    @field_validator("default_intervals")
    @classmethod
    def _order_default_intervals(
        cls, value: list[AlertInterval]
    ) -> list[AlertInterval]:
        if not value:
            return list(DEFAULT_INTERVALS)
        return list(sort_intervals(value))

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
