"""
Configuration Management Module

Responsibilities:
1. Read database location from environment variables
2. Read report thresholds and filter formats (REPORT_* variables)
3. Load well-known process ids from config/process_config.json
4. Config validation and defaults

Environment Variables:
    CATCHTRACK_DB_PATH                        - SQLite database file
    CATCHTRACK_LOG_LEVEL                      - Root log level (default: INFO)
    REPORT_UNDER_PRODUCTION_MIN_PROJECT_ID    - Lowest project id reported as under production
    REPORT_LOT_STATUS_EXAM_DATE_FLOOR         - Exam dates sorting below this are ignored
    REPORT_FILTER_DATE_FORMAT                 - strptime format for report date filters
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.process_config import ProcessConstants


class DatabaseConfig(BaseSettings):
    """Local store settings."""

    model_config = SettingsConfigDict(
        env_prefix="CATCHTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: Path = Field(default=Path("data/catchtrack.db"), description="SQLite database file")
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("log_level")
    def validate_log_level(cls, value: str) -> str:
        if value.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return value.upper()


class ReportConfig(BaseSettings):
    """Report thresholds and filter formats."""

    model_config = SettingsConfigDict(
        env_prefix="REPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    under_production_min_project_id: int = Field(
        88, ge=0, description="Projects below this id never appear as under production"
    )
    lot_status_exam_date_floor: str = Field(
        "2025-06-25T00:00:00.000Z",
        description="Catches whose ExamDate sorts below this are left out of lot-status listings",
    )
    filter_date_format: str = Field("%d-%m-%Y", description="Date filter format (dd-MM-yyyy)")
    default_page_size: int = Field(5, ge=1, le=100, description="Project completion page size")
    quick_completion_minutes: int = Field(
        5, ge=1, le=60, description="Window for flagging status events as quick completions"
    )


class Config:
    """Main Config Class - Factory Pattern (NOT Singleton).

    Use FastAPI's Depends() for dependency injection instead of singleton.
    """

    def __init__(
        self,
        database: DatabaseConfig,
        reports: ReportConfig,
        processes: ProcessConstants,
    ):
        self.database = database
        self.reports = reports
        self.processes = processes

    @property
    def db_path(self) -> Path:
        return self.database.db_path

    @classmethod
    def load(cls, process_config_path: str = "config/process_config.json") -> "Config":
        """Factory method to load config.

        Database/report settings: Environment variables > .env
        Process ids: config/process_config.json (defaults when absent)
        """
        return cls(
            database=DatabaseConfig(),
            reports=ReportConfig(),
            processes=ProcessConstants.load(process_config_path),
        )


@lru_cache()
def get_config() -> Config:
    """Get config instance (cached for performance)."""
    return Config.load()

