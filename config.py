"""
Configuration settings for the revision scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from revision_scheduler.delivery.schedule_builder import BuilderConfig
    from revision_scheduler.study.interval_scheduler import SchedulerConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{Path.home() / '.revision' / 'state.db'}",
        description="SQLAlchemy connection string for revision state",
    )

    # ========================================
    # Exam
    # ========================================
    exam_date: date | None = Field(
        default=None,
        description="Exam date (YYYY-MM-DD); enables exam-aware intervals",
    )
    target_exam_retention: float = Field(
        default=0.85,
        gt=0.0,
        lt=1.0,
        description="Retention probability to hold at the exam date",
    )

    # ========================================
    # Interval Blending
    # ========================================
    sm2_weight: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Weight of the SM-2 interval in the final blend",
    )
    exam_weight: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Weight of the exam-aware interval in the final blend",
    )
    min_interval_days: int = Field(
        default=1,
        ge=1,
        description="Lower clamp for scheduled intervals",
    )
    max_interval_days: int = Field(
        default=90,
        ge=1,
        description="Upper clamp for scheduled intervals",
    )
    subject_interval_multipliers: dict[str, float] = Field(
        default_factory=dict,
        description='Per-subject interval multipliers as JSON, e.g. {"Polity": 0.9}',
    )

    # ========================================
    # Adaptation
    # ========================================
    snapshot_history_limit: int = Field(
        default=100,
        ge=1,
        description="Performance snapshots kept per learner (oldest evicted)",
    )
    adaptation_window: int = Field(
        default=15,
        ge=1,
        description="Recent snapshots considered by difficulty adaptation",
    )

    # ========================================
    # Daily Schedule
    # ========================================
    normal_look_ahead_days: int = Field(default=3, ge=0)
    intensive_look_ahead_days: int = Field(default=1, ge=0)
    sprint_look_ahead_days: int = Field(default=0, ge=0)
    sprint_threshold_days: int = Field(
        default=7,
        ge=0,
        description="Days before the exam when sprint mode starts",
    )
    intensive_threshold_days: int = Field(
        default=30,
        ge=0,
        description="Days before the exam when intensive mode starts",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional rotating log file path",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(default="127.0.0.1", description="API bind host")
    api_port: int = Field(default=8100, description="API bind port")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value

    # ========================================
    # Engine configuration
    # ========================================

    def scheduler_config(self) -> SchedulerConfig:
        """Interval scheduler configuration derived from these settings."""
        from revision_scheduler.study.interval_scheduler import SchedulerConfig

        return SchedulerConfig(
            exam_date=self.exam_date,
            target_exam_retention=self.target_exam_retention,
            sm2_weight=self.sm2_weight,
            exam_weight=self.exam_weight,
            min_interval_days=self.min_interval_days,
            max_interval_days=self.max_interval_days,
            subject_multipliers=dict(self.subject_interval_multipliers),
        )

    def builder_config(self) -> BuilderConfig:
        """Schedule builder configuration derived from these settings."""
        from revision_scheduler.delivery.schedule_builder import BuilderConfig

        return BuilderConfig(
            normal_look_ahead_days=self.normal_look_ahead_days,
            intensive_look_ahead_days=self.intensive_look_ahead_days,
            sprint_look_ahead_days=self.sprint_look_ahead_days,
            sprint_threshold_days=self.sprint_threshold_days,
            intensive_threshold_days=self.intensive_threshold_days,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
