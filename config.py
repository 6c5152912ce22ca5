"""
Configuration settings for the learnhub adaptive learning engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
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
        description="Optional log file path (rotated weekly)",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///learnhub.db",
        description="SQLAlchemy connection string (sqlite or postgresql)",
    )

    # ========================================
    # Generative Content Service
    # ========================================
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for generated problems, hints and refinements",
    )
    ai_model: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Model used for content generation",
    )
    ai_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Base URL of the Messages API",
    )
    ai_timeout_seconds: float = Field(
        default=60.0,
        description="HTTP timeout for generation requests",
    )
    ai_max_tokens: int = Field(
        default=2000,
        description="Default max_tokens for generation requests",
    )

    # ========================================
    # Session Settings
    # ========================================
    fast_answer_seconds: float = Field(
        default=45.0,
        description="Correct answers faster than this become review cards",
    )
    expected_answer_seconds: float = Field(
        default=30.0,
        description="Expected time per answer used for review quality scoring",
    )
    default_question_count: int = Field(
        default=20,
        description="Default number of questions per session",
    )
    remediation_session_minutes: int = Field(
        default=30,
        description="Duration of a remediation session built on demand",
    )

    # ========================================
    # Mistake Analysis
    # ========================================
    pattern_min_occurrences: int = Field(
        default=2,
        description="Matching mistakes required before a pattern is reported",
    )
    recency_window_days: int = Field(
        default=7,
        description="Window for the recency component of pattern severity",
    )
    high_severity_threshold: int = Field(
        default=70,
        description="Severity at or above which a pattern is high priority",
    )
    medium_severity_threshold: int = Field(
        default=40,
        description="Severity at or above which a pattern is medium priority",
    )

    # ========================================
    # Spaced Repetition
    # ========================================
    review_history_limit: int = Field(
        default=50,
        description="Review history entries kept per card",
    )
    archive_after_days: int = Field(
        default=180,
        description="Mastered cards untouched this long are retired",
    )

    # ========================================
    # Curriculum Optimization
    # ========================================
    optimization_min_sample_size: int = Field(
        default=30,
        description="Minimum performance records before a curriculum is analyzed",
    )
    optimization_interval_days: float = Field(
        default=7.0,
        description="Interval between automatic optimization runs",
    )
    optimization_delay_seconds: float = Field(
        default=2.0,
        description="Pause between curricula in a batch run (generation API budget)",
    )
    performance_window_days: int = Field(
        default=30,
        description="Performance records older than this are ignored by aggregation",
    )

    # ========================================
    # Mastery
    # ========================================
    mastery_accuracy_threshold: float = Field(
        default=80.0,
        description="Topic accuracy (percent) required for mastery",
    )
    mastery_min_attempts: int = Field(
        default=10,
        description="Attempts required before a topic can be mastered",
    )

    def has_ai_configured(self) -> bool:
        """Check if the generative content service is configured."""
        return bool(self.anthropic_api_key)

    def get_optimization_config(self) -> dict[str, Any]:
        """Get curriculum optimization configuration as a dictionary."""
        return {
            "min_sample_size": self.optimization_min_sample_size,
            "interval_days": self.optimization_interval_days,
            "delay_seconds": self.optimization_delay_seconds,
            "window_days": self.performance_window_days,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
