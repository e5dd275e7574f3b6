"""
Configuration settings for the Apollo research pipeline.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

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
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///./data/apollo.db",
        description="SQLAlchemy connection string for the curriculum catalog",
    )

    # ========================================
    # Research Agent (Claude Code CLI)
    # ========================================
    claude_code_path: str = Field(
        default="claude",
        description="Path to the agent CLI binary",
    )
    research_model: str = Field(
        default="opus",
        description="Model selector passed to the initial research pass",
    )
    research_allowed_tools: list[str] = Field(
        default_factory=lambda: [
            "WebSearch", "WebFetch",
            "Read", "Write",
            "Bash", "Glob", "Grep",
            "Task", "TodoWrite",
        ],
        description="Agent capabilities allowed during research sessions",
    )
    research_max_output_tokens: int = Field(
        default=65536,
        description="Output token ceiling exported to the agent process",
    )
    research_final_pass_schema: bool = Field(
        default=False,
        description="Hand the curriculum schema asset to the validation pass",
    )
    agent_poll_interval: float = Field(
        default=0.5,
        description="Seconds between cancellation checks while an agent pass runs",
    )

    # ========================================
    # Research Pipeline
    # ========================================
    research_work_dir: str = Field(
        default="./data/research",
        description="Root directory for per-job working directories",
    )
    research_poll_interval: float = Field(
        default=2.0,
        description="Seconds between checks for queued research jobs",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def is_sqlite(self) -> bool:
        """Check whether the catalog lives in SQLite."""
        return self.database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
