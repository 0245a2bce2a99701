"""
Configuration settings for the FlashPrep study tool.

Uses Pydantic Settings for environment variable management with .env file support.
Every setting can be overridden with a ``FLASHPREP_`` prefixed variable,
e.g. ``FLASHPREP_DATA_DIR=/tmp/cards``.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FLASHPREP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".flashprep",
        description="Directory holding the local SQLite database",
    )
    database_name: str = Field(
        default="flashprep.db",
        description="SQLite file name inside data_dir",
    )
    export_dir: Path = Field(
        default=Path("."),
        description="Default directory for exported .flashstudy.json files",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Minimum loguru level written to stderr by the CLI",
    )

    # ========================================
    # Test-prep tuning
    # ========================================
    weak_threshold: float = Field(
        default=2.5,
        description="Cards rated at or below this are offered by the 'weak' filter",
    )
    streak_threshold: float = Field(
        default=4.5,
        description="Ratings at or above this extend a card's streak",
    )
    history_limit: int = Field(
        default=20,
        description="Session history rows shown by the stats command",
    )
    streak_display_min: int = Field(
        default=2,
        description="Streaks shorter than this are not shown in card details",
    )

    @property
    def database_path(self) -> Path:
        """Full path of the SQLite database."""
        return self.data_dir / self.database_name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
