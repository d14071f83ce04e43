"""Global application configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _default_data_dir() -> Path:
    """Return the platform-appropriate data directory."""
    if os.name == "nt":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif os.uname().sysname == "Darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "statement-ingest"


class AppConfig(BaseSettings):
    """Application-wide settings, read from ``SI_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="SI_")

    # Directories
    data_dir: Path = Field(default_factory=_default_data_dir)
    profiles_db_path: Optional[Path] = None

    # Bank profile registry
    profile_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    profile_search_limit: int = Field(default=20, ge=1)

    # Extraction
    page_concurrency: int = Field(default=6, ge=1)
    scanned_text_threshold: int = Field(default=100, ge=0)   # page-1 chars at or below this = scanned
    ocr_fallback_threshold: int = Field(default=40, ge=0, le=100)

    # Rule matcher defaults
    default_confidence_threshold: float = Field(default=0.60, ge=0.0, le=1.0)
    default_locale: str = "auto"

    # Block the rule matcher when the quality scorer recommends OCR
    honor_quality_gate: bool = False

    # Logging
    log_format: str = "text"  # "json" for structured JSON lines
    log_level: str = "INFO"   # DEBUG, INFO, WARNING, ERROR

    def model_post_init(self, __context: object) -> None:
        if self.profiles_db_path is None:
            self.profiles_db_path = self.data_dir / "bank_profiles.db"


# Singleton, importable from anywhere
config = AppConfig()
