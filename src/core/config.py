"""
Centralised engine settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Query boundary ───────────────────────────────────
    min_query_length: int = 3
    max_query_length: int = 500

    # ── Classification ───────────────────────────────────
    low_confidence_threshold: float = 0.5
    sql_exposure_confidence: float = 0.7  # SQL shown to end users only above this
    timezone: str = "Europe/Berlin"

    # ── SQL builder ──────────────────────────────────────
    result_limit: int = 50

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="NLQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
