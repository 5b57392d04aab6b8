"""Configuration loading from environment variables with validation."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Anchor all paths to the project root (two levels up from this package)
_PROJECT_DIR = Path(__file__).resolve().parent.parent.parent

VERSION = "0.1.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SIGNALPRESS_",
        case_sensitive=False,
    )

    # Provider keys (loaded separately, no prefix)
    anthropic_api_key: str = ""
    perplexity_api_key: str = ""

    # Bearer token verification (loaded separately, no prefix)
    jwt_secret: str = ""

    # CORS allow-list (loaded separately, no prefix)
    allowed_origins: list[str] = ["http://localhost:5173"]

    # Generation provider
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    draft_max_tokens: int = 8192
    meta_max_tokens: int = 200
    temperature: float = 0.7

    # Search-grounded provider
    search_model: str = "sonar"
    search_base_url: str = "https://api.perplexity.ai"
    search_timeout: float = 60.0

    # Resource collection
    fetch_timeout: float = 15.0
    max_redirects: int = 5
    resource_max_chars: int = 10000

    # Drafting
    draft_min_words: int = 2500
    draft_max_words: int = 3500

    # Storage (absolute, anchored to the project root)
    db_path: Path = _PROJECT_DIR / "data" / "signalpress.db"
    database_url: str = ""

    # Logging
    log_level: str = "INFO"

    @property
    def db_url(self) -> str:
        """SQLAlchemy URL; an explicit database_url wins over db_path."""
        return self.database_url or f"sqlite:///{self.db_path}"


def _split_origins(raw: str) -> list[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


def get_settings() -> Settings:
    """Load settings from environment and .env file."""
    # Load .env from the project root regardless of cwd
    load_dotenv(_PROJECT_DIR / ".env")
    overrides: dict = {
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY", ""),
        "perplexity_api_key": os.getenv("PERPLEXITY_API_KEY", ""),
        "jwt_secret": os.getenv("JWT_SECRET", ""),
    }
    origins = _split_origins(os.getenv("ALLOWED_ORIGINS", ""))
    if origins:
        overrides["allowed_origins"] = origins
    return Settings(**overrides)
