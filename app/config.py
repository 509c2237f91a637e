"""
Application configuration using pydantic-settings.
All settings are loaded from environment variables.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Get the directory containing this file (app/)
APP_DIR = Path(__file__).resolve().parent
# Project root is one level up
PROJECT_ROOT = APP_DIR.parent
# .env file path
ENV_FILE = PROJECT_ROOT / ".env"

# Load .env file into environment variables BEFORE pydantic-settings reads them
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=True)


def _parse_list(v):
    if isinstance(v, str):
        import json
        try:
            return json.loads(v)
        except json.JSONDecodeError:
            return [item.strip() for item in v.split(",") if item.strip()]
    return v


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # App
    app_name: str = "Spontis API"
    debug: bool = False
    cors_origins: Annotated[List[str], NoDecode] = ["http://localhost:3000", "http://localhost:3001"]
    frontend_url: str = "http://localhost:3000"

    # Database
    database_url: str

    # Supabase
    supabase_url: str
    supabase_key: str
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""  # JWT secret for verifying Supabase tokens
    mandat_images_bucket: str = "mandat-images"

    # Platform administrators (matched on the token email)
    admin_emails: Annotated[List[str], NoDecode] = []

    # Google Maps (Places + Distance Matrix)
    google_maps_api_key: str = ""

    # SendGrid
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = "noreply@spontis.ch"
    sendgrid_from_name: str = "Spontis"

    # Marketplace
    currency: str = "CHF"
    invitation_ttl_days: int = 7

    # Per-process cache of resolved user sessions
    session_cache_ttl_seconds: int = 300
    session_cache_max_entries: int = 1024

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        return _parse_list(v)

    @field_validator("admin_emails", mode="before")
    @classmethod
    def parse_admin_emails(cls, v):
        v = _parse_list(v)
        if isinstance(v, list):
            return [str(email).strip().lower() for email in v if str(email).strip()]
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
