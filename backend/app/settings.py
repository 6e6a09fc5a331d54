############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# settings.py: Application configuration and environment settings
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Application settings using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_version() -> str:
    """Read version from pyproject.toml (single source of truth)."""
    try:
        from importlib.metadata import version
        return version("labchain-directory")
    except Exception:
        pass
    # Fallback: read pyproject.toml directly (works in dev without pip install)
    try:
        import tomllib
        toml_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
        return data["project"]["version"]
    except Exception:
        return "0.0.0"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.prod"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "LAB Chain Directory"
    app_version: str = Field(default_factory=_get_version)
    debug: bool = False
    reload: bool = False

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./data/labchain.db")
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_echo: bool = False
    auto_create_tables: bool = True

    # Security
    secret_key: str = Field(default="dev-secret-key-change-in-production")
    session_cookie_name: str = "session"
    session_cookie_secure: bool = False
    session_cookie_httponly: bool = True
    session_cookie_samesite: str = "lax"
    session_ttl_days: int = 7
    session_purge_on_create: bool = True
    session_cleanup_interval: int = 3600  # seconds, 0 disables the sweeper
    password_min_length: int = 8

    # Submissions
    tracking_id_attempts: int = 5

    # Email (defaults; admins can override via the settings table)
    email_enabled: bool = True
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_secure: bool = False
    smtp_from: str = "noreply@labchain.la"
    smtp_from_name: str = "LAB Chain"
    smtp_timeout: int = 10  # seconds

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            import json
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def session_max_age_seconds(self) -> int:
        """Session lifetime in seconds, used for both cookie and signature age."""
        return self.session_ttl_days * 86400


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
