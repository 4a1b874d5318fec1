"""Application configuration management."""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    """
    Runtime settings, read from environment variables.

    SECRET_KEY is shared with the external auth provider that issues
    bearer tokens; this service only verifies them.
    """
    database_url: str = field(
        default_factory=lambda: os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./cybershield.db")
    )
    secret_key: str = field(default_factory=lambda: os.getenv("SECRET_KEY", ""))
    jwt_algorithm: str = field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))
    cors_origins: List[str] = field(
        default_factory=lambda: _env_list("CORS_ORIGINS", "http://localhost:8081,http://localhost:19006")
    )
    allowed_hosts: List[str] = field(
        default_factory=lambda: _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")
    )
    log_dir: str = field(default_factory=lambda: os.getenv("LOG_DIR", "logs"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG", "false"))
    rate_limit_enabled: bool = field(default_factory=lambda: _env_bool("RATE_LIMIT_ENABLED", "true"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    recent_limit: int = field(default_factory=lambda: int(os.getenv("RECENT_LIMIT", "5")))


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    return Settings()
