"""
PayFlow Configuration
Settings are read from the environment (and an optional .env file).
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings. Environment variable = upper-cased field name."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "PayFlow API"
    app_version: str = "1.0.0"
    environment: Literal["development", "test", "production"] = "development"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    # Storage
    database_url: str = "sqlite+aiosqlite:///./payflow.db"
    storage_backend: Literal["database", "memory"] = "database"

    # Authentication: exactly one trust root per deployment
    auth_mode: Literal["local", "external"] = "local"

    # Local credentials
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # External identity service (Supabase auth)
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    identity_timeout_seconds: float = 5.0

    # Service-to-service / admin
    internal_api_key: Optional[str] = None
    internal_api_key_header: str = "X-API-Key"
    admin_emails: list[str] = Field(default_factory=list)

    # Rate limiting
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    auth_rate_limit_max_requests: int = 10

    # Login lockout
    login_max_attempts: int = 5
    login_lockout_seconds: int = 15 * 60

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def identity_api_key(self) -> Optional[str]:
        """Key sent to the identity service; the service role key wins."""
        return self.supabase_service_role_key or self.supabase_anon_key

    @property
    def admin_email_set(self) -> set[str]:
        return {e.strip().lower() for e in self.admin_emails if e.strip()}


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (FastAPI dependency)."""
    return Settings()
