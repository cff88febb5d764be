"""
Crash Alert - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and environment-specific values are loaded from environment variables.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Hierarchy (highest to lowest priority):
    1. Environment variables
    2. .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json: bool = False

    # --- Server ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 3000

    # --- Storage ---
    # "memory" = in-process repositories and incident store (default)
    # "sql" = SQLAlchemy engine on database_url (sqlite, postgresql, ...)
    storage_backend: str = "memory"
    database_url: str = "sqlite:///./crash_alert.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # JSON file with facility records loaded at startup (optional)
    facility_seed_path: Optional[str] = None

    # --- Facility Search ---
    # Great-circle radius in meters; 0 disables the bound
    search_radius_meters: float = 50000.0
    repository_timeout_seconds: float = 5.0
    storage_timeout_seconds: float = 5.0

    # --- Evidence Uploads ---
    upload_dir: str = "./uploads"
    upload_max_bytes: int = 50 * 1024 * 1024  # per file
    upload_max_files: int = 3
    upload_allowed_types: str = (
        "video/mp4,video/quicktime,video/x-msvideo,video/webm,"
        "image/jpeg,image/png"
    )

    # --- Privacy ---
    anonymize_logs: bool = True  # Round coordinates to ~1km in log lines

    # --- Security ---
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def allowed_upload_types(self) -> List[str]:
        """Parse comma-separated media types into list."""
        return [
            media_type.strip().lower()
            for media_type in self.upload_allowed_types.split(",")
            if media_type.strip()
        ]

    @property
    def search_radius(self) -> Optional[float]:
        """Search radius in meters, or None when unbounded."""
        return self.search_radius_meters if self.search_radius_meters > 0 else None

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.

    Use dependency injection in routes:
        settings: Settings = Depends(get_settings)
    """
    return Settings()


# Convenience export
settings = get_settings()
