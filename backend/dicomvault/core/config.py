"""
Application configuration with environment variable management.

Settings are read from the process environment and an optional ``.env``
file. A single cached instance is shared through :func:`get_settings`.

@module core.config
"""

import warnings
from typing import List, Union
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application Configuration
    APP_NAME: str = Field(default="DICOM Vault")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")
    API_V1_STR: str = Field(default="/api/v1")

    # Server Configuration
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000, ge=1, le=65535)

    # CORS Configuration
    # Note: Annotated with Union[str, List[str]] to prevent Pydantic from JSON-decoding string values
    CORS_ORIGINS: Union[str, List[str]] = Field(default=["http://localhost:4200", "http://localhost:5173"])

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v) -> List[str]:
        if isinstance(v, str):
            # Parse comma-separated string
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    # Database
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./dicomvault.db")
    DB_ECHO: bool = Field(default=False)
    DB_POOL_SIZE: int = Field(default=5, ge=1, le=100)
    DB_MAX_OVERFLOW: int = Field(default=10, ge=0, le=100)

    # Upload Configuration
    UPLOAD_DIR: str = Field(default="uploads/dicom")
    MAX_UPLOAD_SIZE: int = Field(default=524_288_000, ge=1_000, le=1_073_741_824)
    ALLOWED_EXTENSIONS: Union[str, List[str]] = Field(default=[".dcm", ".dicom"])
    ALLOWED_CONTENT_TYPES: Union[str, List[str]] = Field(default=["application/dicom"])

    @field_validator('ALLOWED_EXTENSIONS', 'ALLOWED_CONTENT_TYPES', mode='before')
    @classmethod
    def parse_comma_separated(cls, v):
        if isinstance(v, str):
            return [item.strip().lower() for item in v.split(',') if item.strip()]
        return v

    # Metadata extraction
    EXTRACTION_MAX_CONCURRENCY: int = Field(default=4, ge=1, le=64)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")
    LOG_FILE: str = Field(default="logs/dicomvault.log")
    LOG_MAX_BYTES: int = Field(default=10_485_760, ge=1_000_000)
    LOG_BACKUP_COUNT: int = Field(default=10, ge=1, le=100)

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be one of: json, text")
        return v_lower

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    def model_post_init(self, __context) -> None:
        """Warn about settings that should not reach production."""
        if self.ENVIRONMENT == "production" and self.DEBUG:
            warnings.warn("DEBUG mode enabled in production.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
