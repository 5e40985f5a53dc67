"""
classwork/core/config.py
Configuration management using Pydantic Settings (v2)
Supports .env file, environment variables, and type safety
"""

from functools import lru_cache
from typing import Literal, List, Set, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # =================================================================
    # Application
    # =================================================================
    APP_NAME: str = "Classwork Tracker API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # =================================================================
    # Database
    # =================================================================
    DATABASE_URL: str = "sqlite:///./classwork.db"

    # =================================================================
    # JWT & Security
    # =================================================================
    SECRET_KEY: str = "change-this-classwork-secret-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # =================================================================
    # Blob storage & submissions
    # =================================================================
    BLOB_DIR: str = "var/blobs"
    MAX_FILES_PER_SUBMISSION: int = 5
    DEFAULT_MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    DEFAULT_ALLOWED_FILE_TYPES: Set[str] = {"pdf", "doc", "docx"}
    SUPPORTED_FILE_TYPES: Set[str] = {
        "pdf", "doc", "docx", "txt", "jpg", "jpeg", "png", "gif", "zip"
    }
    BLOB_RETRY_ATTEMPTS: int = 3
    BLOB_RETRY_BACKOFF_SECONDS: float = 0.2
    BLOB_RETRY_BACKOFF_CAP_SECONDS: float = 2.0
    BLOB_IO_TIMEOUT_SECONDS: float = 30.0

    # =================================================================
    # Email notifications
    # =================================================================
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    FROM_EMAIL: str = "no-reply@classwork.local"
    NOTIFY_TIMEOUT_SECONDS: float = 10.0
    FRONTEND_URL: str = "http://localhost:3000"

    # =================================================================
    # CORS
    # =================================================================
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # =================================================================
    # Validators (.env comma-separated lists)
    # =================================================================
    @field_validator(
        "ALLOWED_ORIGINS",
        "DEFAULT_ALLOWED_FILE_TYPES",
        "SUPPORTED_FILE_TYPES",
        mode="before",
    )
    @classmethod
    def parse_comma_separated_list(cls, v: Union[str, List[str], Set[str]]) -> Union[List[str], Set[str]]:
        """
        Parses comma-separated strings from .env into lists/sets.
        Example: "pdf,docx" -> ["pdf", "docx"]
        """
        if isinstance(v, str) and not v.strip().startswith("["):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance – safe for multiple imports
    """
    return Settings()


settings = get_settings()
