"""Shared configuration management for the billing module.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="billing-admin",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./billing.db",
        description="SQLAlchemy database URL",
    )

    # Admin panel links carried by notifications
    admin_base_url: str = Field(
        default="http://localhost:8000/admin",
        description="Base URL of the admin panel used in notification actions",
    )

    # Seller profile row resolved once at startup
    profile_id: int = Field(
        default=1,
        description="Primary key of the seller profile row",
    )

    # Exchange-rate provider
    exchange_rate_base_url: str = Field(
        default="https://v6.exchangerate-api.com/v6",
        description="Exchange-rate API base URL ({base}/{key}/latest/{code})",
    )
    exchange_rate_timeout: float = Field(
        default=10.0,
        description="Exchange-rate request timeout in seconds",
        gt=0,
    )
    exchange_rate_max_attempts: int = Field(
        default=3,
        description="Attempts before the rate provider is reported unavailable",
        ge=1,
    )

    # Documents
    documents_dir: Path = Field(
        default=Path("storage"),
        description="Local directory for generated documents when object storage is disabled",
    )
    invoice_template: str = Field(
        default="invoice",
        description="Template used to render invoice PDFs",
    )

    # Storage configuration (S3-compatible object storage)
    storage_enabled: bool = Field(
        default=False,
        description="Store generated documents in S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="billing",
        description="Default bucket name for generated documents",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )

    # Background queue (arq)
    queue_enabled: bool = Field(
        default=False,
        description="Run exports and PDF generation through the arq worker",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the arq queue",
    )
    queue_max_jobs: int = Field(
        default=10,
        description="Maximum concurrent jobs per worker",
    )
    queue_job_timeout: int = Field(
        default=300,
        description="Job timeout in seconds",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
