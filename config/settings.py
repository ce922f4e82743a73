"""
MOVRR Waitlist Application Settings
Configuration management using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    app_name: str = "MOVRR Waitlist"
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Admin access (checked by the HTTP adapter only; None disables the check)
    admin_token: Optional[str] = Field(default=None)

    # Export delivery
    export_directory: str = Field(default="exports")
    default_export_filename: str = Field(default="export")

    # Export styling
    brand_primary_color: str = Field(default="23B245")
    pdf_page_size: str = Field(default="A4")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
