"""
Field Report Entity Resolution - Configuration

Loads settings from environment variables with sensible defaults.
"""

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        default=f"sqlite:///{PROJECT_ROOT}/data/field_reports.db"
    )

    @property
    def project_root(self) -> Path:
        """Return project root directory."""
        return PROJECT_ROOT

    # Application
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    # Directory for the log file, relative to the project root; empty disables it
    LOG_DIR: str = Field(default="logs")

    # Entity resolution settings (scores are 0-100, match requires score > threshold)
    NICKNAME_MATCH_THRESHOLD: int = Field(default=80)
    NICKNAME_FULL_NAME_THRESHOLD: int = Field(default=60)
    FULL_NAME_MATCH_THRESHOLD: int = Field(default=85)

    # Lost create races are retried as updates this many times
    MAX_CREATE_ATTEMPTS: int = Field(default=3)

    # False restricts vendor fuzzy matching to the incoming vendor category
    FUZZY_MATCH_ACROSS_CATEGORIES: bool = Field(default=True)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
