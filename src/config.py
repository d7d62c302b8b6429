"""
Application Configuration Module.

Manages application settings and environment variables using Pydantic for validation.
Provides centralized configuration management with type safety and validation.

Features:
- Environment variable loading and validation
- Analytics window and limit defaults
- Repository family configuration
- Path normalization for the data directory
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import os
from logger import LogManager


class Settings(BaseSettings):
    """
    Application configuration settings with validation.

    Manages and validates all application settings including:
    - Application identification
    - Logging settings
    - Event log export location
    - Window sizes and result limits used by the analyzers

    Attributes:
        app_name (str): Name of the application
        dev (bool): Debug mode flag
        log_dir (str): Directory for log files
        log_level (int): Logging level (default: debug)
        data_dir (str): Directory holding the JSON event log export
        github_org (str): Organisation owning the proposal repositories
        repo_families (str): Comma-separated repository families
        trending_window_days (int): Window of the trending score
        velocity_window_days (int): Window of the decision velocity metric
        momentum_months (int): Length of the momentum series
        flow_months (int): Length of the status flow series
        default_limit (int): Default result-set size
        max_limit (int): Largest accepted limit
        stale_days (int): Age after which an open PR counts as high risk
    """

    # Application settings
    app_name: str = Field(default="GovLens", description="Application name")
    dev: bool = Field(default=False, description="Debug mode")
    log_dir: str = Field(default="logs", description="Logging directory")
    log_level: int = Field(default=10, description="Logging level, default debug")

    # Event store configuration
    data_dir: str = Field(
        default="data", description="Directory of the JSON event log export"
    )
    github_org: str = Field(
        default="ethereum", description="GitHub organisation of the repositories"
    )
    repo_families: str = Field(
        default="eips,ercs,rips",
        description="Comma-separated repository families to aggregate",
    )

    # Analytics windows
    trending_window_days: int = Field(default=7, description="Trending window")
    velocity_window_days: int = Field(
        default=365, description="Decision velocity window in days"
    )
    momentum_months: int = Field(default=12, description="Momentum series length")
    flow_months: int = Field(default=36, description="Status flow series length")
    stale_days: int = Field(default=90, description="High risk PR age in days")

    # Result limits
    default_limit: int = Field(default=20, description="Default result size")
    max_limit: int = Field(default=200, description="Maximum result size")

    @property
    def repositories(self) -> List[str]:
        """
        Get list of repository families from configuration.

        Returns:
            List[str]: Lower-cased repository family codes
        """
        return [family.strip().lower() for family in self.repo_families.split(",")]

    @field_validator("data_dir")
    def ensure_absolute_path(cls, v: str) -> str:
        """
        Ensure data directory path is absolute.

        Args:
            v (str): Directory path to validate

        Returns:
            str: Absolute path to the data directory
        """
        if not os.path.isabs(v):
            return os.path.abspath(v)
        return v

    # Configure env file loading
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in .env file
    )


# Create global settings instance
settings = Settings()

# Initialize logging configuration
logger = LogManager(
    app_name=settings.app_name.lower(),
    log_dir=settings.log_dir,
    development=settings.dev,
    level=settings.log_level,
).logger
