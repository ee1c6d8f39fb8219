"""
Runtime settings with Pydantic validation.

Values are read from SETUPKIT_* environment variables (or a .env file
in the working directory) and can be overridden from the CLI.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide settings for the setup service."""

    model_config = SettingsConfigDict(
        env_prefix="SETUPKIT_",
        env_file=".env",
        extra="ignore",
    )

    data_dir: Path = Field(default=Path("./data"), description="Session/config documents")
    output_dir: Path = Field(default=Path("./output"), description="Generated artifacts")
    work_dir: Path = Field(
        default=Path("./data/temp"),
        description="Staging area for uploaded and carried-over side files",
    )

    token_ttl_hours: float = Field(default=8.0, gt=0, description="Setup token lifetime")

    health_poll_interval: float = Field(default=5.0, gt=0, description="Seconds between health probes")
    health_timeout: float = Field(default=600.0, gt=0, description="Hard ceiling for health polling")
    stream_interval: float = Field(default=2.0, gt=0, description="Log stream poll interval")

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
