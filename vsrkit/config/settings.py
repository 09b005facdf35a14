"""Configuration settings models using Pydantic."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RunnerConfig(BaseModel):
    """Configuration for the vsr process runner."""

    max_cli_length: int = Field(default=30000, ge=256)
    clean_concurrency: int = Field(default=5, ge=1, le=64)
    status_limit: int = Field(default=5000, ge=1)
    log_history: int = Field(default=1000, ge=0)
    env: dict[str, str] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Configuration for application logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: Optional[str] = None

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @property
    def resolved_file(self) -> Optional[Path]:
        """Get the resolved log file path with ~ expanded."""
        if not self.file:
            return None
        return Path(self.file).expanduser()


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="VSRKIT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    path: Optional[str] = None

    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank binary path as unset."""
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v
