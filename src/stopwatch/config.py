"""Configuration management for stopwatch."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stopwatch.durations import OutputFormat
from stopwatch.storage import STORE_FILENAME

APP_DIRNAME = "stopwatch"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STOPWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Directory for the stopwatch file (default: $XDG_DATA_HOME/stopwatch)",
    )
    output_format: OutputFormat = Field(
        default=OutputFormat.DEFAULT,
        description="Duration format when no format flag is given: default, seconds, or milliseconds",
    )
    live_interval_ms: int = Field(
        default=100,
        gt=0,
        description="Redraw interval for live wait output in milliseconds",
    )

    def get_data_dir(self) -> Path:
        """Get the stopwatch data directory.

        Resolution order: STOPWATCH_DATA_DIR, $XDG_DATA_HOME/stopwatch,
        then $HOME/.local/share/stopwatch.
        """
        if self.data_dir:
            return self.data_dir

        xdg_data_home = os.environ.get("XDG_DATA_HOME")
        if xdg_data_home:
            return Path(xdg_data_home) / APP_DIRNAME

        home = os.environ.get("HOME")
        base = Path(home) if home else Path.home()
        return base / ".local" / "share" / APP_DIRNAME

    def get_store_path(self) -> Path:
        """Get the path of the stopwatch file."""
        return self.get_data_dir() / STORE_FILENAME


# Global settings instance
settings = Settings()
