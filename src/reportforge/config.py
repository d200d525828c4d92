"""Runtime settings for ReportForge.

everything has a sane default so the engine works with zero configuration.
values can be overridden with REPORTFORGE_* environment variables or a .env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reportforge.models.formula import Granularity


class EngineSettings(BaseSettings):
    """Engine-wide knobs."""

    model_config = SettingsConfigDict(
        env_prefix="REPORTFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # beyond this many points the charts become unreadable anyway
    max_buckets: int = Field(default=500, gt=0)
    # python weekday numbering - 6 is sunday, which is what the ui always showed
    week_start: int = Field(default=6, ge=0, le=6)
    default_granularity: Granularity = Granularity.MONTH
    group_value_limit: int = Field(default=100, gt=0)
    log_level: str = "WARNING"
