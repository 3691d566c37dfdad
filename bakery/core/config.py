from datetime import time
from pathlib import Path
from typing import Literal

from pydantic import computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BAKERY_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "bakery-production"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["console", "json"] = "console"

    # Metrics
    ENABLE_METRICS: bool = False
    METRICS_PORT: int = 8001

    # Planning defaults
    WORKDAY_START: time = time(6, 0)
    WORKDAY_END: time = time(18, 0)
    MAX_BATCH_SIZE: int = 50
    BATCH_GAP_MINUTES: float = 15
    MAX_STAFF_PER_BATCH: int = 2

    # Execution defaults
    QUALITY_PASSING_SCORE: float = 70
    MONITOR_INTERVAL_SECONDS: float = 30.0

    # Reporting
    ANALYTICS_WINDOW_DAYS: int = 30

    # Directory holding ``*.yaml`` process files
    WORKFLOW_DIRECTORY: Path | None = None

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalise_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _check_ranges(self) -> Self:
        if self.WORKDAY_END <= self.WORKDAY_START:
            raise ValueError("WORKDAY_END must be after WORKDAY_START")
        if self.MAX_BATCH_SIZE <= 0:
            raise ValueError("MAX_BATCH_SIZE must be positive")
        if self.MAX_STAFF_PER_BATCH <= 0:
            raise ValueError("MAX_STAFF_PER_BATCH must be positive")
        if not 0 <= self.QUALITY_PASSING_SCORE <= 100:
            raise ValueError("QUALITY_PASSING_SCORE must be between 0 and 100")
        if self.MONITOR_INTERVAL_SECONDS <= 0:
            raise ValueError("MONITOR_INTERVAL_SECONDS must be positive")
        if self.ANALYTICS_WINDOW_DAYS <= 0:
            raise ValueError("ANALYTICS_WINDOW_DAYS must be positive")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()  # type: ignore
