# backend/casecast/config.py
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    # "json" for batch runs, "console" for local reading
    LOG_FORMAT: str = "json"

    # --- Feeds ---
    DATA_DIR: Path = Path("data")
    # header format of the per-day columns in the wide feeds (e.g. "1/22/20")
    DATE_FORMAT: str = "%m/%d/%y"
    TOP_REGIONS: int = 10

    # --- Time-series framing ---
    SEASONAL_PERIOD: int = Field(7, ge=1, description="Cycle length of the daily series (weekly).")
    TRAIN_FRACTION: float = 0.8

    # --- Automatic ARIMA order search (inclusive upper bounds) ---
    MAX_P: int = Field(5, ge=0)
    MAX_D: int = Field(2, ge=0)
    MAX_Q: int = Field(5, ge=0)

    # --- Diagnostics ---
    # Fitted separately from the searched model; residuals of this fit feed the ACF.
    FIXED_ORDER: Tuple[int, int, int] = (3, 1, 4)
    ACF_LAGS: int = Field(25, ge=1)
    FORECAST_ALPHA: float = 0.05

    @model_validator(mode="after")
    def _check_ranges(self):
        if not 0.0 < self.TRAIN_FRACTION < 1.0:
            raise ValueError("TRAIN_FRACTION must be strictly between 0 and 1.")
        if not 0.0 < self.FORECAST_ALPHA < 1.0:
            raise ValueError("FORECAST_ALPHA must be strictly between 0 and 1.")
        if any(o < 0 for o in self.FIXED_ORDER):
            raise ValueError("FIXED_ORDER terms must be non-negative.")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
