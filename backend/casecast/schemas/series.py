# casecast/schemas/series.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import List

import pandas as pd
from pydantic import BaseModel

from casecast.schemas.feeds import MetricName

CUMULATIVE_COLUMNS = ["confirmed", "deaths", "recovered"]
DAILY_COLUMNS = ["daily_cases", "daily_deaths", "daily_recovered"]
RATE_COLUMNS = ["recovery_rate", "death_rate"]
CANONICAL_COLUMNS = ["date", *CUMULATIVE_COLUMNS, *DAILY_COLUMNS, *RATE_COLUMNS]


class GlobalDailyTotal(BaseModel):
    date: dt.date
    metric_name: MetricName
    value: float


class RegionTotal(BaseModel):
    region: str
    metric_name: MetricName
    total: float


@dataclass(frozen=True)
class CanonicalSeries:
    """
    Date-sorted reconciled series. ``frame`` holds CANONICAL_COLUMNS with NaN for
    undefined values; callers get copies so the series stays immutable.
    """

    frame: pd.DataFrame

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def dates(self) -> List[dt.date]:
        return [ts.date() for ts in self.frame["date"]]

    def column(self, name: str) -> pd.Series:
        return self.frame.set_index("date")[name].copy()

    def to_frame(self) -> pd.DataFrame:
        return self.frame.copy()


@dataclass(frozen=True)
class TimeSeriesFrame:
    """A single column of the canonical series framed as a periodic sequence."""

    values: pd.Series  # DatetimeIndex named "date", float values, no NaN
    period: int

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class TrainTestSplit:
    train: pd.Series
    test: pd.Series
    period: int

    @property
    def horizon(self) -> int:
        return len(self.test)


__all__ = [
    "CUMULATIVE_COLUMNS",
    "DAILY_COLUMNS",
    "RATE_COLUMNS",
    "CANONICAL_COLUMNS",
    "GlobalDailyTotal",
    "RegionTotal",
    "CanonicalSeries",
    "TimeSeriesFrame",
    "TrainTestSplit",
]
