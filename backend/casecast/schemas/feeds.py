# casecast/schemas/feeds.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

import pandas as pd
from pydantic import BaseModel, Field

from casecast.core.errors import ParseError


class MetricName(str, Enum):
    CONFIRMED = "Confirmed"
    DEATHS = "Deaths"
    RECOVERED = "Recovered"


class RegionColumnConvention(str, Enum):
    """How a feed titles its region column; resolved once per feed."""

    COUNTRY = "Country"
    COUNTRY_SLASH_REGION = "Country/Region"

    @classmethod
    def detect(cls, columns) -> Optional["RegionColumnConvention"]:
        names = {str(c).strip() for c in columns}
        for convention in cls:
            if convention.value in names:
                return convention
        return None


CANONICAL_REGION_COLUMN = RegionColumnConvention.COUNTRY.value

# long-format columns every normalized feed exposes
POINT_COLUMNS = ["region", "date", "metric_name", "value"]


class RegionMetricPoint(BaseModel):
    region: str
    date: dt.date
    metric_name: MetricName
    value: Optional[int] = Field(None, ge=0)


@dataclass
class ParseReport:
    """What normalization dropped or blanked, with the ParseErrors it recovered from."""

    dropped_date_columns: List[str] = field(default_factory=list)
    dropped_rows: int = 0
    invalid_cells: int = 0
    errors: List[ParseError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "dropped_date_columns": list(self.dropped_date_columns),
            "dropped_rows": self.dropped_rows,
            "invalid_cells": self.invalid_cells,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass(frozen=True)
class NormalizedFeed:
    feed_name: str
    metric_name: MetricName
    convention: RegionColumnConvention
    frame: pd.DataFrame  # POINT_COLUMNS, value nullable Int64
    report: ParseReport

    def __len__(self) -> int:
        return len(self.frame)

    def points(self) -> Iterator[RegionMetricPoint]:
        for row in self.frame.itertuples(index=False):
            yield RegionMetricPoint(
                region=row.region,
                date=row.date.date(),
                metric_name=row.metric_name,
                value=None if pd.isna(row.value) else int(row.value),
            )


__all__ = [
    "MetricName",
    "RegionColumnConvention",
    "CANONICAL_REGION_COLUMN",
    "POINT_COLUMNS",
    "RegionMetricPoint",
    "ParseReport",
    "NormalizedFeed",
]
