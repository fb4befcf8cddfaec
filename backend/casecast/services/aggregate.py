# casecast/services/aggregate.py
from __future__ import annotations

from typing import Iterable, List, Union

import pandas as pd
import structlog

from casecast.schemas.feeds import NormalizedFeed
from casecast.schemas.series import GlobalDailyTotal, RegionTotal

logger = structlog.get_logger(__name__)

FeedsLike = Union[NormalizedFeed, Iterable[NormalizedFeed]]


def _as_list(feeds: FeedsLike) -> List[NormalizedFeed]:
    items = [feeds] if isinstance(feeds, NormalizedFeed) else list(feeds)
    if not items:
        raise ValueError("At least one normalized feed is required")
    metrics = {f.metric_name for f in items}
    if len(metrics) > 1:
        raise ValueError(f"Feeds report different metrics: {sorted(m.value for m in metrics)}")
    return items


def sum_treating_missing_as_zero(feeds: FeedsLike) -> pd.DataFrame:
    """
    Global daily totals: one row per date present in the input, summing ``value`` over
    every region (and every feed passed). Missing cells count as 0 here only; a date
    absent from the input yields no row at all.

    Returns columns ``date, metric_name, value`` sorted by date.
    """
    items = _as_list(feeds)
    metric = items[0].metric_name
    points = pd.concat([f.frame[["date", "value"]] for f in items], ignore_index=True)
    points["value"] = points["value"].astype("Float64").fillna(0).astype(float)

    totals = (
        points.groupby("date", sort=True)["value"]
        .sum()
        .reset_index()
    )
    totals.insert(1, "metric_name", metric.value)
    logger.info(
        "aggregate.global_daily",
        metric=metric.value,
        feeds=[f.feed_name for f in items],
        dates=len(totals),
    )
    return totals


def to_records(totals: pd.DataFrame) -> List[GlobalDailyTotal]:
    return [
        GlobalDailyTotal(date=row.date.date(), metric_name=row.metric_name, value=float(row.value))
        for row in totals.itertuples(index=False)
    ]


def region_totals(feed: NormalizedFeed) -> pd.DataFrame:
    """
    Sum of a feed's values per region across all its dates (missing as 0), largest first.
    Feeds the per-country map and ranking consumers.
    """
    frame = feed.frame[["region", "value"]].copy()
    frame["value"] = frame["value"].astype("Float64").fillna(0).astype(float)
    out = (
        frame.groupby("region", sort=True)["value"]
        .sum()
        .rename("total")
        .reset_index()
        .sort_values(["total", "region"], ascending=[False, True], kind="mergesort")
        .reset_index(drop=True)
    )
    out.insert(1, "metric_name", feed.metric_name.value)
    return out


def top_regions(totals: pd.DataFrame, n: int = 10) -> List[RegionTotal]:
    head = totals.head(max(int(n), 0))
    return [
        RegionTotal(region=row.region, metric_name=row.metric_name, total=float(row.total))
        for row in head.itertuples(index=False)
    ]


__all__ = ["sum_treating_missing_as_zero", "to_records", "region_totals", "top_regions"]
