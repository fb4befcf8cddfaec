# casecast/services/normalize.py
from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd
import structlog

from casecast.core.errors import ParseError, SchemaError
from casecast.schemas.feeds import (
    CANONICAL_REGION_COLUMN,
    MetricName,
    NormalizedFeed,
    ParseReport,
    RegionColumnConvention,
)

logger = structlog.get_logger(__name__)

# leading identifier columns of every wide feed (region + subdivision)
ID_COLUMN_COUNT = 2


def resolve_region_convention(df: pd.DataFrame, feed_name: str) -> RegionColumnConvention:
    convention = RegionColumnConvention.detect(df.columns)
    if convention is None:
        raise SchemaError(
            "Region column not found",
            details={
                "feed": feed_name,
                "expected": [c.value for c in RegionColumnConvention],
                "columns": [str(c) for c in df.columns[:ID_COLUMN_COUNT + 2]],
            },
        )
    return convention


def _coerce_counts(raw: pd.Series) -> tuple[pd.Series, pd.Series]:
    """
    Parse cell values as non-negative integers. Blank cells stay missing; anything
    else that does not parse is blanked and flagged in the returned mask.
    """
    raw = raw.mask(raw.astype(str).str.strip().eq(""))
    num = pd.to_numeric(raw, errors="coerce")
    bad = num.isna() & raw.notna()
    with np.errstate(invalid="ignore"):
        bad |= num.notna() & ((num < 0) | (num % 1 != 0) | ~np.isfinite(num))
    num = num.mask(bad)
    return num.astype("Int64"), bad


def normalize_feed(
    df: pd.DataFrame,
    *,
    feed_name: str,
    metric_name: MetricName,
    date_format: str = "%m/%d/%y",
) -> NormalizedFeed:
    """
    Reshape a wide ``(identifiers..., <date columns>)`` feed into long
    ``(region, date, metric_name, value)`` rows.

    The region column may be titled ``Country`` or ``Country/Region``; it is renamed to
    ``Country`` and exposed as ``region``. The other identifier column is carried along
    unchanged. Every column after the identifiers is a date header; headers that do not
    parse under ``date_format`` are dropped and recorded in the parse report.
    """
    if df.shape[1] <= ID_COLUMN_COUNT:
        raise SchemaError(
            "Feed has no date columns after its identifier columns",
            details={"feed": feed_name, "columns": [str(c) for c in df.columns]},
        )

    frame = df.copy()
    frame.columns = [str(c).strip() for c in frame.columns]
    convention = resolve_region_convention(frame, feed_name)
    if convention is not RegionColumnConvention.COUNTRY:
        frame = frame.rename(columns={convention.value: CANONICAL_REGION_COLUMN})

    id_cols: List[str] = list(frame.columns[:ID_COLUMN_COUNT])
    if CANONICAL_REGION_COLUMN not in id_cols:
        raise SchemaError(
            "Region column must be one of the leading identifier columns",
            details={"feed": feed_name, "identifier_columns": id_cols},
        )
    value_cols: List[str] = list(frame.columns[ID_COLUMN_COUNT:])

    parsed = pd.to_datetime(pd.Series(value_cols), format=date_format, errors="coerce")
    header_dates = dict(zip(value_cols, parsed))
    dropped = [c for c, d in header_dates.items() if pd.isna(d)]
    date_cols = [c for c in value_cols if c not in dropped]
    if not date_cols:
        raise SchemaError(
            "No date columns could be parsed",
            details={"feed": feed_name, "date_format": date_format, "headers": value_cols[:5]},
        )

    report = ParseReport(dropped_date_columns=dropped, dropped_rows=len(dropped) * len(frame))
    report.errors.extend(
        ParseError(
            f"Date header '{c}' does not match {date_format}; column dropped",
            details={"feed": feed_name, "column": c, "rows": len(frame)},
        )
        for c in dropped
    )
    if dropped:
        logger.warning(
            "normalize.dropped_date_columns",
            feed=feed_name,
            columns=dropped,
            rows=report.dropped_rows,
        )

    long = frame.melt(id_vars=id_cols, value_vars=date_cols, var_name="header", value_name="raw")
    long["date"] = long["header"].map(header_dates)
    values, bad = _coerce_counts(long["raw"])
    long["value"] = values
    report.invalid_cells = int(bad.sum())
    if report.invalid_cells:
        sample = long.loc[bad, [CANONICAL_REGION_COLUMN, "header"]].head(5)
        report.errors.append(
            ParseError(
                f"{report.invalid_cells} cell(s) are not non-negative integers; blanked",
                details={
                    "feed": feed_name,
                    "count": report.invalid_cells,
                    "sample": [f"{r}@{h}" for r, h in sample.itertuples(index=False)],
                },
            )
        )
        logger.warning("normalize.invalid_cells", feed=feed_name, count=report.invalid_cells)

    long = long.rename(columns={CANONICAL_REGION_COLUMN: "region"})
    long["region"] = long["region"].astype(str).str.strip()
    long["metric_name"] = metric_name.value
    extra = [c for c in id_cols if c != CANONICAL_REGION_COLUMN]
    out = long[["region", *extra, "date", "metric_name", "value"]].reset_index(drop=True)

    logger.info(
        "normalize.completed",
        feed=feed_name,
        convention=convention.value,
        rows=len(out),
        dates=len(date_cols),
    )
    return NormalizedFeed(
        feed_name=feed_name,
        metric_name=metric_name,
        convention=convention,
        frame=out,
        report=report,
    )


__all__ = ["ID_COLUMN_COUNT", "resolve_region_convention", "normalize_feed"]
