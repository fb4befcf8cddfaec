# casecast/services/reconcile.py
from __future__ import annotations

from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
import structlog

from casecast.core.errors import ReconciliationError
from casecast.schemas.series import CANONICAL_COLUMNS, CanonicalSeries
from casecast.utils.numeric import percent_of

logger = structlog.get_logger(__name__)

Totals = Optional[pd.DataFrame]  # date, metric_name, value


def _by_date(totals: pd.DataFrame) -> pd.Series:
    s = totals.set_index("date")["value"].astype(float)
    return s[~s.index.duplicated(keep="first")].sort_index()


def coalesce_preserving_missing(primary: pd.Series, *fallbacks: pd.Series) -> pd.Series:
    """
    First non-missing value per date among ``primary`` then each fallback, in order.
    The result is keyed to the primary's dates; where no candidate has a value the
    entry stays missing rather than becoming zero.
    """
    out = primary.astype(float).copy()
    for fb in fallbacks:
        out = out.fillna(fb.astype(float).reindex(out.index))
    return out


def _first_difference(cumulative: pd.Series) -> pd.Series:
    # lag of the first observation is the observation itself, so delta[0] == 0
    lagged = cumulative.shift(1)
    if len(cumulative):
        lagged.iloc[0] = cumulative.iloc[0]
    return cumulative - lagged


def add_derived_metrics(frame: pd.DataFrame) -> pd.DataFrame:
    out = frame.sort_values("date").reset_index(drop=True).copy()
    out["daily_cases"] = _first_difference(out["confirmed"])
    out["daily_deaths"] = _first_difference(out["deaths"])
    out["daily_recovered"] = _first_difference(out["recovered"])
    out["recovery_rate"] = percent_of(out["recovered"], out["confirmed"])
    out["death_rate"] = percent_of(out["deaths"], out["confirmed"])
    return out[CANONICAL_COLUMNS]


def _require_metric(values: pd.Series, metric: str, feeds: Sequence[str]) -> None:
    if values.notna().any():
        return
    dates = values.index
    raise ReconciliationError(
        f"Metric '{metric}' has no values after coalescing",
        details={
            "metric": metric,
            "feeds": list(feeds),
            "date_range": [str(dates.min().date()), str(dates.max().date())] if len(dates) else None,
        },
    )


def _chain(totals: Sequence[Totals], names: Sequence[str]) -> tuple[list[pd.Series], list[str]]:
    if len(totals) > len(names):
        raise ValueError(f"Expected at most {len(names)} feeds ({', '.join(names)}), got {len(totals)}")
    series, used = [], []
    for t, name in zip(totals, names):
        if t is None:
            continue
        series.append(_by_date(t))
        used.append(name)
    return series, used


def reconcile(
    confirmed: Sequence[Totals],
    deaths: Sequence[Totals],
    recovered: Totals = None,
    *,
    confirmed_feeds: Sequence[str] = ("confirmed_global", "confirmed_pivot"),
    deaths_feeds: Sequence[str] = ("deaths_global", "deaths_pivot"),
) -> CanonicalSeries:
    """
    Merge per-metric global daily totals into one canonical daily series.

    ``confirmed`` and ``deaths`` are ``[primary, secondary]`` totals (``None`` marks a
    feed that is unavailable). A date missing from both stays missing. The date
    domain is the primary confirmed feed's dates; every other series is left-joined
    onto it.
    ``recovered`` has no fallback and is joined as-is.
    """
    if not confirmed or confirmed[0] is None or confirmed[0].empty:
        raise ReconciliationError(
            "Primary confirmed feed is unavailable",
            details={"metric": "confirmed", "feed": confirmed_feeds[0]},
        )

    conf_series, conf_used = _chain(confirmed, confirmed_feeds)
    domain = conf_series[0].index
    confirmed_values = coalesce_preserving_missing(*conf_series)
    _require_metric(confirmed_values, "confirmed", conf_used)

    death_series, death_used = _chain(deaths, deaths_feeds)
    if death_series:
        deaths_values = coalesce_preserving_missing(
            pd.Series(np.nan, index=domain, dtype=float), *death_series
        )
    else:
        deaths_values = pd.Series(np.nan, index=domain, dtype=float)
    _require_metric(deaths_values, "deaths", death_used or list(deaths_feeds))

    if recovered is not None:
        recovered_values = _by_date(recovered).reindex(domain)
    else:
        recovered_values = pd.Series(np.nan, index=domain, dtype=float)
        logger.warning("reconcile.recovered_unavailable", dates=len(domain))

    merged = pd.DataFrame(
        {
            "date": domain,
            "confirmed": confirmed_values.to_numpy(),
            "deaths": deaths_values.to_numpy(),
            "recovered": recovered_values.to_numpy(),
        }
    )
    frame = add_derived_metrics(merged)

    logger.info(
        "reconcile.completed",
        dates=len(frame),
        confirmed_feeds=conf_used,
        deaths_feeds=death_used,
        confirmed_missing=int(frame["confirmed"].isna().sum()),
        deaths_missing=int(frame["deaths"].isna().sum()),
        recovered_missing=int(frame["recovered"].isna().sum()),
    )
    return CanonicalSeries(frame=frame)


def summarize_daily_cases(series: CanonicalSeries) -> Dict[str, Optional[float]]:
    """Mean and median of daily new cases (reference lines for the daily chart)."""
    daily = series.frame["daily_cases"].dropna()
    if daily.empty:
        return {"mean": None, "median": None, "observations": 0}
    return {"mean": float(daily.mean()), "median": float(daily.median()), "observations": int(len(daily))}


__all__ = [
    "coalesce_preserving_missing",
    "add_derived_metrics",
    "reconcile",
    "summarize_daily_cases",
]
