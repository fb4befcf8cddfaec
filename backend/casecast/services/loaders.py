# casecast/services/loaders.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple

import pandas as pd
import structlog

from casecast.schemas.feeds import MetricName

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FeedSpec:
    name: str
    metric_name: MetricName
    role: str  # "primary" | "fallback" | "reference"


FEED_CATALOG: Dict[str, FeedSpec] = {
    "confirmed_global": FeedSpec("confirmed_global", MetricName.CONFIRMED, "primary"),
    "confirmed_pivot": FeedSpec("confirmed_pivot", MetricName.CONFIRMED, "fallback"),
    "confirmed": FeedSpec("confirmed", MetricName.CONFIRMED, "reference"),
    "deaths_global": FeedSpec("deaths_global", MetricName.DEATHS, "primary"),
    "deaths_pivot": FeedSpec("deaths_pivot", MetricName.DEATHS, "fallback"),
    "recovered": FeedSpec("recovered", MetricName.RECOVERED, "primary"),
}

# Coalescing order per metric: primary, then its pivot. "confirmed" is loaded and
# normalized for its parse report but never coalesced.
FALLBACK_CHAINS: Dict[MetricName, Tuple[str, ...]] = {
    MetricName.CONFIRMED: ("confirmed_global", "confirmed_pivot"),
    MetricName.DEATHS: ("deaths_global", "deaths_pivot"),
    MetricName.RECOVERED: ("recovered",),
}


def read_feed(path: str | Path) -> pd.DataFrame:
    """Read one wide-format feed; date headers are kept verbatim as strings."""
    df = pd.read_csv(path, encoding="utf-8-sig")
    df.columns = [str(c) for c in df.columns]
    return df


def load_feeds(data_dir: str | Path) -> Dict[str, pd.DataFrame]:
    """
    Load every catalogued feed found under ``data_dir`` as ``<name>.csv``.
    Absent files are logged and skipped; the reconciler decides whether that is fatal.
    """
    base = Path(data_dir)
    feeds: Dict[str, pd.DataFrame] = {}
    for name in FEED_CATALOG:
        path = base / f"{name}.csv"
        if not path.is_file():
            logger.warning("loaders.feed_missing", feed=name, path=str(path))
            continue
        feeds[name] = read_feed(path)
        logger.info("loaders.feed_loaded", feed=name, rows=len(feeds[name]), columns=feeds[name].shape[1])
    return feeds


__all__ = ["FeedSpec", "FEED_CATALOG", "FALLBACK_CHAINS", "read_feed", "load_feeds"]
