# casecast/services/pipeline.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import pandas as pd
import structlog

from casecast.config import Settings, get_settings
from casecast.core.errors import CasecastError, FitConvergenceError, InsufficientDataError
from casecast.observability.instrument import log_stage
from casecast.observability.logging import bind_run_context, configure_logging
from casecast.schemas.feeds import MetricName, NormalizedFeed, ParseReport
from casecast.schemas.forecast import FittedModel, ForecastResult, ResidualDiagnostics
from casecast.schemas.series import CanonicalSeries, RegionTotal, TrainTestSplit
from casecast.services.aggregate import region_totals, sum_treating_missing_as_zero, top_regions
from casecast.services.diagnostics import diagnose
from casecast.services.forecast import fit_fixed_order, forecast, frame_series, search_order, split_train_test
from casecast.services.loaders import FALLBACK_CHAINS, FEED_CATALOG, load_feeds
from casecast.services.normalize import normalize_feed
from casecast.services.reconcile import reconcile, summarize_daily_cases

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    canonical: CanonicalSeries
    region_deaths: pd.DataFrame
    top_regions: List[RegionTotal]
    parse_reports: Dict[str, ParseReport]
    daily_summary: Dict[str, Optional[float]] = field(default_factory=dict)
    split: Optional[TrainTestSplit] = None
    search_model: Optional[FittedModel] = None
    forecast: Optional[ForecastResult] = None
    fixed_model: Optional[FittedModel] = None
    diagnostics: Optional[ResidualDiagnostics] = None
    errors: List[CasecastError] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.canonical)


@log_stage("pipeline.normalize")
def normalize_feeds(feeds: Mapping[str, pd.DataFrame], date_format: str) -> Dict[str, NormalizedFeed]:
    out: Dict[str, NormalizedFeed] = {}
    for name, df in feeds.items():
        spec = FEED_CATALOG.get(name)
        if spec is None:
            logger.warning("pipeline.unknown_feed", feed=name)
            continue
        out[name] = normalize_feed(df, feed_name=name, metric_name=spec.metric_name, date_format=date_format)
    return out


@log_stage("pipeline.reconcile")
def build_canonical_series(normalized: Mapping[str, NormalizedFeed]) -> CanonicalSeries:
    totals = {name: sum_treating_missing_as_zero(feed) for name, feed in normalized.items()}
    conf_chain = FALLBACK_CHAINS[MetricName.CONFIRMED]
    death_chain = FALLBACK_CHAINS[MetricName.DEATHS]
    (recovered_name,) = FALLBACK_CHAINS[MetricName.RECOVERED]
    return reconcile(
        [totals.get(n) for n in conf_chain],
        [totals.get(n) for n in death_chain],
        totals.get(recovered_name),
        confirmed_feeds=conf_chain,
        deaths_feeds=death_chain,
    )


def _record(errors: List[CasecastError], exc: CasecastError, stage: str) -> None:
    exc.details.setdefault("stage", stage)
    logger.warning("pipeline.stage_error", **exc.to_dict())
    errors.append(exc)


@log_stage("pipeline.run")
def run_pipeline(feeds: Mapping[str, pd.DataFrame], settings: Optional[Settings] = None) -> PipelineResult:
    """
    One batch run: normalize -> aggregate -> reconcile -> forecast -> diagnose.

    SchemaError and ReconciliationError propagate. Forecasting and diagnostics
    errors are collected on the result so the reconciled outputs survive them.
    """
    settings = settings or get_settings()
    errors: List[CasecastError] = []

    normalized = normalize_feeds(feeds, settings.DATE_FORMAT)
    canonical = build_canonical_series(normalized)

    deaths_feed = normalized.get(FALLBACK_CHAINS[MetricName.DEATHS][0])
    if deaths_feed is not None:
        by_region = region_totals(deaths_feed)
    else:
        by_region = pd.DataFrame(columns=["region", "metric_name", "total"])
    result_kwargs = dict(
        canonical=canonical,
        region_deaths=by_region,
        top_regions=top_regions(by_region, settings.TOP_REGIONS),
        parse_reports={name: feed.report for name, feed in normalized.items()},
        daily_summary=summarize_daily_cases(canonical),
    )

    try:
        split = split_train_test(
            frame_series(canonical, "daily_cases", settings.SEASONAL_PERIOD),
            settings.TRAIN_FRACTION,
        )
    except InsufficientDataError as exc:
        _record(errors, exc, "frame")
        return PipelineResult(errors=errors, **result_kwargs)

    search_model = fcst = None
    try:
        search_model = search_order(
            split.train, max_p=settings.MAX_P, max_d=settings.MAX_D, max_q=settings.MAX_Q
        )
        fcst = forecast(search_model, split, alpha=settings.FORECAST_ALPHA)
    except (InsufficientDataError, FitConvergenceError) as exc:
        _record(errors, exc, "forecast")

    fixed_model = diagnostics = None
    try:
        fixed_model = fit_fixed_order(split.train, settings.FIXED_ORDER)
    except (InsufficientDataError, FitConvergenceError) as exc:
        _record(errors, exc, "fixed_fit")
    if fixed_model is not None:
        if not fixed_model.converged:
            _record(
                errors,
                FitConvergenceError(
                    f"ARIMA{fixed_model.order} did not converge; residuals reported as-is",
                    details={"order": fixed_model.order, "observations": len(split.train)},
                ),
                "fixed_fit",
            )
        diagnostics = diagnose(fixed_model, nlags=settings.ACF_LAGS, alpha=settings.FORECAST_ALPHA)

    return PipelineResult(
        split=split,
        search_model=search_model,
        forecast=fcst,
        fixed_model=fixed_model,
        diagnostics=diagnostics,
        errors=errors,
        **result_kwargs,
    )


def run_from_directory(data_dir: str | Path | None = None, settings: Optional[Settings] = None) -> PipelineResult:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    data_dir = Path(data_dir or settings.DATA_DIR)
    bind_run_context(data_dir=str(data_dir))
    return run_pipeline(load_feeds(data_dir), settings)


__all__ = [
    "PipelineResult",
    "normalize_feeds",
    "build_canonical_series",
    "run_pipeline",
    "run_from_directory",
]
