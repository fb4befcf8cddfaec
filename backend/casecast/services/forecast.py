# casecast/services/forecast.py
from __future__ import annotations

import math
import warnings
from itertools import product
from typing import Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd
import structlog
from statsmodels.tsa.arima.model import ARIMA

from casecast.core.errors import FitConvergenceError, InsufficientDataError
from casecast.schemas.forecast import FittedModel, ForecastAccuracy, ForecastResult, Order
from casecast.schemas.series import CanonicalSeries, TimeSeriesFrame, TrainTestSplit
from casecast.utils.numeric import mae, mape, rmse, smape

logger = structlog.get_logger(__name__)

MIN_POINTS = 2


# ---------- Framing & split ----------

def frame_series(series: CanonicalSeries, column: str = "daily_cases", period: int = 7) -> TimeSeriesFrame:
    """Take one canonical column, drop undefined rows and frame it with a seasonal period."""
    values = series.column(column).dropna().astype(float)
    values.index = pd.DatetimeIndex(values.index, name="date")
    if len(values) < MIN_POINTS:
        raise InsufficientDataError(
            f"Series '{column}' has fewer than {MIN_POINTS} observations",
            details={"column": column, "observations": int(len(values))},
        )
    return TimeSeriesFrame(values=values, period=int(period))


def split_train_test(frame: TimeSeriesFrame, train_fraction: float = 0.8) -> TrainTestSplit:
    """
    Deterministic prefix/suffix split: ``train = values[:floor(fraction * n)]``,
    ``test`` is the rest, order preserved.
    """
    n = len(frame)
    if n < MIN_POINTS:
        raise InsufficientDataError(
            f"Cannot split a series with fewer than {MIN_POINTS} observations",
            details={"observations": n},
        )
    # round first so e.g. 0.8 * 35 == 28.000000000000004 floors to 28
    train_size = math.floor(round(train_fraction * n, 9))
    return TrainTestSplit(
        train=frame.values.iloc[:train_size].copy(),
        test=frame.values.iloc[train_size:].copy(),
        period=frame.period,
    )


# ---------- Fitting ----------

def _min_observations(order: Order) -> int:
    # d differences plus at least one AR/MA term
    return order[1] + MIN_POINTS


def _fit(values: np.ndarray, order: Order):
    trend = "c" if order[1] == 0 else "n"
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return ARIMA(values, order=order, trend=trend).fit()


def _converged(results) -> bool:
    retvals = getattr(results, "mle_retvals", None) or {}
    return bool(retvals.get("converged", True))


def _is_stable(results) -> bool:
    """Stationary AR and invertible MA polynomials: every root outside the unit circle."""
    for roots in (results.arroots, results.maroots):
        roots = np.asarray(roots)
        if roots.size and not np.all(np.abs(roots) > 1.0):
            return False
    return bool(np.all(np.isfinite(results.params)))


def _aicc(results) -> float:
    k = len(results.params)
    nobs = getattr(results, "nobs_effective", results.nobs)
    denom = nobs - k - 1
    if denom <= 0:
        return math.inf
    return float(results.aic) + 2.0 * k * (k + 1) / denom


def _rank_key(results, order: Order) -> Tuple[int, float, int, Order]:
    # finite AICc first, then AIC as a fallback criterion; fewer parameters win ties
    aicc = _aicc(results)
    if math.isfinite(aicc):
        return (0, aicc, len(results.params), order)
    return (1, float(results.aic), len(results.params), order)


def candidate_orders(max_p: int = 5, max_d: int = 2, max_q: int = 5) -> Iterator[Order]:
    """All (p, d, q) in the bounded grid, simplest models first."""
    grid = product(range(max_p + 1), range(max_d + 1), range(max_q + 1))
    yield from sorted(grid, key=lambda o: (sum(o), o[1], o))


def _fits_in(order: Order, n: int) -> bool:
    p, d, q = order
    return n - d > p + q + 1


def search_order(
    train: pd.Series,
    *,
    max_p: int = 5,
    max_d: int = 2,
    max_q: int = 5,
) -> FittedModel:
    """
    Grid search over ARIMA orders minimising AICc, keeping only converged fits whose
    AR/MA roots lie outside the unit circle. Each candidate fit is independent, so the
    result does not depend on evaluation order.
    """
    n = len(train)
    if n < MIN_POINTS:
        raise InsufficientDataError(
            "Training window too short for order search",
            details={"observations": n, "required": MIN_POINTS},
        )
    values = train.to_numpy(dtype=float)

    best: Optional[Tuple[Tuple, Order, object]] = None
    evaluated = 0
    rejected: List[str] = []
    for order in candidate_orders(max_p, max_d, max_q):
        if not _fits_in(order, n):
            continue
        evaluated += 1
        try:
            results = _fit(values, order)
        except (ValueError, np.linalg.LinAlgError, IndexError) as exc:
            logger.debug("arima.candidate_failed", order=order, error=str(exc))
            rejected.append(f"{order}: {exc}")
            continue
        if not _converged(results) or not _is_stable(results):
            logger.debug("arima.candidate_rejected", order=order, converged=_converged(results))
            rejected.append(f"{order}: unstable or not converged")
            continue
        key = _rank_key(results, order)
        if best is None or key < best[0]:
            best = (key, order, results)

    if best is None:
        raise FitConvergenceError(
            "No ARIMA candidate produced a stable, converged fit",
            details={"observations": n, "evaluated": evaluated, "rejected": rejected[:10]},
        )

    key, order, results = best
    logger.info(
        "arima.search_completed",
        order=order,
        aicc=key[1] if key[0] == 0 else None,
        evaluated=evaluated,
    )
    return FittedModel(
        order=order,
        results=results,
        train_index=pd.DatetimeIndex(train.index),
        criterion="aicc" if key[0] == 0 else "aic",
        criterion_value=key[1],
        converged=True,
        candidates_evaluated=evaluated,
    )


def fit_fixed_order(train: pd.Series, order: Order = (3, 1, 4)) -> FittedModel:
    """
    Maximum-likelihood fit of one fixed order with no search. A fit that does not
    converge, or that has more parameters than usable observations, is still
    returned (``converged=False``) so its residuals can be inspected.
    """
    order = tuple(int(o) for o in order)  # type: ignore[assignment]
    need = _min_observations(order)
    if len(train) < need:
        raise InsufficientDataError(
            f"ARIMA{order} needs at least {need} training observations",
            details={"order": order, "observations": len(train), "required": need},
        )
    try:
        results = _fit(train.to_numpy(dtype=float), order)
    except (ValueError, np.linalg.LinAlgError, IndexError) as exc:
        raise FitConvergenceError(
            f"ARIMA{order} fit failed",
            details={"order": order, "observations": len(train), "error": str(exc)},
        ) from exc

    nobs = getattr(results, "nobs_effective", results.nobs)
    # more parameters than usable observations leaves the estimates unidentified
    identified = len(results.params) < nobs and bool(np.all(np.isfinite(results.params)))
    converged = _converged(results) and identified
    aicc = _aicc(results)
    if not converged:
        logger.warning(
            "arima.fixed_not_converged",
            order=order,
            observations=len(train),
            parameters=len(results.params),
            identified=identified,
        )
    return FittedModel(
        order=order,
        results=results,
        train_index=pd.DatetimeIndex(train.index),
        criterion="aicc",
        criterion_value=aicc if math.isfinite(aicc) else None,
        converged=converged,
    )


# ---------- Forecasting ----------

def forecast(model: FittedModel, split: TrainTestSplit, alpha: float = 0.05) -> ForecastResult:
    """
    Point forecasts (plus ``1 - alpha`` intervals) for ``len(split.test)`` steps past the
    end of the training data. Test values are only used to score the forecast.
    """
    horizon = split.horizon
    actual = [float(v) for v in split.test.to_numpy()]
    dates = [ts.date() for ts in split.test.index]
    if horizon == 0:
        return ForecastResult(order=model.order, horizon=0, dates=[], actual=[], forecasted=[], lower=[], upper=[])

    fc = model.results.get_forecast(steps=horizon)
    mean = np.asarray(fc.predicted_mean, dtype=float)
    ci = np.asarray(fc.conf_int(alpha=alpha), dtype=float)
    # guard against NaN interval bounds on tiny samples
    lower = np.where(np.isfinite(ci[:, 0]), ci[:, 0], mean)
    upper = np.where(np.isfinite(ci[:, 1]), ci[:, 1], mean)

    accuracy = ForecastAccuracy(
        mae=mae(actual, mean),
        rmse=rmse(actual, mean),
        mape=mape(actual, mean),
        smape=smape(actual, mean),
    )
    logger.info("arima.forecast", order=model.order, horizon=horizon, mae=round(accuracy.mae, 3))
    return ForecastResult(
        order=model.order,
        horizon=horizon,
        dates=dates,
        actual=actual,
        forecasted=mean.tolist(),
        lower=lower.tolist(),
        upper=upper.tolist(),
        accuracy=accuracy,
    )


__all__ = [
    "frame_series",
    "split_train_test",
    "candidate_orders",
    "search_order",
    "fit_fixed_order",
    "forecast",
]
