# casecast/services/diagnostics.py
from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pandas as pd
import structlog
from scipy.stats import norm
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.tsa.stattools import acf

from casecast.schemas.forecast import (
    AcfPoint,
    FittedModel,
    LjungBoxPoint,
    ResidualDiagnostics,
    ResidualPoint,
)

logger = structlog.get_logger(__name__)

DEFAULT_LAGS = 25


def residual_series(model: FittedModel) -> pd.Series:
    """
    Residuals of a fit paired with training dates.

    The first ``d`` residuals are differencing burn-in and are discarded; the
    remaining ``len(train) - d`` values are aligned to the earliest training dates.
    """
    d = model.order[1]
    resid = np.asarray(model.results.resid, dtype=float)[d:]
    dates = model.train_index[: len(resid)]
    return pd.Series(resid[: len(dates)], index=pd.DatetimeIndex(dates, name="date"), name="residual")


def residual_acf(
    residuals: pd.Series, nlags: int = DEFAULT_LAGS, alpha: float = 0.05
) -> Tuple[List[AcfPoint], float]:
    """
    Autocorrelation of the residuals at lags 1..nlags (capped at n - 1) and the
    +/- significance band ``z / sqrt(n)``. The band is descriptive; nothing gates on it.
    A constant series has no defined autocorrelation and yields no points.
    """
    x = residuals.dropna().to_numpy(dtype=float)
    n = len(x)
    if n < 2:
        return [], float("nan")
    band = float(norm.ppf(1 - alpha / 2) / np.sqrt(n))
    if np.ptp(x) == 0:
        logger.warning("diagnostics.constant_residuals", observations=n)
        return [], band
    lags = min(int(nlags), n - 1)
    values = acf(x, nlags=lags, fft=True, missing="none")
    points = [AcfPoint(lag=k, value=float(v)) for k, v in enumerate(values) if k > 0]
    return points, band


def ljung_box(residuals: pd.Series, max_lag: int = 10) -> List[LjungBoxPoint]:
    x = residuals.dropna().to_numpy(dtype=float)
    lags = min(int(max_lag), len(x) - 2)
    if lags < 1 or np.allclose(x, x[0]):
        return []
    table = acorr_ljungbox(x, lags=list(range(1, lags + 1)))
    return [
        LjungBoxPoint(lag=int(lag), statistic=float(row.lb_stat), p_value=float(row.lb_pvalue))
        for lag, row in table.iterrows()
    ]


def diagnose(model: FittedModel, nlags: int = DEFAULT_LAGS, alpha: float = 0.05) -> ResidualDiagnostics:
    residuals = residual_series(model)
    acf_points, band = residual_acf(residuals, nlags=nlags, alpha=alpha)
    lb = ljung_box(residuals)
    logger.info(
        "diagnostics.completed",
        order=model.order,
        residuals=len(residuals),
        lags=len(acf_points),
        outside_band=sum(1 for p in acf_points if abs(p.value) > band),
    )
    return ResidualDiagnostics(
        order=model.order,
        converged=model.converged,
        residuals=[ResidualPoint(date=ts.date(), residual=float(v)) for ts, v in residuals.items()],
        acf=acf_points,
        confidence_band=band,
        ljung_box=lb,
    )


__all__ = ["residual_series", "residual_acf", "ljung_box", "diagnose", "DEFAULT_LAGS"]
