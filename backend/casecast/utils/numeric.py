# casecast/utils/numeric.py
from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd


def percent_of(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """
    Vectorised ``100 * numerator / denominator`` that stays NaN (never 0, never inf)
    wherever the denominator is not positive or either side is missing.
    """
    num = pd.to_numeric(numerator, errors="coerce").astype(float)
    den = pd.to_numeric(denominator, errors="coerce").astype(float)
    valid = den.gt(0) & num.notna()
    out = pd.Series(np.nan, index=num.index, dtype=float)
    out[valid] = num[valid] / den[valid] * 100.0
    return out


# ---------- Forecast accuracy ----------

def mae(a: Iterable[float], p: Iterable[float]) -> float:
    a = np.asarray(list(a), dtype=float); p = np.asarray(list(p), dtype=float)
    return float(np.mean(np.abs(a - p)))


def rmse(a: Iterable[float], p: Iterable[float]) -> float:
    a = np.asarray(list(a), dtype=float); p = np.asarray(list(p), dtype=float)
    return float(np.sqrt(np.mean((a - p) ** 2)))


def mape(a: Iterable[float], p: Iterable[float], eps: float = 1e-6) -> float:
    a = np.asarray(list(a), dtype=float); p = np.asarray(list(p), dtype=float)
    if a.size == 0:
        return 100.0
    denom = np.clip(np.abs(a), eps, None)
    return float(np.mean(np.abs(a - p) / denom) * 100.0)


def smape(a: Iterable[float], p: Iterable[float]) -> float:
    a = np.asarray(list(a), dtype=float); p = np.asarray(list(p), dtype=float)
    denom = np.abs(a) + np.abs(p)
    denom = np.where(denom == 0.0, 1.0, denom)
    return float(100.0 * np.mean(np.abs(a - p) / denom))


__all__ = ["percent_of", "mae", "rmse", "mape", "smape"]
