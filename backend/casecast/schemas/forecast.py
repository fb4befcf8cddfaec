from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from pydantic import BaseModel, Field, model_validator

Order = Tuple[int, int, int]


@dataclass(frozen=True)
class FittedModel:
    """An ARIMA order plus its statsmodels results, tied to one training prefix."""

    order: Order
    results: Any  # statsmodels ARIMAResults
    train_index: pd.DatetimeIndex
    criterion: str = "aicc"
    criterion_value: Optional[float] = None
    converged: bool = True
    candidates_evaluated: int = 1

    @property
    def n_params(self) -> int:
        return len(self.results.params)

    @property
    def params(self) -> Dict[str, float]:
        names = getattr(self.results, "param_names", None) or [f"p{i}" for i in range(self.n_params)]
        return {str(k): float(v) for k, v in zip(names, self.results.params)}


class ForecastAccuracy(BaseModel):
    mae: float
    rmse: float
    mape: float
    smape: float


class ForecastResult(BaseModel):
    order: Order
    horizon: int = Field(..., ge=0)
    dates: List[dt.date]
    actual: List[float]
    forecasted: List[float]
    lower: List[float]
    upper: List[float]
    accuracy: Optional[ForecastAccuracy] = None

    @model_validator(mode="after")
    def _check_lengths(self):
        for name in ("dates", "actual", "forecasted", "lower", "upper"):
            if len(getattr(self, name)) != self.horizon:
                raise ValueError(f"{name} must have exactly {self.horizon} entries")
        return self

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "date": pd.to_datetime(self.dates),
                "actual": self.actual,
                "forecasted": self.forecasted,
                "lower": self.lower,
                "upper": self.upper,
            }
        )


class ResidualPoint(BaseModel):
    date: dt.date
    residual: float


class AcfPoint(BaseModel):
    lag: int
    value: float


class LjungBoxPoint(BaseModel):
    lag: int
    statistic: float
    p_value: float


class ResidualDiagnostics(BaseModel):
    order: Order
    converged: bool
    residuals: List[ResidualPoint]
    acf: List[AcfPoint]
    # +/- band around zero; descriptive only
    confidence_band: float
    ljung_box: List[LjungBoxPoint] = Field(default_factory=list)

    def residual_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "date": pd.to_datetime([p.date for p in self.residuals]),
                "residual": [p.residual for p in self.residuals],
            }
        )


__all__ = [
    "Order",
    "FittedModel",
    "ForecastAccuracy",
    "ForecastResult",
    "ResidualPoint",
    "AcfPoint",
    "LjungBoxPoint",
    "ResidualDiagnostics",
]
