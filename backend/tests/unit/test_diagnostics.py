import numpy as np
import pandas as pd
import pytest

from casecast.schemas.forecast import ResidualDiagnostics
from casecast.services.diagnostics import diagnose, ljung_box, residual_acf, residual_series
from casecast.services.forecast import fit_fixed_order


@pytest.fixture(scope="module")
def train():
    rng = np.random.default_rng(5)
    idx = pd.date_range("2020-03-01", periods=60, freq="D", name="date")
    return pd.Series(np.cumsum(rng.normal(2, 5, 60)) + 100, index=idx)


@pytest.fixture(scope="module")
def fixed_model(train):
    return fit_fixed_order(train, (3, 1, 4))


def test_residuals_align_to_earliest_training_dates(train, fixed_model):
    resid = residual_series(fixed_model)

    assert len(resid) == len(train) - 1
    assert len(resid) <= len(train)
    assert list(resid.index) == list(train.index[: len(resid)])
    assert resid.name == "residual"


def test_residual_acf_is_bounded_and_banded():
    rng = np.random.default_rng(1)
    resid = pd.Series(rng.normal(size=100))
    points, band = residual_acf(resid, nlags=25)

    assert [p.lag for p in points] == list(range(1, 26))
    assert all(-1.0 <= p.value <= 1.0 for p in points)
    assert band == pytest.approx(1.959964 / 10.0, rel=1e-4)


def test_residual_acf_caps_lags_for_short_series():
    points, _ = residual_acf(pd.Series([1.0, -1.0, 2.0, 0.5]), nlags=25)
    assert [p.lag for p in points] == [1, 2, 3]


def test_residual_acf_of_single_value_is_empty():
    points, band = residual_acf(pd.Series([1.0]))
    assert points == []
    assert np.isnan(band)


def test_ljung_box_is_descriptive():
    rng = np.random.default_rng(2)
    table = ljung_box(pd.Series(rng.normal(size=50)), max_lag=5)
    assert [row.lag for row in table] == [1, 2, 3, 4, 5]
    assert all(0.0 <= row.p_value <= 1.0 for row in table)
    assert ljung_box(pd.Series([3.0, 3.0, 3.0, 3.0])) == []


def test_diagnose_bundles_residuals_and_acf(train, fixed_model):
    report = diagnose(fixed_model, nlags=10)

    assert isinstance(report, ResidualDiagnostics)
    assert report.order == (3, 1, 4)
    assert len(report.residuals) == len(train) - 1
    assert len(report.acf) == 10
    assert report.confidence_band > 0
    assert report.residual_frame()["date"].tolist() == list(train.index[: len(train) - 1])


def test_residual_acf_of_constant_series_has_no_points():
    points, band = residual_acf(pd.Series([2.0] * 10), nlags=5)
    assert points == []
    assert band == pytest.approx(1.959964 / np.sqrt(10), rel=1e-4)
