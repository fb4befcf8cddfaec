import math

import numpy as np
import pandas as pd
import pytest

from casecast.core.errors import InsufficientDataError
from casecast.schemas.series import CanonicalSeries, TimeSeriesFrame
from casecast.services.forecast import (
    candidate_orders,
    fit_fixed_order,
    forecast,
    frame_series,
    search_order,
    split_train_test,
)
from casecast.services.reconcile import add_derived_metrics


def _frame(values, start="2020-02-01"):
    idx = pd.date_range(start, periods=len(values), freq="D", name="date")
    return TimeSeriesFrame(values=pd.Series(values, index=idx, dtype=float), period=7)


def _weekly_series(n=70, seed=11):
    rng = np.random.default_rng(seed)
    t = np.arange(n)
    y = 200 + 40 * np.sin(2 * np.pi * t / 7) + rng.normal(0, 8, n)
    # mild AR(1) structure
    for i in range(1, n):
        y[i] += 0.5 * (y[i - 1] - 200)
    return y


def test_split_of_seven_point_series():
    split = split_train_test(_frame([10, 12, 9, 14, 11, 13, 10]))
    assert split.train.tolist() == [10, 12, 9, 14, 11]
    assert split.test.tolist() == [13, 10]
    assert split.horizon == 2
    assert split.period == 7


@pytest.mark.parametrize("n", range(2, 41))
def test_split_sizes_follow_floor_rule(n):
    split = split_train_test(_frame(list(range(n))))
    assert len(split.train) == math.floor(0.8 * n + 1e-9)
    assert len(split.train) + len(split.test) == n
    assert split.train.index.max() < split.test.index.min()


def test_split_is_idempotent():
    frame = _frame([5, 6, 7, 8, 9, 10])
    a, b = split_train_test(frame), split_train_test(frame)
    pd.testing.assert_series_equal(a.train, b.train)
    pd.testing.assert_series_equal(a.test, b.test)


def test_split_rejects_short_series():
    with pytest.raises(InsufficientDataError):
        split_train_test(_frame([1.0]))


def test_frame_series_drops_undefined_daily_cases():
    frame = pd.DataFrame(
        {
            "date": pd.date_range("2020-01-01", periods=4, freq="D"),
            "confirmed": [np.nan, 5.0, 9.0, 12.0],
            "deaths": [0.0, 0.0, 1.0, 1.0],
            "recovered": np.nan,
        }
    )
    series = CanonicalSeries(frame=add_derived_metrics(frame))
    ts = frame_series(series, period=7)

    assert ts.period == 7
    # rows 0 and 1 lag an undefined value
    assert ts.values.tolist() == [4.0, 3.0]
    assert list(ts.values.index) == list(pd.date_range("2020-01-03", periods=2, freq="D"))


def test_frame_series_requires_two_observations():
    frame = pd.DataFrame(
        {"date": pd.date_range("2020-01-01", periods=1), "confirmed": [1.0], "deaths": [0.0], "recovered": [0.0]}
    )
    with pytest.raises(InsufficientDataError):
        frame_series(CanonicalSeries(frame=add_derived_metrics(frame)))


def test_candidate_orders_cover_grid_simplest_first():
    orders = list(candidate_orders(1, 1, 1))
    assert len(orders) == 8
    assert orders[0] == (0, 0, 0)
    assert orders[-1] == (1, 1, 1)
    assert [sum(o) for o in orders] == sorted(sum(o) for o in orders)


def test_search_order_picks_stable_model_within_bounds():
    split = split_train_test(_frame(_weekly_series()))
    model = search_order(split.train, max_p=2, max_d=1, max_q=2)

    p, d, q = model.order
    assert 0 <= p <= 2 and 0 <= d <= 1 and 0 <= q <= 2
    assert model.converged
    assert model.criterion == "aicc"
    assert math.isfinite(model.criterion_value)
    assert model.candidates_evaluated > 1
    assert len(model.train_index) == len(split.train)
    assert set(model.params)  # named coefficients


def test_search_order_is_deterministic():
    split = split_train_test(_frame(_weekly_series(seed=3)))
    a = search_order(split.train, max_p=1, max_d=1, max_q=1)
    b = search_order(split.train, max_p=1, max_d=1, max_q=1)
    assert a.order == b.order
    assert a.criterion_value == pytest.approx(b.criterion_value)


def test_search_order_rejects_single_observation():
    with pytest.raises(InsufficientDataError):
        search_order(pd.Series([3.0]), max_p=1, max_d=1, max_q=1)


def test_forecast_length_matches_test_window():
    split = split_train_test(_frame(_weekly_series()))
    model = search_order(split.train, max_p=2, max_d=1, max_q=2)
    result = forecast(model, split)

    assert result.horizon == len(split.test)
    assert len(result.forecasted) == len(split.test)
    assert result.actual == split.test.tolist()
    assert result.dates == [ts.date() for ts in split.test.index]
    assert all(lo <= f <= hi for lo, f, hi in zip(result.lower, result.forecasted, result.upper))
    assert result.accuracy is not None and result.accuracy.rmse >= result.accuracy.mae >= 0
    assert list(result.to_frame().columns) == ["date", "actual", "forecasted", "lower", "upper"]


def test_forecast_for_short_example_series():
    split = split_train_test(_frame([10, 12, 9, 14, 11, 13, 10]))
    model = search_order(split.train)
    result = forecast(model, split)
    assert len(result.forecasted) == 2
    assert all(np.isfinite(result.forecasted))


def test_fixed_order_fit():
    split = split_train_test(_frame(_weekly_series()))
    model = fit_fixed_order(split.train, (3, 1, 4))
    assert model.order == (3, 1, 4)
    assert isinstance(model.converged, bool)
    assert len(model.results.resid) == len(split.train)


def test_fixed_order_requires_enough_training_points():
    with pytest.raises(InsufficientDataError) as ei:
        fit_fixed_order(pd.Series([1.0, 2.0]), (3, 1, 4))
    assert ei.value.details["required"] == 3


def test_fixed_order_on_too_few_points_is_flagged_not_converged():
    idx = pd.date_range("2020-03-01", periods=5, freq="D", name="date")
    model = fit_fixed_order(pd.Series([10.0, 12.0, 9.0, 14.0, 11.0], index=idx), (3, 1, 4))

    assert model.converged is False
    assert model.n_params > len(idx)
    assert len(model.results.resid) == 5
