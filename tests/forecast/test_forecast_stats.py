"""Tests for the numeric forecast helpers."""

from datetime import timedelta

import numpy as np
import pytest
from helpers import T0

from marketpulse.forecast import stats
from marketpulse.forecast.models import Trend


class TestAnomalyRule:
    def test_population_std(self):
        mean, std = stats.mean_and_std([2, 4, 4, 4, 5, 5, 7, 9])
        assert mean == 5.0
        assert std == 2.0

    @pytest.mark.parametrize("value", [5.0 + 2.6 * 2.0, 5.0 - 2.6 * 2.0, 100.0])
    def test_beyond_threshold_is_anomalous(self, value):
        assert stats.is_anomalous(value, mean=5.0, std_dev=2.0, threshold=2.5)

    @pytest.mark.parametrize("value", [5.0, 6.9, 3.1, 5.0 + 2.5 * 2.0])
    def test_within_threshold_is_not_anomalous(self, value):
        assert not stats.is_anomalous(value, mean=5.0, std_dev=2.0, threshold=2.5)

    def test_zero_std_never_flags(self):
        assert stats.z_score(10.0, 1.0, 0.0) is None
        assert not stats.is_anomalous(10.0, 1.0, 0.0, 2.5)


class TestClassifyTrend:
    def test_ascending_line_is_up(self):
        assert stats.classify_trend([float(i) for i in range(1, 11)]) == Trend.UP

    def test_descending_line_is_down(self):
        assert stats.classify_trend([float(i) for i in range(10, 0, -1)]) == Trend.DOWN

    def test_identical_values_are_stable(self):
        assert stats.classify_trend([42.0] * 10) == Trend.STABLE

    def test_change_inside_dead_zone_is_stable(self):
        assert stats.classify_trend([100.0, 100.0, 104.0, 104.0]) == Trend.STABLE

    def test_zero_first_half_uses_absolute_change(self):
        assert stats.classify_trend([0.0, 0.0, 10.0, 10.0]) == Trend.UP
        assert stats.classify_trend([0.0, 0.0, 1.0, 1.0]) == Trend.STABLE

    @pytest.mark.parametrize("values", [[], [1.0]])
    def test_too_few_values_are_stable(self, values):
        assert stats.classify_trend(values) == Trend.STABLE


class TestRegression:
    def test_fits_a_linear_series(self):
        timestamps = [T0 + timedelta(hours=i) for i in range(48)]
        values = [10.0 + 2.0 * i for i in range(48)]

        coefficients = stats.fit_regression(timestamps, values)
        predicted = stats.predict_regression(coefficients, T0 + timedelta(hours=48), timestamps[0])

        assert predicted == pytest.approx(106.0, rel=1e-3)

    def test_underdetermined_fit_does_not_raise(self):
        timestamps = [T0, T0 + timedelta(minutes=5)]
        coefficients = stats.fit_regression(timestamps, [1.0, 2.0])
        assert coefficients.shape == (4,)

    def test_slope_per_hour(self):
        timestamps = [T0 + timedelta(minutes=30 * i) for i in range(10)]
        values = [3.0 * i for i in range(10)]
        assert stats.slope_per_hour(timestamps, values) == pytest.approx(6.0)

    def test_slope_of_single_point_is_zero(self):
        assert stats.slope_per_hour([T0], [1.0]) == 0.0

    def test_exponential_smoothing_level(self):
        assert stats.exponential_smoothing([10.0, 20.0], alpha=0.2) == pytest.approx(12.0)


class TestSeasonality:
    def test_daily_cycle_detected(self):
        hours = np.arange(24 * 6)
        series = np.sin(2 * np.pi * hours / 24)
        assert stats.seasonality_strength(series, 24) > 0.5

    def test_constant_series_has_no_seasonality(self):
        assert stats.seasonality_strength(np.ones(100), 24) == 0.0

    def test_short_series_has_no_seasonality(self):
        assert stats.seasonality_strength(np.arange(10, dtype=float), 24) == 0.0

    def test_hourly_series_fills_gaps_with_mean(self):
        timestamps = [T0, T0 + timedelta(minutes=30), T0 + timedelta(hours=2)]
        series = stats.hourly_series(timestamps, [1.0, 3.0, 8.0])
        assert series.tolist() == [2.0, 4.0, 8.0]
