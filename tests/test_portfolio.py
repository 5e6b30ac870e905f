"""
Unit tests for portfolio.py

Tests cover:
1. Bucket returns with a pre-lagged assignment (no look-ahead)
2. Price paths and drawdowns, including missing returns
3. Annualized statistics, Sharpe and Sortino
4. Capture ratios and zero-denominator handling
"""

import numpy as np
import pandas as pd
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from backtest_analytics.panel import Panel
from backtest_analytics.quantiles import assign_quantiles
from backtest_analytics.portfolio import (
    all_bucket_returns,
    annualized_return,
    annualized_volatility,
    bucket_return,
    down_capture,
    downside_deviation,
    drawdown_series,
    max_drawdown,
    overall_capture,
    prices_from_returns,
    sharpe_ratio,
    sortino_ratio,
    up_capture,
)
from backtest_analytics.exceptions import (
    ConfigurationError,
    DivisionUndefined,
    InsufficientDataWarning,
    ShapeError,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def strategy_returns():
    """36 monthly returns for two strategies, one missing observation."""
    np.random.seed(42)
    dates = pd.date_range("2018-01-01", periods=36, freq="MS")
    values = np.column_stack([
        np.random.randn(36) * 0.04 + 0.01,
        np.random.randn(36) * 0.02,
    ])
    values[10, 1] = np.nan
    return Panel(dates, ["Q1", "Q2"], values)


@pytest.fixture
def market():
    """Returns, benchmark and the expected capture inputs."""
    dates = pd.date_range("2020-01-01", periods=4, freq="D")
    returns = Panel(dates, ["P"], [[0.02], [-0.01], [0.04], [-0.03]])
    benchmark = Panel(dates, ["Benchmark"], [[0.01], [-0.02], [0.03], [-0.02]])
    return returns, benchmark


# =============================================================================
# TEST: BUCKET RETURNS
# =============================================================================

class TestBucketReturns:
    """Tests for equal-weight bucket returns."""

    def test_uses_lagged_assignment(self):
        """The bucket return at period 2 follows the period 1 label, not period 2's."""
        factors = Panel([1, 2], ["A", "B", "C"], [[1.0, 2.0, 3.0], [2.0, 1.0, 3.0]])
        returns = Panel([1, 2], ["A", "B", "C"], [[0.01, 0.02, 0.03], [0.02, 0.01, 0.03]])
        q = assign_quantiles(factors, 3)

        result = bucket_return(q.lag(1), returns.slice(1), 1)

        assert result.name == "Q1"
        assert list(result.index) == [2]
        # security A held label 1 at period 1; its period 2 return is 0.02
        assert result.iloc[0] == pytest.approx(0.02)

    def test_mean_of_present_members(self):
        q = Panel([1], ["A", "B", "C"], [[1.0, 1.0, 2.0]])
        returns = Panel([1], ["A", "B", "C"], [[0.01, 0.03, 0.5]])
        assert bucket_return(q, returns, 1).iloc[0] == pytest.approx(0.02)

    def test_missing_returns_are_skipped(self):
        q = Panel([1], ["A", "B"], [[1.0, 1.0]])
        returns = Panel([1], ["A", "B"], [[np.nan, 0.04]])
        assert bucket_return(q, returns, 1).iloc[0] == pytest.approx(0.04)

    def test_no_members_is_undefined(self):
        q = Panel([1, 2], ["A", "B"], [[1.0, 1.0], [1.0, 2.0]])
        returns = Panel([1, 2], ["A", "B"], [[0.01, 0.02], [0.01, 0.02]])
        with pytest.warns(InsufficientDataWarning):
            result = bucket_return(q, returns, 2)
        assert np.isnan(result.iloc[0])
        assert result.iloc[1] == pytest.approx(0.02)

    def test_unaligned_raises(self):
        factors = Panel([1, 2], ["A", "B"], [[1.0, 2.0], [2.0, 1.0]])
        returns = Panel([1, 2], ["A", "B"], [[0.01, 0.02], [0.02, 0.01]])
        q = assign_quantiles(factors, 2)
        with pytest.raises(ShapeError):
            bucket_return(q.lag(1), returns, 1)

    def test_all_bucket_returns(self):
        np.random.seed(42)
        dates = pd.date_range("2020-01-01", periods=12, freq="D")
        tickers = [f"ETF_{i}" for i in range(10)]
        factors = Panel(dates, tickers, np.random.randn(12, 10))
        returns = Panel(dates, tickers, np.random.randn(12, 10) * 0.02)
        q = assign_quantiles(factors, 5)

        result = all_bucket_returns(q.lag(1), returns.slice(1), 5)

        assert list(result.columns) == ["Q1", "Q2", "Q3", "Q4", "Q5"]
        assert result.n_periods == 11
        expected = bucket_return(q.lag(1), returns.slice(1), 4)
        np.testing.assert_array_almost_equal(result.values[:, 3], expected.values)

    def test_invalid_bucket_count_raises(self):
        q = Panel([1], ["A"], [[1.0]])
        with pytest.raises(ConfigurationError):
            all_bucket_returns(q, q, 0)

    def test_invalid_bucket_raises(self):
        q = Panel([1], ["A"], [[1.0]])
        with pytest.raises(ConfigurationError, match="bucket"):
            bucket_return(q, q, 0)
        with pytest.raises(ConfigurationError, match="bucket"):
            bucket_return(q, q, 2.5)

    def test_all_bucket_returns_unaligned_raises(self):
        factors = Panel([1, 2, 3], ["A", "B"], [[1.0, 2.0], [2.0, 1.0], [1.0, 2.0]])
        returns = Panel([1, 2, 3], ["A", "B"], [[0.01, 0.02], [0.02, 0.01], [0.0, 0.01]])
        q = assign_quantiles(factors, 2)
        with pytest.raises(ShapeError):
            all_bucket_returns(q.lag(1), returns, 2)
        with pytest.raises(ShapeError):
            all_bucket_returns(q.lag(1), returns.slice(1).select_columns(["B", "A"]), 2)


# =============================================================================
# TEST: PRICES / DRAWDOWNS
# =============================================================================

class TestPricePaths:
    """Tests for price and drawdown paths."""

    def test_round_trip(self, strategy_returns):
        prices = prices_from_returns(strategy_returns).to_frame()
        base = prices.ffill().shift(1).fillna(1.0)
        recovered = prices / base - 1.0
        present = strategy_returns.present
        np.testing.assert_array_almost_equal(
            recovered.values[present], strategy_returns.values[present]
        )

    def test_missing_return_stays_missing(self, strategy_returns):
        prices = prices_from_returns(strategy_returns)
        assert prices.missing[10, 1]
        # the missing period compounds as zero
        assert prices.values[11, 1] == pytest.approx(
            prices.values[9, 1] * (1 + strategy_returns.values[11, 1])
        )

    def test_drawdown_from_initial_price(self):
        returns = Panel([1, 2, 3], ["A"], [[-0.1], [0.2], [-0.25]])
        dd = drawdown_series(returns)
        np.testing.assert_array_almost_equal(dd.values[:, 0], [-0.1, 0.0, -0.25])
        assert max_drawdown(returns).iloc[0] == pytest.approx(0.25)

    def test_max_drawdown_never_falling(self):
        returns = Panel([1, 2], ["A"], [[0.01], [0.02]])
        assert max_drawdown(returns).iloc[0] == 0.0


# =============================================================================
# TEST: ANNUALIZED STATISTICS
# =============================================================================

class TestAnnualizedStatistics:
    """Tests for return, volatility, Sharpe and Sortino."""

    def test_annualized_return_geometric(self):
        returns = Panel(range(12), ["A"], np.full((12, 1), 0.01))
        expected = 1.01 ** 12 - 1
        assert annualized_return(returns, 12).iloc[0] == pytest.approx(expected)

    def test_annualized_return_uses_present_sample(self):
        returns = Panel(range(4), ["A"], [[0.1], [np.nan], [0.1], [np.nan]])
        # two observations, 4 per year
        assert annualized_return(returns, 4).iloc[0] == pytest.approx(1.1 ** 4 - 1)

    def test_annualized_volatility(self, strategy_returns):
        vol = annualized_volatility(strategy_returns, 12)
        expected = np.nanstd(strategy_returns.values[:, 1], ddof=1) * np.sqrt(12)
        assert vol.loc["Q2"] == pytest.approx(expected)

    def test_sharpe_is_ratio(self, strategy_returns):
        sharpe = sharpe_ratio(strategy_returns, 12)
        expected = (annualized_return(strategy_returns, 12)
                    / annualized_volatility(strategy_returns, 12))
        np.testing.assert_array_almost_equal(sharpe.values, expected.values)

    def test_sharpe_zero_volatility_is_undefined(self):
        returns = Panel(range(3), ["A"], np.full((3, 1), 0.25))
        with pytest.warns(DivisionUndefined):
            assert np.isnan(sharpe_ratio(returns, 12).iloc[0])

    def test_nested_warning_points_at_caller(self):
        returns = Panel(range(3), ["A"], np.full((3, 1), 0.25))
        with pytest.warns(DivisionUndefined) as record:
            sharpe_ratio(returns, 12)
        ours = [w for w in record if issubclass(w.category, InsufficientDataWarning)]
        assert all(os.path.basename(w.filename) == "test_portfolio.py" for w in ours)

    def test_downside_deviation_skips_first_period(self):
        returns = Panel(range(4), ["A"], [[-0.5], [-0.02], [0.03], [-0.04]])
        expected = np.sqrt((0.02 ** 2 + 0.0 + 0.04 ** 2) / 3)
        assert downside_deviation(returns).iloc[0] == pytest.approx(expected)

    def test_downside_deviation_threshold(self):
        returns = Panel(range(3), ["A"], [[0.0], [0.01], [0.03]])
        expected = np.sqrt((0.01 ** 2 + 0.0) / 2)
        assert downside_deviation(returns, threshold=0.02).iloc[0] == pytest.approx(expected)

    def test_sortino(self):
        returns = Panel(range(4), ["A"], [[-0.5], [-0.02], [0.03], [-0.04]])
        dd = np.sqrt((0.02 ** 2 + 0.04 ** 2) / 3)
        expected = np.mean([-0.02, 0.03, -0.04]) / dd
        assert sortino_ratio(returns).iloc[0] == pytest.approx(expected)

    def test_sortino_without_losses_is_undefined(self):
        returns = Panel(range(3), ["A"], [[0.01], [0.02], [0.03]])
        with pytest.warns(DivisionUndefined):
            assert np.isnan(sortino_ratio(returns).iloc[0])

    def test_invalid_periods_per_year_raises(self, strategy_returns):
        with pytest.raises(ConfigurationError):
            annualized_return(strategy_returns, 0)


# =============================================================================
# TEST: CAPTURE RATIOS
# =============================================================================

class TestCaptureRatios:
    """Tests for up, down and overall capture."""

    def test_up_capture(self, market):
        returns, benchmark = market
        expected = np.mean([0.02, 0.04]) / np.mean([0.01, 0.03])
        assert up_capture(returns, benchmark).iloc[0] == pytest.approx(expected)

    def test_down_capture(self, market):
        returns, benchmark = market
        expected = np.mean([-0.01, -0.03]) / np.mean([-0.02, -0.02])
        assert down_capture(returns, benchmark).iloc[0] == pytest.approx(expected)

    def test_overall_capture(self, market):
        returns, benchmark = market
        expected = up_capture(returns, benchmark).iloc[0] / down_capture(returns, benchmark).iloc[0]
        assert overall_capture(returns, benchmark).iloc[0] == pytest.approx(expected)

    def test_benchmark_as_series(self, market):
        returns, benchmark = market
        series = benchmark.to_frame()["Benchmark"]
        pd.testing.assert_series_equal(up_capture(returns, series), up_capture(returns, benchmark))

    def test_no_down_periods_is_undefined(self):
        returns = Panel(range(2), ["P"], [[0.01], [0.02]])
        benchmark = Panel(range(2), ["B"], [[0.01], [0.01]])
        with pytest.warns(InsufficientDataWarning):
            assert np.isnan(down_capture(returns, benchmark).iloc[0])

    def test_overall_capture_warning_points_at_caller(self):
        returns = Panel(range(2), ["P"], [[0.01], [0.02]])
        benchmark = Panel(range(2), ["B"], [[0.01], [0.01]])
        with pytest.warns(InsufficientDataWarning) as record:
            assert np.isnan(overall_capture(returns, benchmark).iloc[0])
        ours = [w for w in record if issubclass(w.category, InsufficientDataWarning)]
        assert all(os.path.basename(w.filename) == "test_portfolio.py" for w in ours)

    def test_multi_column_benchmark_raises(self, market):
        returns, _ = market
        with pytest.raises(ShapeError, match="exactly one column"):
            up_capture(returns, Panel(returns.timestamps, ["A", "B"], np.zeros((4, 2))))

    def test_misaligned_benchmark_raises(self, market):
        returns, benchmark = market
        with pytest.raises(ShapeError):
            up_capture(returns, benchmark.slice(1))
