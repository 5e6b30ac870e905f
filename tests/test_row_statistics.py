"""
Unit tests for row_statistics.py

Tests cover:
1. Per-period correlation (Spearman and Pearson)
2. Undefined periods (fewer than 2 pairs, constant rows)
3. Symmetry, bounds and alignment
4. Row means and rank percentiles
5. Parallel equals sequential
"""

import numpy as np
import pandas as pd
import pytest
from scipy.stats import pearsonr, spearmanr

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from backtest_analytics.panel import Panel
from backtest_analytics.row_statistics import (
    paired_correlation,
    row_correlation,
    row_mean,
    row_rank_percentile,
    rows_pearson,
    rows_spearman,
)
from backtest_analytics.exceptions import (
    ConfigurationError,
    InsufficientDataWarning,
    ShapeError,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def factor_and_returns():
    """30 periods x 25 securities, returns weakly driven by the factor."""
    np.random.seed(42)
    dates = pd.date_range("2020-01-01", periods=30, freq="D")
    tickers = [f"ETF_{i}" for i in range(25)]
    factor = np.random.randn(30, 25)
    returns = 0.3 * factor + np.random.randn(30, 25)
    factor[np.random.rand(30, 25) < 0.1] = np.nan
    returns[np.random.rand(30, 25) < 0.1] = np.nan
    return Panel(dates, tickers, factor), Panel(dates, tickers, returns)


# =============================================================================
# TEST: CORRELATION
# =============================================================================

class TestRowCorrelation:
    """Tests for cross-sectional correlation."""

    def test_matches_scipy_on_paired_values(self, factor_and_returns):
        factors, returns = factor_and_returns
        ic = rows_spearman(factors, returns)

        x, y = factors.values[0], returns.values[0]
        valid = ~(np.isnan(x) | np.isnan(y))
        expected, _ = spearmanr(x[valid], y[valid])
        np.testing.assert_almost_equal(ic.iloc[0], expected)

    def test_pearson_matches_scipy(self, factor_and_returns):
        factors, returns = factor_and_returns
        ic = rows_pearson(factors, returns)

        x, y = factors.values[5], returns.values[5]
        valid = ~(np.isnan(x) | np.isnan(y))
        expected, _ = pearsonr(x[valid], y[valid])
        np.testing.assert_almost_equal(ic.iloc[5], expected)

    def test_series_metadata(self, factor_and_returns):
        factors, returns = factor_and_returns
        ic = row_correlation(factors, returns, method="rank")
        assert ic.name == "SpearmanRank_IC"
        assert ic.index.equals(factors.timestamps)
        assert row_correlation(factors, returns, method="linear").name == "Pearson_IC"

    def test_symmetry(self, factor_and_returns):
        factors, returns = factor_and_returns
        for method in ("rank", "linear"):
            ab = row_correlation(factors, returns, method=method)
            ba = row_correlation(returns, factors, method=method)
            np.testing.assert_array_almost_equal(ab.values, ba.values)

    def test_bounds(self, factor_and_returns):
        factors, returns = factor_and_returns
        for method in ("rank", "linear"):
            ic = row_correlation(factors, returns, method=method).dropna()
            assert ((ic >= -1.0) & (ic <= 1.0)).all()

    def test_single_pair_is_undefined(self):
        """A row with one paired observation gives NaN, not 0 and not an error."""
        factors = Panel([1, 2], ["A", "B", "C"], [[1.0, np.nan, np.nan], [1.0, 2.0, 3.0]])
        returns = Panel([1, 2], ["A", "B", "C"], [[0.5, 0.2, np.nan], [0.1, 0.2, 0.3]])

        with pytest.warns(InsufficientDataWarning, match="1/2"):
            ic = row_correlation(factors, returns)

        assert np.isnan(ic.iloc[0])
        np.testing.assert_almost_equal(ic.iloc[1], 1.0)

    def test_constant_row_is_undefined(self):
        assert np.isnan(paired_correlation(np.array([1.0, 1.0, 1.0]), np.array([1.0, 2.0, 3.0])))

    def test_misaligned_raises(self, factor_and_returns):
        factors, returns = factor_and_returns
        with pytest.raises(ShapeError):
            row_correlation(factors.slice(1), returns)

    def test_unknown_method_raises(self, factor_and_returns):
        factors, returns = factor_and_returns
        with pytest.raises(ConfigurationError, match="Unknown correlation method"):
            row_correlation(factors, returns, method="kendall")

    def test_parallel_equals_sequential(self, factor_and_returns):
        factors, returns = factor_and_returns
        sequential = row_correlation(factors, returns, n_jobs=1)
        parallel = row_correlation(factors, returns, n_jobs=2, backend="threading")
        pd.testing.assert_series_equal(sequential, parallel)

    def test_idempotent(self, factor_and_returns):
        factors, returns = factor_and_returns
        first = row_correlation(factors, returns)
        second = row_correlation(factors, returns)
        np.testing.assert_array_equal(first.values, second.values)


# =============================================================================
# TEST: ROW MEAN / RANK PERCENTILE
# =============================================================================

class TestRowMean:
    """Tests for per-period means."""

    def test_mean_of_present_values(self):
        panel = Panel([1, 2], ["A", "B", "C"], [[1.0, np.nan, 3.0], [2.0, 4.0, 6.0]])
        means = row_mean(panel)
        np.testing.assert_array_almost_equal(means.values, [2.0, 4.0])

    def test_empty_row_is_undefined(self):
        panel = Panel([1, 2], ["A", "B"], [[np.nan, np.nan], [1.0, 3.0]])
        with pytest.warns(InsufficientDataWarning):
            means = row_mean(panel)
        assert np.isnan(means.iloc[0])
        assert means.iloc[1] == 2.0


class TestRowRankPercentile:
    """Tests for rank percentiles."""

    def test_rank_over_count(self):
        panel = Panel([1], ["A", "B", "C", "D"], [[10.0, np.nan, 30.0, 20.0]])
        ranks = row_rank_percentile(panel)
        np.testing.assert_array_almost_equal(ranks.values[0, [0, 2, 3]], [1 / 3, 1.0, 2 / 3])
        assert ranks.missing[0, 1]

    def test_ties_share_average_rank(self):
        panel = Panel([1], ["A", "B", "C", "D"], [[1.0, 2.0, 2.0, 3.0]])
        ranks = row_rank_percentile(panel)
        np.testing.assert_array_almost_equal(ranks.values[0], [0.25, 0.625, 0.625, 1.0])
