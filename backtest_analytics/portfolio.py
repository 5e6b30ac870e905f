"""
Portfolio aggregation: equal-weight bucket returns and the performance
primitives computed on any returns panel (one value per column).

Bucket returns assume the assignment has already been lagged by the caller
(bucket known at t, return realized t -> t+1). Nothing here shifts data.
"""

import logging
from typing import Callable

import numpy as np
import pandas as pd

from .config import require_positive_int
from .exceptions import DivisionUndefined, ShapeError, warn_undefined
from .panel import Panel, as_panel, check_aligned

logger = logging.getLogger(__name__)


# =============================================================================
# Bucket returns
# =============================================================================

def _bucket_means(labels: np.ndarray, returns: Panel, bucket) -> np.ndarray:
    """Per-period mean of present returns whose label equals bucket."""
    selected = (labels == bucket) & returns.present
    counts = selected.sum(axis=1)
    sums = np.where(selected, returns.values, 0.0).sum(axis=1)
    means = np.full(returns.n_periods, np.nan)
    has_members = counts > 0
    means[has_members] = sums[has_members] / counts[has_members]
    return means


def bucket_return(assignment: Panel, returns: Panel, bucket: int) -> pd.Series:
    """
    Equal-weight return of one bucket per period.

    Parameters
    ----------
    assignment : Panel
        Bucket labels, already lagged so that labels at t were known before
        the returns stamped at t were realized.
    returns : Panel
        Security returns aligned with `assignment` (same timestamps and columns).
    bucket : int
        Label to select.

    Returns
    -------
    pd.Series
        Named Q{bucket}; NaN in periods where no labelled security has a return.
    """
    require_positive_int(bucket, "bucket")
    check_aligned(assignment, returns, same_columns=True)
    means = _bucket_means(assignment.values, returns, bucket)
    warn_undefined(int(np.isnan(means).sum()), len(means), f"Q{bucket} bucket returns")
    return pd.Series(means, index=returns.timestamps, name=f"Q{bucket}")


def all_bucket_returns(assignment: Panel, returns: Panel, n_buckets: int) -> Panel:
    """Bucket returns for 1..n_buckets as one returns panel with columns Q1..Qn."""
    require_positive_int(n_buckets, "n_buckets")
    check_aligned(assignment, returns, same_columns=True)

    buckets = range(1, n_buckets + 1)
    matrix = np.column_stack([_bucket_means(assignment.values, returns, b) for b in buckets])

    warn_undefined(int(np.isnan(matrix).sum()), matrix.size, "bucket returns")
    logger.debug(f"all_bucket_returns: {n_buckets} buckets x {returns.n_periods} periods")
    return Panel(returns.timestamps, [f"Q{b}" for b in buckets], matrix)


# =============================================================================
# Price and drawdown paths
# =============================================================================

def prices_from_returns(returns) -> Panel:
    """
    Compound returns into a price path starting from 1.

    A missing return compounds as zero so later prices are unaffected, but
    the output cell for that period stays missing.
    """
    returns = as_panel(returns)
    filled = np.where(returns.missing, 0.0, returns.values)
    prices = np.cumprod(1.0 + filled, axis=0)
    return Panel(returns.timestamps, returns.columns, prices, returns.missing)


def drawdown_series(returns) -> Panel:
    """Price / running-max price - 1, with the initial price of 1 in the running max."""
    returns = as_panel(returns)
    filled = np.where(returns.missing, 0.0, returns.values)
    prices = np.cumprod(1.0 + filled, axis=0)
    peaks = np.maximum(np.maximum.accumulate(prices, axis=0), 1.0)
    return Panel(returns.timestamps, returns.columns, prices / peaks - 1.0, returns.missing)


# =============================================================================
# Per-column metrics
# =============================================================================

def _per_column(returns: Panel, metric: Callable[[np.ndarray], float], name: str) -> pd.Series:
    """Apply metric to each column's present returns; undefined columns are NaN."""
    values = np.array([metric(returns.column(j)[0]) for j in range(returns.n_columns)],
                      dtype=np.float64)
    warn_undefined(int(np.isnan(values).sum()), len(values), f"{name} values")
    return pd.Series(values, index=returns.columns, name=name)


def _safe_ratio(numerator: pd.Series, denominator: pd.Series, name: str) -> pd.Series:
    """numerator / denominator with exact-zero denominators marked undefined."""
    zero = denominator == 0
    ratio = numerator / denominator.where(~zero)
    warn_undefined(int(zero.sum()), len(denominator), f"{name} values", category=DivisionUndefined)
    return ratio.rename(name)


def annualized_return(returns, periods_per_year: int) -> pd.Series:
    """Geometric annualized return over the present observations of each column."""
    require_positive_int(periods_per_year, "periods_per_year")
    returns = as_panel(returns)

    def _annualize(r):
        if len(r) == 0:
            return np.nan
        growth = np.prod(1.0 + r)
        if growth < 0:
            # fractional power of a negative growth factor
            return np.nan
        return growth ** (periods_per_year / len(r)) - 1.0

    return _per_column(returns, _annualize, "AnnualReturn")


def annualized_volatility(returns, periods_per_year: int) -> pd.Series:
    """Sample standard deviation of present returns scaled by sqrt(periods_per_year)."""
    require_positive_int(periods_per_year, "periods_per_year")
    returns = as_panel(returns)
    scale = np.sqrt(periods_per_year)
    return _per_column(
        returns,
        lambda r: r.std(ddof=1) * scale if len(r) > 1 else np.nan,
        "AnnualStDev",
    )


def sharpe_ratio(returns, periods_per_year: int) -> pd.Series:
    returns = as_panel(returns)
    return _safe_ratio(
        annualized_return(returns, periods_per_year),
        annualized_volatility(returns, periods_per_year),
        "Sharpe",
    )


def _from_second_period(returns: Panel) -> Panel:
    return returns.slice(1, None)


def downside_deviation(returns, threshold: float = 0.0) -> pd.Series:
    """
    Root mean square of shortfalls below threshold.

    Uses every present return from the second period onward; returns at or
    above the threshold contribute zero shortfall.
    """
    returns = _from_second_period(as_panel(returns))

    def _dd(r):
        if len(r) == 0:
            return np.nan
        shortfall = np.minimum(r - threshold, 0.0)
        return np.sqrt(np.mean(shortfall ** 2))

    return _per_column(returns, _dd, "DownsideDeviation")


def sortino_ratio(returns, threshold: float = 0.0) -> pd.Series:
    """Mean return / downside deviation, both over the second period onward."""
    returns = as_panel(returns)
    mean_return = _per_column(
        _from_second_period(returns),
        lambda r: r.mean() if len(r) else np.nan,
        "MeanReturn",
    )
    return _safe_ratio(mean_return, downside_deviation(returns, threshold), "Sortino")


def max_drawdown(returns) -> pd.Series:
    """Largest peak-to-trough loss as a positive fraction (0 if the path never falls)."""
    drawdowns = drawdown_series(returns)
    return _per_column(drawdowns, lambda d: 0.0 - d.min() if len(d) else np.nan, "MaxDrawdown")


# =============================================================================
# Capture ratios
# =============================================================================

def _benchmark_column(benchmark, returns: Panel) -> np.ndarray:
    benchmark = as_panel(benchmark)
    if benchmark.n_columns != 1:
        raise ShapeError(f"benchmark must have exactly one column, got {benchmark.n_columns}")
    check_aligned(returns, benchmark)
    return benchmark.values[:, 0]


def _conditional_capture(returns, benchmark, threshold: float, up: bool, name: str) -> pd.Series:
    returns = as_panel(returns)
    bench = _benchmark_column(benchmark, returns)
    market = bench > threshold if up else bench < threshold

    portfolio_means = np.full(returns.n_columns, np.nan)
    benchmark_means = np.full(returns.n_columns, np.nan)
    for j in range(returns.n_columns):
        col = returns.values[:, j]
        selected = market & ~np.isnan(col) & ~np.isnan(bench)
        if selected.any():
            portfolio_means[j] = col[selected].mean()
            benchmark_means[j] = bench[selected].mean()

    warn_undefined(int(np.isnan(benchmark_means).sum()), returns.n_columns,
                   f"{name} values ({'up' if up else 'down'} periods)")
    return _safe_ratio(
        pd.Series(portfolio_means, index=returns.columns),
        pd.Series(benchmark_means, index=returns.columns),
        name,
    )


def up_capture(returns, benchmark, threshold: float = 0.0) -> pd.Series:
    """Mean portfolio return / mean benchmark return over periods with benchmark > threshold."""
    return _conditional_capture(returns, benchmark, threshold, up=True, name="UpCapture")


def down_capture(returns, benchmark, threshold: float = 0.0) -> pd.Series:
    """Mean portfolio return / mean benchmark return over periods with benchmark < threshold."""
    return _conditional_capture(returns, benchmark, threshold, up=False, name="DownCapture")


def overall_capture(returns, benchmark, threshold: float = 0.0) -> pd.Series:
    """Up capture / down capture."""
    return _safe_ratio(
        up_capture(returns, benchmark, threshold),
        down_capture(returns, benchmark, threshold),
        "OverallCapture",
    )
