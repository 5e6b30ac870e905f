"""
Performance summary tables across bucket portfolios, and stability
diagnostics computed on those tables.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import require_positive_int
from .exceptions import ConfigurationError, DivisionUndefined, ShapeError, warn_undefined
from .panel import as_panel, check_aligned
from .portfolio import (
    annualized_return,
    annualized_volatility,
    down_capture,
    max_drawdown,
    overall_capture,
    sharpe_ratio,
    sortino_ratio,
    up_capture,
)

logger = logging.getLogger(__name__)

STAT_NAMES = [
    "Annual Return",
    "Annual StDev",
    "Sharpe Ratio",
    "Sortino Ratio",
    "Max Drawdowns",
    "Down Capture",
    "Up Capture",
    "Overall Capture",
]

DIAGNOSTIC_COLUMNS = ["MeanChg", "StdChg", "Ratio"]


@dataclass(frozen=True)
class PerformanceRow:
    """A named statistic with one value per portfolio column."""

    stat: str
    values: Tuple[float, ...]


@dataclass(frozen=True)
class PerformanceTable:
    """Ordered PerformanceRows sharing the same column labels."""

    columns: Tuple[str, ...]
    rows: Tuple[PerformanceRow, ...]

    def __post_init__(self):
        for row in self.rows:
            if len(row.values) != len(self.columns):
                raise ShapeError(
                    f"row {row.stat!r} has {len(row.values)} values for "
                    f"{len(self.columns)} columns"
                )

    @property
    def stats(self) -> Tuple[str, ...]:
        return tuple(row.stat for row in self.rows)

    def row(self, stat: str) -> PerformanceRow:
        for row in self.rows:
            if row.stat == stat:
                return row
        raise KeyError(stat)

    def value(self, stat: str, column: str) -> float:
        return self.row(stat).values[self.columns.index(column)]

    def to_frame(self) -> pd.DataFrame:
        """Stats as rows, portfolio columns as columns."""
        return pd.DataFrame(
            [list(row.values) for row in self.rows],
            index=pd.Index(self.stats, name="Stat"),
            columns=list(self.columns),
        )


def performance_table(bucket_returns, benchmark, periods_per_year: int,
                      threshold: float = 0.0) -> PerformanceTable:
    """
    Compose the eight bucket performance statistics into one table.

    Parameters
    ----------
    bucket_returns : Panel or DataFrame
        One returns column per bucket/portfolio.
    benchmark : Panel, DataFrame or Series
        Single benchmark return series aligned with bucket_returns.
    periods_per_year : int
        Return observations per year (12 = monthly, 252 = daily).
    threshold : float
        Benchmark return separating up from down periods, and the minimum
        acceptable return for the Sortino ratio.

    Returns
    -------
    PerformanceTable
        Annual return, volatility and max drawdown in percent; Sharpe,
        Sortino and capture ratios unscaled.
    """
    require_positive_int(periods_per_year, "periods_per_year")
    returns = as_panel(bucket_returns)
    benchmark = as_panel(benchmark)
    check_aligned(returns, benchmark)
    if benchmark.n_columns != 1:
        raise ShapeError(f"benchmark must have exactly one column, got {benchmark.n_columns}")

    metrics = [
        annualized_return(returns, periods_per_year) * 100,
        annualized_volatility(returns, periods_per_year) * 100,
        sharpe_ratio(returns, periods_per_year),
        sortino_ratio(returns, threshold),
        max_drawdown(returns) * 100,
        down_capture(returns, benchmark, threshold),
        up_capture(returns, benchmark, threshold),
        overall_capture(returns, benchmark, threshold),
    ]

    rows = tuple(
        PerformanceRow(stat, tuple(float(v) for v in metric.to_numpy()))
        for stat, metric in zip(STAT_NAMES, metrics)
    )
    logger.info(f"Performance table: {len(rows)} stats x {returns.n_columns} portfolios "
                f"over {returns.n_periods} periods")
    return PerformanceTable(columns=tuple(str(c) for c in returns.columns), rows=rows)


# =============================================================================
# Change diagnostics
# =============================================================================

def _change_summary(stats: Sequence[str], changes: List[np.ndarray]) -> pd.DataFrame:
    """Mean, sample std and mean/std of each stat's defined changes."""
    summary = np.full((len(stats), 3), np.nan)
    n_short = 0
    n_zero = 0
    for i, values in enumerate(changes):
        values = values[~np.isnan(values)]
        if len(values):
            summary[i, 0] = values.mean()
        if len(values) < 2:
            n_short += 1
            continue
        summary[i, 1] = values.std(ddof=1)
        if summary[i, 1] == 0:
            n_zero += 1
        else:
            summary[i, 2] = summary[i, 0] / summary[i, 1]

    warn_undefined(n_short, len(stats), "change statistics")
    warn_undefined(n_zero, len(stats), "change ratios", category=DivisionUndefined)
    return pd.DataFrame(summary, index=pd.Index(list(stats), name="Stat"),
                        columns=DIAGNOSTIC_COLUMNS)


def table_change_diagnostics(tables: Sequence[PerformanceTable]) -> pd.DataFrame:
    """
    Stability of a time-ordered sequence of performance tables.

    For every (stat, column) the change between consecutive tables is taken;
    changes are then pooled across columns per stat and summarised as mean,
    sample std and mean / std.
    """
    tables = list(tables)
    if len(tables) < 2:
        raise ConfigurationError(f"Need at least 2 tables, got {len(tables)}")
    first = tables[0]
    for table in tables[1:]:
        if table.stats != first.stats or table.columns != first.columns:
            raise ShapeError("All tables must share the same stats and columns")

    # (tables, stats, columns)
    cube = np.array([[row.values for row in table.rows] for table in tables], dtype=np.float64)
    deltas = np.diff(cube, axis=0)
    changes = [deltas[:, i, :].ravel() for i in range(len(first.stats))]
    return _change_summary(first.stats, changes)


def bucket_spread_diagnostics(table: PerformanceTable) -> pd.DataFrame:
    """
    Monotonicity across buckets: change between adjacent bucket columns
    (Q2 - Q1, Q3 - Q2, ...) per stat, summarised as mean, std and ratio.
    """
    if len(table.columns) < 2:
        raise ShapeError(f"Need at least 2 columns, got {len(table.columns)}")
    changes = [np.diff(np.asarray(row.values, dtype=np.float64)) for row in table.rows]
    return _change_summary(table.stats, changes)
