"""
Row-wise (cross-sectional) statistics.

Every function here works one period at a time across securities, filtering
on presence before computing anything. A period that cannot be computed is
set to NaN (undefined), never to zero, and the count of such periods is
reported once per call as an InsufficientDataWarning.
"""

import logging

import numpy as np
import pandas as pd
from scipy.stats import pearsonr, rankdata, spearmanr

from .config import require_method
from .exceptions import warn_undefined
from .panel import Panel, check_aligned
from .parallel import parallel_map, row_chunks

logger = logging.getLogger(__name__)

SERIES_NAMES = {"rank": "SpearmanRank_IC", "linear": "Pearson_IC"}


# =============================================================================
# Correlation kernels
# =============================================================================

def paired_correlation(x: np.ndarray, y: np.ndarray, method: str = "rank") -> float:
    """
    Correlation over positions where both x and y are present.

    Returns NaN with fewer than 2 pairs, or when either side is constant
    (the coefficient is 0/0 there).
    """
    valid = ~(np.isnan(x) | np.isnan(y))
    if valid.sum() < 2:
        return np.nan
    x_valid = x[valid]
    y_valid = y[valid]
    if np.all(x_valid == x_valid[0]) or np.all(y_valid == y_valid[0]):
        return np.nan

    if method == "rank":
        corr, _ = spearmanr(x_valid, y_valid)
    else:
        corr, _ = pearsonr(x_valid, y_valid)
    return float(corr)


def correlate_rows(block):
    """Correlate each (x, y) row pair of a block of rows."""
    x_rows, y_rows, method = block
    return np.array([paired_correlation(x, y, method) for x, y in zip(x_rows, y_rows)],
                    dtype=np.float64)


# =============================================================================
# Public API
# =============================================================================

def row_correlation(panel_a: Panel, panel_b: Panel, method: str = "rank",
                    n_jobs: int = 1, backend: str = "loky") -> pd.Series:
    """
    Per-period cross-sectional correlation between two aligned panels.

    Parameters
    ----------
    panel_a, panel_b : Panel
        Aligned panels with identical column labels (e.g. factor scores and
        forward returns).
    method : str
        'rank' (Spearman) or 'linear' (Pearson).
    n_jobs : int
        Rows are split into contiguous blocks and correlated in parallel.

    Returns
    -------
    pd.Series
        One coefficient per timestamp; NaN where fewer than 2 paired
        observations remain.
    """
    require_method(method)
    check_aligned(panel_a, panel_b, same_columns=True)

    blocks = [
        (panel_a.values[rows], panel_b.values[rows], method)
        for rows in row_chunks(panel_a.n_periods, n_jobs)
    ]
    results = parallel_map(correlate_rows, blocks, n_jobs=n_jobs, backend=backend)
    correlations = np.concatenate(results) if results else np.empty(0)

    n_undefined = int(np.isnan(correlations).sum())
    warn_undefined(n_undefined, len(correlations), "cross-sectional correlations")
    logger.debug(f"row_correlation({method}): {len(correlations) - n_undefined} defined periods")

    return pd.Series(correlations, index=panel_a.timestamps, name=SERIES_NAMES[method])


def rows_spearman(factors: Panel, returns: Panel, n_jobs: int = 1) -> pd.Series:
    """Cross-sectional Spearman rank IC per period."""
    return row_correlation(factors, returns, method="rank", n_jobs=n_jobs)


def rows_pearson(factors: Panel, returns: Panel, n_jobs: int = 1) -> pd.Series:
    """Cross-sectional Pearson IC per period."""
    return row_correlation(factors, returns, method="linear", n_jobs=n_jobs)


def row_mean(panel: Panel) -> pd.Series:
    """Per-period mean of present values; NaN for periods with none present."""
    counts = panel.present_count(axis=1)
    sums = np.where(panel.missing, 0.0, panel.values).sum(axis=1)
    means = np.full(panel.n_periods, np.nan)
    has_data = counts > 0
    means[has_data] = sums[has_data] / counts[has_data]

    warn_undefined(int((~has_data).sum()), panel.n_periods, "row means")
    return pd.Series(means, index=panel.timestamps, name="RowMean")


def row_rank_percentile(panel: Panel) -> Panel:
    """
    Rank-transform each period into (average rank) / (count present).

    Ties share the average of the ranks they span; missing cells stay missing.
    """
    out = np.full(panel.shape, np.nan)
    for i in range(panel.n_periods):
        present_values, mask = panel.row(i)
        if len(present_values) == 0:
            continue
        out[i, mask] = rankdata(present_values, method="average") / len(present_values)
    return Panel(panel.timestamps, panel.columns, out, panel.missing)
