"""
Factor dynamics: information coefficient level, decay and stability, plus
the persistence (autocorrelation) of the factor scores themselves.

Includes:
- Mean cross-sectional IC and its summary statistics
- IC decay under increasing factor lag, and the decay ratio
- Rolling IC keyed by each window's last timestamp
- Mean factor autocorrelation across securities, whole-sample and rolling
- Numba-compiled demeaned autocorrelation kernel
"""

import logging
import warnings
from typing import Dict, Sequence, Union

import numpy as np
import pandas as pd
from numba import jit

from .config import require_method, require_non_negative_int, require_positive_int
from .exceptions import (
    ConfigurationError,
    DivisionUndefined,
    InsufficientDataWarning,
    ShapeError,
    external_stacklevel,
    warn_undefined,
)
from .panel import Panel, check_aligned
from .parallel import parallel_map
from .row_statistics import correlate_rows, row_correlation

logger = logging.getLogger(__name__)


# =============================================================================
# Numba-Optimized Utilities
# =============================================================================

@jit(nopython=True, cache=True)
def _demeaned_autocorrelation(x: np.ndarray, lags: np.ndarray) -> np.ndarray:
    """Classic ACF estimator: sum((x_t - m)(x_t+k - m)) / sum((x_t - m)^2)."""
    n = x.shape[0]
    mean = 0.0
    for i in range(n):
        mean += x[i]
    mean /= n

    denom = 0.0
    for i in range(n):
        d = x[i] - mean
        denom += d * d

    out = np.empty(lags.shape[0])
    for j in range(lags.shape[0]):
        k = lags[j]
        if denom == 0.0:
            out[j] = np.nan
            continue
        num = 0.0
        for i in range(n - k):
            num += (x[i] - mean) * (x[i + k] - mean)
        out[j] = num / denom
    return out


def _normalize_lags(lags: Union[int, Sequence[int]]) -> np.ndarray:
    """An int n means lags 0..n; a sequence is taken as given."""
    if isinstance(lags, (int, np.integer)) and not isinstance(lags, bool):
        require_non_negative_int(lags, "lags")
        return np.arange(lags + 1, dtype=np.int64)
    lag_array = np.asarray(list(lags), dtype=np.int64)
    if lag_array.size == 0:
        raise ConfigurationError("at least one lag is required")
    if (lag_array < 0).any():
        raise ConfigurationError(f"lags must be non-negative, got {lag_array.tolist()}")
    return lag_array


def _mean_autocorrelation_values(values: np.ndarray, lags: np.ndarray) -> np.ndarray:
    """
    Element-wise mean ACF over columns with more than max(lags) observations.

    Returns an all-NaN vector when no column qualifies.
    """
    max_lag = lags.max()
    acfs = []
    for j in range(values.shape[1]):
        col = values[:, j]
        col = col[~np.isnan(col)]
        if len(col) > max_lag:
            acfs.append(_demeaned_autocorrelation(np.ascontiguousarray(col), lags))

    if not acfs:
        return np.full(len(lags), np.nan)

    matrix = np.vstack(acfs)
    defined = ~np.isnan(matrix)
    counts = defined.sum(axis=0)
    sums = np.where(defined, matrix, 0.0).sum(axis=0)
    out = np.full(len(lags), np.nan)
    out[counts > 0] = sums[counts > 0] / counts[counts > 0]
    return out


def _defined_mean(values: np.ndarray) -> float:
    defined = values[~np.isnan(values)]
    if len(defined) == 0:
        return np.nan
    return float(defined.mean())


# =============================================================================
# Information coefficient
# =============================================================================

def mean_cross_sectional_correlation(factors: Panel, returns: Panel, method: str = "rank",
                                     n_jobs: int = 1, backend: str = "loky") -> float:
    """
    Mean over time of the per-period cross-sectional correlation (the IC).

    Undefined periods are left out of the mean; if no period is defined the
    result is NaN.
    """
    ic = row_correlation(factors, returns, method=method, n_jobs=n_jobs, backend=backend)
    mean_ic = _defined_mean(ic.to_numpy())
    if np.isnan(mean_ic):
        warn_undefined(1, 1, "mean cross-sectional correlations")
    return mean_ic


def summarize_correlation_series(ic: pd.Series) -> Dict[str, float]:
    """
    Summary statistics of an IC time series.

    Returns dict with:
    - mean_ic, std_ic: mean and sample std of defined periods
    - ic_ir: IC information ratio (mean / std)
    - hit_rate: fraction of defined periods with positive IC
    - abs_mean_ic: mean absolute IC
    - n_periods: number of defined periods
    """
    defined = ic.dropna()
    n = len(defined)
    mean_ic = defined.mean() if n else np.nan
    std_ic = defined.std() if n > 1 else np.nan
    if pd.notna(std_ic) and std_ic > 0:
        ic_ir = mean_ic / std_ic
    else:
        ic_ir = np.nan
    return {
        "mean_ic": mean_ic,
        "std_ic": std_ic,
        "ic_ir": ic_ir,
        "hit_rate": (defined > 0).mean() if n else np.nan,
        "abs_mean_ic": defined.abs().mean() if n else np.nan,
        "n_periods": n,
    }


def _lagged_mean_ic(args):
    factor_values, return_values, lag_value, method = args
    n = factor_values.shape[0]
    if lag_value >= n:
        return np.nan
    # factor known at t - lag paired with returns at t
    correlations = correlate_rows((factor_values[:n - lag_value], return_values[lag_value:], method))
    return _defined_mean(correlations)


def correlation_decay(factors: Panel, returns: Panel, max_lag: int, method: str = "rank",
                      n_jobs: int = 1, backend: str = "loky") -> pd.Series:
    """
    Decay of the mean cross-sectional IC as the factor is lagged.

    For each lag L in 1..max_lag the factor panel is lagged by L and the
    first L rows of the returns panel are dropped so both cover the same
    timestamps; nothing is imputed.

    Returns
    -------
    pd.Series
        Mean IC indexed by lag (ascending).
    """
    require_method(method)
    require_positive_int(max_lag, "max_lag")
    check_aligned(factors, returns, same_columns=True)

    lags = list(range(1, max_lag + 1))
    tasks = [(factors.values, returns.values, lag_value, method) for lag_value in lags]
    decay = np.array(parallel_map(_lagged_mean_ic, tasks, n_jobs=n_jobs, backend=backend),
                     dtype=np.float64)

    warn_undefined(int(np.isnan(decay).sum()), len(lags), "decay lags")
    logger.info(
        f"IC decay ({method}) over lags 1..{max_lag}: "
        f"first={decay[0]:.4f}, last={decay[-1]:.4f}"
    )
    return pd.Series(decay, index=pd.Index(lags, name="lag"), name="IC")


def decay_ratio(decay) -> float:
    """Mean / sample stdev of the defined decay values (stability of IC across lags)."""
    values = np.asarray(decay, dtype=np.float64)
    values = values[~np.isnan(values)]
    if len(values) < 2:
        warn_undefined(1, 1, "decay ratios")
        return np.nan
    std = values.std(ddof=1)
    if std == 0:
        warn_undefined(1, 1, "decay ratios", category=DivisionUndefined)
        return np.nan
    return float(values.mean() / std)


def rolling_cross_sectional_correlation(factors: Panel, returns: Panel, window: int,
                                        method: str = "rank", n_jobs: int = 1,
                                        backend: str = "loky") -> pd.Series:
    """
    Mean IC over each run of `window` consecutive periods.

    Each value is keyed by the window's LAST timestamp, so a value is only
    ever plotted at a date by which all of its inputs were observed.
    """
    require_positive_int(window, "window")
    ic = row_correlation(factors, returns, method=method, n_jobs=n_jobs, backend=backend)
    if len(ic) < window:
        raise ShapeError(f"Need at least {window} periods for a rolling window, got {len(ic)}")

    ic_values = ic.to_numpy()
    rolling = np.array([
        _defined_mean(ic_values[end - window + 1:end + 1])
        for end in range(window - 1, len(ic_values))
    ])
    warn_undefined(int(np.isnan(rolling).sum()), len(rolling), "rolling IC windows")
    return pd.Series(rolling, index=ic.index[window - 1:], name=f"Rolling{window}_{ic.name}")


# =============================================================================
# Factor autocorrelation
# =============================================================================

def mean_factor_autocorrelation(factors: Panel, lags: Union[int, Sequence[int]]) -> pd.Series:
    """
    Mean autocorrelation of security factor scores.

    Each column is stripped of missing entries and kept only if it has more
    observations than the largest requested lag. Per lag, columns whose ACF
    is undefined (constant series) are left out of the average.

    Parameters
    ----------
    factors : Panel
        Factor scores, one column per security.
    lags : int or sequence of int
        An int n means lags 0..n.

    Returns
    -------
    pd.Series
        Mean ACF indexed by lag. All NaN (with an InsufficientDataWarning)
        when no column has enough data.
    """
    lag_array = _normalize_lags(lags)
    acf = _mean_autocorrelation_values(factors.values, lag_array)
    if np.isnan(acf).all():
        warnings.warn(
            f"No factor column has more than {lag_array.max()} non-missing observations "
            f"with non-zero variance; autocorrelation is undefined",
            InsufficientDataWarning,
            stacklevel=external_stacklevel(),
        )
    return pd.Series(acf, index=pd.Index(lag_array, name="lag"), name="ACF")


def _window_acf(args):
    values, start, window, lag_array = args
    return _mean_autocorrelation_values(values[start:start + window], lag_array)


def rolling_factor_autocorrelation(factors: Panel, window: int, lag: int,
                                   n_jobs: int = 1, backend: str = "loky") -> pd.Series:
    """
    Mean factor autocorrelation at `lag` over sliding windows of `window` periods.

    Each window computes the ACF for lags 0..lag and keeps the value at
    `lag`. Results are keyed by the window's start position.
    """
    require_positive_int(window, "window")
    require_non_negative_int(lag, "lag")
    if window <= lag:
        raise ConfigurationError(f"window ({window}) must exceed lag ({lag})")
    if factors.n_periods < window:
        raise ShapeError(f"Need at least {window} periods, got {factors.n_periods}")

    lag_array = np.arange(lag + 1, dtype=np.int64)
    starts = list(range(factors.n_periods - window + 1))
    tasks = [(factors.values, start, window, lag_array) for start in starts]
    acfs = parallel_map(_window_acf, tasks, n_jobs=n_jobs, backend=backend)
    values = np.array([acf[-1] for acf in acfs], dtype=np.float64)

    warn_undefined(int(np.isnan(values).sum()), len(values), "rolling ACF windows")
    return pd.Series(values, index=pd.Index(starts, name="window_start"), name=f"ACF{lag}")


def rolling_autocorrelation_profile(factors: Panel, window: int, max_lag: int,
                                    n_jobs: int = 1, backend: str = "loky") -> pd.DataFrame:
    """
    Rolling mean ACF for every lag 1..max_lag.

    Returns a DataFrame with columns ACF1..ACF{max_lag}, one row per window,
    keyed by the window's last timestamp.
    """
    require_positive_int(window, "window")
    require_positive_int(max_lag, "max_lag")
    if window <= max_lag:
        raise ConfigurationError(f"window ({window}) must exceed max_lag ({max_lag})")
    if factors.n_periods < window + max_lag:
        raise ShapeError(
            f"Need at least window + max_lag = {window + max_lag} periods, "
            f"got {factors.n_periods}"
        )

    lag_array = np.arange(max_lag + 1, dtype=np.int64)
    starts = range(factors.n_periods - window + 1)
    tasks = [(factors.values, start, window, lag_array) for start in starts]
    acfs = parallel_map(_window_acf, tasks, n_jobs=n_jobs, backend=backend)
    # drop lag 0, which is 1 by construction
    matrix = np.vstack([acf[1:] for acf in acfs])

    warn_undefined(int(np.isnan(matrix).all(axis=1).sum()), matrix.shape[0], "rolling ACF windows")
    return pd.DataFrame(
        matrix,
        index=factors.timestamps[window - 1:],
        columns=[f"ACF{k}" for k in range(1, max_lag + 1)],
    )
