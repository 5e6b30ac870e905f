"""
Factor analysis report: runs every analytic for one factor and collects the
results in a dict for the presentation layer.
"""

import logging
from typing import Dict, Optional

import numpy as np

from .config import AnalyticsConfig, get_default_config
from .factor_dynamics import (
    correlation_decay,
    decay_ratio,
    mean_factor_autocorrelation,
    rolling_cross_sectional_correlation,
    rolling_factor_autocorrelation,
    summarize_correlation_series,
)
from .panel import Panel, as_panel, check_aligned
from .performance import bucket_spread_diagnostics, performance_table
from .portfolio import all_bucket_returns
from .quantiles import all_buckets_turnover, assign_quantiles, total_turnover
from .row_statistics import row_correlation, row_mean

logger = logging.getLogger(__name__)


def compute_factor_analysis(factors, returns, benchmark=None,
                            config: Optional[AnalyticsConfig] = None) -> Dict[str, object]:
    """
    Master function: compute all factor analytics.

    Returns are period returns stamped at the END of the period they cover,
    so the factor observed at t is evaluated against the return stamped t+1.
    Every predictive statistic below lags the factor (or its buckets) by one
    period and drops the first return row accordingly.

    Parameters
    ----------
    factors : Panel or DataFrame
        Factor scores (time x security).
    returns : Panel or DataFrame
        Security returns aligned with `factors` (same timestamps and columns).
    benchmark : Panel, DataFrame or Series, optional
        Benchmark returns aligned with `returns`. Defaults to the
        equal-weight mean of all present security returns.
    config : AnalyticsConfig, optional
        Defaults to get_default_config().

    Returns
    -------
    Dict[str, object]
        Dictionary with keys:
        - 'ic': per-period IC series
        - 'ic_summary': mean/std/IR/hit rate of the IC (dict)
        - 'ic_decay': mean IC by lag
        - 'decay_ratio': mean / std of the decay values (float)
        - 'rolling_ic': rolling mean IC (None if history is shorter than the window)
        - 'autocorrelation': mean factor ACF by lag
        - 'rolling_autocorrelation': rolling ACF at acf_max_lag (None unless configured)
        - 'quantiles': QuantileAssignment
        - 'bucket_returns': Panel of Q1..Qn returns
        - 'bucket_turnover': Panel of Q1..Qn turnover
        - 'total_turnover': Panel of whole-panel churn
        - 'performance': PerformanceTable
        - 'bucket_spread': adjacent-bucket diagnostics (None with a single bucket)
    """
    config = config if config is not None else get_default_config()
    config.validate()

    factors = as_panel(factors)
    returns = as_panel(returns)
    check_aligned(factors, returns, same_columns=True)

    dyn = config.dynamics
    n_jobs = config.compute.n_jobs
    backend = config.compute.backend
    n_quantiles = config.quantiles.n_quantiles

    logger.info(f"Factor analysis: {factors.n_periods} periods x {factors.n_columns} securities, "
                f"method={dyn.method}, n_quantiles={n_quantiles}")

    lagged_factors = factors.lag(1)
    realized = returns.slice(1, None)
    if benchmark is None:
        benchmark_panel = Panel(realized.timestamps, ["Benchmark"],
                                row_mean(realized).to_numpy()[:, None])
    else:
        benchmark_panel = as_panel(benchmark)
        check_aligned(returns, benchmark_panel)
        benchmark_panel = benchmark_panel.slice(1, None)

    results = {}

    # Information coefficient
    logger.info("[1/5] Computing information coefficient...")
    ic = row_correlation(lagged_factors, realized, method=dyn.method, n_jobs=n_jobs, backend=backend)
    results['ic'] = ic
    results['ic_summary'] = summarize_correlation_series(ic)
    logger.info(f"  Mean IC: {results['ic_summary']['mean_ic']:+.4f}, "
                f"IR: {results['ic_summary']['ic_ir']:+.2f}, "
                f"hit rate: {results['ic_summary']['hit_rate']:.2%}")

    if dyn.rolling_window <= realized.n_periods:
        results['rolling_ic'] = rolling_cross_sectional_correlation(
            lagged_factors, realized, dyn.rolling_window, method=dyn.method,
            n_jobs=n_jobs, backend=backend,
        )
    else:
        logger.info(f"  Skipping rolling IC ({realized.n_periods} periods < "
                    f"window {dyn.rolling_window})")
        results['rolling_ic'] = None

    # Decay
    logger.info("[2/5] Computing IC decay...")
    decay = correlation_decay(factors, returns, dyn.max_lag, method=dyn.method,
                              n_jobs=n_jobs, backend=backend)
    results['ic_decay'] = decay
    results['decay_ratio'] = decay_ratio(decay) if dyn.max_lag > 1 else np.nan

    # Factor persistence
    logger.info("[3/5] Computing factor autocorrelation...")
    results['autocorrelation'] = mean_factor_autocorrelation(factors, dyn.acf_max_lag)
    if dyn.acf_window is not None and dyn.acf_window <= factors.n_periods:
        results['rolling_autocorrelation'] = rolling_factor_autocorrelation(
            factors, dyn.acf_window, dyn.acf_max_lag, n_jobs=n_jobs, backend=backend,
        )
    else:
        results['rolling_autocorrelation'] = None

    # Buckets
    logger.info(f"[4/5] Bucketing into {n_quantiles} quantiles...")
    assignment = assign_quantiles(factors, n_quantiles, n_jobs=n_jobs, backend=backend)
    results['quantiles'] = assignment

    bucket_returns = all_bucket_returns(assignment.lag(1), realized, n_quantiles)
    results['bucket_returns'] = bucket_returns

    window = config.quantiles.turnover_window
    if factors.n_periods > max(window, 1):
        results['bucket_turnover'] = all_buckets_turnover(assignment, window=window,
                                                          n_jobs=n_jobs, backend=backend)
        results['total_turnover'] = total_turnover(assignment)
    else:
        results['bucket_turnover'] = None
        results['total_turnover'] = None

    # Performance
    logger.info("[5/5] Computing bucket performance...")
    table = performance_table(bucket_returns, benchmark_panel,
                              config.performance.periods_per_year,
                              threshold=config.performance.threshold)
    results['performance'] = table
    results['bucket_spread'] = bucket_spread_diagnostics(table) if n_quantiles > 1 else None

    logger.info("Factor analysis complete")
    return results
