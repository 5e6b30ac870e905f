"""
Backtest Analytics: Cross-Sectional Factor Evaluation
=====================================================

Evaluates a factor against a cross-section of securities:
1. Predictive power: information coefficient, its decay and stability
2. Persistence: autocorrelation of the factor scores
3. Bucket portfolios: quantile assignment, turnover, equal-weight returns
4. Performance: annualized statistics, capture ratios and change diagnostics

Usage:
    from backtest_analytics import Panel, compute_factor_analysis

    factors = Panel.from_frame(factor_df)    # index = dates, columns = tickers
    returns = Panel.from_frame(returns_df)
    results = compute_factor_analysis(factors, returns)
    results['performance'].to_frame()

    # Individual building blocks
    from backtest_analytics import assign_quantiles, all_bucket_returns, performance_table
    q = assign_quantiles(factors, 5)
    bucket_returns = all_bucket_returns(q.lag(1), returns.slice(1), 5)
"""

from .exceptions import (
    ShapeError,
    ConfigurationError,
    InsufficientDataWarning,
    DivisionUndefined,
)
from .config import (
    AnalyticsConfig,
    QuantileConfig,
    DynamicsConfig,
    PerformanceConfig,
    ComputeConfig,
    get_default_config,
)
from .panel import Panel, as_panel, check_aligned
from .row_statistics import (
    row_correlation,
    rows_spearman,
    rows_pearson,
    row_mean,
    row_rank_percentile,
)
from .factor_dynamics import (
    mean_cross_sectional_correlation,
    summarize_correlation_series,
    correlation_decay,
    decay_ratio,
    rolling_cross_sectional_correlation,
    mean_factor_autocorrelation,
    rolling_factor_autocorrelation,
    rolling_autocorrelation_profile,
)
from .quantiles import (
    QuantileAssignment,
    assign_quantiles,
    bucket_turnover,
    all_buckets_turnover,
    total_turnover,
)
from .portfolio import (
    bucket_return,
    all_bucket_returns,
    prices_from_returns,
    drawdown_series,
    annualized_return,
    annualized_volatility,
    sharpe_ratio,
    downside_deviation,
    sortino_ratio,
    max_drawdown,
    up_capture,
    down_capture,
    overall_capture,
)
from .performance import (
    PerformanceRow,
    PerformanceTable,
    performance_table,
    table_change_diagnostics,
    bucket_spread_diagnostics,
)
from .analysis import compute_factor_analysis


__all__ = [
    # Errors
    'ShapeError',
    'ConfigurationError',
    'InsufficientDataWarning',
    'DivisionUndefined',
    # Config
    'AnalyticsConfig',
    'QuantileConfig',
    'DynamicsConfig',
    'PerformanceConfig',
    'ComputeConfig',
    'get_default_config',
    # Panel
    'Panel',
    'as_panel',
    'check_aligned',
    # Row statistics
    'row_correlation',
    'rows_spearman',
    'rows_pearson',
    'row_mean',
    'row_rank_percentile',
    # Factor dynamics
    'mean_cross_sectional_correlation',
    'summarize_correlation_series',
    'correlation_decay',
    'decay_ratio',
    'rolling_cross_sectional_correlation',
    'mean_factor_autocorrelation',
    'rolling_factor_autocorrelation',
    'rolling_autocorrelation_profile',
    # Quantiles
    'QuantileAssignment',
    'assign_quantiles',
    'bucket_turnover',
    'all_buckets_turnover',
    'total_turnover',
    # Portfolio
    'bucket_return',
    'all_bucket_returns',
    'prices_from_returns',
    'drawdown_series',
    'annualized_return',
    'annualized_volatility',
    'sharpe_ratio',
    'downside_deviation',
    'sortino_ratio',
    'max_drawdown',
    'up_capture',
    'down_capture',
    'overall_capture',
    # Performance
    'PerformanceRow',
    'PerformanceTable',
    'performance_table',
    'table_change_diagnostics',
    'bucket_spread_diagnostics',
    # Report
    'compute_factor_analysis',
]
