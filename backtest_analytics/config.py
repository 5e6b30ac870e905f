"""
Configuration Module
====================
Centralized parameters for the cross-sectional factor analytics engine.
Every operation also takes these as explicit arguments; the dataclasses
only group them for the report runner and carry the validation rules.
"""

import numbers
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError

VALID_METHODS = ("rank", "linear")


@dataclass
class QuantileConfig:
    """Quantile bucketing parameters."""

    n_quantiles: int = 5         # Number of ordinal buckets (quintiles)
    turnover_window: int = 1     # Periods between compared bucket memberships


@dataclass
class DynamicsConfig:
    """Information coefficient and autocorrelation parameters."""

    method: str = "rank"         # "rank" (Spearman) or "linear" (Pearson)
    max_lag: int = 5             # Decay lags 1..max_lag
    rolling_window: int = 12     # Periods per rolling IC window
    acf_max_lag: int = 3         # Autocorrelation lags 0..acf_max_lag
    acf_window: Optional[int] = None  # Rolling ACF window (None = skip rolling ACF)


@dataclass
class PerformanceConfig:
    """Bucket performance parameters."""

    periods_per_year: int = 12   # Monthly rebalancing
    threshold: float = 0.0       # Up/down market split for capture ratios


@dataclass
class ComputeConfig:
    """Computational parameters."""

    n_jobs: int = 1              # Parallel jobs (-1 = all cores, 1 = sequential)
    backend: str = "loky"        # joblib backend


@dataclass
class AnalyticsConfig:
    """Complete analytics configuration combining all sub-configs."""

    quantiles: QuantileConfig
    dynamics: DynamicsConfig
    performance: PerformanceConfig
    compute: ComputeConfig

    @classmethod
    def default(cls):
        """Create a default configuration."""
        return cls(
            quantiles=QuantileConfig(),
            dynamics=DynamicsConfig(),
            performance=PerformanceConfig(),
            compute=ComputeConfig(),
        )

    def validate(self):
        """Validate configuration parameters."""
        require_positive_int(self.quantiles.n_quantiles, "n_quantiles")
        require_positive_int(self.quantiles.turnover_window, "turnover_window")

        require_method(self.dynamics.method)
        require_positive_int(self.dynamics.max_lag, "max_lag")
        require_positive_int(self.dynamics.rolling_window, "rolling_window")
        require_non_negative_int(self.dynamics.acf_max_lag, "acf_max_lag")
        if self.dynamics.acf_window is not None:
            require_positive_int(self.dynamics.acf_window, "acf_window")
            if self.dynamics.acf_window <= self.dynamics.acf_max_lag:
                raise ConfigurationError(
                    f"acf_window ({self.dynamics.acf_window}) must exceed "
                    f"acf_max_lag ({self.dynamics.acf_max_lag})"
                )

        require_positive_int(self.performance.periods_per_year, "periods_per_year")

        if self.compute.n_jobs == 0:
            raise ConfigurationError("n_jobs must be non-zero (-1 = all cores)")

        return True


def require_positive_int(value, name: str):
    """Raise ConfigurationError unless value is an int >= 1."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


def require_non_negative_int(value, name: str):
    """Raise ConfigurationError unless value is an int >= 0."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 0:
        raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")


def require_method(method: str):
    if method not in VALID_METHODS:
        raise ConfigurationError(
            f"Unknown correlation method {method!r}. Valid options: {VALID_METHODS}"
        )


def get_default_config() -> AnalyticsConfig:
    """Get the default analytics configuration."""
    config = AnalyticsConfig.default()
    config.validate()
    return config
