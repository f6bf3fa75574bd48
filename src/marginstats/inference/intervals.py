"""Confidence intervals, p-values and posterior summaries."""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
from scipy import stats

from .._typing import Float64Array


def check_conf_level(conf_level: float) -> float:
    if not 0 < conf_level < 1:
        raise ValueError(f"conf_level must be in (0, 1), got {conf_level}")
    return float(conf_level)


def reference_distribution(df: float = np.inf):
    """Standard normal for infinite df, Student t otherwise."""
    if df is None or np.isinf(df):
        return stats.norm
    if df <= 0:
        raise ValueError(f"df must be positive, got {df}")
    return stats.t(df)


def wald_intervals(
    estimate: Float64Array,
    std_error: Float64Array,
    conf_level: float = 0.95,
    df: float = np.inf,
    null: float = 0.0,
) -> pd.DataFrame:
    """Test statistics, two-sided p-values and symmetric intervals.

    Parameters
    ----------
    estimate : Float64Array
        Point estimates.
    std_error : Float64Array
        Standard errors.
    conf_level : float, default=0.95
        Confidence level.
    df : float, default=inf
        Degrees of freedom; normal reference when infinite.
    null : float, default=0.0
        Null hypothesis value for the statistic.

    Returns
    -------
    pd.DataFrame
        Columns 'statistic', 'p.value', 'conf.low', 'conf.high'.

    Notes
    -----
    A standard error of zero (up to rounding) leaves the statistic
    undefined and is reported with a warning. The p-value is then 1 when
    the estimate equals the null value and NaN otherwise.
    """
    dist = reference_distribution(df)
    q = dist.ppf(1 - (1 - conf_level) / 2)
    estimate = np.asarray(estimate, dtype=float)
    std_error = np.asarray(std_error, dtype=float)
    zero = std_error <= 1e-12 * np.maximum(1.0, np.abs(estimate))
    if zero.any():
        warnings.warn(
            f"{int(zero.sum())} estimate(s) have zero standard error; "
            "statistic is undefined and p.value is 1 only where the estimate equals the null",
            UserWarning,
        )
    with np.errstate(divide="ignore", invalid="ignore"):
        statistic = np.where(zero, np.nan, (estimate - null) / std_error)
    p_value = 2 * dist.sf(np.abs(statistic))
    at_null = np.abs(estimate - null) <= 1e-12 * max(1.0, abs(null))
    p_value = np.where(zero, np.where(at_null, 1.0, np.nan), p_value)
    return pd.DataFrame(
        {
            "statistic": statistic,
            "p.value": p_value,
            "conf.low": estimate - q * std_error,
            "conf.high": estimate + q * std_error,
        }
    )


def posterior_center(draws: Float64Array, center: str = "median") -> Float64Array:
    if center == "median":
        return np.median(draws, axis=1)
    if center == "mean":
        return np.mean(draws, axis=1)
    raise ValueError(f"Unknown posterior center: '{center}'. Choose from: ['median', 'mean']")


def hdi(x: Float64Array, conf_level: float = 0.95) -> tuple:
    """Narrowest interval holding ``conf_level`` of the sorted draws."""
    x = np.sort(x[~np.isnan(x)])
    n = len(x)
    exclude = n - int(np.floor(n * conf_level))
    if n == 0:
        return np.nan, np.nan
    if exclude == 0:
        return x[0], x[-1]
    widths = x[n - exclude :] - x[:exclude]
    i = int(np.argmin(widths))
    return x[i], x[n - exclude + i]


def draws_intervals(draws: Float64Array, conf_level: float = 0.95, method: str = "eti") -> pd.DataFrame:
    """Intervals from draws (one row per estimate), equal-tailed or HDI."""
    alpha = 1 - conf_level
    if method == "eti":
        lo, hi = np.nanquantile(draws, [alpha / 2, 1 - alpha / 2], axis=1)
    elif method == "hdi":
        bounds = np.array([hdi(row, conf_level) for row in draws]).reshape(-1, 2)
        lo, hi = bounds[:, 0], bounds[:, 1]
    else:
        raise ValueError(f"Unknown interval method: '{method}'. Choose from: ['eti', 'hdi']")
    return pd.DataFrame({"conf.low": lo, "conf.high": hi})
