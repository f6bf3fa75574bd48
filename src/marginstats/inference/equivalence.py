"""Two one-sided tests (TOST) for equivalence, non-inferiority and non-superiority."""

from __future__ import annotations

import numpy as np
import pandas as pd

from .intervals import reference_distribution


def equivalence_test(frame: pd.DataFrame, interval, df: float = np.inf) -> pd.DataFrame:
    """Add TOST columns to ``frame``.

    Parameters
    ----------
    frame : pd.DataFrame
        Must hold 'estimate' and 'std.error'.
    interval : tuple of float
        Equivalence bounds (low, high).
    df : float, default=inf
        Degrees of freedom; normal reference when infinite.

    Returns
    -------
    pd.DataFrame
        Copy of ``frame`` with 'statistic.noninf', 'statistic.nonsup',
        'p.value.noninf', 'p.value.nonsup' and 'p.value.equiv'.

    Notes
    -----
    Non-inferiority tests H0: estimate <= low with the upper tail;
    non-superiority tests H0: estimate >= high with the lower tail.
    Equivalence holds when both reject, so its p-value is the larger one.
    """
    low, high = _check_interval(interval)
    if "std.error" not in frame.columns:
        raise ValueError("Equivalence tests need standard errors; uncertainty was not computed")
    estimate = frame["estimate"].to_numpy(dtype=float)
    se = frame["std.error"].to_numpy(dtype=float)
    dist = reference_distribution(df)

    out = frame.copy()
    out["statistic.noninf"] = (estimate - low) / se
    out["statistic.nonsup"] = (estimate - high) / se
    out["p.value.noninf"] = dist.sf(out["statistic.noninf"].to_numpy())
    out["p.value.nonsup"] = dist.cdf(out["statistic.nonsup"].to_numpy())
    out["p.value.equiv"] = np.maximum(out["p.value.noninf"], out["p.value.nonsup"])
    return out


def _check_interval(interval) -> tuple:
    try:
        low, high = (float(v) for v in interval)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"equivalence must be two numbers (low, high), got {interval!r}") from exc
    if not low <= high:
        raise ValueError(f"equivalence bounds must satisfy low <= high, got ({low}, {high})")
    return low, high
