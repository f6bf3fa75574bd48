"""Results container for estimands with uncertainty.

This module provides the EstimateFrame class returned by every public
function. It wraps a DataFrame of estimates and keeps the Jacobian,
covariance and draws beside it so follow-up hypothesis tests can reuse
them.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from tabulate import tabulate

from ._typing import Float64Array
from .frames import _as_draws

# Columns shown by summary(), in display order
DISPLAY_COLUMNS = [
    "term",
    "contrast",
    "value",
    "group",
    "estimate",
    "std.error",
    "statistic",
    "p.value",
    "conf.low",
    "conf.high",
    "statistic.noninf",
    "statistic.nonsup",
    "p.value.noninf",
    "p.value.nonsup",
    "p.value.equiv",
]

UNCERTAINTY_COLUMNS = [
    "std.error",
    "statistic",
    "p.value",
    "conf.low",
    "conf.high",
    "statistic.noninf",
    "statistic.nonsup",
    "p.value.noninf",
    "p.value.nonsup",
    "p.value.equiv",
]


@dataclass
class EstimateFrame:
    """Container for estimates with statistical inference.

    Attributes
    ----------
    frame : pd.DataFrame
        One row per estimate: identifying columns (``term``, ``contrast``,
        ``group``, grouping variables) followed by ``estimate`` and, when
        uncertainty was requested, ``std.error``, ``statistic``,
        ``p.value``, ``conf.low`` and ``conf.high``.
    draws : Float64Array, optional
        Posterior, bootstrap or simulation draws (n_estimates, n_draws).
    jacobian : Float64Array, optional
        Derivative of the estimates with respect to the model
        coefficients (n_estimates, n_coefficients).
    vcov : Float64Array, optional
        Coefficient covariance used with the Jacobian.
    conf_level : float
        Confidence level of the intervals.
    kind : str
        Name of the function that produced the frame.
    inference : str
        "delta", "draws", "bootstrap", "simulation" or "none".

    Examples
    --------
    >>> est = comparisons(model, variables="x")
    >>> print(est.summary())
    >>> est.confint()
    """

    frame: pd.DataFrame
    draws: Float64Array | None = None
    jacobian: Float64Array | None = None
    vcov: Float64Array | None = None
    conf_level: float = 0.95
    kind: str = "predictions"
    inference: str = "none"

    def __post_init__(self):
        self.frame = self.frame.reset_index(drop=True)
        self.draws = _as_draws(self.draws, len(self.frame))
        if self.jacobian is not None:
            self.jacobian = np.asarray(self.jacobian, dtype=float)
            if self.jacobian.shape[0] != len(self.frame):
                raise ValueError(
                    f"jacobian has {self.jacobian.shape[0]} rows, frame has {len(self.frame)}"
                )

    def __len__(self) -> int:
        return len(self.frame)

    def __getitem__(self, key):
        return self.frame[key]

    @property
    def columns(self) -> pd.Index:
        return self.frame.columns

    @property
    def estimate(self) -> Float64Array:
        return self.frame["estimate"].to_numpy(dtype=float)

    @property
    def std_error(self) -> Float64Array | None:
        if "std.error" not in self.frame.columns:
            return None
        return self.frame["std.error"].to_numpy(dtype=float)

    def values(self) -> Float64Array:
        """Draws if present, else the estimates as a single column."""
        if self.draws is not None:
            return self.draws
        return self.estimate[:, np.newaxis]

    def take(self, indices) -> "EstimateFrame":
        """Select rows by position; draws and Jacobian rows follow."""
        indices = np.asarray(indices, dtype=int)
        return EstimateFrame(
            frame=self.frame.iloc[indices],
            draws=None if self.draws is None else self.draws[indices],
            jacobian=None if self.jacobian is None else self.jacobian[indices],
            vcov=self.vcov,
            conf_level=self.conf_level,
            kind=self.kind,
            inference=self.inference,
        )

    def subset(self, mask) -> "EstimateFrame":
        return self.take(np.flatnonzero(np.asarray(mask, dtype=bool)))

    def to_pandas(self) -> pd.DataFrame:
        return self.frame.copy()

    def confint(self) -> pd.DataFrame:
        """Confidence intervals.

        Returns
        -------
        pd.DataFrame
            Columns ['estimate', 'conf.low', 'conf.high'].
        """
        if "conf.low" not in self.frame.columns:
            raise ValueError("No confidence intervals: uncertainty was not computed")
        return self.frame[["estimate", "conf.low", "conf.high"]].copy()

    def posterior_draws(self) -> pd.DataFrame:
        """Draws in long format, one row per (estimate, draw)."""
        if self.draws is None:
            raise ValueError("No draws available. Use posterior coefficients, Bootstrap or Simulation")
        n, n_draws = self.draws.shape
        long = self.frame.loc[np.repeat(np.arange(n), n_draws)].reset_index(drop=True)
        long.insert(0, "drawid", np.tile(np.arange(n_draws), n))
        long["draw"] = self.draws.ravel()
        return long

    def summary(self, digits: int = 4) -> str:
        """Generate a plain text summary table.

        Parameters
        ----------
        digits : int, default=4
            Decimal places for floats.

        Returns
        -------
        str
            Formatted summary table.
        """
        extra = [c for c in self.frame.columns if c not in DISPLAY_COLUMNS and not _is_internal(c)]
        id_columns = [c for c in DISPLAY_COLUMNS[:4] if c in self.frame.columns]
        stat_columns = [c for c in DISPLAY_COLUMNS[4:] if c in self.frame.columns]
        shown = id_columns + [c for c in extra if c not in ("rowid", "rowidcf")] + stat_columns
        table = self.frame[shown]

        lines = []
        lines.append("=" * 78)
        lines.append(f"{self.kind.replace('_', ' ').capitalize():^78}")
        lines.append("=" * 78)
        lines.append(f"Estimates:        {len(self.frame):,}")
        lines.append(f"Inference:        {self.inference}")
        if "conf.low" in self.frame.columns:
            lines.append(f"Conf. level:      {self.conf_level:.0%}")
        lines.append("-" * 78)
        lines.append(
            tabulate(
                table.itertuples(index=False),
                headers=list(table.columns),
                tablefmt="simple",
                floatfmt=f".{digits}f",
            )
        )
        lines.append("=" * 78)
        return "\n".join(lines)

    def __repr__(self) -> str:
        cols = ", ".join(c for c in DISPLAY_COLUMNS if c in self.frame.columns)
        return (
            f"EstimateFrame(kind='{self.kind}', n={len(self.frame)}, "
            f"inference='{self.inference}', columns=[{cols}])"
        )


def _is_internal(column) -> bool:
    return str(column).startswith("_")
