"""Prediction frames with posterior or resampled draws held beside the rows.

``draws`` is a side channel of shape (n_rows, n_draws). Every operation
that filters, reorders or stacks rows goes through a method of the frame
so the draws stay aligned with the rows they belong to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from ._typing import Float64Array
from .exceptions import PredictionError


def _as_draws(draws, n_rows: int) -> Float64Array | None:
    if draws is None:
        return None
    draws = np.asarray(draws, dtype=float)
    if draws.ndim == 1:
        draws = draws[:, np.newaxis]
    if draws.ndim != 2 or draws.shape[0] != n_rows:
        raise ValueError(
            f"draws must have shape (n_rows, n_draws) with n_rows={n_rows}, got {draws.shape}"
        )
    return draws


@dataclass
class PredictionFrame:
    """One estimate per (grid row, outcome group).

    Attributes
    ----------
    frame : pd.DataFrame
        Columns ``rowid``, optional ``group``, ``estimate`` and any grid
        columns attached by the prediction engine.
    draws : Float64Array, optional
        Posterior draws of the estimates, shape (len(frame), n_draws).
    """

    frame: pd.DataFrame
    draws: Float64Array | None = None

    def __post_init__(self):
        self.frame = self.frame.reset_index(drop=True)
        self.draws = _as_draws(self.draws, len(self.frame))

    @classmethod
    def from_array(
        cls,
        estimates,
        rowid,
        groups: Sequence | None = None,
        draws=None,
    ) -> "PredictionFrame":
        """Build a frame from raw adapter output.

        Parameters
        ----------
        estimates : array-like
            Shape (n,) for a single outcome or (n, G) for G outcome groups.
        rowid : array-like
            Row ids of the n scored grid rows.
        groups : sequence, optional
            Labels of the G outcome groups. Defaults to 0..G-1.
        draws : array-like, optional
            Shape (n, D) or (n, G, D).

        Returns
        -------
        PredictionFrame
            Rows in group-major order: all grid rows of the first group,
            then all grid rows of the second group, and so on.
        """
        estimates = np.asarray(estimates, dtype=float)
        rowid = np.asarray(rowid)
        n = len(rowid)
        if estimates.shape[0] != n:
            raise PredictionError(f"Model returned {estimates.shape[0]} predictions for {n} grid rows")
        if draws is not None:
            draws = np.asarray(draws, dtype=float)

        if estimates.ndim == 1:
            frame = pd.DataFrame({"rowid": rowid, "estimate": estimates})
            return cls(frame, draws)

        n_groups = estimates.shape[1]
        if groups is None:
            groups = list(range(n_groups))
        if len(groups) != n_groups:
            raise PredictionError(f"Got {len(groups)} group labels for {n_groups} outcome columns")
        frame = pd.DataFrame(
            {
                "rowid": np.tile(rowid, n_groups),
                "group": np.repeat(np.asarray(groups, dtype=object), n),
                "estimate": estimates.ravel(order="F"),
            }
        )
        if draws is not None:
            if draws.ndim != 3:
                raise PredictionError("Grouped predictions need draws of shape (n, G, D)")
            draws = draws.transpose(1, 0, 2).reshape(n_groups * n, draws.shape[2])
        return cls(frame, draws)

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def estimate(self) -> Float64Array:
        return self.frame["estimate"].to_numpy(dtype=float)

    @property
    def has_groups(self) -> bool:
        return "group" in self.frame.columns

    def values(self) -> Float64Array:
        """Draws if present, else the estimates as a single column."""
        if self.draws is not None:
            return self.draws
        return self.estimate[:, np.newaxis]

    def take(self, indices) -> "PredictionFrame":
        indices = np.asarray(indices, dtype=int)
        draws = None if self.draws is None else self.draws[indices]
        return type(self)(self.frame.iloc[indices], draws)

    def subset(self, mask) -> "PredictionFrame":
        return self.take(np.flatnonzero(np.asarray(mask, dtype=bool)))

    def dropna(self) -> "PredictionFrame":
        """Drop rows whose estimate is missing, with their draws."""
        mask = self.frame["estimate"].notna().to_numpy()
        if mask.all():
            return self
        return self.subset(mask)

    def with_columns(self, columns: pd.DataFrame) -> "PredictionFrame":
        """Attach columns positionally; existing names are kept."""
        columns = columns.reset_index(drop=True)
        extra = [c for c in columns.columns if c not in self.frame.columns]
        frame = pd.concat([self.frame, columns[extra]], axis=1)
        return type(self)(frame, self.draws)

    @classmethod
    def concat(cls, frames: Sequence["PredictionFrame"]) -> "PredictionFrame":
        frames = list(frames)
        with_draws = [f.draws is not None for f in frames]
        if any(with_draws) and not all(with_draws):
            raise ValueError("Cannot stack frames with and without draws")
        draws = np.vstack([f.draws for f in frames]) if all(with_draws) and frames else None
        return cls(pd.concat([f.frame for f in frames], ignore_index=True), draws)
