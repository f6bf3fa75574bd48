"""Prediction engine: score a grid and reattach the grid columns."""

from __future__ import annotations

import numpy as np
import pandas as pd

from .exceptions import PredictionError
from .frames import PredictionFrame


def get_predictions(
    model, grid: pd.DataFrame, type: str | None = None, attach: pd.DataFrame | None = None
) -> PredictionFrame:
    """Score ``grid`` and attach its columns to every prediction.

    The adapter returns one row per (grid row, outcome group), grouped
    outcome-major. Side columns are tiled by that multiplicity and the
    row ids are checked against the tiling.

    Parameters
    ----------
    model : ModelAdapter
        Wrapped model.
    grid : pd.DataFrame
        Grid with a ``rowid`` column.
    type : str, optional
        Prediction type; the adapter default when None.
    attach : pd.DataFrame, optional
        Columns to tile next to the predictions instead of ``grid``'s
        own, aligned row for row with ``grid``.

    Returns
    -------
    PredictionFrame
        Rows with missing estimates are kept; callers drop them with
        ``dropna`` once all aligned frames are assembled.
    """
    if "rowid" not in grid.columns:
        grid = grid.assign(rowid=np.arange(len(grid)))
    n = len(grid)
    if n == 0:
        raise PredictionError("Cannot predict on an empty grid")
    pred = model.predict(grid, type=type)
    if not isinstance(pred, PredictionFrame):
        raise PredictionError(f"{type_name(model)}.predict must return a PredictionFrame")

    m = len(pred)
    if m == 0 or m % n != 0:
        raise PredictionError(f"Model returned {m} predictions for {n} grid rows")
    mult = m // n
    expected = np.tile(grid["rowid"].to_numpy(), mult)
    if not np.array_equal(pred.frame["rowid"].to_numpy(), expected):
        raise PredictionError("Predictions are not aligned with the grid row ids")

    side = grid if attach is None else attach
    if len(side) != n:
        raise ValueError(f"attach has {len(side)} rows, grid has {n}")
    side = side.drop(columns=[c for c in side.columns if c in pred.frame.columns])
    return pred.with_columns(side.iloc[np.tile(np.arange(n), mult)])


def type_name(model) -> str:
    return type(model).__name__
