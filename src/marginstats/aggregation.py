"""Aggregation engine: weighted averages of estimates within groups.

Averaging is applied to the value matrix (estimates or draws), so
posterior draws are averaged draw by draw. Averaging an already
averaged frame with the same keys returns it unchanged.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from ._typing import BySpec
from .exceptions import UnknownVariable
from .frames import PredictionFrame
from .inference.intervals import posterior_center

WEIGHTS = "_wts"


def attach_weights(grid: pd.DataFrame, wts) -> pd.DataFrame:
    """Add the ``_wts`` column from a column name or an array."""
    if wts is None:
        return grid
    if isinstance(wts, str):
        if wts not in grid.columns:
            raise UnknownVariable(wts, grid.columns)
        weights = grid[wts].to_numpy(dtype=float)
    else:
        weights = np.asarray(wts, dtype=float).ravel()
        if weights.shape[0] != len(grid):
            raise ValueError(f"wts has {weights.shape[0]} values, the grid has {len(grid)} rows")
    if np.any(weights < 0) or np.any(np.isnan(weights)):
        raise ValueError("wts must be non-negative and not missing")
    return grid.assign(**{WEIGHTS: weights})


def prepare_by(pf: PredictionFrame, by: BySpec) -> tuple:
    """Normalize ``by`` against the columns of ``pf``.

    Returns
    -------
    tuple
        (frame, by_columns, active). ``active`` is False when no
        aggregation was requested. A mapping DataFrame is merged on its
        shared columns and contributes a ``by`` column.
    """
    if by is None or by is False:
        return pf, [], False
    if by is True:
        return pf, [], True
    if isinstance(by, pd.DataFrame):
        if "by" not in by.columns:
            raise ValueError("A DataFrame passed to by= must have a 'by' column")
        on = [c for c in by.columns if c != "by" and c in pf.frame.columns]
        if not on:
            raise UnknownVariable([c for c in by.columns if c != "by"], pf.frame.columns)
        mapping = by[on + ["by"]].drop_duplicates(on)
        merged = pf.frame.drop(columns=["by"], errors="ignore").merge(mapping, how="left", on=on)
        if len(merged) != len(pf.frame):
            raise ValueError("The by= mapping must have one row per combination of its keys")
        return PredictionFrame(merged, pf.draws), ["by"], True
    columns = [by] if isinstance(by, str) else list(by)
    missing = [c for c in columns if c not in pf.frame.columns]
    if missing:
        raise UnknownVariable(missing, pf.frame.columns)
    return pf, columns, True


def _keeps_appearance_order(key) -> bool:
    return key == "term" or str(key).startswith("contrast")


def group_codes(frame: pd.DataFrame, keys: list) -> np.ndarray:
    """Group index of each row.

    Term and contrast labels keep the order in which they were generated;
    other keys are sorted.
    """
    if not keys:
        return np.zeros(len(frame), dtype=int)
    ranks = [pd.factorize(frame[key], sort=not _keeps_appearance_order(key))[0] for key in keys]
    _, codes = np.unique(np.column_stack(ranks), axis=0, return_inverse=True)
    return codes.ravel()


def weighted_group_means(
    values: np.ndarray, codes: np.ndarray, weights: np.ndarray | None = None
) -> np.ndarray:
    """Row-weighted mean of ``values`` (n, D) within each group code."""
    n_groups = int(codes.max()) + 1 if len(codes) else 0
    w = np.ones(len(codes)) if weights is None else np.asarray(weights, dtype=float)
    totals = np.bincount(codes, weights=w, minlength=n_groups)
    if np.any(totals <= 0):
        raise ValueError("Every group needs a positive total weight")
    sums = np.zeros((n_groups, values.shape[1]))
    np.add.at(sums, codes, values * w[:, np.newaxis])
    return sums / totals[:, np.newaxis]


def average_by(pf: PredictionFrame, keys: list, center: str = "median") -> PredictionFrame:
    """Collapse ``pf`` to one row per combination of ``keys``.

    Parameters
    ----------
    pf : PredictionFrame
        Per-row estimates, optionally with draws and a ``_wts`` column.
    keys : list
        Grouping columns; an empty list averages every row.
    center : str, default="median"
        How estimates are recovered from averaged draws.

    Returns
    -------
    PredictionFrame
        Key columns, ``estimate`` and, when weighted, the summed ``_wts``.
    """
    frame = pf.frame
    missing = [k for k in keys if k not in frame.columns]
    if missing:
        raise UnknownVariable(missing, frame.columns)
    codes = group_codes(frame, keys)
    weights = frame[WEIGHTS].to_numpy(dtype=float) if WEIGHTS in frame.columns else None
    averaged = weighted_group_means(pf.values(), codes, weights)

    _, first = np.unique(codes, return_index=True)
    meta = frame.iloc[first][keys].reset_index(drop=True)
    if weights is not None:
        meta[WEIGHTS] = np.bincount(codes, weights=weights)
    return frame_from_values(meta, averaged, pf.draws is not None, center)


def frame_from_values(
    meta: pd.DataFrame, values: np.ndarray, with_draws: bool, center: str = "median"
) -> PredictionFrame:
    """Pair identifying columns with a value matrix.

    With draws, the estimate is the posterior center of each row;
    otherwise it is the single value column.
    """
    meta = meta.reset_index(drop=True).copy()
    if with_draws:
        meta["estimate"] = posterior_center(values, center)
        return PredictionFrame(meta, values)
    meta["estimate"] = values[:, 0]
    return PredictionFrame(meta)
