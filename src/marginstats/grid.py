"""Reference grids: the covariate profiles at which a model is evaluated.

A typical grid holds one row per combination of user-specified values,
with every other variable fixed at a summary of the data. A
counterfactual grid replicates the whole dataset once per combination.
"""

from __future__ import annotations

import itertools
from typing import Callable

import numpy as np
import pandas as pd

from .exceptions import UnknownVariable

GRID_TYPES = ("typical", "counterfactual")
PRESET_GRIDS = ("mean", "median", "tukey", "grid", "balanced")


def is_categorical(series: pd.Series) -> bool:
    """True for categorical, string, object and boolean columns."""
    return (
        isinstance(series.dtype, pd.CategoricalDtype)
        or pd.api.types.is_bool_dtype(series)
        or pd.api.types.is_object_dtype(series)
        or pd.api.types.is_string_dtype(series)
    )


def mode(x: pd.Series):
    """Most frequent value; ties go to the lowest level."""
    modes = x.dropna().mode()
    if modes.empty:
        raise ValueError(f"Cannot take the mode of empty column '{x.name}'")
    return modes.iloc[0]


def summarize(x: pd.Series):
    """Typical value: mean, rounded mean for integers, mode for categories."""
    if is_categorical(x):
        return mode(x)
    if pd.api.types.is_integer_dtype(x):
        return int(np.round(x.mean()))
    return float(x.mean())


def unique_values(x: pd.Series) -> list:
    if isinstance(x.dtype, pd.CategoricalDtype):
        observed = set(x.dropna())
        return [c for c in x.cat.categories if c in observed]
    return sorted(x.dropna().unique())


def fivenum(x: pd.Series) -> list:
    """Tukey's five-number summary (minimum, hinges, median, maximum)."""
    v = np.sort(x.dropna().to_numpy(dtype=float))
    n = len(v)
    n4 = np.floor((n + 3) / 2) / 2
    d = np.array([1, n4, (n + 1) / 2, n + 1 - n4, n]) - 1
    return list(0.5 * (v[np.floor(d).astype(int)] + v[np.ceil(d).astype(int)]))


def threenum(x: pd.Series) -> list:
    m, s = float(x.mean()), float(x.std())
    return [m - s, m, m + s]


GENERATORS: dict[str, Callable] = {
    "mean": lambda x: [float(x.mean())],
    "median": lambda x: [float(x.median())],
    "mode": lambda x: [mode(x)],
    "min": lambda x: [x.min()],
    "max": lambda x: [x.max()],
    "unique": unique_values,
    "range": lambda x: [x.min(), x.max()],
    "minmax": lambda x: [x.min(), x.max()],
    "fivenum": fivenum,
    "tukey": fivenum,
    "threenum": threenum,
    "iqr": lambda x: [float(x.quantile(0.25)), float(x.quantile(0.75))],
}


def _resolve_values(data: pd.DataFrame, name: str, spec) -> list:
    if name not in data.columns:
        raise UnknownVariable(name, data.columns)
    column = data[name]
    if isinstance(spec, str) and spec in GENERATORS and not is_categorical(column):
        return list(GENERATORS[spec](column))
    if isinstance(spec, str) and spec in ("mode", "unique", "min", "max") and is_categorical(column):
        return list(GENERATORS[spec](column))
    if callable(spec):
        return list(np.atleast_1d(spec(column)))
    if isinstance(spec, (list, tuple, np.ndarray, pd.Series, pd.Index, pd.Categorical)):
        return list(spec)
    return [spec]


def _restore_dtypes(grid: pd.DataFrame, data: pd.DataFrame) -> pd.DataFrame:
    for name in grid.columns:
        if name not in data.columns:
            continue
        dtype = data[name].dtype
        if isinstance(dtype, pd.CategoricalDtype):
            grid[name] = pd.Categorical(grid[name], categories=dtype.categories, ordered=dtype.ordered)
        elif pd.api.types.is_bool_dtype(dtype):
            grid[name] = grid[name].astype(bool)
    return grid


def typical_grid(data: pd.DataFrame, values: dict, columns=None) -> pd.DataFrame:
    """One row per combination of ``values``; other columns at their summary.

    Parameters
    ----------
    data : pd.DataFrame
        Data used to summarize unspecified columns and to evaluate
        value generators.
    values : dict
        Mapping of column name to explicit values, a generator name or
        a callable.
    columns : list, optional
        Columns to include. Defaults to every column of ``data``.

    Returns
    -------
    pd.DataFrame
        Grid with a ``rowid`` column.
    """
    columns = list(data.columns) if columns is None else list(columns)
    resolved = {name: _resolve_values(data, name, spec) for name, spec in values.items()}
    combos = list(itertools.product(*resolved.values()))
    grid = pd.DataFrame(combos, columns=list(resolved)) if resolved else pd.DataFrame(index=[0])
    for name in columns:
        if name in resolved:
            continue
        if name not in data.columns:
            raise UnknownVariable(name, data.columns)
        grid[name] = [summarize(data[name])] * len(grid)
    ordered = [c for c in columns if c in grid.columns] + [c for c in resolved if c not in columns]
    grid = _restore_dtypes(grid[ordered].copy(), data)
    grid["rowid"] = np.arange(len(grid))
    return grid


def counterfactual_grid(data: pd.DataFrame, values: dict) -> pd.DataFrame:
    """Replicate ``data`` once per combination of ``values``.

    The result has ``len(data) * n_combinations`` rows; ``rowidcf`` holds
    each row's position in the original data.
    """
    resolved = {name: _resolve_values(data, name, spec) for name, spec in values.items()}
    base = data.drop(columns=[c for c in ("rowid", "rowidcf") if c in data.columns]).reset_index(drop=True)
    copies = []
    for combo in itertools.product(*resolved.values()):
        replica = base.copy()
        for name, value in zip(resolved, combo):
            replica[name] = [value] * len(replica)
        replica["rowidcf"] = np.arange(len(base))
        copies.append(replica)
    grid = _restore_dtypes(pd.concat(copies, ignore_index=True), data)
    grid["rowid"] = np.arange(len(grid))
    return grid


def datagrid(
    model=None, newdata: pd.DataFrame | None = None, grid_type: str = "typical", **values
) -> pd.DataFrame:
    """Build a reference grid.

    Parameters
    ----------
    model : ModelAdapter, optional
        Supplies the data (when ``newdata`` is None) and the predictor
        columns of a typical grid.
    newdata : pd.DataFrame, optional
        Data to summarize. Defaults to the model data.
    grid_type : str, default="typical"
        "typical" or "counterfactual".
    **values
        Column name to explicit values, a generator name ("mean",
        "median", "mode", "min", "max", "unique", "range", "minmax",
        "fivenum", "threenum", "iqr") or a callable applied to the column.

    Returns
    -------
    pd.DataFrame
        The grid, with ``rowid`` (and ``rowidcf`` for counterfactual grids).

    Raises
    ------
    UnknownVariable
        If a named variable is not in the data.

    Examples
    --------
    >>> datagrid(model, x=[1, 2], g="unique")
    >>> datagrid(newdata=df, grid_type="counterfactual", treat=[0, 1])
    """
    if grid_type not in GRID_TYPES:
        raise ValueError(f"Unknown grid_type: '{grid_type}'. Choose from: {list(GRID_TYPES)}")
    if newdata is None:
        if model is None:
            raise ValueError("datagrid needs a model or newdata")
        newdata = model.get_modeldata()
    if grid_type == "counterfactual":
        return counterfactual_grid(newdata, values)

    if model is not None:
        columns = list(model.find_predictors())
    else:
        columns = [c for c in newdata.columns if c not in ("rowid", "rowidcf")]
    return typical_grid(newdata, values, columns=columns)


def preset_grid(model, name: str) -> pd.DataFrame:
    """Named grids: mean, median, tukey, grid and balanced."""
    data = model.get_modeldata()
    predictors = list(model.find_predictors())
    missing = [p for p in predictors if p not in data.columns]
    if missing:
        raise UnknownVariable(missing, data.columns)
    numeric = [p for p in predictors if not is_categorical(data[p])]
    categorical = [p for p in predictors if is_categorical(data[p])]

    if name == "mean":
        values = {}
    elif name == "median":
        values = {p: "median" for p in numeric}
    elif name == "tukey":
        values = {p: "fivenum" for p in numeric}
    elif name == "grid":
        values = {p: "fivenum" for p in numeric}
        values.update({p: "unique" for p in categorical})
    elif name == "balanced":
        values = {p: "unique" for p in categorical}
    else:
        raise ValueError(f"Unknown newdata: '{name}'. Choose from: {list(PRESET_GRIDS)}")
    return typical_grid(data, values, columns=predictors)


def resolve_newdata(model, newdata) -> pd.DataFrame:
    """Grid from a ``newdata`` argument: None, a preset name, or a DataFrame."""
    if newdata is None:
        grid = model.get_modeldata().copy()
    elif isinstance(newdata, str):
        return preset_grid(model, newdata)
    elif isinstance(newdata, pd.DataFrame):
        grid = newdata.copy()
    else:
        raise TypeError(f"newdata must be None, a DataFrame or one of {list(PRESET_GRIDS)}")
    grid = grid.reset_index(drop=True)
    if "rowid" not in grid.columns:
        grid["rowid"] = np.arange(len(grid))
    return grid
