"""Marginal means over a balanced grid of categorical predictors."""

from __future__ import annotations

import numpy as np
import pandas as pd

from .aggregation import WEIGHTS, average_by, prepare_by
from .config import resolve_settings
from .engine import Estimand, check_adapter, run
from .exceptions import UnknownVariable
from .frames import PredictionFrame
from .grid import is_categorical, typical_grid
from .prediction import get_predictions
from .results import EstimateFrame

WEIGHT_TYPES = ("equal", "cells", "proportional")


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def cell_weights(frame: pd.DataFrame, data: pd.DataFrame, columns: list) -> np.ndarray:
    """Number of observations in the data sharing each row's values of ``columns``."""
    if not columns:
        return np.ones(len(frame))
    counts = data.groupby(columns, observed=True).size().rename("_n").reset_index()
    merged = frame[columns].merge(counts, how="left", on=columns)
    return merged["_n"].fillna(0).to_numpy(dtype=float)


def marginal_means(
    model,
    variables=None,
    variables_grid=None,
    vcov=True,
    conf_level: float = 0.95,
    type: str | None = None,
    transform=None,
    cross: bool = False,
    hypothesis=None,
    equivalence=None,
    wts: str = "equal",
    by=None,
    df: float = np.inf,
    inferences=None,
    settings=None,
) -> EstimateFrame:
    """Average predictions over a balanced grid, one mean per level.

    The grid holds every combination of the levels of ``variables_grid``
    (the categorical predictors by default), with numeric predictors at
    their mean. Predictions are averaged within each level of each focal
    variable.

    Parameters
    ----------
    model : ModelAdapter
        Wrapped model.
    variables : str or list, optional
        Focal categorical variables; all categorical predictors by default.
    variables_grid : str or list, optional
        Categorical variables spanning the grid.
    type : str, optional
        Prediction type. When None and the model has a link, means are
        computed on the link scale and mapped back through the inverse
        link (unless ``transform`` is given).
    cross : bool, default=False
        One mean per combination of the focal variables.
    wts : str, default="equal"
        "equal" weighs grid rows equally; "cells" by the number of
        observations in each cell; "proportional" by the frequency of the
        non-focal grid variables.
    by : str, list or pd.DataFrame, optional
        Extra grouping columns, or a mapping frame with a "by" column.
    vcov, conf_level, hypothesis, equivalence, transform, df, inferences, settings
        See :func:`marginstats.engine.run`.

    Returns
    -------
    EstimateFrame
        Columns 'term' and 'value' identify the mean, except with
        ``cross=True`` where the focal variables are kept as columns.
    """
    settings = resolve_settings(settings)
    check_adapter(model)
    if wts not in WEIGHT_TYPES:
        raise ValueError(f"Unknown wts: '{wts}'. Choose from: {list(WEIGHT_TYPES)}")
    data = model.get_modeldata()
    predictors = list(model.find_predictors())
    categorical = [p for p in predictors if p in data.columns and is_categorical(data[p])]

    focal = _as_list(variables) or categorical
    if not focal:
        raise ValueError("Marginal means need at least one categorical predictor")
    for name in focal:
        if name not in data.columns:
            raise UnknownVariable(name, data.columns)
        if not is_categorical(data[name]):
            raise ValueError(f"Variable '{name}' is numeric; marginal means need categorical variables")
    grid_vars = _as_list(variables_grid) or categorical
    grid_vars = grid_vars + [v for v in focal if v not in grid_vars]
    missing = [v for v in grid_vars if v not in data.columns]
    if missing:
        raise UnknownVariable(missing, data.columns)

    if type is None and transform is None and "link" in model.types and model.link_inverse() is not None:
        type, transform = "link", model.link_inverse()
    model.check_type(type)
    mapping = isinstance(by, pd.DataFrame)

    def make_grid(m):
        columns = list(m.find_predictors())
        columns += [v for v in grid_vars if v not in columns]
        return typical_grid(m.get_modeldata(), {v: "unique" for v in grid_vars}, columns=columns)

    def evaluate(m, grid):
        pf = get_predictions(m, grid, type).dropna()
        groups = ["group"] if pf.has_groups else []
        d = m.get_modeldata()
        blocks = []
        for targets in ([focal] if cross else [[v] for v in focal]):
            frame = pf.frame
            if wts == "cells":
                frame = frame.assign(**{WEIGHTS: cell_weights(frame, d, grid_vars)})
            elif wts == "proportional":
                others = [g for g in grid_vars if g not in targets]
                frame = frame.assign(**{WEIGHTS: cell_weights(frame, d, others)})
            staged, extra, _ = prepare_by(PredictionFrame(frame, pf.draws), by)
            keys = groups + (extra if mapping else targets + [c for c in extra if c not in targets])
            averaged = average_by(staged, keys, settings.posterior_center)
            out = averaged.frame.drop(columns=[WEIGHTS], errors="ignore")
            if not cross and not mapping:
                name = targets[0]
                out.insert(0, "term", name)
                out.insert(1, "value", out.pop(name).astype(object))
            blocks.append(PredictionFrame(out, averaged.draws))
        return PredictionFrame.concat(blocks)

    return run(
        model,
        Estimand("marginal_means", make_grid, evaluate),
        vcov=vcov,
        conf_level=conf_level,
        df=df,
        hypothesis=hypothesis,
        equivalence=equivalence,
        transform=transform,
        inferences=inferences,
        settings=settings,
    )
