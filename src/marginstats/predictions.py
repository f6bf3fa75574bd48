"""Adjusted predictions."""

from __future__ import annotations

import numpy as np

from .aggregation import attach_weights, average_by, prepare_by
from .config import resolve_settings
from .engine import Estimand, check_adapter, run
from .grid import counterfactual_grid, is_categorical, resolve_newdata
from .prediction import get_predictions
from .results import EstimateFrame


def _counterfactual_values(grid, variables) -> dict:
    if isinstance(variables, dict):
        return variables
    names = [variables] if isinstance(variables, str) else list(variables)
    return {
        name: "unique" if name in grid.columns and is_categorical(grid[name]) else "fivenum"
        for name in names
    }


def predictions(
    model,
    newdata=None,
    variables=None,
    vcov=True,
    conf_level: float = 0.95,
    type: str | None = None,
    by=None,
    wts=None,
    hypothesis=None,
    equivalence=None,
    transform=None,
    df: float = np.inf,
    inferences=None,
    settings=None,
) -> EstimateFrame:
    """Predictions on a grid, optionally averaged within groups.

    Parameters
    ----------
    model : ModelAdapter
        Wrapped model.
    newdata : pd.DataFrame or str, optional
        Grid. None uses the model data; "mean", "median", "tukey", "grid"
        and "balanced" build preset grids.
    variables : str, list or dict, optional
        Build a counterfactual grid over these variables. A dict maps
        each variable to its values; names alone use the unique levels of
        categorical variables and Tukey's five numbers otherwise.
    vcov : bool, str, array-like or None, default=True
        Uncertainty spec; False skips standard errors.
    conf_level : float, default=0.95
        Confidence level.
    type : str, optional
        Prediction type, e.g. "response" or "link".
    by : bool, str, list or pd.DataFrame, optional
        Average predictions within groups.
    wts : str or array-like, optional
        Weights for averages: a grid column or one value per grid row.
    hypothesis, equivalence, transform, df, inferences, settings
        See :func:`marginstats.engine.run`.

    Returns
    -------
    EstimateFrame

    Examples
    --------
    >>> predictions(model, newdata=datagrid(model, g="unique"))
    >>> predictions(model, by="g", hypothesis="pairwise")
    """
    settings = resolve_settings(settings)
    check_adapter(model).check_type(type)

    def make_grid(m):
        grid = resolve_newdata(m, newdata)
        if variables is not None:
            grid = counterfactual_grid(grid.drop(columns=["rowid"]), _counterfactual_values(grid, variables))
        return attach_weights(grid, wts)

    def evaluate(m, grid):
        pf = get_predictions(m, grid, type).dropna()
        staged, by_columns, active = prepare_by(pf, by)
        if not active:
            return pf
        keys = (["group"] if pf.has_groups else []) + by_columns
        return average_by(staged, keys, settings.posterior_center)

    return run(
        model,
        Estimand("predictions", make_grid, evaluate),
        vcov=vcov,
        conf_level=conf_level,
        df=df,
        hypothesis=hypothesis,
        equivalence=equivalence,
        transform=transform,
        inferences=inferences,
        settings=settings,
    )
