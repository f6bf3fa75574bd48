"""Comparisons (contrasts) and slopes."""

from __future__ import annotations

import numpy as np

from .aggregation import attach_weights
from .config import resolve_settings
from .contrasts import evaluate_contrasts, resolve_variables
from .engine import Estimand, check_adapter, run
from .grid import resolve_newdata
from .results import EstimateFrame
from .transforms import SLOPE_TRANSFORMS


def comparisons(
    model,
    newdata=None,
    variables=None,
    comparison="difference",
    vcov=True,
    conf_level: float = 0.95,
    type: str | None = None,
    by=None,
    wts=None,
    hypothesis=None,
    equivalence=None,
    transform=None,
    cross: bool = False,
    eps: float | None = None,
    df: float = np.inf,
    inferences=None,
    settings=None,
) -> EstimateFrame:
    """Compare predictions at two values of each focal variable.

    Parameters
    ----------
    model : ModelAdapter
        Wrapped model.
    newdata : pd.DataFrame or str, optional
        Grid; None uses the model data.
    variables : str, list or dict, optional
        Focal variables, all predictors by default. A dict maps each
        variable to its contrast: for numeric variables a step (default
        1, centered on the observed value), "sd", "2sd", "iqr",
        "minmax", a (lo, hi) pair or a callable; for categorical ones
        "reference", "revreference", "sequential", "revsequential",
        "pairwise", "revpairwise", "all" or a (lo, hi) pair of levels.
    comparison : str or callable, default="difference"
        Transform of the paired predictions; see
        :mod:`marginstats.transforms`.
    cross : bool, default=False
        Change all focal variables at once.
    eps : float, optional
        Step for slope transforms; by default a fraction of each
        variable's range.
    vcov, conf_level, type, by, wts, hypothesis, equivalence, transform, df, inferences, settings
        See :func:`predictions` and :func:`marginstats.engine.run`.

    Returns
    -------
    EstimateFrame
        One row per (term, contrast, group, grid row), or per group when
        ``by`` is given.
    """
    settings = resolve_settings(settings)
    check_adapter(model).check_type(type)
    by_active = by is not None and by is not False

    def make_grid(m):
        return attach_weights(resolve_newdata(m, newdata), wts)

    def evaluate(m, grid):
        specs = resolve_variables(
            m, grid, variables, comparison, settings, by_active=by_active, cross=cross, eps=eps
        )
        return evaluate_contrasts(m, grid, specs, type=type, by=by, cross=cross, settings=settings)

    return run(
        model,
        Estimand("comparisons", make_grid, evaluate),
        vcov=vcov,
        conf_level=conf_level,
        df=df,
        hypothesis=hypothesis,
        equivalence=equivalence,
        transform=transform,
        inferences=inferences,
        settings=settings,
    )


def slopes(
    model,
    newdata=None,
    variables=None,
    slope: str = "dydx",
    vcov=True,
    conf_level: float = 0.95,
    type: str | None = None,
    by=None,
    wts=None,
    hypothesis=None,
    equivalence=None,
    eps: float | None = None,
    df: float = np.inf,
    inferences=None,
    settings=None,
) -> EstimateFrame:
    """Partial derivatives and elasticities.

    ``slope`` is one of "dydx", "eyex", "eydx", "dyex", their "*avg"
    forms, or "expdydx"/"expdydxavg". Categorical variables get the
    difference between levels.

    Examples
    --------
    >>> slopes(model, variables="x")
    >>> slopes(model, variables="x", slope="eyex", by=True)
    """
    if slope not in SLOPE_TRANSFORMS:
        raise ValueError(f"Unknown slope: {slope}. Available: {list(SLOPE_TRANSFORMS)}")
    est = comparisons(
        model,
        newdata=newdata,
        variables=variables,
        comparison=slope,
        vcov=vcov,
        conf_level=conf_level,
        type=type,
        by=by,
        wts=wts,
        hypothesis=hypothesis,
        equivalence=equivalence,
        eps=eps,
        df=df,
        inferences=inferences,
        settings=settings,
    )
    est.kind = "slopes"
    return est
