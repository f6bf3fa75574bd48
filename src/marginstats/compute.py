"""Single entry point dispatching to predictions or comparisons."""

from __future__ import annotations

from .comparisons import comparisons
from .inference.bootstrap import Bootstrap, Simulation
from .predictions import predictions
from .results import EstimateFrame


def compute(
    model,
    grid=None,
    variables=None,
    transform=None,
    uncertainty=True,
    group_by=None,
    hypothesis=None,
    equivalence_interval=None,
    confidence_level: float = 0.95,
    settings=None,
    **kwargs,
) -> EstimateFrame:
    """Compute an estimand with its uncertainty.

    Without ``variables`` or ``transform`` this returns predictions;
    otherwise comparisons of the focal ``variables`` under ``transform``
    (difference by default).

    Parameters
    ----------
    model : ModelAdapter
        Wrapped model.
    grid : pd.DataFrame or str, optional
        Grid; None uses the model data.
    variables : str, list or dict, optional
        Focal variables for comparisons.
    transform : str or callable, optional
        Contrast transform.
    uncertainty : bool, str, array-like, Bootstrap or Simulation, default=True
        Covariance spec, or a resampling scheme.
    group_by : bool, str, list or pd.DataFrame, optional
        Aggregation groups.
    hypothesis : optional
        Null value or hypothesis transformation.
    equivalence_interval : tuple of float, optional
        TOST bounds.
    confidence_level : float, default=0.95
        Confidence level.
    settings : Settings, optional
        Numerical settings.
    **kwargs
        Passed to :func:`predictions` or :func:`comparisons`.
    """
    if isinstance(uncertainty, (Bootstrap, Simulation)):
        kwargs["inferences"] = uncertainty
        uncertainty = True
    common = dict(
        newdata=grid,
        vcov=uncertainty,
        by=group_by,
        hypothesis=hypothesis,
        equivalence=equivalence_interval,
        conf_level=confidence_level,
        settings=settings,
    )
    if variables is None and transform is None:
        return predictions(model, **common, **kwargs)
    return comparisons(model, variables=variables, comparison=transform or "difference", **common, **kwargs)
