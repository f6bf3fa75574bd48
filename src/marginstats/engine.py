"""Shared pipeline: point estimates, uncertainty, hypotheses and intervals.

Every public function describes its estimand as an :class:`Estimand`:
how to build the grid from a model and how to turn (model, grid) into
point estimates. The runner then picks the uncertainty method:

- "delta": numerical Jacobian of the estimand in the coefficients,
  combined with the coefficient covariance
- "draws": posterior draws carried by the adapter
- "bootstrap" / "simulation": the estimand re-run on resamples
- "none": point estimates only
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
import pandas as pd

from .adapters import ModelAdapter, resolve_vcov
from .config import Settings, resolve_settings
from .exceptions import PredictionError
from .frames import PredictionFrame
from .hypothesis import apply_hypothesis, split_null
from .inference.bootstrap import Bootstrap, Simulation
from .inference.delta import check_covariance, delta_method_se, numerical_jacobian
from .inference.equivalence import equivalence_test
from .inference.intervals import check_conf_level, draws_intervals, posterior_center, wald_intervals
from .results import UNCERTAINTY_COLUMNS, EstimateFrame

_LEADING = ["term", "contrast", "value", "group", "by"]
_STATS = ["estimate"] + UNCERTAINTY_COLUMNS
_TRAILING = ["predicted_lo", "predicted_hi", "predicted"]


@dataclass
class Estimand:
    """A re-evaluable estimand.

    Attributes
    ----------
    kind : str
        Name reported on the results.
    make_grid : callable
        ``make_grid(model) -> DataFrame``. Called again on each refitted
        model during the bootstrap, so grids derived from the model data
        follow the resample.
    evaluate : callable
        ``evaluate(model, grid) -> PredictionFrame`` of point estimates.
    """

    kind: str
    make_grid: Callable[[ModelAdapter], pd.DataFrame]
    evaluate: Callable[[ModelAdapter, pd.DataFrame], PredictionFrame]


def check_adapter(model) -> ModelAdapter:
    if not isinstance(model, ModelAdapter):
        raise TypeError(
            f"Expected a ModelAdapter, got {type(model).__name__}; wrap it with wrap_model(model, kind)"
        )
    return model


def uncertainty_method(vcov, inferences, point: PredictionFrame) -> str:
    if vcov is False or vcov is None:
        return "none"
    if inferences is not None:
        if not isinstance(inferences, (Bootstrap, Simulation)):
            raise TypeError("inferences must be a Bootstrap or Simulation instance")
        return inferences.name
    if point.draws is not None:
        return "draws"
    return "delta"


def run(
    model: ModelAdapter,
    estimand: Estimand,
    vcov=True,
    conf_level: float = 0.95,
    df: float = np.inf,
    hypothesis=None,
    equivalence=None,
    transform: Callable | None = None,
    inferences=None,
    settings: Settings | None = None,
) -> EstimateFrame:
    """Evaluate ``estimand`` on ``model`` and attach inference.

    Parameters
    ----------
    model : ModelAdapter
        Wrapped model.
    estimand : Estimand
        Grid builder and point-estimate function.
    vcov : bool, str, array-like or None, default=True
        Coefficient covariance spec; False or None skips uncertainty.
    conf_level : float, default=0.95
        Confidence level.
    df : float, default=inf
        Degrees of freedom for statistics and intervals.
    hypothesis : float, array-like, pd.DataFrame or str, optional
        A number sets the null value; anything else transforms the
        estimates before inference.
    equivalence : tuple of float, optional
        Bounds (low, high) for TOST equivalence tests.
    transform : callable, optional
        Applied to estimates and interval bounds after inference.
    inferences : Bootstrap or Simulation, optional
        Resampling-based inference instead of the delta method.
    settings : Settings, optional
        Numerical settings.

    Returns
    -------
    EstimateFrame
    """
    check_adapter(model)
    settings = resolve_settings(settings)
    conf_level = check_conf_level(conf_level)
    null, hypothesis = split_null(hypothesis)

    grid = estimand.make_grid(model)
    point = estimand.evaluate(model, grid)
    if len(point) == 0:
        raise PredictionError("No estimates: every prediction is missing")
    method = uncertainty_method(vcov, inferences, point)
    with_draws = point.draws is not None

    jacobian, V, draws = None, None, None
    if method == "delta":
        V = resolve_vcov(model, vcov)
        check_covariance(V)
        coefs = model.get_coefficients().to_numpy(dtype=float)

        def estimates_at(b):
            return estimand.evaluate(model.set_coefficients(b), grid).estimate

        J = numerical_jacobian(estimates_at, coefs, settings, baseline=point.estimate)
        hyp = apply_hypothesis(
            point.frame, point.values(), hypothesis, settings, jacobian=J, point=point.estimate
        )
        frame = hyp.frame.copy()
        jacobian = hyp.jacobian
        frame["std.error"] = delta_method_se(jacobian, V)
        stats = wald_intervals(
            frame["estimate"].to_numpy(), frame["std.error"].to_numpy(), conf_level, df, null
        )
        frame = _join(frame, stats)

    elif method == "draws":
        hyp = apply_hypothesis(point.frame, point.draws, hypothesis, settings)
        frame = hyp.frame.copy()
        draws = hyp.values
        frame["estimate"] = posterior_center(draws, settings.posterior_center)
        frame = _join(frame, draws_intervals(draws, conf_level, settings.posterior_interval))

    elif method in ("bootstrap", "simulation"):
        if with_draws:
            raise ValueError(f"{method} inference is not available for models with posterior draws")
        n = len(point)
        if method == "bootstrap":
            raw = inferences.draws(model, estimand, n, settings)
        else:
            V = resolve_vcov(model, vcov)
            check_covariance(V)
            raw = inferences.draws(model, estimand, grid, V, n, settings)
        hyp = apply_hypothesis(point.frame, point.values(), hypothesis, settings)
        draws = apply_hypothesis(point.frame, raw, hypothesis, settings).values
        t0 = hyp.values[:, 0]
        if method == "bootstrap" and inferences.conf_type == "bca":
            jack = inferences.jackknife(model, estimand, n, settings)
            jack = apply_hypothesis(point.frame, jack, hypothesis, settings).values
            stats = inferences.intervals(t0, draws, conf_level, jackknife=jack)
        else:
            stats = inferences.intervals(t0, draws, conf_level)
        frame = _join(hyp.frame.copy(), stats)

    else:
        values = point.draws if with_draws else point.values()
        hyp = apply_hypothesis(point.frame, values, hypothesis, settings)
        frame = hyp.frame.copy()
        if with_draws:
            draws = hyp.values
            frame["estimate"] = posterior_center(draws, settings.posterior_center)

    if equivalence is not None:
        frame = equivalence_test(frame, equivalence, df)
    if transform is not None:
        frame, draws = back_transform(frame, draws, transform)
        jacobian = None

    return EstimateFrame(
        frame=order_columns(frame),
        draws=draws,
        jacobian=jacobian,
        vcov=V,
        conf_level=conf_level,
        kind=estimand.kind,
        inference=method,
    )


def _join(frame: pd.DataFrame, stats: pd.DataFrame) -> pd.DataFrame:
    frame = frame.reset_index(drop=True)
    for column in stats.columns:
        frame[column] = stats[column].to_numpy()
    return frame


def back_transform(frame: pd.DataFrame, draws, fn: Callable) -> tuple:
    """Map estimates, interval bounds and draws through ``fn``.

    Standard errors and statistics are on the untransformed scale, so
    they are dropped; p-values are kept. Callers drop the Jacobian, which
    describes the untransformed estimates.
    """
    frame = frame.drop(columns=["std.error", "statistic"], errors="ignore").copy()
    frame["estimate"] = fn(frame["estimate"].to_numpy(dtype=float))
    if "conf.low" in frame.columns:
        lo = fn(frame["conf.low"].to_numpy(dtype=float))
        hi = fn(frame["conf.high"].to_numpy(dtype=float))
        frame["conf.low"], frame["conf.high"] = np.minimum(lo, hi), np.maximum(lo, hi)
    if draws is not None:
        draws = fn(draws)
    return frame, draws


def order_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Identifiers first, then statistics, then covariates; drop internals."""
    columns = [c for c in frame.columns if not str(c).startswith("_")]
    leading = [c for c in columns if c in _LEADING or str(c).startswith("contrast_")]
    stats = [c for c in _STATS if c in columns]
    trailing = [c for c in _TRAILING if c in columns]
    rest = [c for c in columns if c not in leading and c not in stats and c not in trailing]
    return frame[leading + stats + rest + trailing]
