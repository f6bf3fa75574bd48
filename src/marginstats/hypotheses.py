"""Hypothesis tests on model coefficients or on earlier estimates."""

from __future__ import annotations

import numpy as np
import pandas as pd

from .config import resolve_settings
from .engine import Estimand, back_transform, order_columns, run
from .frames import PredictionFrame
from .hypothesis import apply_hypothesis, split_null
from .inference.bootstrap import percentile_intervals
from .inference.delta import delta_method_se
from .inference.equivalence import equivalence_test
from .inference.intervals import check_conf_level, draws_intervals, posterior_center, wald_intervals
from .results import UNCERTAINTY_COLUMNS, EstimateFrame


def _coefficients(m, grid) -> PredictionFrame:
    coefs = m.get_coefficients()
    frame = pd.DataFrame({"term": list(coefs.index), "estimate": coefs.to_numpy(dtype=float)})
    return PredictionFrame(frame, m.get_coefficient_draws())


def hypotheses(
    model,
    hypothesis=None,
    vcov=True,
    conf_level: float = 0.95,
    df: float = np.inf,
    equivalence=None,
    transform=None,
    inferences=None,
    settings=None,
) -> EstimateFrame:
    """Test functions of coefficients, or of the rows of an EstimateFrame.

    Parameters
    ----------
    model : ModelAdapter or EstimateFrame
        A model (estimates are its coefficients) or earlier results,
        whose stored Jacobian, covariance or draws are reused.
    hypothesis : float, array-like, pd.DataFrame or str, optional
        See :func:`marginstats.hypothesis.apply_hypothesis`. Strings may
        refer to estimates as b1, b2, ... or by term name.
    vcov, conf_level, df, equivalence, transform, inferences, settings
        See :func:`marginstats.engine.run`.

    Examples
    --------
    >>> hypotheses(model, "x = 2")
    >>> hypotheses(comparisons(model, by="g"), "b1 - b2 = 0")
    """
    if isinstance(model, EstimateFrame):
        return _from_estimates(model, hypothesis, conf_level, df, equivalence, transform, settings)

    def make_grid(m):
        return pd.DataFrame()

    return run(
        model,
        Estimand("hypotheses", make_grid, _coefficients),
        vcov=vcov,
        conf_level=conf_level,
        df=df,
        hypothesis=hypothesis,
        equivalence=equivalence,
        transform=transform,
        inferences=inferences,
        settings=settings,
    )


def _from_estimates(
    est: EstimateFrame, hypothesis, conf_level, df, equivalence, transform, settings
) -> EstimateFrame:
    settings = resolve_settings(settings)
    conf_level = check_conf_level(conf_level)
    null, hypothesis = split_null(hypothesis)
    dropped = [c for c in est.frame.columns if c in UNCERTAINTY_COLUMNS]
    frame = est.frame.drop(columns=dropped)

    jacobian, draws = None, None
    if est.inference == "delta":
        if est.jacobian is None:
            raise ValueError(
                "These estimates were back-transformed, so the delta method no longer applies. "
                "Call hypotheses() on the untransformed estimates and pass transform= there"
            )
        hyp = apply_hypothesis(frame, est.values(), hypothesis, settings, jacobian=est.jacobian)
        out = hyp.frame.copy()
        jacobian = hyp.jacobian
        out["std.error"] = delta_method_se(jacobian, est.vcov)
        stats = wald_intervals(out["estimate"].to_numpy(), out["std.error"].to_numpy(), conf_level, df, null)
    elif est.draws is not None:
        hyp = apply_hypothesis(frame, est.draws, hypothesis, settings)
        out = hyp.frame.copy()
        draws = hyp.values
        if est.inference in ("bootstrap", "simulation"):
            lo, hi = percentile_intervals(draws, conf_level)
            point = apply_hypothesis(frame, est.estimate[:, np.newaxis], hypothesis, settings)
            out["estimate"] = point.values[:, 0]
            stats = pd.DataFrame(
                {"std.error": np.std(draws, axis=1, ddof=1), "conf.low": lo, "conf.high": hi}
            )
        else:
            out["estimate"] = posterior_center(draws, settings.posterior_center)
            stats = draws_intervals(draws, conf_level, settings.posterior_interval)
    else:
        out = apply_hypothesis(frame, est.values(), hypothesis, settings).frame.copy()
        stats = pd.DataFrame(index=out.index)

    out = out.reset_index(drop=True)
    for column in stats.columns:
        out[column] = stats[column].to_numpy()
    if equivalence is not None:
        out = equivalence_test(out, equivalence, df)
    if transform is not None:
        out, draws = back_transform(out, draws, transform)
        jacobian = None
    return EstimateFrame(
        frame=order_columns(out),
        draws=draws,
        jacobian=jacobian,
        vcov=est.vcov,
        conf_level=conf_level,
        kind="hypotheses",
        inference=est.inference,
    )
