"""Resampling inference: nonparametric bootstrap and Krinsky-Robb simulation.

Both re-run the complete estimand pipeline, once per resample. The
bootstrap re-estimates the model on resampled data; the simulation
draws coefficients from N(b, V) and substitutes them.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.stats import norm as scipy_norm
from tqdm import tqdm

from .._typing import Float64Array
from ..config import Settings
from ..exceptions import PredictionError

CONF_TYPES = ("perc", "norm", "basic", "bca")


def _run_batch(fn: Callable, items, settings: Settings, desc: str) -> list:
    """Evaluate ``fn`` on every item, in order, optionally in parallel."""
    if settings.n_jobs == 1:
        iterator = items
        if settings.verbose:
            iterator = tqdm(items, desc=desc, ncols=80)
        return [fn(item) for item in iterator]
    return Parallel(n_jobs=settings.n_jobs, verbose=10 if settings.verbose else 0)(
        delayed(fn)(item) for item in items
    )


def _stack(results: list, n_estimates: int, what: str) -> Float64Array:
    for b, res in enumerate(results):
        if res.shape != (n_estimates,):
            raise PredictionError(
                f"{what} {b} produced {res.shape[0]} estimates, expected {n_estimates}"
            )
    return np.column_stack(results) if results else np.zeros((n_estimates, 0))


def _refit_estimates(model, estimand, data: pd.DataFrame) -> Float64Array:
    refitted = model.refit(data.reset_index(drop=True))
    return estimand.evaluate(refitted, estimand.make_grid(refitted)).estimate


def percentile_intervals(draws: Float64Array, conf_level: float) -> tuple:
    alpha = 1 - conf_level
    lo, hi = np.quantile(draws, [alpha / 2, 1 - alpha / 2], axis=1)
    return lo, hi


@dataclass
class Bootstrap:
    """Nonparametric bootstrap of the whole estimand.

    Parameters
    ----------
    R : int, default=1000
        Number of resamples.
    conf_type : str, default="perc"
        Interval type: "perc", "norm", "basic" or "bca".
    seed : int, optional
        Seed for the resampling generator.

    Notes
    -----
    Needs an adapter whose ``refit`` re-estimates the model. A failure in
    any resample aborts the whole batch.
    """

    R: int = 1000
    conf_type: str = "perc"
    seed: Optional[int] = None

    name = "bootstrap"

    def __post_init__(self):
        if self.R < 2:
            raise ValueError(f"R must be at least 2, got {self.R}")
        if self.conf_type not in CONF_TYPES:
            raise ValueError(f"Unknown conf_type: '{self.conf_type}'. Choose from: {list(CONF_TYPES)}")

    def draws(self, model, estimand, n_estimates: int, settings: Settings) -> Float64Array:
        """Estimates on R resamples, shape (n_estimates, R)."""
        data = model.get_modeldata()
        n = len(data)
        rng = np.random.default_rng(self.seed)
        indices = [rng.choice(n, n, replace=True) for _ in range(self.R)]

        def one(idx):
            return _refit_estimates(model, estimand, data.iloc[idx])

        return _stack(_run_batch(one, indices, settings, "Bootstrap"), n_estimates, "Resample")

    def jackknife(self, model, estimand, n_estimates: int, settings: Settings) -> Float64Array:
        """Leave-one-out estimates, shape (n_estimates, n_obs)."""
        data = model.get_modeldata()
        n = len(data)

        def one(i):
            return _refit_estimates(model, estimand, data.drop(index=data.index[i]))

        return _stack(_run_batch(one, range(n), settings, "Jackknife"), n_estimates, "Jackknife fit")

    def intervals(
        self,
        t0: Float64Array,
        draws: Float64Array,
        conf_level: float,
        jackknife: Float64Array | None = None,
    ) -> pd.DataFrame:
        """Standard errors and intervals from bootstrap draws.

        Parameters
        ----------
        t0 : Float64Array
            Estimates on the original data (n,).
        draws : Float64Array
            Bootstrap estimates (n, R).
        conf_level : float
            Confidence level.
        jackknife : Float64Array, optional
            Leave-one-out estimates (n, n_obs), required for "bca".

        Returns
        -------
        pd.DataFrame
            Columns 'std.error', 'conf.low', 'conf.high'.
        """
        se = np.std(draws, axis=1, ddof=1)
        alpha = 1 - conf_level
        if self.conf_type == "perc":
            lo, hi = percentile_intervals(draws, conf_level)
        elif self.conf_type == "basic":
            q_lo, q_hi = percentile_intervals(draws, conf_level)
            lo, hi = 2 * t0 - q_hi, 2 * t0 - q_lo
        elif self.conf_type == "norm":
            z = scipy_norm.ppf(1 - alpha / 2)
            bias = draws.mean(axis=1) - t0
            lo, hi = t0 - bias - z * se, t0 - bias + z * se
        else:
            if jackknife is None:
                raise ValueError("BCa intervals need jackknife estimates")
            lo, hi = bca_intervals(t0, draws, jackknife, conf_level)
        return pd.DataFrame({"std.error": se, "conf.low": lo, "conf.high": hi})


def bca_intervals(t0: Float64Array, draws: Float64Array, jackknife: Float64Array, conf_level: float) -> tuple:
    """Bias-corrected and accelerated percentile intervals.

    z0 comes from the share of draws below the estimate; the
    acceleration from the skewness of the jackknife estimates.
    """
    alpha = 1 - conf_level
    z_lo, z_hi = scipy_norm.ppf(alpha / 2), scipy_norm.ppf(1 - alpha / 2)
    lo = np.empty(len(t0))
    hi = np.empty(len(t0))
    for i in range(len(t0)):
        prop_less = np.mean(draws[i] < t0[i])
        z0 = scipy_norm.ppf(max(min(prop_less, 0.999), 0.001))

        jack = jackknife[i]
        centered = jack.mean() - jack
        denom = 6 * (np.sum(centered**2) ** 1.5)
        if denom == 0:
            warnings.warn(
                f"BCa acceleration undefined for estimate {i} (constant jackknife); using 0",
                UserWarning,
            )
            a = 0.0
        else:
            a = np.sum(centered**3) / denom

        p_lo = scipy_norm.cdf(z0 + (z0 + z_lo) / (1 - a * (z0 + z_lo)))
        p_hi = scipy_norm.cdf(z0 + (z0 + z_hi) / (1 - a * (z0 + z_hi)))
        lo[i], hi[i] = np.quantile(draws[i], [p_lo, p_hi])
    return lo, hi


@dataclass
class Simulation:
    """Krinsky-Robb simulation: draw coefficients from N(b, V).

    Parameters
    ----------
    R : int, default=1000
        Number of coefficient draws.
    seed : int, optional
        Seed for the draws.
    """

    R: int = 1000
    seed: Optional[int] = None

    name = "simulation"

    def __post_init__(self):
        if self.R < 2:
            raise ValueError(f"R must be at least 2, got {self.R}")

    def draws(
        self, model, estimand, grid, V: Float64Array, n_estimates: int, settings: Settings
    ) -> Float64Array:
        """Estimates under R coefficient draws, shape (n_estimates, R)."""
        rng = np.random.default_rng(self.seed)
        coefs = model.get_coefficients().to_numpy(dtype=float)
        betas = rng.multivariate_normal(coefs, V, size=self.R)

        def one(beta):
            return estimand.evaluate(model.set_coefficients(beta), grid).estimate

        return _stack(_run_batch(one, list(betas), settings, "Simulation"), n_estimates, "Draw")

    def intervals(self, t0: Float64Array, draws: Float64Array, conf_level: float) -> pd.DataFrame:
        lo, hi = percentile_intervals(draws, conf_level)
        return pd.DataFrame({"std.error": np.std(draws, axis=1, ddof=1), "conf.low": lo, "conf.high": hi})
