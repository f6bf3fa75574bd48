"""Delta method: numerical Jacobians and standard errors.

The Jacobian is taken of the whole estimand pipeline (grid, predictions,
contrasts and aggregation) with respect to the model coefficients, so
any composition of those steps gets correct first-order uncertainty.
"""

from __future__ import annotations

import warnings
from typing import Callable

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from .._typing import Float64Array
from ..config import Settings
from ..exceptions import PredictionError


def coefficient_steps(coefs: Float64Array, settings: Settings) -> Float64Array:
    """Step h_k = jacobian_step * max(|b_k|, 1)."""
    return settings.jacobian_step * np.maximum(np.abs(coefs), 1.0)


def numerical_jacobian(
    fn: Callable[[Float64Array], Float64Array],
    coefs,
    settings: Settings,
    baseline: Float64Array | None = None,
) -> Float64Array:
    """Finite-difference Jacobian of ``fn`` at ``coefs``.

    Parameters
    ----------
    fn : callable
        Maps a coefficient vector to the estimate vector.
    coefs : array-like
        Point of differentiation (k,).
    settings : Settings
        Supplies the step, the scheme ("centered" or "forward"), n_jobs
        and verbose.
    baseline : Float64Array, optional
        ``fn(coefs)`` if already computed.

    Returns
    -------
    Float64Array
        Jacobian (n_estimates, k). Columns are stacked in coefficient
        order whatever the evaluation order.
    """
    b0 = np.asarray(coefs, dtype=float)
    f0 = np.asarray(fn(b0) if baseline is None else baseline, dtype=float)
    steps = coefficient_steps(b0, settings)
    centered = settings.jacobian_method == "centered"

    def column(j: int) -> Float64Array:
        shift = np.zeros_like(b0)
        shift[j] = steps[j]
        upper = np.asarray(fn(b0 + shift), dtype=float)
        if upper.shape != f0.shape:
            raise PredictionError(
                f"Perturbing coefficient {j} changed the number of estimates "
                f"from {f0.shape[0]} to {upper.shape[0]}"
            )
        if not centered:
            return (upper - f0) / steps[j]
        lower = np.asarray(fn(b0 - shift), dtype=float)
        if lower.shape != f0.shape:
            raise PredictionError(
                f"Perturbing coefficient {j} changed the number of estimates "
                f"from {f0.shape[0]} to {lower.shape[0]}"
            )
        return (upper - lower) / (2 * steps[j])

    k = len(b0)
    if settings.n_jobs == 1:
        iterator = range(k)
        if settings.verbose:
            iterator = tqdm(iterator, desc="Jacobian", ncols=80)
        columns = [column(j) for j in iterator]
    else:
        columns = Parallel(n_jobs=settings.n_jobs, prefer="threads", verbose=10 if settings.verbose else 0)(
            delayed(column)(j) for j in range(k)
        )
    if not columns:
        return np.zeros((f0.shape[0], 0))
    return np.column_stack(columns)


def check_covariance(V: Float64Array) -> None:
    """Warn when V is asymmetric, singular or not positive semi-definite."""
    scale = max(1.0, float(np.max(np.abs(V)))) if V.size else 1.0
    if not np.allclose(V, V.T, atol=1e-10 * scale):
        warnings.warn("Covariance matrix is not symmetric", UserWarning)
    if not V.size:
        return
    eigenvalues = np.linalg.eigvalsh((V + V.T) / 2)
    tol = eigenvalues.max() * V.shape[0] * np.finfo(float).eps
    if eigenvalues.min() < -1e-8 * scale:
        warnings.warn(
            f"Covariance matrix is not positive semi-definite "
            f"(smallest eigenvalue {eigenvalues.min():.3g})",
            UserWarning,
        )
    elif eigenvalues.min() <= tol:
        rank = int(np.sum(eigenvalues > tol))
        warnings.warn(
            f"Covariance matrix is singular (rank {rank} of {V.shape[0]}); "
            "some standard errors may be zero",
            UserWarning,
        )


def delta_method_se(J: Float64Array, V: Float64Array) -> Float64Array:
    """Standard errors sqrt(diag(J V J')).

    Variances below zero beyond rounding are reported with a warning and
    returned as NaN.
    """
    variance = np.einsum("ij,jk,ik->i", J, V, J)
    tol = 1e-12 * max(1.0, float(np.max(np.abs(variance)))) if variance.size else 0.0
    negative = variance < -tol
    if negative.any():
        warnings.warn(
            f"{int(negative.sum())} estimate(s) have negative delta-method variance; "
            "standard errors set to NaN",
            UserWarning,
        )
    variance = np.where(negative, np.nan, np.maximum(variance, 0.0))
    return np.sqrt(variance)
