"""Sandwich covariance estimators for linear predictors.

Used by adapters that own a design matrix and residuals but no fitting
library to ask for robust covariances (see ``FormulaModel``).

References
----------
- White (1980). "A Heteroskedasticity-Consistent Covariance Matrix Estimator"
- MacKinnon & White (1985). "Some heteroskedasticity-consistent covariance
  matrix estimators with improved finite sample properties"
"""

from __future__ import annotations

import numpy as np
from scipy import linalg

from .._typing import Float64Array

HC_TYPES = ("HC0", "HC1", "HC2", "HC3")


def inverse_gram(X: Float64Array) -> Float64Array:
    """Compute (X'X)^{-1}, via Cholesky when X'X is positive definite."""
    XtX = X.T @ X
    eye = np.eye(XtX.shape[0])
    try:
        factor = linalg.cho_factor(XtX, lower=True)
        return linalg.cho_solve(factor, eye)
    except linalg.LinAlgError:
        return linalg.solve(XtX, eye, assume_a="sym")


def leverage(X: Float64Array, bread: Float64Array) -> Float64Array:
    """Diagonal of the hat matrix, h_ii = x_i' (X'X)^{-1} x_i."""
    return np.einsum("ij,jk,ik->i", X, bread, X)


def vcov_iid(X: Float64Array, residuals: Float64Array) -> Float64Array:
    """Classical covariance sigma^2 (X'X)^{-1}."""
    n, p = X.shape
    sigma2 = residuals @ residuals / (n - p)
    return sigma2 * inverse_gram(X)


def vcov_hc(X: Float64Array, residuals: Float64Array, hc_type: str = "HC1") -> Float64Array:
    """Heteroskedasticity-consistent covariance.

    V = (X'X)^{-1} X' diag(omega) X (X'X)^{-1}, where omega is the squared
    residual rescaled according to ``hc_type``:

    - HC0: e^2
    - HC1: e^2 * n / (n - p)
    - HC2: e^2 / (1 - h)
    - HC3: e^2 / (1 - h)^2

    Parameters
    ----------
    X : Float64Array
        Design matrix (n, p).
    residuals : Float64Array
        Response residuals (n,).
    hc_type : str, default="HC1"
        One of "HC0", "HC1", "HC2", "HC3".

    Returns
    -------
    Float64Array
        Covariance matrix (p, p).
    """
    if hc_type not in HC_TYPES:
        raise ValueError(f"Unknown hc_type: '{hc_type}'. Choose from: {list(HC_TYPES)}")
    n, p = X.shape
    bread = inverse_gram(X)
    omega = residuals**2
    if hc_type == "HC1":
        omega = omega * n / (n - p)
    elif hc_type in ("HC2", "HC3"):
        power = 1 if hc_type == "HC2" else 2
        # High-leverage points would divide by zero
        omega = omega / np.maximum((1 - leverage(X, bread)) ** power, 1e-10)
    meat = X.T @ (X * omega[:, np.newaxis])
    return bread @ meat @ bread


def vcov_cluster(X: Float64Array, residuals: Float64Array, cluster) -> Float64Array:
    """Cluster-robust covariance with the G/(G-1) * (n-1)/(n-p) correction."""
    n, p = X.shape
    cluster = np.asarray(cluster)
    if len(cluster) != n:
        raise ValueError(f"cluster has {len(cluster)} entries, design matrix has {n} rows")
    labels, codes = np.unique(cluster, return_inverse=True)
    G = len(labels)
    if G < 2:
        raise ValueError("Cluster-robust covariance needs at least two clusters")
    scores = np.zeros((G, p))
    np.add.at(scores, codes, X * residuals[:, np.newaxis])
    bread = inverse_gram(X)
    correction = (G / (G - 1)) * ((n - 1) / (n - p))
    return correction * bread @ (scores.T @ scores) @ bread


def sandwich_vcov(X: Float64Array, residuals: Float64Array, se_type: str, cluster=None) -> Float64Array:
    """Dispatch on ``se_type`` ("iid", "HC0".."HC3" or "cluster")."""
    if se_type == "iid":
        return vcov_iid(X, residuals)
    if se_type in HC_TYPES:
        return vcov_hc(X, residuals, se_type)
    if se_type == "cluster":
        if cluster is None:
            raise ValueError("cluster array required for se_type='cluster'")
        return vcov_cluster(X, residuals, cluster)
    raise ValueError(
        f"Unknown se_type: '{se_type}'. "
        "Choose from: 'iid', 'HC0', 'HC1', 'HC2', 'HC3', 'cluster'"
    )
