"""Adapter for a linear predictor with known coefficients.

``FormulaModel`` builds its design matrix with formulaic and maps the
linear predictor through a link inverse. It needs no fitting library, so
it also serves posterior coefficient draws from any sampler.
"""

from __future__ import annotations

import copy

import formulaic
import numpy as np
import pandas as pd
from scipy import special, stats

from .._typing import Float64Array, VcovSpec
from ..exceptions import PredictionError, UnsupportedOperation
from ..frames import PredictionFrame
from ..inference.standard_errors import sandwich_vcov
from .base import ModelAdapter, cluster_labels, find_variables, parse_vcov_spec, response_variable


def _cloglog_inverse(eta):
    return -np.expm1(-np.exp(eta))


LINK_INVERSES = {
    "identity": None,
    "logit": special.expit,
    "probit": stats.norm.cdf,
    "log": np.exp,
    "cloglog": _cloglog_inverse,
    "inverse": np.reciprocal,
}


class FormulaModel(ModelAdapter):
    """Linear predictor ``g^{-1}(X b)`` over a formulaic model matrix.

    Parameters
    ----------
    formula : str
        Model formula, e.g. ``"y ~ x + C(g)"``. The right-hand side
        defines the design matrix; the response, if named, is used for
        residual-based covariances.
    data : pd.DataFrame
        Data the coefficients were estimated on.
    coefficients : dict, pd.Series or array-like
        Coefficients, by design column name or in design column order.
    vcov : array-like, optional
        Analytic coefficient covariance.
    link : str, default="identity"
        One of "identity", "logit", "probit", "log", "cloglog", "inverse".
    draws : array-like, optional
        Posterior coefficient draws, shape (n_draws, n_coefficients).
        When given, predictions carry draws and intervals come from them.

    Examples
    --------
    >>> model = FormulaModel("y ~ x", df, {"Intercept": 1.0, "x": 2.0})
    >>> slopes(model, variables="x")
    """

    types = ("response", "link")

    def __init__(
        self, formula: str, data: pd.DataFrame, coefficients, vcov=None, link: str = "identity", draws=None
    ):
        if link not in LINK_INVERSES:
            raise ValueError(f"Unknown link: '{link}'. Choose from: {list(LINK_INVERSES)}")
        self.formula = formula
        self.data = data
        self.link = link
        self.response_name = response_variable(formula, data.columns)
        rhs = formula.split("~", 1)[-1]
        self._spec = formulaic.model_matrix(rhs, data, na_action="ignore").model_spec
        self._names = list(self._spec.column_names)
        self._coef = self._align(coefficients)
        self._vcov = None if vcov is None else np.asarray(vcov, dtype=float)
        self._draws = None
        if draws is not None:
            draws = np.asarray(draws, dtype=float)
            if draws.ndim != 2 or draws.shape[1] != len(self._names):
                raise ValueError(
                    f"draws must have shape (n_draws, {len(self._names)}), got {draws.shape}"
                )
            self._draws = draws

    def _align(self, coefficients) -> Float64Array:
        if isinstance(coefficients, dict):
            coefficients = pd.Series(coefficients)
        if isinstance(coefficients, pd.Series):
            unknown = set(coefficients.index) - set(self._names)
            if unknown:
                raise ValueError(
                    f"Coefficients for unknown design columns: {sorted(unknown)}. "
                    f"Design columns: {self._names}"
                )
            coefficients = coefficients.reindex(self._names, fill_value=0.0)
        values = np.asarray(coefficients, dtype=float).ravel()
        if values.shape[0] != len(self._names):
            raise ValueError(f"Expected {len(self._names)} coefficients, got {values.shape[0]}")
        return values

    def design_matrix(self, data: pd.DataFrame) -> Float64Array:
        return np.asarray(self._spec.get_model_matrix(data), dtype=float)

    def get_coefficients(self) -> pd.Series:
        return pd.Series(self._coef, index=self._names)

    def set_coefficients(self, values) -> "FormulaModel":
        new = copy.copy(self)
        new._coef = self._coerce_coefficients(values)
        new._draws = None
        return new

    def get_covariance(self, spec: VcovSpec = True) -> Float64Array:
        kind, column = parse_vcov_spec(spec)
        if kind == "analytic":
            if self._vcov is None:
                raise UnsupportedOperation(
                    "No covariance matrix was supplied to FormulaModel; pass vcov= "
                    "or request a residual-based type such as 'HC1'"
                )
            return self._vcov.copy()

        if self.link != "identity" or self.response_name is None:
            raise UnsupportedOperation(
                f"vcov='{spec}' needs an identity link and a response in the formula"
            )
        used = self.data.dropna(subset=self.find_predictors() + [self.response_name])
        X = self.design_matrix(used)
        residuals = used[self.response_name].to_numpy(dtype=float) - X @ self._coef
        cluster = cluster_labels(used, column) if kind == "cluster" else None
        return sandwich_vcov(X, residuals, "cluster" if cluster is not None else kind, cluster)

    def predict(self, grid: pd.DataFrame, type: str | None = None) -> PredictionFrame:
        type = self.check_type(type)
        try:
            X = self.design_matrix(grid)
        except Exception as exc:
            raise PredictionError(f"Could not build the design matrix for the grid: {exc}") from exc
        if X.shape[0] != len(grid):
            raise PredictionError(f"Design matrix has {X.shape[0]} rows for {len(grid)} grid rows")

        inverse = self.link_inverse() if type == "response" else None
        eta = X @ self._coef
        estimates = eta if inverse is None else inverse(eta)
        draws = None
        if self._draws is not None:
            eta_draws = X @ self._draws.T
            draws = eta_draws if inverse is None else inverse(eta_draws)
        rowid = grid["rowid"].to_numpy() if "rowid" in grid.columns else np.arange(len(grid))
        return PredictionFrame.from_array(estimates, rowid, draws=draws)

    def get_coefficient_draws(self) -> Float64Array | None:
        return None if self._draws is None else self._draws.T

    def get_modeldata(self) -> pd.DataFrame:
        return self.data

    def find_predictors(self) -> list:
        rhs = self.formula.split("~", 1)[-1]
        return [v for v in find_variables(rhs, self.data.columns) if v != self.response_name]

    def link_inverse(self):
        return LINK_INVERSES[self.link]
