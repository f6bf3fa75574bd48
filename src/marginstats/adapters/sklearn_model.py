"""Adapter for fitted scikit-learn estimators."""

from __future__ import annotations

import copy

import numpy as np
import pandas as pd
from sklearn.base import clone, is_classifier
from sklearn.linear_model import LinearRegression
from sklearn.utils.validation import check_is_fitted

from .._typing import Float64Array, VcovSpec
from ..exceptions import (
    CoefficientSubstitutionUnsupported,
    PredictionError,
    UnknownVariable,
    UnsupportedOperation,
)
from ..frames import PredictionFrame
from ..inference.standard_errors import sandwich_vcov
from .base import ModelAdapter, cluster_labels, parse_vcov_spec


class SklearnModel(ModelAdapter):
    """Wrap a fitted scikit-learn estimator.

    Linear estimators (anything with ``coef_`` and ``intercept_``)
    support coefficient substitution and therefore the delta method.
    Other estimators only support ``vcov=False`` or bootstrap.

    Parameters
    ----------
    estimator : sklearn estimator
        Fitted estimator.
    data : pd.DataFrame
        Data the estimator was fitted on, including the response.
    response : str, optional
        Response column, needed for refitting and residual covariances.
    features : list of str, optional
        Feature columns, in fit order. Defaults to ``feature_names_in_``.
    """

    def __init__(self, estimator, data: pd.DataFrame, response: str | None = None, features=None):
        check_is_fitted(estimator)
        if features is None:
            features = getattr(estimator, "feature_names_in_", None)
            if features is None:
                raise ValueError("Pass features= or fit the estimator on a DataFrame")
        self.estimator = estimator
        self.data = data
        self.response_name = response
        self.features = [str(f) for f in features]
        missing = [f for f in self.features if f not in data.columns]
        if missing:
            raise UnknownVariable(missing, data.columns)
        self._classifier = is_classifier(estimator)
        if self._classifier:
            self.types = ("response", "probs")

    @property
    def is_linear(self) -> bool:
        return hasattr(self.estimator, "coef_") and hasattr(self.estimator, "intercept_")

    @property
    def _fit_intercept(self) -> bool:
        return bool(getattr(self.estimator, "fit_intercept", True))

    def _equations(self) -> list:
        coef = np.atleast_2d(self.estimator.coef_)
        if coef.shape[0] == 1:
            return [""]
        return [f"{label}:" for label in self.estimator.classes_]

    def get_coefficients(self) -> pd.Series:
        if not self.is_linear:
            raise CoefficientSubstitutionUnsupported(
                f"{type(self.estimator).__name__} has no coefficient vector"
            )
        coef = np.atleast_2d(self.estimator.coef_)
        intercept = np.atleast_1d(self.estimator.intercept_).astype(float)
        names, values = [], []
        for prefix, row, b0 in zip(self._equations(), coef, np.broadcast_to(intercept, coef.shape[0])):
            if self._fit_intercept:
                names.append(f"{prefix}Intercept")
                values.append(b0)
            names.extend(f"{prefix}{f}" for f in self.features)
            values.extend(row)
        return pd.Series(np.asarray(values, dtype=float), index=names)

    def set_coefficients(self, values) -> "SklearnModel":
        values = self._coerce_coefficients(values)
        original = self.estimator
        width = len(self.features) + int(self._fit_intercept)
        table = values.reshape(-1, width)
        estimator = copy.deepcopy(original)
        estimator.coef_ = table[:, -len(self.features):].reshape(np.shape(original.coef_))
        if self._fit_intercept:
            intercept = table[:, 0]
            estimator.intercept_ = float(intercept[0]) if np.ndim(original.intercept_) == 0 else intercept
        new = copy.copy(self)
        new.estimator = estimator
        return new

    def get_covariance(self, spec: VcovSpec = True) -> Float64Array:
        kind, column = parse_vcov_spec(spec)
        if not isinstance(self.estimator, LinearRegression) or self.response_name is None:
            raise UnsupportedOperation(
                f"{type(self.estimator).__name__} provides no coefficient covariance; "
                "pass a covariance matrix, vcov=False, or inferences=Bootstrap(...)"
            )
        used = self.data.dropna(subset=self.features + [self.response_name])
        X = used[self.features].to_numpy(dtype=float)
        if self._fit_intercept:
            X = np.column_stack([np.ones(len(X)), X])
        observed = used[self.response_name].to_numpy(dtype=float)
        residuals = observed - self.estimator.predict(used[self.features])
        se_type = "iid" if kind == "analytic" else kind
        cluster = cluster_labels(used, column) if kind == "cluster" else None
        return sandwich_vcov(X, residuals, se_type, cluster)

    def predict(self, grid: pd.DataFrame, type: str | None = None) -> PredictionFrame:
        type = self.check_type(type)
        missing = [f for f in self.features if f not in grid.columns]
        if missing:
            raise PredictionError(f"Grid lacks feature columns {missing}")
        X = grid[self.features]
        rowid = grid["rowid"].to_numpy() if "rowid" in grid.columns else np.arange(len(grid))
        try:
            if not self._classifier:
                return PredictionFrame.from_array(self.estimator.predict(X), rowid)
            proba = self.estimator.predict_proba(X)
        except ValueError as exc:
            name = self.estimator.__class__.__name__
            raise PredictionError(f"{name} could not score the grid: {exc}") from exc
        if type == "response" and proba.shape[1] == 2:
            return PredictionFrame.from_array(proba[:, 1], rowid)
        return PredictionFrame.from_array(proba, rowid, groups=list(self.estimator.classes_))

    def get_modeldata(self) -> pd.DataFrame:
        return self.data

    def find_predictors(self) -> list:
        return list(self.features)

    def refit(self, data: pd.DataFrame) -> "SklearnModel":
        if self.response_name is None:
            raise UnsupportedOperation("SklearnModel needs response= to be re-estimated")
        estimator = clone(self.estimator).fit(data[self.features], data[self.response_name])
        return SklearnModel(estimator, data, response=self.response_name, features=self.features)
