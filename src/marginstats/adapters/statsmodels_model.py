"""Adapter for formula-fitted statsmodels results."""

from __future__ import annotations

import copy
import warnings

import numpy as np
import pandas as pd
from scipy import special, stats
from statsmodels.discrete.discrete_model import CountModel, DiscreteModel, Logit, MultinomialModel, Probit

from .._typing import Float64Array, VcovSpec
from ..exceptions import PredictionError
from ..frames import PredictionFrame
from .base import ModelAdapter, cluster_labels, find_variables, parse_vcov_spec, response_variable

# Keyword arguments statsmodels stores on the model but rebuilds itself in from_formula
_FORMULA_KEYS = {"formula", "design_info", "missing_idx", "missing", "hasconst"}


class StatsmodelsModel(ModelAdapter):
    """Wrap a statsmodels results object fitted through the formula API.

    Parameters
    ----------
    results : statsmodels results
        Output of ``smf.ols(...).fit()``, ``smf.glm(...).fit()``,
        ``smf.logit(...).fit()``, ``smf.mnlogit(...).fit()`` and similar.
    fit_kwargs : dict, optional
        Passed to ``fit`` when the model is re-estimated (bootstrap,
        robust covariances for models without ``get_robustcov_results``).
        Discrete models default to ``{"disp": 0}``.
    """

    def __init__(self, results, fit_kwargs: dict | None = None):
        results = getattr(results, "_results", results)
        model = results.model
        formula = getattr(model, "formula", None)
        frame = getattr(model.data, "frame", None)
        if formula is None or frame is None:
            raise ValueError("StatsmodelsModel needs a model fitted with the formula API")
        if fit_kwargs is None:
            fit_kwargs = {"disp": 0} if isinstance(model, DiscreteModel) else {}

        self._fitted = results
        self._results = results
        self.formula = formula
        self.fit_kwargs = dict(fit_kwargs)
        self._data = frame
        self.response_name = response_variable(formula, frame.columns)
        self._param_shape = np.shape(results.params)
        self._multivariate = len(self._param_shape) == 2
        self._names = self._coefficient_names(model)
        if self.link_inverse() is not None and not self._multivariate:
            self.types = ("response", "link")

    def _coefficient_names(self, model) -> list:
        exog_names = list(model.exog_names)
        if not self._multivariate:
            return exog_names
        n_eq = self._param_shape[1]
        outcomes = self._outcome_labels()[1 : n_eq + 1]
        return [f"{outcome}:{name}" for outcome in outcomes for name in exog_names]

    def _outcome_labels(self) -> list:
        labels = getattr(self._fitted.model, "_ynames_map", None)
        if labels:
            return [labels[k] for k in sorted(labels)]
        return list(range(self._param_shape[1] + 1))

    def get_coefficients(self) -> pd.Series:
        params = np.asarray(self._results.params, dtype=float)
        return pd.Series(params.ravel(order="F"), index=self._names)

    def set_coefficients(self, values) -> "StatsmodelsModel":
        values = self._coerce_coefficients(values)
        results = copy.copy(self._results)
        results.params = values.reshape(self._param_shape, order="F")
        new = copy.copy(self)
        new._results = results
        return new

    def get_covariance(self, spec: VcovSpec = True) -> Float64Array:
        kind, column = parse_vcov_spec(spec)
        if kind == "analytic":
            return np.asarray(self._fitted.cov_params(), dtype=float)
        if kind == "iid":
            if getattr(self._fitted, "cov_type", "nonrobust") == "nonrobust":
                return np.asarray(self._fitted.cov_params(), dtype=float)
            classic = self._fitted.model.fit(cov_type="nonrobust", **self.fit_kwargs)
            return np.asarray(classic.cov_params(), dtype=float)

        cov_type = "cluster" if kind == "cluster" else kind
        cov_kwds = {}
        if kind == "cluster":
            used = self._data
            row_labels = getattr(self._fitted.model.data, "row_labels", None)
            if row_labels is not None:
                used = used.loc[row_labels]
            cov_kwds["groups"] = pd.factorize(cluster_labels(used, column))[0]

        if hasattr(self._fitted, "get_robustcov_results"):
            robust = self._fitted.get_robustcov_results(cov_type=cov_type, **cov_kwds)
        else:
            robust = self._fitted.model.fit(cov_type=cov_type, cov_kwds=cov_kwds or None, **self.fit_kwargs)
        return np.asarray(robust.cov_params(), dtype=float)

    def predict(self, grid: pd.DataFrame, type: str | None = None) -> PredictionFrame:
        type = self.check_type(type)
        frame = grid.reset_index(drop=True)
        kwargs = {"which": "linear"} if type == "link" else {}
        try:
            pred = self._results.predict(frame, **kwargs)
        except Exception as exc:
            raise PredictionError(f"statsmodels could not score the grid: {exc}") from exc

        # patsy drops rows with missing values; put them back as NaN
        if isinstance(pred, (pd.Series, pd.DataFrame)):
            pred = pred.reindex(frame.index)
        pred = np.asarray(pred, dtype=float)
        rowid = frame["rowid"].to_numpy() if "rowid" in frame.columns else np.arange(len(frame))
        if pred.ndim == 2:
            return PredictionFrame.from_array(pred, rowid, groups=self._outcome_labels()[: pred.shape[1]])
        return PredictionFrame.from_array(pred, rowid)

    def get_modeldata(self) -> pd.DataFrame:
        return self._data

    def find_predictors(self) -> list:
        rhs = self.formula.split("~", 1)[-1]
        return [v for v in find_variables(rhs, self._data.columns) if v != self.response_name]

    def link_inverse(self):
        model = self._fitted.model
        if isinstance(model, MultinomialModel):
            return None
        if hasattr(model, "family"):
            return model.family.link.inverse
        if isinstance(model, Logit):
            return special.expit
        if isinstance(model, Probit):
            return stats.norm.cdf
        if isinstance(model, CountModel):
            return np.exp
        return None

    def refit(self, data: pd.DataFrame) -> "StatsmodelsModel":
        model = self._fitted.model
        init = {}
        for key, value in model._get_init_kwds().items():
            if key in _FORMULA_KEYS:
                continue
            if isinstance(value, (np.ndarray, pd.Series, pd.DataFrame, list)):
                warnings.warn(
                    f"Dropping array argument '{key}' when re-estimating {type(model).__name__}",
                    UserWarning,
                )
                continue
            init[key] = value
        refitted = type(model).from_formula(self.formula, data=data.reset_index(drop=True), **init)
        return StatsmodelsModel(refitted.fit(**self.fit_kwargs), fit_kwargs=self.fit_kwargs)
