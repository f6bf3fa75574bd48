"""Abstract adapter contract between the engines and a fitted model.

The engines never touch a model directly. They read coefficients, ask
for a covariance matrix, substitute coefficients and score grids through
a :class:`ModelAdapter`.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Callable

import numpy as np
import pandas as pd

from .._typing import Float64Array, VcovSpec
from ..exceptions import UnknownVariable, UnsupportedOperation
from ..frames import PredictionFrame

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")


class ModelAdapter(ABC):
    """Base class for model adapters.

    Subclasses must implement:
    - get_coefficients: named coefficient vector
    - set_coefficients: new adapter with replaced coefficients
    - get_covariance: coefficient covariance for an uncertainty spec
    - predict: score a grid
    - get_modeldata: the data the model was estimated on

    ``refit`` is optional and only needed for bootstrap inference.
    """

    #: Prediction types accepted by ``predict``; the first is the default.
    types: tuple = ("response",)

    #: Name of the response column in the model data, if any.
    response_name: str | None = None

    @abstractmethod
    def get_coefficients(self) -> pd.Series:
        """Return the coefficient vector in a stable order."""

    @abstractmethod
    def set_coefficients(self, values) -> "ModelAdapter":
        """Return a new adapter whose coefficients are ``values``."""

    @abstractmethod
    def get_covariance(self, spec: VcovSpec = True) -> Float64Array:
        """Return the coefficient covariance described by ``spec``."""

    @abstractmethod
    def predict(self, grid: pd.DataFrame, type: str | None = None) -> PredictionFrame:
        """Score every grid row, once per outcome group."""

    @abstractmethod
    def get_modeldata(self) -> pd.DataFrame:
        """Return the data the model was estimated on."""

    @property
    def default_type(self) -> str:
        return self.types[0]

    def check_type(self, type: str | None) -> str:
        if type is None:
            return self.default_type
        if type not in self.types:
            raise ValueError(
                f"Unknown prediction type: '{type}'. Choose from: {list(self.types)}"
            )
        return type

    def find_predictors(self) -> list:
        """Variables used on the right-hand side of the model."""
        data = self.get_modeldata()
        return [c for c in data.columns if c != self.response_name]

    def get_coefficient_draws(self) -> Float64Array | None:
        """Posterior coefficient draws (n_coefficients, n_draws), if any."""
        return None

    def link_inverse(self) -> Callable | None:
        """Inverse link mapping type="link" to the default type, if one exists."""
        return None

    def refit(self, data: pd.DataFrame) -> "ModelAdapter":
        """Re-estimate the same model on ``data``."""
        raise UnsupportedOperation(
            f"{type(self).__name__} cannot be re-estimated; bootstrap is unavailable"
        )

    def coefficient_names(self) -> list:
        return list(self.get_coefficients().index)

    def _coerce_coefficients(self, values) -> Float64Array:
        """Align ``values`` with the current coefficient order."""
        current = self.get_coefficients()
        if isinstance(values, pd.Series):
            missing = set(current.index) - set(values.index)
            if missing:
                raise ValueError(f"Coefficients missing for: {sorted(map(str, missing))}")
            values = values.reindex(current.index)
        values = np.asarray(values, dtype=float).ravel()
        if values.shape[0] != current.shape[0]:
            raise ValueError(
                f"Expected {current.shape[0]} coefficients, got {values.shape[0]}"
            )
        return values

    def __repr__(self) -> str:
        return f"{type(self).__name__}(n_coefficients={len(self.get_coefficients())})"


def find_variables(formula: str, columns) -> list:
    """Data columns referenced on the right-hand side of ``formula``."""
    rhs = formula.split("~", 1)[-1]
    columns = [str(c) for c in columns]
    seen = []
    for token in _IDENTIFIER.findall(rhs):
        if token in columns and token not in seen:
            seen.append(token)
    return seen


def response_variable(formula: str, columns) -> str | None:
    if "~" not in formula:
        return None
    names = find_variables("~" + formula.split("~", 1)[0], columns)
    return names[0] if names else None


def parse_vcov_spec(spec) -> tuple:
    """Normalize a string or boolean uncertainty spec to (kind, cluster).

    Returns
    -------
    tuple
        ``("analytic", None)``, ``("iid", None)``, ``("HC0", None)`` ..
        ``("HC3", None)`` or ``("cluster", column)``.
    """
    if spec is True or spec == "analytic":
        return "analytic", None
    if isinstance(spec, str):
        spec = spec.strip()
        if spec.startswith("~"):
            column = spec[1:].strip()
            if not column:
                raise ValueError("Cluster spec must name a column, e.g. '~firm'")
            return "cluster", column
        if spec.lower() == "iid":
            return "iid", None
        if spec.upper() in ("HC0", "HC1", "HC2", "HC3"):
            return spec.upper(), None
    raise ValueError(
        f"Unknown vcov: {spec!r}. Choose from: True, False, 'iid', 'HC0', 'HC1', "
        "'HC2', 'HC3', '~cluster_column', or a square matrix"
    )


def resolve_vcov(model: ModelAdapter, spec: VcovSpec) -> Float64Array | None:
    """Turn an uncertainty spec into a validated (k, k) covariance matrix.

    ``False`` and ``None`` disable uncertainty and return None without
    calling the adapter.
    """
    if spec is None or spec is False:
        return None
    names = model.coefficient_names()
    k = len(names)
    if isinstance(spec, pd.DataFrame):
        if set(spec.index) == set(names) and set(spec.columns) == set(names):
            spec = spec.loc[names, names]
        V = spec.to_numpy(dtype=float)
    elif isinstance(spec, (np.ndarray, list)):
        V = np.asarray(spec, dtype=float)
    else:
        V = np.asarray(model.get_covariance(spec), dtype=float)
    if V.shape != (k, k):
        raise ValueError(f"Covariance matrix must be {k} x {k}, got {V.shape}")
    return V


def cluster_labels(data: pd.DataFrame, column: str):
    if column not in data.columns:
        raise UnknownVariable(column, data.columns)
    return data[column].to_numpy()
