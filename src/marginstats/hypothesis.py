"""Hypothesis engine: linear and non-linear functions of estimates.

A hypothesis turns the estimate vector (and every column of draws) into
a new vector. Linear hypotheses are weight matrices; string equations
are evaluated with ``pandas.eval`` and differentiated numerically. The
stored Jacobian is reused: J_new = G J, where G is the gradient of the
hypothesis with respect to the estimates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import numpy as np
import pandas as pd
from pandas.errors import UndefinedVariableError

from ._typing import Float64Array, HypothesisSpec
from .config import Settings
from .exceptions import MalformedHypothesis

KEYWORDS = ("pairwise", "revpairwise", "reference", "revreference", "sequential", "revsequential")

# Single "=" that is not part of "==", "<=", ">=" or "!="
_EQUALS = re.compile(r"(?<![<>=!])=(?!=)")
_ID_COLUMNS = ("term", "contrast", "value", "group", "by")
_STAT_COLUMNS = {
    "estimate",
    "std.error",
    "statistic",
    "p.value",
    "conf.low",
    "conf.high",
    "predicted",
    "predicted_lo",
    "predicted_hi",
    "rowid",
    "rowidcf",
}


@dataclass
class HypothesisResult:
    frame: pd.DataFrame
    values: Float64Array
    jacobian: Float64Array | None = None


def split_null(hypothesis):
    """Separate a scalar null value from a hypothesis transformation.

    Returns
    -------
    tuple
        (null, hypothesis) where ``null`` is the value the statistic is
        tested against and ``hypothesis`` is None for a scalar input.
    """
    if isinstance(hypothesis, (int, float, np.integer, np.floating)) and not isinstance(hypothesis, bool):
        return float(hypothesis), None
    return 0.0, hypothesis


def row_labels(frame: pd.DataFrame) -> list:
    """Readable labels for estimate rows, falling back to b1, b2, ..."""
    n = len(frame)
    fallback = [f"b{i + 1}" for i in range(n)]
    candidates = [
        c for c in frame.columns
        if c not in _STAT_COLUMNS and not str(c).startswith("_") and not str(c).startswith("statistic.")
        and not str(c).startswith("p.value.")
    ]
    id_columns = [c for c in candidates if c in _ID_COLUMNS or str(c).startswith("contrast_")]
    for columns in (candidates if len(candidates) <= 3 else None, id_columns):
        if not columns:
            continue
        varying = [c for c in columns if frame[c].nunique(dropna=False) > 1] or columns[:1]
        labels = frame[varying].astype(str).agg(", ".join, axis=1).tolist()
        if len(set(labels)) == n:
            return labels
    return fallback


def keyword_matrix(keyword: str, labels: list) -> tuple:
    """Weight matrix (n, m) and labels for a comparison keyword."""
    n = len(labels)
    columns, names = [], []

    def add(plus: int, minus: int):
        w = np.zeros(n)
        w[plus] = 1.0
        w[minus] = -1.0
        columns.append(w)
        names.append(f"{labels[plus]} - {labels[minus]}")

    if n < 2:
        raise MalformedHypothesis(f"hypothesis='{keyword}' needs at least two estimates, got {n}")
    if keyword == "pairwise":
        for i in range(n):
            for j in range(i + 1, n):
                add(i, j)
    elif keyword == "revpairwise":
        for i in range(n):
            for j in range(i + 1, n):
                add(j, i)
    elif keyword == "reference":
        for i in range(1, n):
            add(i, 0)
    elif keyword == "revreference":
        for i in range(1, n):
            add(0, i)
    elif keyword == "sequential":
        for i in range(n - 1):
            add(i + 1, i)
    elif keyword == "revsequential":
        for i in range(n - 1):
            add(i, i + 1)
    else:
        raise MalformedHypothesis(f"Unknown hypothesis keyword: '{keyword}'. Choose from: {list(KEYWORDS)}")
    return np.column_stack(columns), names


def _linear(values, jacobian, weights: Float64Array, labels: list) -> HypothesisResult:
    W = weights.T
    frame = pd.DataFrame({"term": labels, "estimate": (W @ values)[:, 0]})
    return HypothesisResult(frame, W @ values, None if jacobian is None else W @ jacobian)


def parse_equation(expression: str) -> str:
    """Rewrite "lhs = rhs" as "(lhs) - (rhs)"."""
    parts = _EQUALS.split(expression)
    if len(parts) > 2:
        raise MalformedHypothesis(f"Hypothesis has more than one '=': {expression!r}")
    if any(not p.strip() for p in parts):
        raise MalformedHypothesis(f"Hypothesis has an empty side: {expression!r}")
    if len(parts) == 1:
        return parts[0].strip()
    return f"({parts[0].strip()}) - ({parts[1].strip()})"


def _evaluator(expression: str, labels: list):
    aliases = {}
    if len(set(labels)) == len(labels):
        aliases = {label: i for i, label in enumerate(labels) if str(label).isidentifier()}

    def evaluate(vector: Float64Array) -> float:
        env = {f"b{i + 1}": v for i, v in enumerate(vector)}
        for label, i in aliases.items():
            env.setdefault(label, vector[i])
        try:
            result = pd.eval(expression, local_dict=env, engine="python")
        except UndefinedVariableError as exc:
            raise MalformedHypothesis(
                f"Hypothesis {expression!r} refers to an unknown estimate: {exc}. "
                f"Use b1..b{len(vector)} or one of {list(aliases)}"
            ) from exc
        except (SyntaxError, ValueError, TypeError, NameError, KeyError) as exc:
            raise MalformedHypothesis(f"Cannot evaluate hypothesis {expression!r}: {exc}") from exc
        result = np.asarray(result, dtype=float)
        if result.size != 1:
            raise MalformedHypothesis(f"Hypothesis {expression!r} must evaluate to a single number")
        return float(result.reshape(-1)[0])

    return evaluate


def expression_gradient(evaluate, point: Float64Array, settings: Settings) -> Float64Array:
    """Centered finite-difference gradient of a scalar function of the estimates."""
    steps = settings.hypothesis_step * np.maximum(np.abs(point), 1.0)
    grad = np.empty_like(point)
    for i in range(len(point)):
        shift = np.zeros_like(point)
        shift[i] = steps[i]
        grad[i] = (evaluate(point + shift) - evaluate(point - shift)) / (2 * steps[i])
    return grad


def apply_hypothesis(
    frame: pd.DataFrame,
    values: Float64Array,
    hypothesis: HypothesisSpec,
    settings: Settings,
    jacobian: Float64Array | None = None,
    point: Float64Array | None = None,
) -> HypothesisResult:
    """Apply a hypothesis to estimates, draws and Jacobian.

    Parameters
    ----------
    frame : pd.DataFrame
        Estimate rows, used for labels.
    values : Float64Array
        (n, D) estimates or draws.
    hypothesis : array-like, pd.DataFrame, str or None
        A weight vector of length n, an (n, m) weight matrix, a keyword
        or a string equation. None returns the input unchanged.
    settings : Settings
        Supplies the gradient step for string equations.
    jacobian : Float64Array, optional
        (n, k) Jacobian of the estimates; transformed alongside.
    point : Float64Array, optional
        Estimates at which to take the gradient of a string equation.
        Defaults to the first column of ``values``.

    Returns
    -------
    HypothesisResult
        New frame ('term', 'estimate'), values and Jacobian.
    """
    if hypothesis is None:
        return HypothesisResult(frame, values, jacobian)
    n = len(frame)
    labels = row_labels(frame)

    if isinstance(hypothesis, str):
        keyword = hypothesis.strip()
        if keyword in KEYWORDS:
            weights, names = keyword_matrix(keyword, labels)
            return _linear(values, jacobian, weights, names)
        return _string_hypothesis(frame, values, keyword, labels, settings, jacobian, point)

    if isinstance(hypothesis, pd.DataFrame):
        weights = hypothesis.to_numpy(dtype=float)
        names = [str(c) for c in hypothesis.columns]
    else:
        try:
            weights = np.asarray(hypothesis, dtype=float)
        except (TypeError, ValueError) as exc:
            raise MalformedHypothesis(f"Cannot interpret hypothesis {hypothesis!r}") from exc
        if weights.ndim == 1:
            weights = weights[:, np.newaxis]
            names = ["custom"]
        elif weights.ndim == 2:
            names = [f"custom{j + 1}" for j in range(weights.shape[1])]
        else:
            raise MalformedHypothesis(f"Hypothesis weights must be 1-D or 2-D, got {weights.ndim}-D")
    if weights.shape[0] != n:
        raise MalformedHypothesis(
            f"Hypothesis weights have {weights.shape[0]} rows but there are {n} estimates"
        )
    return _linear(values, jacobian, weights, names)


def _string_hypothesis(frame, values, expression, labels, settings, jacobian, point) -> HypothesisResult:
    evaluate = _evaluator(parse_equation(expression), labels)
    out = np.array([[evaluate(values[:, d]) for d in range(values.shape[1])]])
    new_jacobian = None
    if jacobian is not None:
        at = values[:, 0] if point is None else np.asarray(point, dtype=float)
        gradient = expression_gradient(evaluate, at, settings)
        new_jacobian = gradient[np.newaxis, :] @ jacobian
    label = re.sub(r"\s+", " ", expression.strip())
    frame = pd.DataFrame({"term": [label], "estimate": out[:, 0]})
    return HypothesisResult(frame, out, new_jacobian)
