"""Contrast transforms: functions of paired predictions.

Every transform receives 2-D arrays of shape (n, D), where D is 1 for
point estimates or the number of draws, and returns a tagged result:
``PerRow`` (one value per input row) or ``Scalar`` (one value for the
whole group). Weighted ``*avg`` variants return ``Scalar``.

Arguments:
- hi, lo: predictions at the high and low counterfactual values
- y: prediction at the original values
- eps: step size of the contrast (slopes)
- x: original value of the contrasted variable
- w: row weights, or None
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Callable

import numpy as np

from ._typing import Float64Array
from .exceptions import NonNumericTransformResult

TRANSFORM_ARGS = ("hi", "lo", "y", "eps", "x", "w")


@dataclass(frozen=True)
class PerRow:
    values: Float64Array


@dataclass(frozen=True)
class Scalar:
    values: Float64Array


def _mean(a: Float64Array, w: Float64Array | None) -> Float64Array:
    weights = None if w is None else np.ravel(w)
    return np.average(a, axis=0, weights=weights)[np.newaxis, :]


def _difference(hi, lo, y, eps, x):
    return hi - lo


def _ratio(hi, lo, y, eps, x):
    return hi / lo


def _lnratio(hi, lo, y, eps, x):
    return np.log(hi / lo)


def _lnor(hi, lo, y, eps, x):
    return np.log((hi / (1 - hi)) / (lo / (1 - lo)))


def _dydx(hi, lo, y, eps, x):
    return (hi - lo) / eps


def _eyex(hi, lo, y, eps, x):
    return _dydx(hi, lo, y, eps, x) * (x / y)


def _eydx(hi, lo, y, eps, x):
    return _dydx(hi, lo, y, eps, x) / y


def _dyex(hi, lo, y, eps, x):
    return _dydx(hi, lo, y, eps, x) * x


def _expdydx(hi, lo, y, eps, x):
    return ((np.exp(hi) - np.exp(lo)) / np.exp(eps)) / eps


def _rowwise(fn):
    def apply(hi, lo, y, eps, x, w):
        return fn(hi, lo, y, eps, x)

    return apply


def _of_means(fn):
    """``fn`` of the weighted means of ``hi`` and ``lo``."""

    def apply(hi, lo, y, eps, x, w):
        return fn(_mean(hi, w), _mean(lo, w), None, None, None)

    return apply


def _mean_of(fn):
    """Weighted mean of the row values of ``fn``."""

    def apply(hi, lo, y, eps, x, w):
        return _mean(fn(hi, lo, y, eps, x), w)

    return apply


@dataclass(frozen=True)
class Transform:
    """A named contrast transform.

    Attributes
    ----------
    name : str
        Registry key.
    fn : callable
        ``fn(hi, lo, y, eps, x, w)`` returning an (n, D) or (1, D) array.
    label : str
        Template for the ``contrast`` column, formatted with ``hi``/``lo``.
    per_row : bool
        Whether ``fn`` returns one value per row.
    avg : str, optional
        Name of the group-level variant used under ``by``; set only for
        transforms whose group average differs from the transform of the
        group-averaged predictions.
    requires : tuple
        Inputs that must be available (``y`` or ``x``).
    """

    name: str
    fn: Callable
    label: str
    per_row: bool = True
    avg: str | None = None
    requires: tuple = ()

    @property
    def is_slope(self) -> bool:
        return "eps" in self.requires

    def __call__(self, hi, lo, y=None, eps=None, x=None, w=None):
        out = np.asarray(self.fn(hi, lo, y, eps, x, w), dtype=float)
        if self.per_row:
            return PerRow(out)
        return Scalar(out)


TRANSFORMS = {
    t.name: t
    for t in [
        Transform("difference", _rowwise(_difference), "{hi} - {lo}"),
        Transform("differenceavg", _of_means(_difference), "mean({hi}) - mean({lo})", per_row=False),
        Transform("ratio", _rowwise(_ratio), "{hi} / {lo}", avg="ratioavg"),
        Transform("ratioavg", _of_means(_ratio), "mean({hi}) / mean({lo})", per_row=False),
        Transform("lnratio", _rowwise(_lnratio), "ln({hi} / {lo})", avg="lnratioavg"),
        Transform("lnratioavg", _of_means(_lnratio), "ln(mean({hi}) / mean({lo}))", per_row=False),
        Transform("lnor", _rowwise(_lnor), "ln(odds({hi}) / odds({lo}))", avg="lnoravg"),
        Transform(
            "lnoravg", _of_means(_lnor), "ln(odds(mean({hi})) / odds(mean({lo})))", per_row=False
        ),
        Transform("dydx", _rowwise(_dydx), "dY/dX", requires=("eps",)),
        Transform("eyex", _rowwise(_eyex), "eY/eX", requires=("eps", "x", "y")),
        Transform("eydx", _rowwise(_eydx), "eY/dX", requires=("eps", "y")),
        Transform("dyex", _rowwise(_dyex), "dY/eX", requires=("eps", "x")),
        Transform("dydxavg", _mean_of(_dydx), "mean(dY/dX)", per_row=False, requires=("eps",)),
        Transform("eyexavg", _mean_of(_eyex), "mean(eY/eX)", per_row=False, requires=("eps", "x", "y")),
        Transform("eydxavg", _mean_of(_eydx), "mean(eY/dX)", per_row=False, requires=("eps", "y")),
        Transform("dyexavg", _mean_of(_dyex), "mean(dY/eX)", per_row=False, requires=("eps", "x")),
        Transform("expdydx", _rowwise(_expdydx), "exp(dY/dX)", requires=("eps",)),
        Transform(
            "expdydxavg", _mean_of(_expdydx), "mean(exp(dY/dX))", per_row=False, requires=("eps",)
        ),
    ]
}

SLOPE_TRANSFORMS = tuple(name for name, t in TRANSFORMS.items() if t.is_slope)


class CustomTransform(Transform):
    """Wrap a user function taking any of ``hi, lo, y, eps, x, w``.

    The function is called once per draw with 1-D arrays and must return
    a numeric array of length 1 or of the group size.
    """

    def __init__(self, fn: Callable):
        try:
            params = inspect.signature(fn).parameters
        except (TypeError, ValueError) as exc:
            raise TypeError(f"Cannot inspect transform {fn!r}") from exc
        unknown = [p for p in params if p not in TRANSFORM_ARGS]
        if unknown:
            raise TypeError(
                f"Transform arguments must be among {list(TRANSFORM_ARGS)}, got {unknown}"
            )
        requires = tuple(p for p in ("y", "x", "eps") if p in params)
        super().__init__(
            name=getattr(fn, "__name__", "custom"),
            fn=fn,
            label="{hi}, {lo}",
            requires=requires,
        )
        object.__setattr__(self, "_args", tuple(params))

    def __call__(self, hi, lo, y=None, eps=None, x=None, w=None):
        available = {"hi": hi, "lo": lo, "y": y, "eps": eps, "x": x, "w": w}
        n = hi.shape[0]
        columns = []
        for d in range(hi.shape[1]):
            kwargs = {}
            for arg in self._args:
                value = available[arg]
                if value is not None:
                    value = value[:, d] if value.shape[1] > 1 else value[:, 0]
                kwargs[arg] = value
            columns.append(_check_custom_output(self.fn(**kwargs), n, self.name))
        out = np.column_stack(columns)
        if out.shape[0] == n:
            return PerRow(out)
        return Scalar(out)


def _check_custom_output(result, n: int, name: str) -> Float64Array:
    arr = np.asarray(result)
    if not (np.issubdtype(arr.dtype, np.number) or np.issubdtype(arr.dtype, np.bool_)):
        raise NonNumericTransformResult(
            f"Transform '{name}' returned a {arr.dtype} result; it must be numeric"
        )
    arr = arr.astype(float).ravel()
    if arr.shape[0] not in (1, n):
        raise NonNumericTransformResult(
            f"Transform '{name}' returned {arr.shape[0]} values for a group of {n} rows; "
            f"it must return 1 or {n}"
        )
    return arr


def get_transform(spec) -> Transform:
    """Look up a transform by name, or wrap a callable.

    Raises
    ------
    ValueError
        If the name is unknown.
    """
    if isinstance(spec, Transform):
        return spec
    if callable(spec):
        return CustomTransform(spec)
    if spec not in TRANSFORMS:
        raise ValueError(f"Unknown comparison: {spec}. Available: {list(TRANSFORMS.keys())}")
    return TRANSFORMS[spec]


def group_variant(transform: Transform) -> Transform:
    """Transform to use when rows are averaged within groups.

    Ratios and log odds ratios of averages are not averages of ratios, so
    those transforms switch to their ``*avg`` form, which applies the
    base transform to group-averaged predictions.
    """
    if transform.avg is None:
        return transform
    return TRANSFORMS[transform.avg]


def check_result(result, n: int, name: str) -> Float64Array:
    """Validate the (n or 1, D) output of a built-in transform."""
    values = result.values
    if values.ndim != 2 or values.shape[0] not in (1, n):
        raise NonNumericTransformResult(
            f"Transform '{name}' returned shape {values.shape} for a group of {n} rows"
        )
    if isinstance(result, PerRow) and values.shape[0] != n:
        raise NonNumericTransformResult(f"Transform '{name}' must return one value per row")
    return values
