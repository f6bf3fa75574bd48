"""Contrast engine: paired counterfactual predictions and their transforms.

For each focal variable the grid is copied twice, once with the
variable set to a low value and once to a high value. Both copies are
scored and the pair of predictions goes through a transform (difference,
ratio, slope, elasticity, ...).
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .aggregation import WEIGHTS, average_by, frame_from_values, group_codes, prepare_by
from .config import Settings
from .exceptions import DegenerateStepSize, PredictionError, UnknownVariable
from .frames import PredictionFrame
from .grid import is_categorical, unique_values
from .prediction import get_predictions
from .transforms import TRANSFORMS, PerRow, Transform, check_result, get_transform, group_variant

CATEGORICAL_CONTRASTS = (
    "reference",
    "revreference",
    "sequential",
    "revsequential",
    "pairwise",
    "revpairwise",
    "all",
)
NUMERIC_CONTRASTS = ("sd", "2sd", "iqr", "minmax")


@dataclass
class ContrastPair:
    """Low and high values (scalars or arrays aligned with the grid)."""

    lo: object
    hi: object
    label: str
    eps: object = np.nan


@dataclass
class ContrastVariable:
    name: str
    pairs: list
    transform: Transform
    categorical: bool


def _pairs_from_levels(levels: list, spec: str) -> list:
    n = len(levels)
    if spec == "reference":
        return [(levels[0], levels[i]) for i in range(1, n)]
    if spec == "revreference":
        return [(levels[i], levels[0]) for i in range(1, n)]
    if spec == "sequential":
        return [(levels[i], levels[i + 1]) for i in range(n - 1)]
    if spec == "revsequential":
        return [(levels[i + 1], levels[i]) for i in range(n - 1)]
    if spec == "pairwise":
        return [(levels[i], levels[j]) for i in range(n) for j in range(i + 1, n)]
    if spec == "revpairwise":
        return [(levels[j], levels[i]) for i in range(n) for j in range(i + 1, n)]
    if spec == "all":
        return [(levels[i], levels[j]) for i in range(n) for j in range(n) if i != j]
    raise ValueError(f"Unknown categorical contrast: '{spec}'. Choose from: {list(CATEGORICAL_CONTRASTS)}")


def categorical_pairs(name: str, column: pd.Series, spec, transform: Transform) -> list:
    """(lo, hi) level pairs for a categorical or boolean variable."""
    if pd.api.types.is_bool_dtype(column):
        levels = [False, True]
    else:
        levels = unique_values(column)
    if spec is None:
        spec = "reference"
    if isinstance(spec, str):
        pairs = _pairs_from_levels(levels, spec)
    elif isinstance(spec, (list, tuple)) and len(spec) == 2:
        unknown = [v for v in spec if v not in levels]
        if unknown:
            raise ValueError(f"Levels {unknown} not found in '{name}'. Levels: {levels}")
        pairs = [(spec[0], spec[1])]
    else:
        raise ValueError(
            f"Contrast for categorical '{name}' must be one of {list(CATEGORICAL_CONTRASTS)} "
            f"or a (lo, hi) pair of levels, got {spec!r}"
        )
    if not pairs:
        raise ValueError(f"Variable '{name}' has fewer than two levels to compare")
    return [ContrastPair(lo, hi, transform.label.format(hi=hi, lo=lo)) for lo, hi in pairs]


def numeric_pair(name: str, column: pd.Series, x: np.ndarray, spec, transform: Transform) -> ContrastPair:
    """Low and high values for a numeric variable.

    ``spec`` is a step (centered on the observed value), "sd", "2sd",
    "iqr", "minmax", an explicit (lo, hi) pair, or a callable mapping the
    observed values to (lo, hi) arrays.
    """
    if spec is None:
        spec = 1
    if isinstance(spec, (int, float, np.integer, np.floating)) and not isinstance(spec, bool):
        step, short = float(spec), f"+{float(spec):g}"
    elif spec == "sd":
        step, short = float(column.std()), "+sd"
    elif spec == "2sd":
        step, short = 2 * float(column.std()), "+2sd"
    else:
        step = None

    if step is not None:
        lo, hi = x - step / 2, x + step / 2
        hi_label, lo_label = f"(x + {short.lstrip('+')})", "x"
    elif spec == "iqr":
        lo, hi = float(column.quantile(0.25)), float(column.quantile(0.75))
        short, hi_label, lo_label = "Q3 - Q1", "Q3", "Q1"
    elif spec == "minmax":
        lo, hi = float(column.min()), float(column.max())
        short, hi_label, lo_label = "Max - Min", "Max", "Min"
    elif isinstance(spec, (list, tuple)) and len(spec) == 2:
        lo, hi = float(spec[0]), float(spec[1])
        hi_label, lo_label = f"{hi:g}", f"{lo:g}"
        short = f"{hi_label} - {lo_label}"
    elif callable(spec):
        out = spec(x)
        if len(out) != 2:
            raise ValueError(f"Contrast function for '{name}' must return (lo, hi)")
        lo, hi = (np.broadcast_to(np.asarray(v, dtype=float), x.shape).copy() for v in out)
        short, hi_label, lo_label = "custom", "hi", "lo"
    else:
        raise ValueError(
            f"Contrast for numeric '{name}' must be a number, one of {list(NUMERIC_CONTRASTS)}, "
            f"a (lo, hi) pair or a callable, got {spec!r}"
        )
    label = short if transform.name == "difference" else transform.label.format(hi=hi_label, lo=lo_label)
    eps = np.broadcast_to(np.asarray(hi, dtype=float) - np.asarray(lo, dtype=float), x.shape)
    return ContrastPair(lo, hi, label, eps)


def slope_pair(
    name: str, column: pd.Series, x: np.ndarray, transform: Transform, settings: Settings, eps=None
) -> ContrastPair:
    """Centered perturbation x -/+ eps/2 for numerical derivatives."""
    if eps is None:
        span = float(column.max() - column.min())
        eps = settings.numeric_step * span
        if not eps > 0:
            raise DegenerateStepSize(
                f"Variable '{name}' has zero range; pass eps= to set the step explicitly"
            )
    elif not eps > 0:
        raise DegenerateStepSize(f"eps must be positive, got {eps}")
    return ContrastPair(x - eps / 2, x + eps / 2, transform.label, float(eps))


def resolve_variables(
    model,
    grid: pd.DataFrame,
    variables,
    comparison,
    settings: Settings,
    by_active: bool = False,
    cross: bool = False,
    eps=None,
) -> list:
    """Turn the ``variables`` argument into ContrastVariable entries.

    Parameters
    ----------
    model : ModelAdapter
        Supplies the model data used for ranges, quantiles and levels.
    grid : pd.DataFrame
        Grid the contrasts are evaluated on.
    variables : None, str, list or dict
        Focal variables; a dict maps each one to its contrast spec.
        None means every predictor.
    comparison : str or callable
        Transform applied to each pair of predictions.
    settings : Settings
        Supplies the default slope step.
    by_active : bool
        Use the group-level variant of non-collapsible transforms.
    cross : bool
        Cross contrasts; slope transforms are not allowed.
    eps : float, optional
        Explicit slope step.

    Returns
    -------
    list of ContrastVariable
    """
    transform = get_transform(comparison)
    if by_active:
        transform = group_variant(transform)
    if cross and transform.is_slope:
        raise ValueError("cross=True cannot be combined with slope transforms")

    if variables is None:
        specs = {name: None for name in model.find_predictors()}
    elif isinstance(variables, str):
        specs = {variables: None}
    elif isinstance(variables, dict):
        specs = dict(variables)
    else:
        specs = {name: None for name in variables}
    if not specs:
        raise ValueError("No variables to contrast")

    data = model.get_modeldata()
    resolved = []
    for name, spec in specs.items():
        if name not in grid.columns:
            raise UnknownVariable(name, grid.columns)
        column = data[name] if name in data.columns else grid[name]
        if is_categorical(column):
            t = transform
            if t.is_slope:
                t = TRANSFORMS["difference" if t.per_row else "differenceavg"]
            resolved.append(ContrastVariable(name, categorical_pairs(name, column, spec, t), t, True))
            continue
        x = grid[name].to_numpy(dtype=float)
        if transform.is_slope:
            pair = slope_pair(name, column, x, transform, settings, eps)
        else:
            pair = numeric_pair(name, column, x, spec, transform)
        resolved.append(ContrastVariable(name, [pair], transform, False))
    return resolved


def _set_column(frame: pd.DataFrame, name: str, value) -> None:
    dtype = frame[name].dtype
    n = len(frame)
    if isinstance(dtype, pd.CategoricalDtype):
        values = value if np.ndim(value) else [value] * n
        frame[name] = pd.Categorical(values, categories=dtype.categories, ordered=dtype.ordered)
    elif np.ndim(value):
        frame[name] = np.asarray(value)
    else:
        frame[name] = [value] * n


def contrast_grids(grid: pd.DataFrame, variables: list, cross: bool = False) -> tuple:
    """Stack low, high and original copies of the grid.

    Returns
    -------
    tuple
        (lo, hi, original) DataFrames with equal row counts. ``original``
        also carries ``term``, the contrast label column(s), ``_eps`` and
        ``_x`` (observed value of the focal variable).
    """
    base = grid.reset_index(drop=True)
    lows, highs, originals = [], [], []

    def add(assignments, meta):
        lo, hi = base.copy(), base.copy()
        for name, pair in assignments:
            _set_column(lo, name, pair.lo)
            _set_column(hi, name, pair.hi)
        lows.append(lo)
        highs.append(hi)
        originals.append(base.assign(**meta))

    if cross:
        for combo in itertools.product(*[v.pairs for v in variables]):
            meta = {"term": "cross", "_eps": np.nan, "_x": np.nan}
            meta.update({f"contrast_{v.name}": pair.label for v, pair in zip(variables, combo)})
            add(list(zip([v.name for v in variables], combo)), meta)
    else:
        for var in variables:
            x = np.nan if var.categorical else base[var.name].to_numpy(dtype=float)
            for pair in var.pairs:
                meta = {"term": var.name, "contrast": pair.label, "_eps": pair.eps, "_x": x}
                add([(var.name, pair)], meta)

    def stack(frames):
        return pd.concat(frames, ignore_index=True)

    return stack(lows), stack(highs), stack(originals)


def _column(frame: pd.DataFrame, name: str, idx) -> np.ndarray:
    return frame[name].to_numpy(dtype=float)[idx][:, np.newaxis]


def evaluate_contrasts(
    model,
    grid: pd.DataFrame,
    variables: list,
    type: str | None = None,
    by=None,
    cross: bool = False,
    settings: Settings | None = None,
) -> PredictionFrame:
    """Score the contrast grids and apply each variable's transform.

    Transforms run within groups of (term, contrast, outcome group) and,
    when aggregating, the ``by`` columns. Per-row results are averaged by
    group afterwards; group-level results already hold one row per group.
    """
    lo_grid, hi_grid, original = contrast_grids(grid, variables, cross)
    transforms = {"cross": variables[0].transform} if cross else {v.name: v.transform for v in variables}
    need_y = any("y" in t.requires for t in transforms.values())

    ids = original[["rowid"]]
    pred_lo = get_predictions(model, lo_grid, type, attach=original)
    pred_hi = get_predictions(model, hi_grid, type, attach=ids)
    pred_y = get_predictions(model, original, type, attach=ids) if need_y else None

    keep = pred_lo.frame["estimate"].notna() & pred_hi.frame["estimate"].notna()
    if pred_y is not None:
        keep &= pred_y.frame["estimate"].notna()
    keep = keep.to_numpy()
    if not keep.any():
        raise PredictionError("Every contrast prediction is missing")
    pred_lo, pred_hi = pred_lo.subset(keep), pred_hi.subset(keep)
    if pred_y is not None:
        pred_y = pred_y.subset(keep)

    with_draws = pred_lo.draws is not None
    lo, hi = pred_lo.values(), pred_hi.values()
    y = None if pred_y is None else pred_y.values()

    staged, by_columns, by_active = prepare_by(PredictionFrame(pred_lo.frame), by)
    frame = staged.frame
    contrast_columns = [c for c in frame.columns if c == "contrast" or str(c).startswith("contrast_")]
    keys = ["term"] + contrast_columns + (["group"] if "group" in frame.columns else []) + by_columns
    codes = group_codes(frame, keys)
    weights = frame[WEIGHTS].to_numpy(dtype=float) if WEIGHTS in frame.columns else None

    metas, blocks = [], []
    for g in range(int(codes.max()) + 1 if len(codes) else 0):
        idx = np.flatnonzero(codes == g)
        transform = transforms[frame["term"].iat[idx[0]]]
        result = transform(
            hi[idx],
            lo[idx],
            y=None if y is None else y[idx],
            eps=_column(frame, "_eps", idx),
            x=_column(frame, "_x", idx),
            w=None if weights is None else weights[idx][:, np.newaxis],
        )
        values = check_result(result, len(idx), transform.name)
        if isinstance(result, PerRow):
            meta = frame.iloc[idx]
            if not with_draws:
                meta = meta.assign(predicted_lo=lo[idx, 0], predicted_hi=hi[idx, 0])
                if y is not None:
                    meta = meta.assign(predicted=y[idx, 0])
        else:
            meta = frame.iloc[idx[:1]][keys]
            if weights is not None:
                meta = meta.assign(**{WEIGHTS: weights[idx].sum()})
        metas.append(meta.drop(columns=["estimate", "_eps", "_x"], errors="ignore"))
        blocks.append(values)

    center = settings.posterior_center if settings is not None else "median"
    out = frame_from_values(pd.concat(metas, ignore_index=True), np.vstack(blocks), with_draws, center)
    if by_active:
        out = average_by(out, keys, center)
    return out
