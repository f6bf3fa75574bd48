"""Model adapters and the tag-keyed adapter registry."""

from __future__ import annotations

from .base import ModelAdapter, resolve_vcov
from .formula_model import FormulaModel
from .sklearn_model import SklearnModel
from .statsmodels_model import StatsmodelsModel

ADAPTER_REGISTRY = {
    "formula": FormulaModel,
    "statsmodels": StatsmodelsModel,
    "sklearn": SklearnModel,
}


def get_adapter(kind: str) -> type:
    """Get an adapter class by tag.

    Parameters
    ----------
    kind : str
        One of "formula", "statsmodels", "sklearn".

    Returns
    -------
    type
        ModelAdapter subclass.
    """
    if kind not in ADAPTER_REGISTRY:
        raise ValueError(f"Unknown adapter: {kind}. Available: {list(ADAPTER_REGISTRY.keys())}")
    return ADAPTER_REGISTRY[kind]


def wrap_model(model, kind: str | None = None, **kwargs) -> ModelAdapter:
    """Wrap a fitted model in the adapter registered under ``kind``.

    Adapters are returned unchanged. Anything else needs an explicit tag.

    Examples
    --------
    >>> fit = smf.ols("y ~ x", df).fit()
    >>> model = wrap_model(fit, "statsmodels")
    """
    if isinstance(model, ModelAdapter):
        return model
    if kind is None:
        raise TypeError(
            f"Cannot use a {type(model).__name__} directly; pass kind= "
            f"(one of {list(ADAPTER_REGISTRY.keys())}) or a ModelAdapter"
        )
    return get_adapter(kind)(model, **kwargs)


__all__ = [
    "ADAPTER_REGISTRY",
    "FormulaModel",
    "ModelAdapter",
    "SklearnModel",
    "StatsmodelsModel",
    "get_adapter",
    "resolve_vcov",
    "wrap_model",
]
