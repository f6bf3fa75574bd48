"""Numerical settings threaded through every computation.

A :class:`Settings` value is passed explicitly to the public functions;
nothing in the package reads global mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

_JACOBIAN_METHODS = ("centered", "forward")
_POSTERIOR_CENTERS = ("median", "mean")
_POSTERIOR_INTERVALS = ("eti", "hdi")


@dataclass(frozen=True)
class Settings:
    """Tuning knobs for finite differences, draws and parallelism."""

    numeric_step: float = 1e-4  # slope step, relative to the variable range
    jacobian_step: float = 1e-4  # coefficient step, relative to max(|b|, 1)
    jacobian_method: str = "centered"  # "centered" or "forward"
    hypothesis_step: float = 1e-6  # gradient step for non-linear hypotheses
    posterior_center: str = "median"  # "median" or "mean"
    posterior_interval: str = "eti"  # "eti" or "hdi"
    n_jobs: int = 1  # joblib workers for Jacobian columns and resamples
    verbose: bool = False

    def __post_init__(self):
        for name in ("numeric_step", "jacobian_step", "hypothesis_step"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.jacobian_method not in _JACOBIAN_METHODS:
            raise ValueError(
                f"Unknown jacobian_method: '{self.jacobian_method}'. "
                f"Choose from: {list(_JACOBIAN_METHODS)}"
            )
        if self.posterior_center not in _POSTERIOR_CENTERS:
            raise ValueError(
                f"Unknown posterior_center: '{self.posterior_center}'. "
                f"Choose from: {list(_POSTERIOR_CENTERS)}"
            )
        if self.posterior_interval not in _POSTERIOR_INTERVALS:
            raise ValueError(
                f"Unknown posterior_interval: '{self.posterior_interval}'. "
                f"Choose from: {list(_POSTERIOR_INTERVALS)}"
            )

    def replace(self, **changes) -> "Settings":
        """Return a copy with some fields changed."""
        return replace(self, **changes)


DEFAULT_SETTINGS = Settings()


def resolve_settings(settings: Settings | None = None) -> Settings:
    if settings is None:
        return DEFAULT_SETTINGS
    if not isinstance(settings, Settings):
        raise TypeError(f"settings must be a Settings instance, got {type(settings).__name__}")
    return settings
