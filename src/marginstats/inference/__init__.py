"""Uncertainty: delta method, intervals, resampling and equivalence tests."""

from .bootstrap import Bootstrap, Simulation
from .delta import delta_method_se, numerical_jacobian
from .equivalence import equivalence_test
from .intervals import draws_intervals, posterior_center, wald_intervals

__all__ = [
    "Bootstrap",
    "Simulation",
    "delta_method_se",
    "draws_intervals",
    "equivalence_test",
    "numerical_jacobian",
    "posterior_center",
    "wald_intervals",
]
