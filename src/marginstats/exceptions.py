"""Exceptions raised by marginstats.

All errors derive from :class:`MarginstatsError` and from the builtin
exception that best matches them, so callers can catch either.
"""

from __future__ import annotations


class MarginstatsError(Exception):
    """Base class for marginstats errors."""


class UnknownVariable(MarginstatsError, ValueError):
    """A requested variable is not present in the model data or grid."""

    def __init__(self, names, available=None):
        if isinstance(names, str):
            names = [names]
        self.names = list(names)
        msg = f"Unknown variable(s): {self.names}."
        if available is not None:
            msg += f" Available: {sorted(map(str, available))}"
        super().__init__(msg)


class DegenerateStepSize(MarginstatsError, ValueError):
    """A finite-difference step would be zero."""


class PredictionError(MarginstatsError, RuntimeError):
    """The adapter failed to score the grid, or returned misaligned output."""


class UnsupportedOperation(MarginstatsError, NotImplementedError):
    """The wrapped model does not support the requested operation."""


class CoefficientSubstitutionUnsupported(UnsupportedOperation):
    """Coefficients of this model cannot be replaced."""


class MalformedHypothesis(MarginstatsError, ValueError):
    """A hypothesis cannot be parsed or does not match the estimates."""


class NonNumericTransformResult(MarginstatsError, TypeError):
    """A contrast transform returned a non-numeric or wrongly sized result."""
