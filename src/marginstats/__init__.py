"""
marginstats: predictions, comparisons, slopes and marginal means with uncertainty.

Works with any fitted model reachable through a ModelAdapter: it builds
reference grids, scores them, contrasts and aggregates the predictions,
and propagates coefficient uncertainty with the delta method, posterior
draws, the bootstrap or simulation.

Basic Usage
-----------
>>> import statsmodels.formula.api as smf
>>> import marginstats as ms
>>>
>>> fit = smf.logit("y ~ x + C(g)", data=df).fit(disp=0)
>>> model = ms.wrap_model(fit, "statsmodels")
>>>
>>> # Average marginal effect of x
>>> print(ms.slopes(model, variables="x", by=True).summary())
>>>
>>> # Risk ratio of g levels, averaged over the sample
>>> ms.comparisons(model, variables="g", comparison="ratio", by=True)
>>>
>>> # Test equality of two estimates
>>> ms.hypotheses(ms.predictions(model, by="g"), "b1 = b2")
"""

__version__ = "0.1.0"

from .adapters import (
    ADAPTER_REGISTRY,
    FormulaModel,
    ModelAdapter,
    SklearnModel,
    StatsmodelsModel,
    get_adapter,
    wrap_model,
)
from .comparisons import comparisons, slopes
from .compute import compute
from .config import DEFAULT_SETTINGS, Settings
from .exceptions import (
    CoefficientSubstitutionUnsupported,
    DegenerateStepSize,
    MalformedHypothesis,
    MarginstatsError,
    NonNumericTransformResult,
    PredictionError,
    UnknownVariable,
    UnsupportedOperation,
)
from .frames import PredictionFrame
from .grid import datagrid
from .hypotheses import hypotheses
from .inference import Bootstrap, Simulation
from .marginal_means import marginal_means
from .predictions import predictions
from .results import EstimateFrame

__all__ = [
    # Version
    "__version__",
    # Estimands
    "predictions",
    "comparisons",
    "slopes",
    "marginal_means",
    "hypotheses",
    "compute",
    "datagrid",
    # Results
    "EstimateFrame",
    "PredictionFrame",
    # Inference
    "Bootstrap",
    "Simulation",
    "Settings",
    "DEFAULT_SETTINGS",
    # Adapters
    "ADAPTER_REGISTRY",
    "ModelAdapter",
    "FormulaModel",
    "StatsmodelsModel",
    "SklearnModel",
    "get_adapter",
    "wrap_model",
    # Errors
    "MarginstatsError",
    "UnknownVariable",
    "DegenerateStepSize",
    "PredictionError",
    "UnsupportedOperation",
    "CoefficientSubstitutionUnsupported",
    "MalformedHypothesis",
    "NonNumericTransformResult",
]
