"""Type definitions for marginstats."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence, Union

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    import pandas as pd

Float64Array = NDArray[np.float64]

# Uncertainty specification accepted by ModelAdapter.get_covariance
VcovSpec = Union[bool, str, Float64Array, "pd.DataFrame", None]

# Grouping specification: True, column names, or a mapping frame with a "by" column
BySpec = Union[bool, str, Sequence[str], "pd.DataFrame", None]

HypothesisSpec = Union[float, str, Sequence[float], Float64Array, "pd.DataFrame", None]
