"""Pytest configuration and fixtures for marginstats tests."""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def seed():
    """Random seed for reproducibility."""
    return 42


@pytest.fixture
def linear_data(seed):
    """Linear DGP: y = 1 + 2 x + 0.5 z + effect(g) + epsilon.

    Group effects: a = 0, b = 1, c = -1.
    """
    np.random.seed(seed)
    n = 200
    x = np.random.randn(n)
    z = np.random.uniform(0, 4, n)
    g = np.random.choice(["a", "b", "c"], size=n)
    effect = pd.Series(g).map({"a": 0.0, "b": 1.0, "c": -1.0}).to_numpy()
    y = 1 + 2 * x + 0.5 * z + effect + np.random.randn(n) * 0.5
    return pd.DataFrame({"y": y, "x": x, "z": z, "g": g})


@pytest.fixture
def linear_model(linear_data):
    """FormulaModel with the true coefficients and a diagonal covariance."""
    from marginstats import FormulaModel

    coefs = {"Intercept": 1.0, "x": 2.0, "z": 0.5, "C(g)[T.b]": 1.0, "C(g)[T.c]": -1.0}
    return FormulaModel("y ~ x + z + C(g)", linear_data, coefs, vcov=np.eye(5) * 0.01)


@pytest.fixture
def logit_data(seed):
    """Logit DGP: P(y = 1) = expit(-0.5 + 1.0 x + 0.8 [treat]).

    Also carries a cluster column for robust covariance tests.
    """
    np.random.seed(seed)
    n = 500
    x = np.random.randn(n)
    treat = np.random.binomial(1, 0.5, n)
    eta = -0.5 + 1.0 * x + 0.8 * treat
    y = np.random.binomial(1, 1 / (1 + np.exp(-eta)))
    cluster = np.repeat(np.arange(50), n // 50)
    return pd.DataFrame({"y": y, "x": x, "treat": treat, "cluster": cluster})


@pytest.fixture
def ols_fit(linear_data):
    """statsmodels OLS fit of the linear DGP."""
    import statsmodels.formula.api as smf

    return smf.ols("y ~ x + z + C(g)", data=linear_data).fit()


@pytest.fixture
def logit_fit(logit_data):
    """statsmodels Logit fit of the logit DGP."""
    import statsmodels.formula.api as smf

    return smf.logit("y ~ x + treat", data=logit_data).fit(disp=0)
