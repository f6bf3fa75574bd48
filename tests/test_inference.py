"""Tests for the delta method, equivalence tests, draws and resampling."""

import warnings

import numpy as np
import pandas as pd
import pytest


class TestDeltaMethod:
    """Test suite for numerical Jacobians and delta-method SEs."""

    def test_jacobian_of_linear_map(self):
        """The Jacobian of b -> A b is A, for both schemes."""
        from marginstats import Settings
        from marginstats.inference.delta import numerical_jacobian

        A = np.array([[1.0, 2.0, 0.0], [0.0, -1.0, 3.0]])
        b = np.array([0.5, -2.0, 10.0])

        for method in ("centered", "forward"):
            J = numerical_jacobian(lambda v: A @ v, b, Settings(jacobian_method=method))
            np.testing.assert_allclose(J, A, rtol=1e-6, atol=1e-8)

    def test_jacobian_of_nonlinear_map(self):
        from marginstats import DEFAULT_SETTINGS
        from marginstats.inference.delta import numerical_jacobian

        b = np.array([0.3, 1.5])
        J = numerical_jacobian(lambda v: np.array([np.exp(v[0]) * v[1]]), b, DEFAULT_SETTINGS)

        np.testing.assert_allclose(J, [[np.exp(0.3) * 1.5, np.exp(0.3)]], rtol=1e-6)

    def test_parallel_columns_match_serial(self):
        """joblib workers give the same Jacobian, in coefficient order."""
        from marginstats import Settings
        from marginstats.inference.delta import numerical_jacobian

        b = np.linspace(-1, 1, 6)
        fn = lambda v: np.array([np.sum(v**2), np.prod(np.cos(v))])

        serial = numerical_jacobian(fn, b, Settings())
        parallel = numerical_jacobian(fn, b, Settings(n_jobs=2))
        np.testing.assert_array_equal(serial, parallel)

    def test_shape_change_raises(self):
        from marginstats import DEFAULT_SETTINGS, PredictionError
        from marginstats.inference.delta import numerical_jacobian

        def unstable(v):
            return np.ones(3 if v[0] > 0 else 2)

        with pytest.raises(PredictionError, match="changed the number of estimates"):
            numerical_jacobian(unstable, np.array([0.0]), DEFAULT_SETTINGS, baseline=np.ones(2))

    def test_standard_errors(self):
        """sqrt(diag(J V J')), scaling with the covariance."""
        from marginstats.inference.delta import delta_method_se

        J = np.array([[1.0, 0.0], [1.0, 1.0]])
        V = np.array([[4.0, 1.0], [1.0, 9.0]])

        np.testing.assert_allclose(delta_method_se(J, V), [2.0, np.sqrt(15.0)])
        np.testing.assert_allclose(delta_method_se(J, 4 * V), 2 * delta_method_se(J, V))

    def test_negative_variance_warns(self):
        from marginstats.inference.delta import delta_method_se

        with pytest.warns(UserWarning, match="negative"):
            se = delta_method_se(np.array([[1.0]]), np.array([[-1.0]]))
        assert np.isnan(se[0])

    def test_asymmetric_covariance_warns(self):
        from marginstats.inference.delta import check_covariance

        with pytest.warns(UserWarning, match="not symmetric"):
            check_covariance(np.array([[1.0, 0.5], [0.0, 1.0]]))
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            check_covariance(np.eye(2))

    def test_singular_covariance_warns(self):
        from marginstats.inference.delta import check_covariance

        with pytest.warns(UserWarning, match=r"singular \(rank 1 of 2\)"):
            check_covariance(np.array([[1.0, 1.0], [1.0, 1.0]]))
        with pytest.warns(UserWarning, match="singular"):
            check_covariance(np.zeros((3, 3)))
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            check_covariance(np.diag([1e-8, 4.0]))

    def test_zero_covariance_is_reported(self, linear_model):
        """A zero covariance gives zero SEs with diagnostics, not silent NaNs."""
        from marginstats import predictions

        with pytest.warns(UserWarning) as record:
            est = predictions(linear_model, newdata="balanced", vcov=np.zeros((5, 5)))
        messages = [str(w.message) for w in record]

        assert any("singular" in m for m in messages)
        assert any("zero standard error" in m for m in messages)
        np.testing.assert_array_equal(est.std_error, 0.0)
        assert est["statistic"].isna().all()
        np.testing.assert_allclose(est["conf.low"], est.estimate)

    def test_wrong_covariance_shape_raises(self, linear_model):
        from marginstats import predictions

        with pytest.raises(ValueError, match="5 x 5"):
            predictions(linear_model, vcov=np.eye(3))


class TestIntervals:
    """Test suite for Wald and draw-based intervals."""

    def test_wald(self):
        from scipy.stats import norm

        from marginstats.inference.intervals import wald_intervals

        out = wald_intervals(np.array([1.96]), np.array([1.0]))

        assert out["statistic"].iloc[0] == pytest.approx(1.96)
        assert out["p.value"].iloc[0] == pytest.approx(2 * norm.sf(1.96))

    def test_wald_zero_standard_error(self):
        """Zero SE: no statistic; p-value 1 only at the null."""
        from scipy.stats import norm

        from marginstats.inference.intervals import wald_intervals

        with pytest.warns(UserWarning, match="2 estimate\\(s\\) have zero standard error"):
            out = wald_intervals(np.array([0.0, 0.5, 1.0]), np.array([0.0, 0.0, 0.5]))

        assert out["statistic"].iloc[:2].isna().all()
        assert out["p.value"].iloc[0] == 1.0
        assert np.isnan(out["p.value"].iloc[1])
        assert out["statistic"].iloc[2] == pytest.approx(2.0)
        assert out["conf.low"].iloc[0] == pytest.approx(1.96 - norm.ppf(0.975))

    def test_eti_and_hdi(self):
        """HDI is never wider than the equal-tailed interval."""
        from marginstats.inference.intervals import draws_intervals

        rng = np.random.default_rng(0)
        draws = rng.exponential(size=(2, 4000))
        eti = draws_intervals(draws, 0.9, "eti")
        hdi = draws_intervals(draws, 0.9, "hdi")

        eti_width = (eti["conf.high"] - eti["conf.low"]).to_numpy()
        hdi_width = (hdi["conf.high"] - hdi["conf.low"]).to_numpy()
        assert np.all(hdi_width <= eti_width)
        assert np.all(hdi["conf.low"] < 0.01)

    def test_unknown_interval_method(self):
        from marginstats.inference.intervals import draws_intervals

        with pytest.raises(ValueError, match="Unknown interval method"):
            draws_intervals(np.zeros((1, 10)), 0.95, "widest")


class TestEquivalence:
    """Test suite for TOST equivalence tests."""

    def test_estimate_inside_bounds(self):
        """An estimate at the midpoint with a small SE is equivalent."""
        from marginstats.inference.equivalence import equivalence_test

        frame = pd.DataFrame({"estimate": [0.0, 0.9], "std.error": [0.1, 0.1]})
        out = equivalence_test(frame, (-1.0, 1.0))

        assert out["p.value.equiv"].iloc[0] < 1e-6
        assert out["p.value.equiv"].iloc[1] > 0.1
        np.testing.assert_allclose(out["p.value.equiv"], np.maximum(out["p.value.noninf"], out["p.value.nonsup"]))

    def test_one_sided_statistics(self):
        from scipy.stats import norm

        from marginstats.inference.equivalence import equivalence_test

        frame = pd.DataFrame({"estimate": [0.5], "std.error": [0.25]})
        out = equivalence_test(frame, (0.0, 1.0))

        assert out["statistic.noninf"].iloc[0] == pytest.approx(2.0)
        assert out["statistic.nonsup"].iloc[0] == pytest.approx(-2.0)
        assert out["p.value.noninf"].iloc[0] == pytest.approx(norm.sf(2.0))
        assert out["p.value.nonsup"].iloc[0] == pytest.approx(norm.cdf(-2.0))

    def test_invalid_bounds(self):
        from marginstats.inference.equivalence import equivalence_test

        frame = pd.DataFrame({"estimate": [0.0], "std.error": [1.0]})
        with pytest.raises(ValueError, match="low <= high"):
            equivalence_test(frame, (1.0, -1.0))
        with pytest.raises(ValueError, match="two numbers"):
            equivalence_test(frame, 1.0)

    def test_needs_standard_errors(self, linear_model):
        from marginstats import predictions

        with pytest.raises(ValueError, match="standard errors"):
            predictions(linear_model, vcov=False, equivalence=(-1, 1))

    def test_through_comparisons(self, linear_model):
        from marginstats import comparisons

        est = comparisons(linear_model, variables="x", by=True, equivalence=(1.5, 2.5))

        assert est["p.value.equiv"].iloc[0] < 1e-5


class TestPosteriorDraws:
    """Test suite for models carrying posterior coefficient draws."""

    @pytest.fixture
    def bayes_model(self, linear_data):
        from marginstats import FormulaModel

        rng = np.random.default_rng(1)
        coefs = np.array([1.0, 2.0, 0.5, 1.0, -1.0])
        draws = rng.multivariate_normal(coefs, 0.01 * np.eye(5), size=1000)
        return FormulaModel("y ~ x + z + C(g)", linear_data, coefs, draws=draws)

    def test_predictions_use_draws(self, bayes_model):
        """Intervals come from draws; no standard errors are reported."""
        from marginstats import predictions

        est = predictions(bayes_model, newdata="balanced")

        assert est.inference == "draws"
        assert "std.error" not in est.columns
        assert est.draws.shape == (3, 1000)
        np.testing.assert_allclose(est.estimate, np.median(est.draws, axis=1))
        assert np.all(est["conf.low"] < est.estimate)
        assert np.all(est.estimate < est["conf.high"])

    def test_average_slope_draws(self, bayes_model):
        """Averaged slopes are averaged draw by draw."""
        from marginstats import slopes

        est = slopes(bayes_model, variables="x", by=True)

        coefficient_draws = bayes_model.get_coefficient_draws()[1]
        np.testing.assert_allclose(est.draws[0], coefficient_draws, rtol=1e-6)
        assert est.estimate[0] == pytest.approx(np.median(coefficient_draws), rel=1e-6)

    def test_hdi_and_mean_settings(self, bayes_model):
        from marginstats import Settings, predictions

        settings = Settings(posterior_center="mean", posterior_interval="hdi")
        est = predictions(bayes_model, newdata="mean", settings=settings)

        assert est.estimate[0] == pytest.approx(est.draws[0].mean())

    def test_hypothesis_on_draws(self, bayes_model):
        from marginstats import hypotheses, predictions

        base = predictions(bayes_model, by="g")
        est = hypotheses(base, "b2 - b1 = 0")

        np.testing.assert_allclose(est.draws[0], base.draws[1] - base.draws[0])
        assert est.inference == "draws"

    def test_coefficient_hypotheses_use_draws(self, bayes_model):
        from marginstats import hypotheses

        est = hypotheses(bayes_model, "x = 2")

        assert est.inference == "draws"
        assert abs(est.estimate[0]) < 0.05

    def test_posterior_draws_long_format(self, bayes_model):
        from marginstats import predictions

        est = predictions(bayes_model, newdata="balanced")
        long = est.posterior_draws()

        assert len(long) == 3 * 1000
        assert {"drawid", "draw", "estimate"} <= set(long.columns)


class TestBootstrap:
    """Test suite for the nonparametric bootstrap."""

    def test_average_prediction(self, ols_fit):
        """Bootstrap SE of the mean prediction is close to the delta-method SE."""
        from marginstats import Bootstrap, StatsmodelsModel, predictions

        model = StatsmodelsModel(ols_fit)
        delta = predictions(model, by=True)
        boot = predictions(model, by=True, inferences=Bootstrap(R=100, seed=1))

        assert boot.inference == "bootstrap"
        assert boot.draws.shape == (1, 100)
        assert boot.estimate[0] == pytest.approx(delta.estimate[0])
        assert 0.5 < boot.std_error[0] / delta.std_error[0] < 2.0
        assert boot["conf.low"].iloc[0] < boot.estimate[0] < boot["conf.high"].iloc[0]

    def test_seed_reproducible(self, ols_fit):
        from marginstats import Bootstrap, StatsmodelsModel, comparisons

        model = StatsmodelsModel(ols_fit)
        a = comparisons(model, variables="x", by=True, inferences=Bootstrap(R=20, seed=3))
        b = comparisons(model, variables="x", by=True, inferences=Bootstrap(R=20, seed=3))

        np.testing.assert_array_equal(a.draws, b.draws)

    @pytest.mark.parametrize("conf_type", ["perc", "norm", "basic", "bca"])
    def test_interval_types(self, ols_fit, conf_type):
        from marginstats import Bootstrap, StatsmodelsModel, hypotheses

        model = StatsmodelsModel(ols_fit)
        est = hypotheses(model, "x = 0", inferences=Bootstrap(R=50, conf_type=conf_type, seed=2))

        assert est["conf.low"].iloc[0] < est.estimate[0] < est["conf.high"].iloc[0]

    def test_invalid_settings(self):
        from marginstats import Bootstrap

        with pytest.raises(ValueError, match="conf_type"):
            Bootstrap(conf_type="studentized")
        with pytest.raises(ValueError, match="at least 2"):
            Bootstrap(R=1)

    def test_model_without_refit(self, linear_model):
        from marginstats import Bootstrap, UnsupportedOperation, predictions

        with pytest.raises(UnsupportedOperation):
            predictions(linear_model, by=True, inferences=Bootstrap(R=10))

    def test_sklearn_bootstrap(self, linear_data):
        """Non-linear estimators get uncertainty through refitting."""
        from sklearn.tree import DecisionTreeRegressor

        from marginstats import Bootstrap, SklearnModel, predictions

        est = DecisionTreeRegressor(max_depth=3, random_state=0).fit(linear_data[["x", "z"]], linear_data["y"])
        model = SklearnModel(est, linear_data, response="y")
        out = predictions(model, by=True, inferences=Bootstrap(R=20, seed=0))

        assert out.std_error[0] > 0

    def test_hypotheses_on_bootstrap_results(self, ols_fit):
        from marginstats import Bootstrap, StatsmodelsModel, hypotheses, predictions

        base = predictions(StatsmodelsModel(ols_fit), by="g", inferences=Bootstrap(R=30, seed=4))
        est = hypotheses(base, "b2 = b1")

        np.testing.assert_allclose(est.draws[0], base.draws[1] - base.draws[0])
        assert est.estimate[0] == pytest.approx(base.estimate[1] - base.estimate[0])


class TestSimulation:
    """Test suite for Krinsky-Robb simulation."""

    def test_matches_delta_method(self, linear_model):
        """Simulated SEs approach delta-method SEs."""
        from marginstats import Simulation, predictions

        delta = predictions(linear_model, newdata="balanced")
        sim = predictions(linear_model, newdata="balanced", inferences=Simulation(R=2000, seed=5))

        assert sim.inference == "simulation"
        np.testing.assert_allclose(sim.std_error, delta.std_error, rtol=0.1)
        np.testing.assert_allclose(sim.estimate, delta.estimate)


class TestStandardErrors:
    """Test suite for residual-based covariance estimators."""

    @pytest.mark.parametrize("hc_type", ["HC0", "HC1", "HC2", "HC3"])
    def test_hc_matches_statsmodels(self, ols_fit, hc_type):
        from marginstats.inference.standard_errors import sandwich_vcov

        X = ols_fit.model.exog
        V = sandwich_vcov(X, ols_fit.resid.to_numpy(), hc_type)

        np.testing.assert_allclose(V, np.asarray(getattr(ols_fit, f"cov_{hc_type}")), rtol=1e-6)

    def test_iid_matches_statsmodels(self, ols_fit):
        from marginstats.inference.standard_errors import sandwich_vcov

        V = sandwich_vcov(ols_fit.model.exog, ols_fit.resid.to_numpy(), "iid")
        np.testing.assert_allclose(V, ols_fit.cov_params().to_numpy(), rtol=1e-6)

    def test_cluster_matches_statsmodels(self, ols_fit, linear_data):
        from marginstats.inference.standard_errors import sandwich_vcov

        groups = np.arange(len(linear_data)) // 10
        V = sandwich_vcov(ols_fit.model.exog, ols_fit.resid.to_numpy(), "cluster", groups)
        expected = ols_fit.get_robustcov_results(cov_type="cluster", groups=groups).cov_params()

        np.testing.assert_allclose(V, expected, rtol=1e-6)

    def test_unknown_type(self, ols_fit):
        from marginstats.inference.standard_errors import sandwich_vcov

        with pytest.raises(ValueError, match="Unknown"):
            sandwich_vcov(ols_fit.model.exog, ols_fit.resid.to_numpy(), "HC9")
