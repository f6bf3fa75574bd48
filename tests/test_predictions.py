"""Tests for predictions()."""

import numpy as np
import pandas as pd
import pytest


class TestPredictions:
    """Test suite for adjusted predictions."""

    def test_unit_level_predictions(self, ols_fit, linear_data):
        """One prediction per row, equal to the fitted values."""
        from marginstats import StatsmodelsModel, predictions

        est = predictions(StatsmodelsModel(ols_fit))

        assert len(est) == len(linear_data)
        assert est.inference == "delta"
        np.testing.assert_allclose(est.estimate, ols_fit.fittedvalues.to_numpy())

    def test_standard_errors_match_statsmodels(self, ols_fit, linear_data):
        """Delta-method SEs equal statsmodels' mean prediction SEs."""
        from marginstats import StatsmodelsModel, predictions

        est = predictions(StatsmodelsModel(ols_fit), newdata=linear_data.head(20))
        expected = ols_fit.get_prediction(linear_data.head(20)).se_mean

        np.testing.assert_allclose(est.std_error, expected, rtol=1e-5)

    def test_average_prediction(self, ols_fit, linear_data):
        """by=True averages every row; its SE is sqrt(xbar' V xbar)."""
        from marginstats import StatsmodelsModel, predictions

        est = predictions(StatsmodelsModel(ols_fit), by=True)

        xbar = ols_fit.model.exog.mean(axis=0)
        se = np.sqrt(xbar @ ols_fit.cov_params().to_numpy() @ xbar)
        assert len(est) == 1
        assert est.estimate[0] == pytest.approx(linear_data["y"].mean())
        assert est.std_error[0] == pytest.approx(se, rel=1e-5)

    def test_by_group(self, ols_fit, linear_data):
        """Averages within each level of g, sorted by level."""
        from marginstats import StatsmodelsModel, predictions

        est = predictions(StatsmodelsModel(ols_fit), by="g")
        expected = ols_fit.fittedvalues.groupby(linear_data["g"]).mean()

        assert list(est["g"]) == ["a", "b", "c"]
        np.testing.assert_allclose(est.estimate, expected.to_numpy())

    def test_weights(self, linear_model, linear_data):
        """Weighted averages use the named grid column."""
        from marginstats import predictions

        unit = predictions(linear_model, vcov=False)
        est = predictions(linear_model, by=True, wts="z", vcov=False)

        assert est.estimate[0] == pytest.approx(np.average(unit.estimate, weights=linear_data["z"]))

    def test_counterfactual_predictions(self, linear_model, linear_data):
        """Same rows under two levels of g differ by the level effect."""
        from marginstats import predictions

        est = predictions(linear_model, variables={"g": ["a", "b"]}, by="g")

        assert len(est) == 2
        assert est.estimate[1] - est.estimate[0] == pytest.approx(1.0)

    def test_preset_newdata(self, linear_model):
        from marginstats import predictions

        assert len(predictions(linear_model, newdata="mean")) == 1
        assert len(predictions(linear_model, newdata="balanced")) == 3

    def test_no_uncertainty(self, linear_model):
        """vcov=False skips standard errors entirely."""
        from marginstats import predictions

        est = predictions(linear_model, newdata="mean", vcov=False)

        assert est.inference == "none"
        assert "std.error" not in est.columns
        assert est.jacobian is None

    def test_user_covariance_matrix(self, linear_model):
        """Scaling V by c^2 scales standard errors by c."""
        from marginstats import predictions

        base = predictions(linear_model, newdata="balanced", vcov=np.eye(5))
        scaled = predictions(linear_model, newdata="balanced", vcov=9 * np.eye(5))

        np.testing.assert_allclose(scaled.std_error, 3 * base.std_error)

    def test_null_value(self, linear_model):
        """A scalar hypothesis moves the null of the test statistic."""
        from marginstats import predictions

        est = predictions(linear_model, newdata="mean", hypothesis=3.0)
        expected = (est.estimate - 3.0) / est.std_error

        np.testing.assert_allclose(est["statistic"], expected)

    def test_transform_drops_standard_errors(self, linear_model):
        """Back-transformation maps estimates and bounds, not the SEs."""
        from marginstats import predictions

        raw = predictions(linear_model, newdata="balanced")
        est = predictions(linear_model, newdata="balanced", transform=np.exp)

        assert "std.error" not in est.columns
        assert "statistic" not in est.columns
        assert "p.value" in est.columns
        np.testing.assert_allclose(est.estimate, np.exp(raw.estimate))
        np.testing.assert_allclose(est["conf.low"], np.exp(raw["conf.low"]))

    def test_student_t_intervals_are_wider(self, linear_model):
        from marginstats import predictions

        normal = predictions(linear_model, newdata="mean")
        student = predictions(linear_model, newdata="mean", df=5)

        width_normal = normal["conf.high"].iloc[0] - normal["conf.low"].iloc[0]
        width_student = student["conf.high"].iloc[0] - student["conf.low"].iloc[0]
        assert width_student > width_normal
        assert student.std_error[0] == pytest.approx(normal.std_error[0])

    def test_link_scale(self, logit_fit, logit_data):
        """type='link' returns the linear predictor."""
        from marginstats import StatsmodelsModel, predictions

        est = predictions(StatsmodelsModel(logit_fit), newdata=logit_data.head(5), type="link")
        expected = logit_fit.predict(logit_data.head(5), which="linear")

        np.testing.assert_allclose(est.estimate, expected.to_numpy())

    def test_missing_rows_are_dropped(self, ols_fit, linear_data):
        """Grid rows with missing predictors are left out of the results."""
        from marginstats import StatsmodelsModel, predictions

        grid = linear_data.head(4).copy()
        grid.loc[2, "z"] = np.nan
        est = predictions(StatsmodelsModel(ols_fit), newdata=grid)

        assert len(est) == 3
        assert list(est["rowid"]) == [0, 1, 3]

    def test_unknown_by_column_raises(self, linear_model):
        from marginstats import UnknownVariable, predictions

        with pytest.raises(UnknownVariable):
            predictions(linear_model, by="nope")

    def test_bad_conf_level_raises(self, linear_model):
        from marginstats import predictions

        with pytest.raises(ValueError, match="conf_level"):
            predictions(linear_model, conf_level=95)

    def test_by_mapping_frame(self, linear_model):
        """A DataFrame passed to by= regroups levels into coarser groups."""
        from marginstats import predictions

        mapping = pd.DataFrame({"g": ["a", "b", "c"], "by": ["ab", "ab", "c"]})
        est = predictions(linear_model, by=mapping)

        assert list(est["by"]) == ["ab", "c"]
