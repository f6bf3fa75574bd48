"""Tests for hypothesis transformations and hypotheses()."""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def three_estimates():
    frame = pd.DataFrame({"term": ["a", "b", "c"], "estimate": [1.0, 3.0, 6.0]})
    values = frame[["estimate"]].to_numpy()
    jacobian = np.eye(3)
    return frame, values, jacobian


class TestApplyHypothesis:
    """Test suite for the hypothesis engine."""

    def test_none_is_identity(self, three_estimates):
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, J = three_estimates
        out = apply_hypothesis(frame, values, None, DEFAULT_SETTINGS, jacobian=J)

        assert out.frame is frame
        assert out.jacobian is J

    def test_pairwise(self, three_estimates):
        """pairwise gives est_i - est_j for i < j."""
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, J = three_estimates
        out = apply_hypothesis(frame, values, "pairwise", DEFAULT_SETTINGS, jacobian=J)

        assert list(out.frame["term"]) == ["a - b", "a - c", "b - c"]
        np.testing.assert_allclose(out.frame["estimate"], [-2.0, -5.0, -3.0])
        np.testing.assert_allclose(out.jacobian[0], [1.0, -1.0, 0.0])

    def test_reference_and_sequential(self, three_estimates):
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, _ = three_estimates
        ref = apply_hypothesis(frame, values, "reference", DEFAULT_SETTINGS)
        seq = apply_hypothesis(frame, values, "sequential", DEFAULT_SETTINGS)
        rev = apply_hypothesis(frame, values, "revsequential", DEFAULT_SETTINGS)

        np.testing.assert_allclose(ref.frame["estimate"], [2.0, 5.0])
        np.testing.assert_allclose(seq.frame["estimate"], [2.0, 3.0])
        np.testing.assert_allclose(rev.frame["estimate"], [-2.0, -3.0])

    def test_weight_vector_and_matrix(self, three_estimates):
        """Weights are applied as W' est; matrix columns become rows."""
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, J = three_estimates
        vec = apply_hypothesis(frame, values, [1.0, 1.0, 1.0], DEFAULT_SETTINGS, jacobian=J)
        mat = apply_hypothesis(frame, values, np.array([[1.0, 0.0], [0.0, 1.0], [0.0, -1.0]]), DEFAULT_SETTINGS)

        assert vec.frame["estimate"].iloc[0] == pytest.approx(10.0)
        np.testing.assert_allclose(vec.jacobian, [[1.0, 1.0, 1.0]])
        np.testing.assert_allclose(mat.frame["estimate"], [1.0, -3.0])
        assert list(mat.frame["term"]) == ["custom1", "custom2"]

    def test_weight_rows_must_match(self, three_estimates):
        from marginstats import MalformedHypothesis
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, _ = three_estimates
        with pytest.raises(MalformedHypothesis, match="3 estimates"):
            apply_hypothesis(frame, values, [1.0, -1.0], DEFAULT_SETTINGS)

    def test_string_equation(self, three_estimates):
        """Equations are evaluated as lhs - rhs, by position or label."""
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, J = three_estimates
        by_position = apply_hypothesis(frame, values, "b1 + b2 = b3", DEFAULT_SETTINGS, jacobian=J)
        by_label = apply_hypothesis(frame, values, "a + b = c", DEFAULT_SETTINGS, jacobian=J)

        assert by_position.frame["estimate"].iloc[0] == pytest.approx(-2.0)
        assert by_label.frame["estimate"].iloc[0] == pytest.approx(-2.0)
        np.testing.assert_allclose(by_position.jacobian, [[1.0, 1.0, -1.0]], atol=1e-6)

    def test_nonlinear_equation_gradient(self, three_estimates):
        """Ratio hypotheses get the gradient of the ratio."""
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, J = three_estimates
        out = apply_hypothesis(frame, values, "b2 / b1 = 1", DEFAULT_SETTINGS, jacobian=J)

        assert out.frame["estimate"].iloc[0] == pytest.approx(2.0)
        np.testing.assert_allclose(out.jacobian, [[-3.0, 1.0, 0.0]], rtol=1e-5)

    def test_equation_applies_to_every_draw(self, three_estimates):
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, _, _ = three_estimates
        draws = np.array([[1.0, 2.0], [3.0, 5.0], [0.0, 0.0]])
        out = apply_hypothesis(frame, draws, "b2 - b1 = 0", DEFAULT_SETTINGS)

        np.testing.assert_allclose(out.values, [[2.0, 3.0]])

    @pytest.mark.parametrize(
        "expression, message",
        [
            ("b1 = b2 = b3", "more than one"),
            ("= b2", "empty side"),
            ("b1 - b9 = 0", "unknown estimate"),
            ("b1 + (b2", "Cannot evaluate"),
        ],
    )
    def test_malformed_equations(self, three_estimates, expression, message):
        from marginstats import MalformedHypothesis
        from marginstats.config import DEFAULT_SETTINGS
        from marginstats.hypothesis import apply_hypothesis

        frame, values, _ = three_estimates
        with pytest.raises(MalformedHypothesis, match=message):
            apply_hypothesis(frame, values, expression, DEFAULT_SETTINGS)

    def test_comparison_operators_are_not_equations(self):
        from marginstats.hypothesis import parse_equation

        assert parse_equation("b1 = b2") == "(b1) - (b2)"
        assert parse_equation("b1 >= b2") == "b1 >= b2"

    def test_split_null(self):
        from marginstats.hypothesis import split_null

        assert split_null(2) == (2.0, None)
        assert split_null("pairwise") == (0.0, "pairwise")
        assert split_null(None) == (0.0, None)


class TestHypotheses:
    """Test suite for hypotheses() on models and on results."""

    def test_coefficient_equation(self, linear_model):
        """Coefficients are addressed by name; SE from the covariance."""
        from marginstats import hypotheses

        est = hypotheses(linear_model, "x = 2")

        assert est.kind == "hypotheses"
        assert est.estimate[0] == pytest.approx(0.0, abs=1e-10)
        assert est.std_error[0] == pytest.approx(0.1, rel=1e-5)

    def test_all_coefficients(self, ols_fit):
        """Without a hypothesis, one row per coefficient matching statsmodels' t tests."""
        from marginstats import StatsmodelsModel, hypotheses

        est = hypotheses(StatsmodelsModel(ols_fit), df=ols_fit.df_resid)

        np.testing.assert_allclose(est.estimate, ols_fit.params.to_numpy())
        np.testing.assert_allclose(est.std_error, ols_fit.bse.to_numpy(), rtol=1e-6)
        np.testing.assert_allclose(est["p.value"], ols_fit.pvalues.to_numpy(), rtol=1e-4)

    def test_equal_estimates_on_identical_rows(self, linear_model, linear_data):
        """b1 = b2 on two copies of a row: zero estimate, zero SE, p-value 1."""
        from marginstats import predictions

        rows = linear_data.iloc[[0, 0]].reset_index(drop=True)
        with pytest.warns(UserWarning, match="zero standard error"):
            est = predictions(linear_model, newdata=rows, hypothesis="b1 = b2")

        assert est.estimate[0] == 0.0
        assert est.std_error[0] == pytest.approx(0.0, abs=1e-12)
        assert np.isnan(est["statistic"].iloc[0])
        assert est["p.value"].iloc[0] == 1.0

    def test_on_estimate_frame_reuses_jacobian(self, linear_model):
        """Testing earlier results matches re-running with the hypothesis."""
        from marginstats import hypotheses, predictions

        base = predictions(linear_model, by="g")
        after = hypotheses(base, "b2 = b1")
        direct = predictions(linear_model, by="g", hypothesis="b2 = b1")

        assert after.estimate[0] == pytest.approx(direct.estimate[0])
        assert after.std_error[0] == pytest.approx(direct.std_error[0], rel=1e-6)

    def test_transformed_estimates_reject_delta_hypotheses(self, linear_model):
        """A back-transformed frame has no Jacobian for later delta-method tests."""
        from marginstats import hypotheses, predictions

        est = predictions(linear_model, by="g", transform=np.exp)
        assert est.jacobian is None
        with pytest.raises(ValueError, match="back-transformed"):
            hypotheses(est, "b1 = b2")

        tested = hypotheses(predictions(linear_model, newdata="balanced"), "b2 - b1 = 0", transform=np.exp)
        assert tested.estimate[0] == pytest.approx(np.exp(1.0))
        assert tested.jacobian is None

    def test_keyword_on_estimate_frame(self, linear_model):
        from marginstats import hypotheses, predictions

        base = predictions(linear_model, by="g")
        est = hypotheses(base, "pairwise")

        assert len(est) == 3
        assert list(est["term"]) == ["a - b", "a - c", "b - c"]

    def test_equivalence_on_coefficients(self, linear_model):
        from marginstats import hypotheses

        est = hypotheses(linear_model, "x = 2", equivalence=(-0.5, 0.5))

        assert est["p.value.equiv"].iloc[0] < 0.001
