"""Tests for reference grids."""

import numpy as np
import pandas as pd
import pytest


class TestDatagrid:
    """Test suite for typical and counterfactual grids."""

    def test_typical_grid_summarizes_unspecified_columns(self, linear_model, linear_data):
        """Numeric columns at their mean, categorical ones at their mode."""
        from marginstats import datagrid

        grid = datagrid(linear_model)

        assert len(grid) == 1
        assert grid["x"].iloc[0] == pytest.approx(linear_data["x"].mean())
        assert grid["g"].iloc[0] == linear_data["g"].mode().iloc[0]
        assert "y" not in grid.columns
        assert list(grid["rowid"]) == [0]

    def test_typical_grid_crosses_values(self, linear_model):
        """One row per combination of the given values."""
        from marginstats import datagrid

        grid = datagrid(linear_model, x=[0, 1], g="unique")

        assert len(grid) == 6
        assert sorted(grid["g"].unique()) == ["a", "b", "c"]
        assert list(grid["rowid"]) == list(range(6))

    def test_integer_columns_use_rounded_mean(self):
        """Integer columns keep integer summaries."""
        from marginstats import datagrid

        df = pd.DataFrame({"k": [1, 2, 2, 4], "x": [0.0, 1.0, 2.0, 3.0]})
        grid = datagrid(newdata=df)

        assert grid["k"].iloc[0] == 2

    def test_generators(self, linear_model, linear_data):
        """Named generators expand to several values."""
        from marginstats import datagrid

        grid = datagrid(linear_model, x="minmax")
        assert list(grid["x"]) == [linear_data["x"].min(), linear_data["x"].max()]

        grid = datagrid(linear_model, z="fivenum")
        assert len(grid) == 5
        assert grid["z"].iloc[2] == pytest.approx(linear_data["z"].median())

        grid = datagrid(linear_model, x=lambda col: col.quantile([0.1, 0.9]))
        assert len(grid) == 2

    def test_counterfactual_grid_replicates_data(self, linear_data):
        """Counterfactual grid has n rows per value, with rowidcf."""
        from marginstats import datagrid

        grid = datagrid(newdata=linear_data, grid_type="counterfactual", g=["a", "b"])

        n = len(linear_data)
        assert len(grid) == 2 * n
        assert (grid["g"].iloc[:n] == "a").all()
        assert (grid["g"].iloc[n:] == "b").all()
        np.testing.assert_array_equal(grid["rowidcf"].iloc[n:], np.arange(n))
        np.testing.assert_allclose(grid["x"].iloc[n:], linear_data["x"])

    def test_categorical_dtype_is_kept(self):
        """Grids keep the categories of categorical columns."""
        from marginstats import datagrid

        df = pd.DataFrame({"g": pd.Categorical(["lo", "hi", "hi"], categories=["lo", "mid", "hi"]), "x": [1.0, 2.0, 3.0]})
        grid = datagrid(newdata=df, g="unique")

        assert isinstance(grid["g"].dtype, pd.CategoricalDtype)
        assert list(grid["g"].cat.categories) == ["lo", "mid", "hi"]
        assert list(grid["g"]) == ["lo", "hi"]

    def test_unknown_variable_raises(self, linear_model):
        """Naming a missing column raises UnknownVariable."""
        from marginstats import UnknownVariable, datagrid

        with pytest.raises(UnknownVariable, match="nope"):
            datagrid(linear_model, nope=[1, 2])

    def test_invalid_grid_type_raises(self, linear_model):
        from marginstats import datagrid

        with pytest.raises(ValueError, match="grid_type"):
            datagrid(linear_model, grid_type="fancy")


class TestPresetGrids:
    """Test suite for named grids passed as newdata."""

    def test_balanced_grid(self, linear_model):
        """Balanced grid: every level of categorical predictors."""
        from marginstats.grid import preset_grid

        grid = preset_grid(linear_model, "balanced")
        assert len(grid) == 3
        assert grid["x"].nunique() == 1

    def test_grid_preset_crosses_fivenum(self, linear_model):
        from marginstats.grid import preset_grid

        grid = preset_grid(linear_model, "grid")
        assert len(grid) == 5 * 5 * 3

    def test_unknown_preset_raises(self, linear_model):
        from marginstats.grid import resolve_newdata

        with pytest.raises(ValueError, match="Unknown newdata"):
            resolve_newdata(linear_model, "average")


class TestSummaries:
    """Test suite for summary helpers."""

    def test_fivenum_matches_tukey(self):
        """Tukey hinges on a small sample."""
        from marginstats.grid import fivenum

        x = pd.Series([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        assert fivenum(x) == [1.0, 2.0, 3.5, 5.0, 6.0]

    def test_mode_breaks_ties_by_lowest(self):
        from marginstats.grid import mode

        assert mode(pd.Series(["b", "a", "b", "a"])) == "a"

    def test_is_categorical(self):
        from marginstats.grid import is_categorical

        assert is_categorical(pd.Series(["a", "b"]))
        assert is_categorical(pd.Series([True, False]))
        assert not is_categorical(pd.Series([1.0, 2.0]))
