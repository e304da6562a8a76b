"""Unit tests for survival_explain.profiles module.

Covers grid construction, variable response (partial dependence over time)
and ceteris-paribus profiles.
"""
import pytest
import numpy as np
import pandas as pd

from survival_explain.config import ExecutionConfig
from survival_explain.profiles import (
    CATEGORICAL,
    NUMERICAL,
    make_variable_grid,
    model_profile,
    predict_profile,
    variable_type,
)


class TestVariableType:
    """Tests for variable_type."""

    def test_numeric(self):
        assert variable_type(pd.Series([1.0, 2.0], name="age")) == NUMERICAL

    @pytest.mark.parametrize("series", [
        pd.Series(["a", "b"], name="g"),
        pd.Series([True, False], name="flag"),
        pd.Series(["x", "y"], name="c", dtype="category"),
    ])
    def test_categorical(self, series):
        assert variable_type(series) == CATEGORICAL

    def test_forced_categorical(self):
        assert variable_type(pd.Series([0, 1, 2], name="stage"), ["stage"]) == CATEGORICAL


class TestMakeVariableGrid:
    """Tests for make_variable_grid."""

    def test_categorical_levels_sorted(self):
        grid = make_variable_grid(pd.Series(["b", "a", "b", None], name="g"), 5, CATEGORICAL)
        assert grid.tolist() == ["a", "b"]

    def test_few_unique_values_kept(self):
        grid = make_variable_grid(pd.Series([3.0, 1.0, 3.0, 2.0]), 10, NUMERICAL)
        np.testing.assert_array_equal(grid, [1.0, 2.0, 3.0])

    def test_quantile_grid(self):
        series = pd.Series(np.arange(101, dtype=float))
        grid = make_variable_grid(series, 5, NUMERICAL)
        np.testing.assert_allclose(grid, [0.0, 25.0, 50.0, 75.0, 100.0])

    def test_integer_grid_rounded(self):
        series = pd.Series(np.arange(10), dtype=int)
        grid = make_variable_grid(series, 4, NUMERICAL)
        np.testing.assert_array_equal(grid, [0.0, 3.0, 6.0, 9.0])

    def test_too_few_points(self):
        with pytest.raises(ValueError, match="grid_points"):
            make_variable_grid(pd.Series([1.0, 2.0]), 1, NUMERICAL)

    def test_no_observed_values(self):
        with pytest.raises(ValueError, match="no observed values"):
            make_variable_grid(pd.Series([np.nan, np.nan], name="x"), 5, NUMERICAL)


class TestModelProfile:
    """Tests for model_profile (variable response)."""

    def test_result_layout(self, analytic_explainer):
        response = model_profile(analytic_explainer, variables=["x1", "g"], grid_points=6)

        assert list(response.result.columns) == [
            "label", "variable", "variable_type", "value", "time", "survival"
        ]
        assert response.n_observations == len(analytic_explainer.data)
        assert response.curves("x1").shape == (6, 20)
        assert response.curves("g").shape == (2, 20)

    def test_equals_average_of_modified_predictions(self, analytic_explainer):
        """Each curve is the mean survival with the variable fixed at the grid value."""
        response = model_profile(analytic_explainer, variables=["x2"], grid_points=4)
        rows = response.result

        for value in rows["value"].unique():
            modified = analytic_explainer.data.assign(x2=value)
            expected = analytic_explainer.predict_survival(modified).mean(axis=0)
            actual = rows.loc[rows["value"] == value, "survival"].to_numpy()
            np.testing.assert_allclose(actual, expected)

    def test_monotone_in_risk_factor(self, analytic_explainer):
        """Survival falls as x1 (positive hazard coefficient) rises, at every time."""
        curves = model_profile(analytic_explainer, variables="x1", grid_points=8).curves("x1")
        curves = curves.sort_index()

        values = curves.to_numpy()
        assert np.all(np.diff(values, axis=0) <= 0)
        assert np.all(values[0] > values[-1])

    def test_ignored_variable_is_flat(self, analytic_explainer):
        curves = model_profile(analytic_explainer, variables=["z"], grid_points=5).curves("z")
        baseline = analytic_explainer.predict_survival().mean(axis=0)

        for _, curve in curves.iterrows():
            np.testing.assert_allclose(curve.to_numpy(), baseline)

    def test_subsampled_observations(self, analytic_explainer):
        response = model_profile(
            analytic_explainer, variables=["x1"], n_observations=30, random_state=0
        )
        assert response.n_observations == 30

    def test_parallel_matches_sequential(self, analytic_explainer):
        config = ExecutionConfig(mode="mp", n_jobs=2, backend="threading")

        sequential = model_profile(analytic_explainer, variables=["x1", "g"], grid_points=5)
        parallel = model_profile(
            analytic_explainer, variables=["x1", "g"], grid_points=5, execution_config=config
        )

        pd.testing.assert_frame_equal(sequential.result, parallel.result)

    def test_unknown_variable(self, analytic_explainer):
        with pytest.raises(ValueError, match="Unknown variables"):
            model_profile(analytic_explainer, variables=["nope"])

    def test_missing_curves(self, analytic_explainer):
        response = model_profile(analytic_explainer, variables=["x1"], grid_points=3)
        with pytest.raises(KeyError):
            response.curves("x2")

    def test_real_pipeline_categorical(self, fitted_pipelines, veterans_Xy):
        from survival_explain.explainer import explain
        X, y = veterans_Xy
        explainer = explain(fitted_pipelines["cox_ph"], X, y, n_times=10)

        response = model_profile(explainer, variables=["celltype", "karno"], grid_points=5)

        assert sorted(response.curves("celltype").index) == ["adeno", "large", "smallcell", "squamous"]
        assert response.result["survival"].between(0, 1).all()


class TestPredictProfile:
    """Tests for predict_profile (ceteris paribus)."""

    def test_observed_value_reproduces_prediction(self, analytic_explainer):
        observation = analytic_explainer.data.iloc[[4]]
        cp = predict_profile(analytic_explainer, observation, grid_points=5)

        np.testing.assert_allclose(cp.prediction, analytic_explainer.predict_survival(observation)[0])
        for variable in analytic_explainer.data.columns:
            rows = cp.result[(cp.result["variable"] == variable) & cp.result["observed"]]
            assert len(rows) == len(cp.times)
            np.testing.assert_allclose(rows["survival"].to_numpy(), cp.prediction)

    def test_observed_value_added_to_grid(self, analytic_explainer):
        observation = analytic_explainer.data.iloc[0].to_dict()
        observation["x1"] = 0.123456

        cp = predict_profile(analytic_explainer, observation, variables=["x1"], grid_points=4)
        values = cp.curves("x1").index.astype(float)

        assert len(values) == 5
        assert np.any(np.isclose(values, 0.123456))

    def test_only_one_variable_moves(self, analytic_explainer, analytic_model):
        observation = analytic_explainer.data.iloc[[10]]
        cp = predict_profile(analytic_explainer, observation, variables=["g"])

        for level in ("a", "b"):
            expected = analytic_model.survival(observation.assign(g=level), cp.times)[0]
            np.testing.assert_allclose(cp.curves("g").loc[level].to_numpy(), expected)

    def test_multiple_rows_rejected(self, analytic_explainer):
        with pytest.raises(ValueError, match="single observation"):
            predict_profile(analytic_explainer, analytic_explainer.data.head(2))
