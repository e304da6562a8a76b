"""
Integration tests for the end-to-end explanation pipeline.

These tests run every analysis on every model the way the CLI does,
catching issues that unit tests miss (pipeline compatibility, categorical
inputs, output layout, etc.).
"""

import pytest
import pandas as pd
import mlflow

from main import run_pipeline
from survival_explain.config import AnalysisConfig, ModelHyperparameters, SurvivalExplainConfig
from survival_explain.tracking import log_artifact, log_metrics, log_params, start_run

# Mark all tests in this file as integration tests
pytestmark = pytest.mark.integration

MODELS = ("cox_ph", "rsf", "weibull_aft")
ANALYSES = ("performance", "importance", "variable_response", "ceteris_paribus", "break_down", "shap")


@pytest.fixture
def small_config():
    """Configuration small enough for a test run."""
    return SurvivalExplainConfig(
        hyperparameters=ModelHyperparameters(rsf_n_estimators=10),
        analysis=AnalysisConfig(
            time_grid_points=10,
            profile_grid_points=5,
            profile_n_observations=30,
            importance_permutations=2,
            shap_orderings=2,
            breakdown_n_observations=30,
        ),
    )


class TestEndToEndPipeline:
    """Test complete explanation pipeline execution."""

    def test_full_pipeline_completes_successfully(self, tmp_path, small_config):
        """Every model gets every explanation CSV plus a saved pipeline."""
        exit_code = run_pipeline(
            run_type="sample",
            observation_index=3,
            variables=["karno", "celltype"],
            config=small_config,
            output_base=str(tmp_path),
            track=False,
            console_output=False,
        )

        assert exit_code == 0

        explanations = tmp_path / "sample" / "explanations"
        for model in MODELS:
            for analysis in ANALYSES:
                assert (explanations / f"{model}_{analysis}.csv").exists(), f"{model}_{analysis}"

        comparison = pd.read_csv(explanations / "performance_comparison.csv")
        assert sorted(comparison["label"]) == sorted(MODELS)

        model_files = list((tmp_path / "sample" / "models").glob("*.joblib"))
        assert len(model_files) == 3

        logs = tmp_path / "sample" / "logs"
        assert any(p.name.startswith("performance_") for p in logs.iterdir())

    def test_profiles_restricted_to_requested_variables(self, tmp_path, small_config):
        run_pipeline(
            variables=["karno"],
            config=small_config,
            output_base=str(tmp_path),
            track=False,
            console_output=False,
        )

        explanations = tmp_path / "sample" / "explanations"
        response = pd.read_csv(explanations / "rsf_variable_response.csv")
        importance = pd.read_csv(explanations / "rsf_importance.csv")
        breakdown = pd.read_csv(explanations / "rsf_break_down.csv")

        assert response["variable"].unique().tolist() == ["karno"]
        assert set(importance["variable"]) == {"_full_model_", "karno", "_baseline_"}
        # Breakdown always attributes to every feature
        assert breakdown["variable"].nunique() == 6

    def test_csv_input(self, tmp_path, small_config, veterans_df):
        input_file = tmp_path / "veterans.csv"
        veterans_df.to_csv(input_file, index=False)

        exit_code = run_pipeline(
            input_file=str(input_file),
            variables=["age"],
            config=small_config,
            output_base=str(tmp_path / "outputs"),
            track=False,
            console_output=False,
        )

        assert exit_code == 0

    def test_missing_input_file(self, tmp_path):
        exit_code = run_pipeline(
            input_file=str(tmp_path / "missing.csv"),
            output_base=str(tmp_path),
            track=False,
            console_output=False,
        )
        assert exit_code == 1

    def test_observation_index_out_of_range(self, tmp_path, small_config):
        exit_code = run_pipeline(
            observation_index=10_000,
            config=small_config,
            output_base=str(tmp_path),
            track=False,
            console_output=False,
        )
        assert exit_code == 1


class TestTracking:
    """Test MLflow logging helpers against a local file store."""

    def test_run_logging(self, tmp_path):
        artifact = tmp_path / "rsf_performance.csv"
        artifact.write_text("label,time,brier_score,auc\nrsf,1.0,0.1,0.7\n")

        with start_run("test_run", tracking_dir=str(tmp_path / "mlruns")) as run:
            assert log_params({"run_type": "sample", "variables": ["karno", "age"]})
            assert log_metrics({"rsf_c_index": 0.71, "rsf_integrated_brier_score": 0.12})
            assert log_artifact(str(artifact))
            assert not log_artifact(str(tmp_path / "missing.csv"))

        logged = mlflow.get_run(run.info.run_id)
        assert logged.data.metrics["rsf_c_index"] == pytest.approx(0.71)
        assert logged.data.params["run_type"] == "sample"
