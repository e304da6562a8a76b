"""Unit tests for survival_explain.config module."""
import multiprocessing
import pytest

from survival_explain.config import (
    AnalysisConfig,
    DataConfig,
    ExecutionConfig,
    ExecutionMode,
    ModelHyperparameters,
    SurvivalExplainConfig,
    create_execution_config,
)


class TestExecutionConfig:
    """Tests for ExecutionConfig."""

    def test_default_is_sequential(self):
        config = ExecutionConfig()
        assert config.mode == ExecutionMode.PANDAS
        assert config.n_jobs == 1
        assert not config.is_parallel()

    def test_pandas_mode_forces_single_job(self):
        config = ExecutionConfig(mode=ExecutionMode.PANDAS, n_jobs=8)
        assert config.n_jobs == 1

    def test_string_mode_converted(self):
        config = ExecutionConfig(mode="mp", n_jobs=2)
        assert config.mode == ExecutionMode.MULTIPROCESSING
        assert config.is_parallel()

    def test_all_cores(self):
        config = ExecutionConfig(mode="mp", n_jobs=-1)
        assert config.n_jobs == multiprocessing.cpu_count()

    def test_invalid_n_jobs(self):
        with pytest.raises(ValueError, match="n_jobs"):
            ExecutionConfig(mode="mp", n_jobs=0)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            ExecutionConfig(mode="spark")

    def test_create_execution_config(self):
        config = create_execution_config(mode="mp", n_jobs=3, verbose=10)
        assert config.mode == ExecutionMode.MULTIPROCESSING
        assert config.n_jobs == 3
        assert config.verbose == 10

        assert create_execution_config().mode == ExecutionMode.PANDAS


class TestModelHyperparameters:
    """Tests for ModelHyperparameters."""

    def test_sample_defaults(self):
        hp = ModelHyperparameters.for_environment("sample")
        assert hp.rsf_n_estimators == 100
        assert hp.cox_alpha == 1.0

    def test_production_overrides(self):
        hp = ModelHyperparameters.for_environment("production")
        assert hp.rsf_n_estimators == 300
        assert hp.rsf_min_samples_leaf == 15


class TestDataConfig:
    """Tests for DataConfig."""

    def test_feature_columns_order(self):
        config = DataConfig()
        assert config.feature_columns == ["karno", "diagtime", "age", "trt", "celltype", "prior"]


class TestAnalysisConfig:
    """Tests for AnalysisConfig validation."""

    @pytest.mark.parametrize("kwargs,match", [
        ({"time_grid_points": 1}, "time_grid_points"),
        ({"profile_grid_points": 1}, "profile_grid_points"),
        ({"shap_orderings": 0}, "shap_orderings"),
        ({"importance_permutations": 0}, "importance_permutations"),
        ({"breakdown_n_observations": 0}, "breakdown_n_observations"),
    ])
    def test_invalid_values(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            AnalysisConfig(**kwargs)

    def test_subsampling_optional(self):
        config = AnalysisConfig(profile_n_observations=50)
        assert config.profile_n_observations == 50
        assert config.breakdown_n_observations is None


class TestSurvivalExplainConfig:
    """Tests for the master configuration."""

    def test_for_run_type_production(self):
        config = SurvivalExplainConfig.for_run_type("production")
        assert config.run_type == "production"
        assert config.execution.mode == ExecutionMode.MULTIPROCESSING
        assert config.hyperparameters.rsf_n_estimators == 300

    def test_to_dict_serializable_values(self):
        as_dict = SurvivalExplainConfig().to_dict()
        assert as_dict["execution"]["mode"] == "pandas"
        assert as_dict["data"]["numeric_features"] == ["karno", "diagtime", "age"]
        assert as_dict["analysis"]["shap_orderings"] == 25

    def test_save_and_load(self, tmp_path):
        config = SurvivalExplainConfig(
            analysis=AnalysisConfig(profile_grid_points=7, importance_loss="one_minus_cindex"),
            data=DataConfig(numeric_features=("age",), categorical_features=("trt",)),
            description="small profile grid",
        )
        path = tmp_path / "configs" / "small.json"

        config.save(str(path))
        loaded = SurvivalExplainConfig.load(str(path))

        assert loaded.analysis.profile_grid_points == 7
        assert loaded.analysis.importance_loss == "one_minus_cindex"
        assert loaded.data.numeric_features == ("age",)
        assert loaded.data.feature_columns == ["age", "trt"]
        assert loaded.execution.mode == ExecutionMode.PANDAS
        assert loaded.description == "small profile grid"
