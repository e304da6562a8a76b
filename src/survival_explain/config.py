"""Configuration for models, data, explanation analyses and execution.

Every tunable of the explanation workflow lives in a dataclass here:
- ModelHyperparameters: the three survival models fitted before explaining
- DataConfig: column names and feature lists
- AnalysisConfig: time grids, profile grids, permutation counts
- ExecutionConfig: joblib parallelism over variables

SurvivalExplainConfig bundles them and round-trips through JSON.
"""
from __future__ import annotations
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import os
import multiprocessing
import json


class ExecutionMode(str, Enum):
    """Execution mode for per-variable explanation loops.

    Attributes:
        PANDAS: Sequential execution in the calling process (default)
        MULTIPROCESSING: Parallel execution over variables using joblib
    """
    PANDAS = "pandas"
    MULTIPROCESSING = "mp"


@dataclass
class ExecutionConfig:
    """Configuration for execution mode and parallelization.

    Attributes:
        mode: Execution mode (pandas, mp)
        n_jobs: Number of parallel jobs. -1 means use all cores, 1 means sequential
        verbose: Verbosity level for joblib (0=silent, 10=progress bar, 50=detailed)
        backend: Joblib backend ('loky', 'threading', 'multiprocessing')

    Example:
        >>> config = ExecutionConfig()
        >>> config = ExecutionConfig(mode=ExecutionMode.MULTIPROCESSING, n_jobs=-1)
    """
    mode: ExecutionMode = ExecutionMode.PANDAS
    n_jobs: int = 1
    verbose: int = 0
    backend: str = "loky"

    def __post_init__(self):
        """Validate and normalize configuration."""
        if isinstance(self.mode, str):
            self.mode = ExecutionMode(self.mode)

        if self.n_jobs == -1:
            self.n_jobs = multiprocessing.cpu_count()
        elif self.n_jobs < 1:
            raise ValueError(f"n_jobs must be -1 or positive, got {self.n_jobs}")

        if self.mode == ExecutionMode.PANDAS:
            self.n_jobs = 1

    def is_parallel(self) -> bool:
        """Check if parallel execution is enabled.

        Returns:
            True if execution mode supports parallelism and n_jobs > 1
        """
        return self.mode != ExecutionMode.PANDAS and self.n_jobs > 1

    def __str__(self) -> str:
        return (
            f"ExecutionConfig(mode={self.mode.value}, "
            f"n_jobs={self.n_jobs}, "
            f"parallel={self.is_parallel()})"
        )


def create_execution_config(
    mode: Optional[str] = None,
    n_jobs: int = -1,
    verbose: int = 0
) -> ExecutionConfig:
    """Factory function to create ExecutionConfig from CLI-style arguments.

    Args:
        mode: Execution mode string ('pandas', 'mp'). None means sequential
        n_jobs: Number of parallel jobs (-1 = all cores)
        verbose: Verbosity level (0=silent, 10=progress, 50=detailed)

    Returns:
        ExecutionConfig instance

    Example:
        >>> config = create_execution_config(mode='mp', n_jobs=4)
    """
    execution_mode = ExecutionMode.PANDAS if mode is None else ExecutionMode(mode)
    return ExecutionConfig(mode=execution_mode, n_jobs=n_jobs, verbose=verbose)


# ============================================================================
# Model Hyperparameters Configuration
# ============================================================================

@dataclass
class ModelHyperparameters:
    """Hyperparameters for the survival models that get explained.

    Attributes:
        cox_alpha: L2 penalty of the Cox proportional hazards model
        cox_max_iter: Maximum iterations for Cox model optimization
        rsf_n_estimators: Number of trees in the random survival forest
        rsf_max_depth: Maximum tree depth (None = unlimited)
        rsf_min_samples_split: Minimum samples required to split a node
        rsf_min_samples_leaf: Minimum samples required in a leaf
        rsf_max_features: Features considered per split (None = all)
        weibull_penalizer: L2 penalizer of the Weibull AFT fitter
        random_state: Seed shared by the stochastic models
    """
    cox_alpha: float = 1.0
    """L2 regularization strength for Cox PH.

    Valid range: [0.0, inf)
    0.0 gives the unpenalized model, which can fail on collinear dummies.
    """

    cox_max_iter: int = 10_000
    """Maximum iterations for Cox model optimization."""

    rsf_n_estimators: int = 100
    """Number of trees in the random survival forest.

    Valid range: [10, 1000]
    Explanations call the model many times, so fewer trees keep them fast.
    """

    rsf_max_depth: Optional[int] = None
    rsf_min_samples_split: int = 10
    rsf_min_samples_leaf: int = 5
    rsf_max_features: Optional[int] = None

    weibull_penalizer: float = 0.0
    """L2 penalizer passed to lifelines WeibullAFTFitter."""

    random_state: int = 42

    @classmethod
    def for_environment(cls, run_type: str) -> "ModelHyperparameters":
        """Create hyperparameters optimized for specific environment.

        Args:
            run_type: One of "sample", "production"

        Returns:
            ModelHyperparameters instance with appropriate defaults

        Example:
            >>> ModelHyperparameters.for_environment("production").rsf_n_estimators
            300
        """
        if run_type == "production":
            return cls(rsf_n_estimators=300, rsf_min_samples_leaf=15)
        return cls()


# ============================================================================
# Data Configuration
# ============================================================================

@dataclass
class DataConfig:
    """Configuration for data loading and feature selection.

    Defaults describe the veterans lung cancer trial data shipped with
    scikit-survival (see ``survival_explain.data.load_veterans``).

    Attributes:
        numeric_features: Tuple of numeric feature column names
        categorical_features: Tuple of categorical feature column names
        time_column: Column containing survival time
        event_column: Column containing event indicator (True/1 = event occurred)
        min_survival_time: Records with time at or below this value are dropped
    """
    numeric_features: tuple[str, ...] = ("karno", "diagtime", "age")
    categorical_features: tuple[str, ...] = ("trt", "celltype", "prior")

    time_column: str = "time"
    """Column containing survival time."""

    event_column: str = "status"
    """Column containing event indicator (True/1 = event occurred)."""

    min_survival_time: float = 0.0
    """Minimum valid survival time. Records at or below it are filtered."""

    @property
    def feature_columns(self) -> list[str]:
        return list(self.numeric_features) + list(self.categorical_features)


# ============================================================================
# Analysis Configuration
# ============================================================================

@dataclass
class AnalysisConfig:
    """Configuration for the explanation analyses.

    Attributes:
        time_grid_points: Number of points in the explainer's default time grid
        profile_grid_points: Grid size for variable response and ceteris paribus
        profile_n_observations: Rows sampled for variable response (None = all)
        importance_permutations: Permutation rounds B for variable importance
        importance_loss: Loss name for variable importance
        shap_orderings: Random variable orderings averaged by SHAP breakdown
        breakdown_n_observations: Background rows for breakdown (None = all)
        random_state: Seed for every sampling step
    """
    time_grid_points: int = 50
    """Number of time points for survival function evaluation.

    Valid range: [2, 1000]
    """

    profile_grid_points: int = 25
    """Grid size per numeric variable in profiles.

    Numeric variables take this many quantiles of their observed
    distribution; categorical variables always use all levels.
    """

    profile_n_observations: Optional[int] = None

    importance_permutations: int = 10
    importance_loss: str = "integrated_brier_score"
    """One of "integrated_brier_score", "one_minus_cindex"."""

    shap_orderings: int = 25
    breakdown_n_observations: Optional[int] = None
    random_state: int = 42

    def __post_init__(self):
        """Reject settings the analyses cannot run with."""
        if self.time_grid_points < 2:
            raise ValueError(f"time_grid_points must be at least 2, got {self.time_grid_points}")
        if self.profile_grid_points < 2:
            raise ValueError(f"profile_grid_points must be at least 2, got {self.profile_grid_points}")
        if self.importance_permutations < 1 or self.shap_orderings < 1:
            raise ValueError(
                "importance_permutations and shap_orderings must be at least 1, got "
                f"{self.importance_permutations} and {self.shap_orderings}"
            )
        for name in ("profile_n_observations", "breakdown_n_observations"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be positive or None, got {value}")


# ============================================================================
# Master Configuration
# ============================================================================

@dataclass
class SurvivalExplainConfig:
    """Master configuration for the explanation workflow.

    Attributes:
        hyperparameters: Model hyperparameter configuration
        data: Data loading configuration
        analysis: Explanation analysis configuration
        execution: Execution mode and parallelization configuration
        run_type: Type of run ("sample", "production")
        description: Optional description of this configuration

    Example:
        >>> config = SurvivalExplainConfig.for_run_type("production")
        >>> config.save("configs/production.json")
        >>> loaded = SurvivalExplainConfig.load("configs/production.json")
    """
    hyperparameters: ModelHyperparameters = field(default_factory=ModelHyperparameters)
    data: DataConfig = field(default_factory=DataConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    run_type: str = "sample"
    description: str = ""

    @classmethod
    def for_run_type(cls, run_type: str) -> "SurvivalExplainConfig":
        """Create configuration optimized for specific run type.

        Args:
            run_type: One of "sample", "production"

        Returns:
            Configured instance with appropriate defaults
        """
        if run_type == "production":
            exec_config = ExecutionConfig(mode=ExecutionMode.MULTIPROCESSING, n_jobs=-1)
        else:
            exec_config = ExecutionConfig()

        return cls(
            hyperparameters=ModelHyperparameters.for_environment(run_type),
            execution=exec_config,
            run_type=run_type
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for serialization.

        Returns:
            Dictionary representation of configuration
        """
        def _dataclass_to_dict(obj):
            if hasattr(obj, '__dataclass_fields__'):
                return {
                    k: _dataclass_to_dict(v)
                    for k, v in obj.__dict__.items()
                }
            elif isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, tuple):
                return list(obj)
            else:
                return obj

        return _dataclass_to_dict(self)

    def save(self, path: str) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to output JSON file
        """
        config_dict = self.to_dict()
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(config_dict, f, indent=2)

    @classmethod
    def load(cls, path: str) -> "SurvivalExplainConfig":
        """Load configuration from JSON file.

        Args:
            path: Path to input JSON file

        Returns:
            SurvivalExplainConfig instance
        """
        with open(path) as f:
            data = json.load(f)

        data_section = dict(data['data'])
        for key in ("numeric_features", "categorical_features"):
            data_section[key] = tuple(data_section[key])

        return cls(
            hyperparameters=ModelHyperparameters(**data['hyperparameters']),
            data=DataConfig(**data_section),
            analysis=AnalysisConfig(**data['analysis']),
            execution=ExecutionConfig(**data['execution']),
            run_type=data['run_type'],
            description=data.get('description', '')
        )
