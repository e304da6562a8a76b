from __future__ import annotations
import os
import joblib
import logging
from joblib import Parallel, delayed
import pandas as pd
import numpy as np
from typing import Dict, Optional

from survival_explain.config import (
    DataConfig,
    ExecutionConfig,
    ModelHyperparameters,
)
from survival_explain.data import make_pipeline, make_preprocessor
from survival_explain.models import CoxPHWrapper, RSFWrapper, WeibullAFTWrapper
from survival_explain.logging_config import ProgressLogger, capture_warnings, log_performance
from survival_explain.timing import Timer
from survival_explain.utils import RunType, ensure_dir, versioned_name

logger = logging.getLogger("survival_explain.train")


def build_models(hyperparameters: Optional[ModelHyperparameters] = None) -> Dict[str, object]:
    """Construct the dictionary of survival models to fit and explain.

    Args:
        hyperparameters: ModelHyperparameters instance with configured parameters.
            If None, uses default hyperparameters.

    Returns:
        Dictionary mapping model names to unfitted model wrapper objects

    Example:
        >>> models = build_models()
        >>> print(list(models.keys()))
        ['cox_ph', 'rsf', 'weibull_aft']

        >>> hp = ModelHyperparameters.for_environment("production")
        >>> build_models(hp)["rsf"].n_estimators
        300
    """
    if hyperparameters is None:
        hyperparameters = ModelHyperparameters()

    return {
        "cox_ph": CoxPHWrapper(
            alpha=hyperparameters.cox_alpha,
            max_iter=hyperparameters.cox_max_iter
        ),
        "rsf": RSFWrapper(
            n_estimators=hyperparameters.rsf_n_estimators,
            max_depth=hyperparameters.rsf_max_depth,
            min_samples_split=hyperparameters.rsf_min_samples_split,
            min_samples_leaf=hyperparameters.rsf_min_samples_leaf,
            max_features=hyperparameters.rsf_max_features,
            random_state=hyperparameters.random_state
        ),
        "weibull_aft": WeibullAFTWrapper(
            penalizer=hyperparameters.weibull_penalizer
        ),
    }


def _fit_single_model(name: str, pipeline, X: pd.DataFrame, y: np.ndarray):
    """Fit one pipeline (helper for parallel execution)."""
    model_logger = logging.getLogger(f"survival_explain.models.{name}")
    with Timer(model_logger, f"{name} fit"):
        pipeline.fit(X, y)
    return pipeline


def fit_models(
    X: pd.DataFrame,
    y: np.ndarray,
    hyperparameters: Optional[ModelHyperparameters] = None,
    data_config: Optional[DataConfig] = None,
    execution_config: Optional[ExecutionConfig] = None,
) -> Dict[str, object]:
    """Fit every model of ``build_models`` inside a preprocessing pipeline.

    Each pipeline takes raw feature DataFrames (numeric and categorical
    columns as configured in ``data_config``), so explainers built on the
    fitted pipelines perturb the original variables.

    Args:
        X: Feature DataFrame
        y: Structured array with dtype=[('event', bool), ('time', float)]
        hyperparameters: Model hyperparameters. Defaults to ModelHyperparameters()
        data_config: Feature lists. Columns missing from X are skipped.
            Defaults to DataConfig()
        execution_config: Fit models in parallel when ``is_parallel()``.
            Defaults to sequential

    Returns:
        Dictionary mapping model names to fitted sklearn Pipelines

    Raises:
        ValueError: If X has no configured feature column, or X and y differ
            in length

    Example:
        >>> X, y = split_X_y(load_veterans())
        >>> pipelines = fit_models(X, y)
        >>> sorted(pipelines)
        ['cox_ph', 'rsf', 'weibull_aft']
    """
    data_config = data_config or DataConfig()
    if len(X) != len(y):
        raise ValueError(f"X has {len(X)} rows but y has {len(y)}")

    numeric = [col for col in data_config.numeric_features if col in X.columns]
    categorical = [col for col in data_config.categorical_features if col in X.columns]
    if not numeric and not categorical:
        raise ValueError(
            f"None of the configured features are present in X. Available: {list(X.columns)}"
        )

    models = build_models(hyperparameters)
    pipelines = {
        name: make_pipeline(make_preprocessor(numeric=numeric, categorical=categorical), model)
        for name, model in models.items()
    }
    logger.info(f"Fitting {len(pipelines)} models on {len(X):,} records: {list(pipelines)}")

    with Timer(logger, "Model fitting"), capture_warnings(logger):
        if execution_config is not None and execution_config.is_parallel():
            logger.info(f"Parallel fit with {execution_config.n_jobs} jobs")
            fitted = Parallel(
                n_jobs=execution_config.n_jobs,
                verbose=execution_config.verbose,
                backend=execution_config.backend
            )(
                delayed(_fit_single_model)(name, pipe, X, y)
                for name, pipe in pipelines.items()
            )
            pipelines = dict(zip(pipelines.keys(), fitted))
        else:
            progress = ProgressLogger(logger, total=len(pipelines), desc="Model fitting")
            for name, pipe in pipelines.items():
                _fit_single_model(name, pipe, X, y)
                progress.update(1, metrics={"model": name})

    for name, pipe in pipelines.items():
        log_performance(
            logging.getLogger(f"survival_explain.models.{name}"),
            f"{name} training concordance",
            cindex=round(float(pipe.score(X, y)), 4)
        )

    return pipelines


def save_models(
    pipelines: Dict[str, object],
    outdir: str,
    run_type: Optional[RunType] = None
) -> Dict[str, str]:
    """Persist fitted pipelines with joblib under versioned file names.

    Args:
        pipelines: Dictionary of fitted pipelines keyed by model name
        outdir: Directory for model files, created if missing
        run_type: Optional run type prefixed to each file name

    Returns:
        Dictionary mapping model names to saved file paths

    Example:
        >>> paths = save_models(pipelines, "data/outputs/sample/models", run_type="sample")
        >>> paths["rsf"]
        'data/outputs/sample/models/sample_rsf_20250123_143052.joblib'
    """
    ensure_dir(outdir)
    saved = {}
    for name, pipe in pipelines.items():
        path = os.path.join(outdir, f"{versioned_name(name, run_type=run_type)}.joblib")
        joblib.dump(pipe, path)
        logger.info(f"Model saved to: {path}")
        saved[name] = path
    return saved
