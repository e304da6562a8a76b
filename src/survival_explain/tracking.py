from __future__ import annotations
import os
import logging
from typing import Dict, Any, Optional
import mlflow
import mlflow.exceptions

EXPERIMENT_NAME = "survival_explain"


def start_run(
    run_name: str,
    tags: Dict[str, str] | None = None,
    tracking_dir: Optional[str] = None
):
    """Start an MLflow run under the survival_explain experiment.

    Args:
        run_name: Name identifier for this run
        tags: Optional dictionary of key-value tags to attach to the run
        tracking_dir: Optional local directory used as the MLflow file store
            (e.g. ``get_output_paths()["mlruns"]``). Defaults to MLflow's
            configured tracking URI

    Returns:
        Active MLflow run context manager

    Example:
        >>> with start_run("explain_sample", tracking_dir="data/outputs/sample/mlruns"):
        ...     log_metrics({"cox_ph_ibs": 0.11})
    """
    if tracking_dir is not None:
        mlflow.set_tracking_uri("file://" + os.path.abspath(tracking_dir))
    mlflow.set_experiment(EXPERIMENT_NAME)
    return mlflow.start_run(run_name=run_name, tags=tags)


def log_params(params: Dict[str, Any], logger: Optional[logging.Logger] = None) -> bool:
    """Log parameters to the current MLflow run.

    Values MLflow cannot store directly are logged as strings. Tracking
    failures are logged as warnings and never interrupt the analysis;
    explanation CSVs remain the primary output.

    Args:
        params: Dictionary of parameter names and values
        logger: Optional logger for warnings

    Returns:
        True if logging succeeded, False if it failed

    Example:
        >>> log_params({"run_type": "sample", "shap_orderings": 25})
        True
    """
    try:
        for k, v in params.items():
            try:
                mlflow.log_param(k, v)
            except mlflow.exceptions.MlflowException:
                mlflow.log_param(k, str(v))
        return True
    except mlflow.exceptions.MlflowException as e:
        if logger:
            logger.warning(
                f"MLflow params logging failed: {e}",
                extra={"category": "mlflow_error"}
            )
        return False


def log_metrics(
    metrics: Dict[str, float],
    step: Optional[int] = None,
    logger: Optional[logging.Logger] = None
) -> bool:
    """Log metrics to the current MLflow run.

    Args:
        metrics: Dictionary of metric names and values (e.g. per-model IBS and
            C-index from ``model_performance``)
        step: Optional step number
        logger: Optional logger for warnings

    Returns:
        True if logging succeeded, False if it failed

    Example:
        >>> log_metrics({"rsf_cindex": 0.742, "rsf_ibs": 0.152})
        True
    """
    try:
        mlflow.log_metrics(metrics, step=step)
        return True
    except mlflow.exceptions.MlflowException as e:
        if logger:
            logger.warning(
                f"MLflow metrics logging failed: {e}",
                extra={"category": "mlflow_error"}
            )
        return False


def log_artifact(path: str, logger: Optional[logging.Logger] = None) -> bool:
    """Log a file artifact to the current MLflow run.

    Args:
        path: File path to log as artifact. Missing files are skipped
        logger: Optional logger for warnings

    Returns:
        True if logging succeeded, False if the file is missing or logging
        failed

    Example:
        >>> log_artifact("data/outputs/sample/explanations/rsf_performance.csv")
        True
    """
    if not os.path.exists(path):
        if logger:
            logger.warning(f"Artifact not found, skipping: {path}")
        return False

    try:
        mlflow.log_artifact(path)
        return True
    except mlflow.exceptions.MlflowException as e:
        if logger:
            logger.warning(
                f"MLflow artifact logging failed for {path}: {e}",
                extra={"category": "mlflow_error"}
            )
        return False
