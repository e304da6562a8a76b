from __future__ import annotations
from typing import Tuple
import numpy as np
from sksurv.metrics import (
    brier_score,
    concordance_index_censored,
    cumulative_dynamic_auc,
    integrated_brier_score,
)


def compute_cindex(y, risk_scores) -> float:
    """Calculate Harrell's concordance index.

    Measures how well the risk scores order pairs of observations by their
    observed survival times, using all comparable pairs under right
    censoring.

    Args:
        y: Structured array with dtype=[('event', bool), ('time', float)]
        risk_scores: Array of shape (n,) with predicted risk scores.
            Higher values indicate higher risk (lower survival probability)

    Returns:
        Concordance index between 0 and 1 (0.5 = random ordering)

    Example:
        >>> cindex = compute_cindex(y, explainer.predict_risk())
        >>> print(f"C-index: {cindex:.3f}")
        C-index: 0.736
    """
    result = concordance_index_censored(y["event"], y["time"], np.asarray(risk_scores, dtype=float))
    return float(result[0])


def compute_brier_curve(times: np.ndarray, y_train, y_test, surv_pred: np.ndarray) -> np.ndarray:
    """Calculate the time-dependent Brier score at each time point.

    The censoring distribution used for inverse probability weighting is
    estimated with Kaplan-Meier on ``y_train``.

    Args:
        times: Array of time points, shape (n_times,)
        y_train: Structured array used to estimate the censoring distribution
        y_test: Structured array of evaluated outcomes
        surv_pred: Predicted survival probabilities with shape (n_test, n_times)

    Returns:
        Array of Brier scores with shape (n_times,)
    """
    _, scores = brier_score(y_train, y_test, surv_pred, times)
    return np.asarray(scores, dtype=float)


def compute_ibs(times: np.ndarray, y_train, y_test, surv_pred: np.ndarray) -> float:
    """Calculate Integrated Brier Score for survival function predictions.

    Integrates the Brier score curve over ``times`` and divides by the
    length of the time range. Lower IBS indicates better calibration.

    Args:
        times: Array of time points at which to evaluate predictions.
            Shape (n_times,), at least two points
        y_train: Structured array used to estimate the censoring distribution
        y_test: Structured array of evaluated outcomes
        surv_pred: Predicted survival probabilities with shape (n_test, n_times)

    Returns:
        Integrated Brier score (lower is better, typically between 0 and 0.25)

    Example:
        >>> ibs = compute_ibs(times, y, y, survival)
        >>> print(f"IBS: {ibs:.4f}")
        IBS: 0.1523
    """
    ibs = integrated_brier_score(y_train, y_test, surv_pred, times)
    return float(ibs)


def compute_time_dependent_auc(y_train, y_test, times: np.ndarray, risk_scores) -> Tuple[np.ndarray, float]:
    """Calculate cumulative/dynamic AUC for survival predictions.

    Args:
        y_train: Structured array used to estimate the censoring distribution
        y_test: Structured array of evaluated outcomes
        times: Array of time points at which to compute AUC. Shape (n_times,)
        risk_scores: Either shape (n_test,) with one risk score per
            observation, or shape (n_test, n_times) with a time-dependent
            risk (e.g. 1 - S(t)). Higher values indicate higher risk

    Returns:
        Tuple containing:
        - aucs: Array of AUC values at each time point, shape (n_times,)
        - mean_auc: Mean AUC weighted by the Kaplan-Meier estimate
    """
    aucs, mean_auc = cumulative_dynamic_auc(y_train, y_test, risk_scores, times)
    return np.asarray(aucs, dtype=float), float(mean_auc)


# ============================================================================
# Loss functions for permutation variable importance
# ============================================================================
# Signature: loss(y, surv_pred, times, risk_scores) -> float, lower is better.

def loss_integrated_brier_score(y, surv_pred, times, risk_scores=None) -> float:
    """Integrated Brier score with censoring estimated from ``y`` itself."""
    return compute_ibs(times, y, y, surv_pred)


def loss_one_minus_cindex(y, surv_pred, times, risk_scores=None) -> float:
    """1 - Harrell's C-index.

    Falls back to the summed cumulative hazard over ``times`` when no risk
    score is given.
    """
    if risk_scores is None:
        risk_scores = -np.log(np.clip(surv_pred, 1e-12, 1.0)).sum(axis=1)
    return 1.0 - compute_cindex(y, risk_scores)


LOSS_FUNCTIONS = {
    "integrated_brier_score": loss_integrated_brier_score,
    "one_minus_cindex": loss_one_minus_cindex,
}


def get_loss_function(loss):
    """Resolve a loss given by name or as a callable.

    Args:
        loss: Name from ``LOSS_FUNCTIONS`` or a callable with signature
            ``loss(y, surv_pred, times, risk_scores) -> float``

    Returns:
        Tuple of (loss name, callable)

    Raises:
        ValueError: If the name is unknown
    """
    if callable(loss):
        return getattr(loss, "__name__", "custom_loss"), loss
    if loss not in LOSS_FUNCTIONS:
        raise ValueError(
            f"Unknown loss '{loss}'. Available: {sorted(LOSS_FUNCTIONS)} or a callable"
        )
    return loss, LOSS_FUNCTIONS[loss]
