"""Pytest configuration and shared fixtures for survival explanation tests.

Two kinds of models are used:
- an analytic exponential hazard model whose survival curve is known in
  closed form, for exact invariants (additivity, averaging, no-effect
  variables)
- small real pipelines fitted on the veterans lung cancer data bundled with
  scikit-survival, for end-to-end behaviour
"""
import logging
import pytest
import pandas as pd
import numpy as np

from survival_explain.config import ModelHyperparameters
from survival_explain.data import load_veterans, split_X_y
from survival_explain.explainer import explain
from survival_explain.train import fit_models


class ExponentialHazardModel:
    """S(t | x) = exp(-t * exp(1.2*x1 - 0.5*x2 + 0.7*[g == "b"]) / scale).

    Column ``z`` is accepted but ignored.
    """

    coef_x1 = 1.2
    coef_x2 = -0.5
    coef_g = 0.7

    def __init__(self, scale: float = 50.0):
        self.scale = scale

    def linear_predictor(self, X: pd.DataFrame) -> np.ndarray:
        return (
            self.coef_x1 * X["x1"].to_numpy(dtype=float)
            + self.coef_x2 * X["x2"].to_numpy(dtype=float)
            + self.coef_g * (X["g"].astype(str).to_numpy() == "b")
        )

    def cumulative_hazard(self, X: pd.DataFrame, times) -> np.ndarray:
        hazard = np.exp(self.linear_predictor(X)) / self.scale
        return np.outer(hazard, np.asarray(times, dtype=float))

    def survival(self, X: pd.DataFrame, times) -> np.ndarray:
        return np.exp(-self.cumulative_hazard(X, times))


@pytest.fixture(scope="session")
def analytic_model():
    return ExponentialHazardModel()


@pytest.fixture(scope="session")
def toy_data(analytic_model):
    """Simulate 150 records from the analytic model with random censoring.

    Returns:
        Tuple of (X, y): DataFrame with columns x1, x2, g, z and structured
        array with dtype=[('event', bool), ('time', float)]
    """
    rng = np.random.default_rng(7)
    n = 150
    X = pd.DataFrame({
        "x1": rng.normal(size=n),
        "x2": rng.uniform(0.0, 2.0, size=n),
        "g": rng.choice(["a", "b"], size=n),
        "z": rng.normal(size=n),
    })
    rate = np.exp(analytic_model.linear_predictor(X)) / analytic_model.scale
    event_time = rng.exponential(1.0 / rate)
    censor_time = rng.exponential(2.0 * analytic_model.scale, size=n)

    y = np.empty(n, dtype=[("event", bool), ("time", float)])
    y["event"] = event_time <= censor_time
    y["time"] = np.minimum(event_time, censor_time)
    return X, y


@pytest.fixture(scope="session")
def analytic_explainer(analytic_model, toy_data):
    """Explainer over the analytic model with a 20 point default time grid."""
    X, y = toy_data
    return explain(
        analytic_model, X, y,
        label="exponential",
        n_times=20,
        predict_survival_function=lambda m, X, t: m.survival(X, t),
        predict_cumulative_hazard_function=lambda m, X, t: m.cumulative_hazard(X, t),
    )


@pytest.fixture(scope="session")
def veterans_df():
    return load_veterans()


@pytest.fixture(scope="session")
def veterans_Xy(veterans_df):
    return split_X_y(veterans_df)


@pytest.fixture(scope="session")
def fitted_pipelines(veterans_Xy):
    """Cox PH, RSF (20 trees) and Weibull AFT pipelines fitted on veterans."""
    X, y = veterans_Xy
    return fit_models(X, y, hyperparameters=ModelHyperparameters(rsf_n_estimators=20))


@pytest.fixture
def sample_structured_y():
    """Create small structured survival array for testing.

    Returns:
        np.ndarray: Structured array with dtype=[('event', bool), ('time', float)]
    """
    return np.array(
        [(True, 12.5), (False, 24.0), (True, 6.0), (False, 18.0), (True, 30.0)],
        dtype=[("event", bool), ("time", float)]
    )


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging after each test.

    setup_logging attaches file handlers and stops propagation on the
    package logger, which would hide records from caplog in later tests.
    """
    yield
    logger = logging.getLogger("survival_explain")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
