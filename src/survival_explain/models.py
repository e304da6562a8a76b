from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Iterable
import numpy as np
import pandas as pd

from sklearn.base import BaseEstimator
from sksurv.linear_model import CoxPHSurvivalAnalysis
from sksurv.ensemble import RandomSurvivalForest
from lifelines import WeibullAFTFitter


class BaseSurvivalModel(BaseEstimator):
    """Base class for survival model wrappers with unified interface.

    Every wrapper answers ``predict_survival_function(X, times)`` with a
    plain (n_samples, n_times) array, which is the contract the explainer
    relies on. Wrappers are sklearn estimators (``get_params``, estimator
    tags), so they can be the last step of a Pipeline and be cloned.

    Attributes:
        name: String identifier for the model type
    """

    name: str = "base"

    def fit(self, X, y):
        """Fit the survival model to training data.

        Args:
            X: Feature matrix (DataFrame or array)
            y: Structured array with dtype=[('event', bool), ('time', float)]

        Returns:
            self: Fitted model instance
        """
        raise NotImplementedError

    def predict_survival_function(self, X, times: Iterable[float]):
        """Predict survival probabilities at specified time points.

        Args:
            X: Feature matrix for prediction
            times: Time points at which to evaluate survival function

        Returns:
            Array with shape (n_samples, n_times) containing survival probabilities
        """
        raise NotImplementedError

    def score(self, X, y) -> float:
        """Calculate concordance index for model predictions."""
        raise NotImplementedError

    def __sklearn_is_fitted__(self) -> bool:
        return getattr(self, "fitted_", False)


def evaluate_step_functions(sfns, times: Iterable[float], before_first: float) -> np.ndarray:
    """Evaluate scikit-survival step functions on an arbitrary time grid.

    StepFunction.__call__ rejects times outside the training event range,
    so the step values are read directly: right-continuous, ``before_first``
    ahead of the first step, last value carried forward after the last.

    Args:
        sfns: Sequence of sksurv StepFunction objects, one per sample
        times: Time points for evaluation
        before_first: Value returned for times before the first step
            (1.0 for survival, 0.0 for cumulative hazard)

    Returns:
        Array with shape (n_samples, n_times)
    """
    times = np.asarray(list(times), dtype=float)
    rows = []
    for f in sfns:
        idx = np.searchsorted(f.x, times, side="right") - 1
        values = f.a * f.y[np.clip(idx, 0, None)] + f.b
        rows.append(np.where(idx < 0, before_first, values))
    return np.vstack(rows)


@dataclass
class CoxPHWrapper(BaseSurvivalModel):
    """Wrapper for scikit-survival Cox Proportional Hazards model with L2 regularization.

    Attributes:
        name: Model identifier, defaults to "cox_ph"
        model: Underlying CoxPHSurvivalAnalysis instance
        alpha: L2 regularization strength. Default 1.0 keeps the fit stable
            on one-hot encoded categorical features.
        max_iter: Maximum Newton-Raphson iterations

    Example:
        >>> cox = CoxPHWrapper(alpha=0.1)
        >>> cox.fit(X_train, y_train)
        >>> survival = cox.predict_survival_function(X_test, times=[30, 90, 180])
    """
    name: str = "cox_ph"
    model: CoxPHSurvivalAnalysis = None
    alpha: float = 1.0
    max_iter: int = 10_000

    def __post_init__(self):
        if self.model is None:
            self.model = CoxPHSurvivalAnalysis(
                alpha=self.alpha,
                n_iter=self.max_iter,
                tol=1e-9
            )

    def fit(self, X, y):
        """Fit Cox PH model with input validation.

        Args:
            X: Feature matrix with shape (n_samples, n_features)
            y: Structured array with dtype=[('event', bool), ('time', float)]

        Returns:
            self: Fitted model instance

        Raises:
            ValueError: If X contains non-finite values or has fewer than 2 samples
        """
        X_array = np.asarray(X, dtype=float)
        if not np.isfinite(X_array).all():
            raise ValueError(f"{self.name}: Non-finite values detected in X before fitting")
        if X_array.shape[0] < 2:
            raise ValueError(f"{self.name}: Need at least 2 samples to fit")

        self.model.fit(X, y)
        self.fitted_ = True
        return self

    def predict_survival_function(self, X, times: Iterable[float]):
        sfns = self.model.predict_survival_function(X)
        return evaluate_step_functions(sfns, times, before_first=1.0)

    def predict(self, X):
        """Predict risk scores (linear predictor); higher means higher risk."""
        return self.model.predict(X)

    def score(self, X, y):
        return self.model.score(X, y)


@dataclass
class WeibullAFTWrapper(BaseSurvivalModel):
    """Wrapper for Weibull Accelerated Failure Time (AFT) model.

    Parametric survival regression assuming Weibull distributed survival
    times, fitted with lifelines' WeibullAFTFitter.

    Attributes:
        name: Model identifier, defaults to "weibull_aft"
        aft: Underlying WeibullAFTFitter instance from lifelines
        penalizer: L2 penalizer passed to the fitter

    Note:
        lifelines needs DataFrames, so arrays coming out of a preprocessing
        pipeline get generic column names X0..Xp.
    """
    name: str = "weibull_aft"
    aft: WeibullAFTFitter = None
    penalizer: float = 0.0

    def __post_init__(self):
        if self.aft is None:
            self.aft = WeibullAFTFitter(penalizer=self.penalizer)

    @staticmethod
    def _as_frame(X_df) -> pd.DataFrame:
        if isinstance(X_df, pd.DataFrame):
            return X_df.reset_index(drop=True)
        X_array = np.asarray(X_df, dtype=float)
        return pd.DataFrame(X_array, columns=[f"X{i}" for i in range(X_array.shape[1])])

    def fit(self, X_df, y_struct):
        """Fit Weibull AFT model.

        Args:
            X_df: DataFrame or array containing features
            y_struct: Structured array with dtype=[('event', bool), ('time', float)]

        Returns:
            self: Fitted model instance

        Raises:
            ValueError: If any survival time is not strictly positive
        """
        df = self._as_frame(X_df).copy()
        df["time"] = np.asarray(y_struct["time"], dtype=float)
        df["event"] = np.asarray(y_struct["event"]).astype(int)

        if (df["time"] <= 0).any():
            raise ValueError(f"{self.name}: Weibull AFT requires strictly positive survival times")

        self.aft.fit(df, duration_col="time", event_col="event")
        self.fitted_ = True
        return self

    def predict_survival_function(self, X_df, times: Iterable[float]):
        times = np.asarray(list(times), dtype=float)
        sf = self.aft.predict_survival_function(self._as_frame(X_df), times=times)
        return sf.T.values

    def score(self, X_df, y_struct):
        df = self._as_frame(X_df).copy()
        df["time"] = np.asarray(y_struct["time"], dtype=float)
        df["event"] = np.asarray(y_struct["event"]).astype(int)
        return self.aft.score(df, scoring_method="concordance_index")


@dataclass
class RSFWrapper(BaseSurvivalModel):
    """Wrapper for Random Survival Forest.

    Attributes:
        name: Model identifier, defaults to "rsf"
        model: Underlying RandomSurvivalForest instance
        n_estimators: Number of trees in the forest
        max_depth: Maximum depth of trees (None = unlimited)
        min_samples_split: Minimum samples required to split a node
        min_samples_leaf: Minimum samples required in leaf node
        max_features: Number of features to consider per split (None = all)
        random_state: Seed for bootstrap and feature sampling

    Note:
        RSF returns step functions aligned to training event times which are
        then evaluated at the requested time points.
    """
    name: str = "rsf"
    model: RandomSurvivalForest = None
    n_estimators: int = 100
    max_depth: Optional[int] = None
    min_samples_split: int = 10
    min_samples_leaf: int = 5
    max_features: Optional[int] = None
    random_state: int = 42

    def __post_init__(self):
        if self.model is None:
            self.model = RandomSurvivalForest(
                n_estimators=self.n_estimators,
                max_depth=self.max_depth,
                min_samples_split=self.min_samples_split,
                min_samples_leaf=self.min_samples_leaf,
                max_features=self.max_features,
                random_state=self.random_state
            )

    def fit(self, X, y):
        self.model.fit(X, y)
        self.fitted_ = True
        return self

    def predict_survival_function(self, X, times: Iterable[float]):
        sfns = self.model.predict_survival_function(X)
        return evaluate_step_functions(sfns, times, before_first=1.0)

    def predict(self, X):
        """Predict risk scores (ensemble cumulative hazard sum)."""
        return self.model.predict(X)

    def score(self, X, y):
        return self.model.score(X, y)
