"""Uniform explainer over fitted survival models.

An explainer bundles a fitted model with the covariates it is explained on,
the observed outcomes for those rows and a time grid. Every analysis in the
package (performance, variable response, ceteris paribus, breakdown,
variable importance) talks to the model only through

- ``predict_survival``: S(t | x) on the time grid, shape (n, n_times)
- ``predict_cumulative_hazard``: H(t | x) on the time grid, shape (n, n_times)
- ``predict_risk``: one risk score per row, higher = worse prognosis

Supported without custom functions:
- scikit-survival estimators and sklearn Pipelines ending in one
- lifelines regression fitters (CoxPHFitter, WeibullAFTFitter, ...)
- the package's own wrappers (survival_explain.models), bare or as the last
  step of a Pipeline

Example:
    >>> from survival_explain.explainer import explain
    >>> explainer = explain(cox_pipeline, X, y, label="cox_ph")
    >>> explainer.predict_survival(X.iloc[:3]).shape
    (3, 50)
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Iterable, Optional, Union

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_integer_dtype
from sklearn.pipeline import Pipeline

from survival_explain.data import as_structured_y
from survival_explain.models import BaseSurvivalModel, evaluate_step_functions
from survival_explain.utils import as_time_grid, default_time_grid

logger = logging.getLogger("survival_explain.explainer")

PredictFn = Callable[[Any, pd.DataFrame, np.ndarray], np.ndarray]
RiskFn = Callable[[Any, pd.DataFrame], np.ndarray]

MODEL_TYPE_WRAPPER = "wrapper"
MODEL_TYPE_SKSURV = "sksurv"
MODEL_TYPE_LIFELINES = "lifelines"
MODEL_TYPE_CUSTOM = "custom"

_EPS = 1e-12


def _final_estimator(model):
    if isinstance(model, Pipeline):
        return model.steps[-1][1]
    return model


def detect_model_type(model) -> str:
    """Classify a fitted model by the prediction API it offers.

    Args:
        model: Fitted model or Pipeline

    Returns:
        One of "wrapper", "lifelines", "sksurv", "custom"
    """
    final = _final_estimator(model)
    if isinstance(final, BaseSurvivalModel):
        return MODEL_TYPE_WRAPPER
    if type(final).__module__.split(".")[0] == "lifelines":
        return MODEL_TYPE_LIFELINES
    if hasattr(model, "predict_survival_function"):
        return MODEL_TYPE_SKSURV
    return MODEL_TYPE_CUSTOM


# ----------------------------------------------------------------------------
# Default prediction functions, one set per model type
# ----------------------------------------------------------------------------

def _wrapper_survival(model, X, times):
    return model.predict_survival_function(X, times=times)


def _sksurv_survival(model, X, times):
    return evaluate_step_functions(model.predict_survival_function(X), times, before_first=1.0)


def _sksurv_cumulative_hazard(model, X, times):
    return evaluate_step_functions(
        model.predict_cumulative_hazard_function(X), times, before_first=0.0
    )


def _lifelines_survival(model, X, times):
    return model.predict_survival_function(X, times=times).T.values


def _lifelines_cumulative_hazard(model, X, times):
    return model.predict_cumulative_hazard(X, times=times).T.values


def _lifelines_partial_hazard(model, X):
    return np.asarray(model.predict_partial_hazard(X), dtype=float).ravel()


def _sklearn_predict(model, X):
    return np.asarray(model.predict(X), dtype=float).ravel()


def _cast_like(values: pd.Series, dtype) -> pd.Series:
    """Cast a column to the explainer's dtype without changing any value.

    Levels unknown to a categorical dtype are appended to its categories.
    Integer columns holding non-integral values (e.g. a profile grid point
    of 7.6) are upcast to float instead of being truncated.

    Raises:
        ValueError: If a boolean column receives values other than 0/1
    """
    if values.dtype == dtype:
        return values

    if isinstance(dtype, pd.CategoricalDtype):
        known = set(dtype.categories)
        unknown = [v for v in pd.unique(values.dropna()) if v not in known]
        if unknown:
            dtype = pd.CategoricalDtype(
                list(dtype.categories) + sorted(unknown, key=str), ordered=dtype.ordered
            )
        return values.astype(dtype)

    if is_bool_dtype(dtype):
        if not values.isin([0, 1, True, False]).all():
            raise ValueError(
                f"Column '{values.name}' is boolean but received {sorted(set(values), key=str)}"
            )
        return values.astype(dtype)

    if is_integer_dtype(dtype):
        numeric = pd.to_numeric(values).astype(float)
        if numeric.isna().any() or not np.all(numeric == np.round(numeric)):
            return numeric
        return numeric.astype(dtype)

    return values.astype(dtype)


class SurvivalExplainer:
    """Adapter exposing one prediction interface over a fitted survival model.

    Args:
        model: Fitted survival model (see module docstring for supported types)
        data: Covariates the model is explained on. Arrays are converted to
            DataFrames with columns X0..Xp
        y: Observed outcomes for ``data`` (structured array with event/time
            fields, two-column DataFrame or (n, 2) array of (event, time))
        label: Name used in every explanation result. Defaults to the
            model's ``name`` attribute or class name
        times: Time grid shared by all explanations. Defaults to
            ``n_times`` evenly spaced points between the 5th and 95th
            percentile of the observed times
        n_times: Size of the default time grid
        predict_survival_function: Optional ``f(model, X, times) -> (n, k)``
            overriding the default survival prediction
        predict_cumulative_hazard_function: Optional ``f(model, X, times) -> (n, k)``.
            Defaults to the model's own cumulative hazard where available,
            otherwise -log S(t)
        predict_function: Optional ``f(model, X) -> (n,)`` risk score.
            Defaults to the model's risk prediction where available,
            otherwise the cumulative hazard summed over the time grid

    Raises:
        ValueError: If data and y differ in length, or the time grid is invalid
        TypeError: If the model offers no survival prediction and no custom
            function is given
    """

    def __init__(
        self,
        model,
        data: Union[pd.DataFrame, np.ndarray],
        y,
        label: Optional[str] = None,
        times: Optional[Iterable[float]] = None,
        n_times: int = 50,
        predict_survival_function: Optional[PredictFn] = None,
        predict_cumulative_hazard_function: Optional[PredictFn] = None,
        predict_function: Optional[RiskFn] = None,
    ):
        if not isinstance(data, pd.DataFrame):
            data_array = np.asarray(data)
            if data_array.ndim != 2:
                raise ValueError(f"data must be 2-dimensional, got shape {data_array.shape}")
            data = pd.DataFrame(data_array, columns=[f"X{i}" for i in range(data_array.shape[1])])

        y = as_structured_y(y)
        if len(data) != len(y):
            raise ValueError(
                f"data and y must have the same number of rows, got {len(data)} and {len(y)}"
            )
        if len(data) == 0:
            raise ValueError("Cannot build an explainer on empty data")

        self.model = model
        self.data = data.reset_index(drop=True)
        self.y = y
        self.model_type = detect_model_type(model)

        final = _final_estimator(model)
        self.label = label or getattr(final, "name", None) or type(final).__name__

        if times is None:
            self.times = default_time_grid(y, n=n_times)
        else:
            self.times = as_time_grid(times)

        self._survival_fn, self._chf_fn, self._risk_fn = self._resolve_functions(
            predict_survival_function, predict_cumulative_hazard_function, predict_function
        )

        logger.info(
            f"Explainer '{self.label}' built: model_type={self.model_type}, "
            f"n={len(self.data)}, p={self.data.shape[1]}, "
            f"times=[{self.times[0]:.3g}, {self.times[-1]:.3g}] ({len(self.times)} points)"
        )

    def _resolve_functions(self, survival_fn, chf_fn, risk_fn):
        model = self.model

        if survival_fn is None:
            if self.model_type == MODEL_TYPE_WRAPPER:
                survival_fn = _wrapper_survival
            elif self.model_type == MODEL_TYPE_LIFELINES:
                survival_fn = _lifelines_survival
            elif self.model_type == MODEL_TYPE_SKSURV:
                survival_fn = _sksurv_survival
            else:
                raise TypeError(
                    f"Model of type {type(model).__name__} has no predict_survival_function. "
                    f"Pass predict_survival_function=f(model, X, times) to explain it."
                )

        if chf_fn is None:
            if self.model_type == MODEL_TYPE_SKSURV and survival_fn is _sksurv_survival \
                    and hasattr(model, "predict_cumulative_hazard_function"):
                chf_fn = _sksurv_cumulative_hazard
            elif self.model_type == MODEL_TYPE_LIFELINES and survival_fn is _lifelines_survival:
                chf_fn = _lifelines_cumulative_hazard
            else:
                def chf_fn(m, X, times, _sf=survival_fn):
                    return -np.log(np.clip(_sf(m, X, times), _EPS, 1.0))

        if risk_fn is None:
            final = _final_estimator(model)
            if self.model_type == MODEL_TYPE_LIFELINES and hasattr(final, "predict_partial_hazard"):
                risk_fn = _lifelines_partial_hazard
            elif self.model_type in (MODEL_TYPE_SKSURV, MODEL_TYPE_WRAPPER) \
                    and survival_fn in (_sksurv_survival, _wrapper_survival) \
                    and hasattr(model, "predict"):
                risk_fn = _sklearn_predict
            else:
                def risk_fn(m, X, _chf=chf_fn, _times=self.times):
                    return _chf(m, X, _times).sum(axis=1)

        return survival_fn, chf_fn, risk_fn

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    def _prepare(self, X) -> pd.DataFrame:
        if X is None:
            return self.data
        if isinstance(X, pd.Series):
            X = X.to_frame().T
        elif isinstance(X, dict):
            X = pd.DataFrame([X])
        elif not isinstance(X, pd.DataFrame):
            X_array = np.asarray(X)
            if X_array.ndim == 1:
                X_array = X_array.reshape(1, -1)
            X = pd.DataFrame(X_array, columns=self.data.columns)

        missing = [col for col in self.data.columns if col not in X.columns]
        if missing:
            raise KeyError(f"Columns {missing} missing from input. Expected: {list(self.data.columns)}")

        X = X[list(self.data.columns)].reset_index(drop=True)
        # Series.to_frame().T and dicts lose dtypes, restore the training ones
        return pd.DataFrame({
            col: _cast_like(X[col], dtype) for col, dtype in self.data.dtypes.items()
        })

    def as_observation(self, new_observation) -> pd.DataFrame:
        """Normalize one observation to a single-row DataFrame.

        Args:
            new_observation: Series, dict or single-row DataFrame with (at
                least) the explainer's columns

        Returns:
            Single-row DataFrame with the explainer's columns and dtypes

        Raises:
            ValueError: If more than one row is given
        """
        obs = self._prepare(new_observation)
        if len(obs) != 1:
            raise ValueError(f"Expected a single observation, got {len(obs)} rows")
        return obs

    def time_grid(self, times=None) -> np.ndarray:
        return self.times if times is None else as_time_grid(times)

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    def predict_survival(self, X=None, times: Optional[Iterable[float]] = None) -> np.ndarray:
        """Predict survival probabilities S(t | x).

        Args:
            X: Rows to predict (DataFrame, Series, dict or array). Defaults
                to the explainer data
            times: Time grid. Defaults to the explainer's grid

        Returns:
            Array with shape (n_rows, n_times), values in [0, 1]

        Raises:
            ValueError: If the model returns an array of the wrong shape
        """
        X = self._prepare(X)
        grid = self.time_grid(times)
        out = np.asarray(self._survival_fn(self.model, X, grid), dtype=float)
        self._check_shape(out, X, grid, "survival")
        return np.clip(out, 0.0, 1.0)

    def predict_cumulative_hazard(self, X=None, times: Optional[Iterable[float]] = None) -> np.ndarray:
        """Predict cumulative hazard H(t | x).

        Returns:
            Array with shape (n_rows, n_times), non-negative values
        """
        X = self._prepare(X)
        grid = self.time_grid(times)
        out = np.asarray(self._chf_fn(self.model, X, grid), dtype=float)
        self._check_shape(out, X, grid, "cumulative hazard")
        return np.clip(out, 0.0, None)

    def predict_risk(self, X=None) -> np.ndarray:
        """Predict one risk score per row; higher means worse prognosis.

        Returns:
            Array with shape (n_rows,)
        """
        X = self._prepare(X)
        out = np.asarray(self._risk_fn(self.model, X), dtype=float).ravel()
        if out.shape != (len(X),):
            raise ValueError(f"{self.label}: risk prediction has shape {out.shape}, expected ({len(X)},)")
        return out

    def _check_shape(self, out, X, grid, what):
        expected = (len(X), len(grid))
        if out.shape != expected:
            raise ValueError(
                f"{self.label}: {what} prediction has shape {out.shape}, expected {expected}"
            )

    def __repr__(self) -> str:
        return (
            f"SurvivalExplainer(label={self.label!r}, model_type={self.model_type!r}, "
            f"n={len(self.data)}, p={self.data.shape[1]}, n_times={len(self.times)})"
        )


def explain(
    model,
    data: Union[pd.DataFrame, np.ndarray],
    y,
    label: Optional[str] = None,
    **kwargs,
) -> SurvivalExplainer:
    """Wrap a fitted survival model in a SurvivalExplainer.

    Args:
        model: Fitted survival model
        data: Covariates the model is explained on
        y: Observed outcomes for ``data``
        label: Name used in explanation results
        **kwargs: Forwarded to SurvivalExplainer (times, n_times, custom
            prediction functions)

    Returns:
        SurvivalExplainer instance

    Example:
        >>> explainers = {name: explain(pipe, X, y, label=name) for name, pipe in fitted.items()}
    """
    return SurvivalExplainer(model, data, y, label=label, **kwargs)
