"""Variable response and ceteris-paribus profiles of survival curves.

Both analyses move one variable across a grid of values and watch the
predicted survival curve respond:

- ``model_profile`` (variable response, partial dependence over time): the
  variable is set to each grid value for every observation and the
  resulting curves are averaged.
- ``predict_profile`` (ceteris paribus): the variable is moved for a single
  observation while all its other values stay fixed.

Grids come from the explainer data: quantiles for numeric variables,
observed levels for categorical ones.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_integer_dtype, is_numeric_dtype

from survival_explain.config import ExecutionConfig
from survival_explain.explainer import SurvivalExplainer
from survival_explain.logging_config import capture_warnings
from survival_explain.parallel import map_variables
from survival_explain.timing import log_execution_time

logger = logging.getLogger("survival_explain.profiles")

NUMERICAL = "numerical"
CATEGORICAL = "categorical"


def variable_type(series: pd.Series, categorical_variables: Optional[Sequence[str]] = None) -> str:
    """Classify a column as "numerical" or "categorical".

    Booleans, strings, categoricals and any column named in
    ``categorical_variables`` are categorical.
    """
    if categorical_variables is not None and series.name in categorical_variables:
        return CATEGORICAL
    if is_bool_dtype(series) or not is_numeric_dtype(series):
        return CATEGORICAL
    return NUMERICAL


def make_variable_grid(series: pd.Series, grid_points: int, kind: str) -> np.ndarray:
    """Build the grid of values a variable is moved across.

    Args:
        series: Observed values of the variable
        grid_points: Maximum number of points for numeric variables
        kind: "numerical" or "categorical"

    Returns:
        1-D array of grid values. Categorical: every observed level.
        Numeric: all distinct values when there are at most ``grid_points``
        of them, otherwise ``grid_points`` quantiles from min to max
        (rounded for integer columns, duplicates removed)

    Raises:
        ValueError: If grid_points < 2 or the variable has no observed value
    """
    if grid_points < 2:
        raise ValueError(f"grid_points must be at least 2, got {grid_points}")

    values = series.dropna()
    if values.empty:
        raise ValueError(f"Variable '{series.name}' has no observed values")

    if kind == CATEGORICAL:
        levels = pd.unique(values)
        return np.array(sorted(levels, key=str), dtype=object)

    unique = np.unique(values.to_numpy())
    if len(unique) <= grid_points:
        return unique

    grid = np.quantile(values.to_numpy(dtype=float), np.linspace(0.0, 1.0, grid_points))
    if is_integer_dtype(series):
        grid = np.round(grid)
    return np.unique(grid)


def resolve_variables(explainer: SurvivalExplainer, variables: Optional[Iterable[str]]) -> List[str]:
    if variables is None:
        return list(explainer.data.columns)
    if isinstance(variables, str):
        variables = [variables]
    variables = list(variables)
    unknown = [v for v in variables if v not in explainer.data.columns]
    if unknown:
        raise ValueError(f"Unknown variables {unknown}. Available: {list(explainer.data.columns)}")
    if not variables:
        raise ValueError("At least one variable is required")
    return variables


def _long_frame(label, variable, kind, grid, times, curves, extra=None) -> pd.DataFrame:
    n_grid, n_times = curves.shape
    frame = pd.DataFrame({
        "label": label,
        "variable": variable,
        "variable_type": kind,
        "value": np.repeat(np.asarray(grid, dtype=object), n_times),
        "time": np.tile(times, n_grid),
        "survival": curves.ravel(),
    })
    if extra:
        for name, per_grid in extra.items():
            frame[name] = np.repeat(np.asarray(per_grid), n_times)
    return frame


# ============================================================================
# Variable response (partial dependence over time)
# ============================================================================

@dataclass
class VariableResponse:
    """Averaged survival curves across each variable's grid.

    Attributes:
        label: Explainer label
        times: Time grid, shape (n_times,)
        result: Long frame with columns label, variable, variable_type,
            value, time, survival
        n_observations: Number of observations averaged over
    """
    label: str
    times: np.ndarray
    result: pd.DataFrame
    n_observations: int

    def curves(self, variable: str) -> pd.DataFrame:
        """Survival curves of one variable: rows are grid values, columns times."""
        subset = self.result[self.result["variable"] == variable]
        if subset.empty:
            raise KeyError(f"Variable '{variable}' not in this variable response")
        return subset.pivot(index="value", columns="time", values="survival")


def _variable_response_curves(explainer, data, variable, grid, times) -> np.ndarray:
    stacked = pd.concat([data] * len(grid), ignore_index=True)
    stacked[variable] = np.repeat(grid, len(data))
    survival = explainer.predict_survival(stacked, times=times)
    return survival.reshape(len(grid), len(data), len(times)).mean(axis=1)


@log_execution_time(logger)
def model_profile(
    explainer: SurvivalExplainer,
    variables: Optional[Iterable[str]] = None,
    times: Optional[Iterable[float]] = None,
    grid_points: int = 25,
    n_observations: Optional[int] = None,
    categorical_variables: Optional[Sequence[str]] = None,
    random_state: Optional[int] = None,
    execution_config: Optional[ExecutionConfig] = None,
) -> VariableResponse:
    """Compute the variable response (partial dependence) survival curves.

    For each variable and each grid value v, every observation gets the
    variable set to v and the predicted survival curves are averaged:
    PD_v(t) = mean_i S(t | x_i with variable = v).

    Args:
        explainer: Explainer to analyse
        variables: Variables to profile. Defaults to every column
        times: Time grid. Defaults to the explainer's grid
        grid_points: Grid size for numeric variables
        n_observations: Sample this many observations (without replacement)
            to average over. Defaults to all
        categorical_variables: Extra columns to treat as categorical
        random_state: Seed for the observation sample
        execution_config: Parallelism over variables

    Returns:
        VariableResponse with one curve per (variable, value)

    Raises:
        ValueError: On unknown variables or invalid grid size

    Example:
        >>> response = model_profile(explainer, variables=["karno", "celltype"])
        >>> response.curves("celltype").shape
        (4, 50)
    """
    grid_times = explainer.time_grid(times)
    variables = resolve_variables(explainer, variables)

    data = explainer.data
    if n_observations is not None and n_observations < len(data):
        rng = np.random.default_rng(random_state)
        rows = np.sort(rng.choice(len(data), size=n_observations, replace=False))
        data = data.iloc[rows].reset_index(drop=True)

    def profile_variable(variable):
        kind = variable_type(explainer.data[variable], categorical_variables)
        grid = make_variable_grid(explainer.data[variable], grid_points, kind)
        curves = _variable_response_curves(explainer, data, variable, grid, grid_times)
        return _long_frame(explainer.label, variable, kind, grid, grid_times, curves)

    with capture_warnings(logger):
        frames = map_variables(
            profile_variable, variables, execution_config, logger, desc="Variable response"
        )

    return VariableResponse(
        label=explainer.label,
        times=grid_times,
        result=pd.concat(frames, ignore_index=True),
        n_observations=len(data),
    )


# ============================================================================
# Ceteris paribus
# ============================================================================

@dataclass
class CeterisParibus:
    """Survival curves of one observation with one variable moved at a time.

    Attributes:
        label: Explainer label
        observation: The explained observation (single-row DataFrame)
        times: Time grid, shape (n_times,)
        prediction: Survival curve of the unchanged observation, shape (n_times,)
        result: Long frame with columns label, variable, variable_type,
            value, time, survival, observed (True on the observation's own value)
    """
    label: str
    observation: pd.DataFrame
    times: np.ndarray
    prediction: np.ndarray
    result: pd.DataFrame

    def curves(self, variable: str) -> pd.DataFrame:
        """Survival curves of one variable: rows are grid values, columns times."""
        subset = self.result[self.result["variable"] == variable]
        if subset.empty:
            raise KeyError(f"Variable '{variable}' not in this ceteris paribus profile")
        return subset.pivot(index="value", columns="time", values="survival")


def _with_observed_value(grid: np.ndarray, observed, kind: str) -> np.ndarray:
    if pd.isna(observed):
        return grid
    if kind == CATEGORICAL:
        if any(level == observed for level in grid):
            return grid
        return np.array(sorted(list(grid) + [observed], key=str), dtype=object)
    # A grid point within tolerance of the observed value is replaced by it
    close = np.isclose(grid.astype(float), float(observed))
    if close.any():
        grid = grid[~close]
    return np.sort(np.append(grid, observed))


def _is_observed(grid: np.ndarray, observed, kind: str) -> np.ndarray:
    if pd.isna(observed):
        return np.zeros(len(grid), dtype=bool)
    if kind == CATEGORICAL:
        return np.array([level == observed for level in grid], dtype=bool)
    return np.isclose(grid.astype(float), float(observed))


@log_execution_time(logger)
def predict_profile(
    explainer: SurvivalExplainer,
    new_observation,
    variables: Optional[Iterable[str]] = None,
    times: Optional[Iterable[float]] = None,
    grid_points: int = 25,
    categorical_variables: Optional[Sequence[str]] = None,
    execution_config: Optional[ExecutionConfig] = None,
) -> CeterisParibus:
    """Compute ceteris-paribus survival profiles for one observation.

    Each variable is moved across its grid (built from the explainer data,
    with the observation's own value added) while every other variable keeps
    the observation's value, and the survival curve is recomputed.

    Args:
        explainer: Explainer to analyse
        new_observation: Observation to explain (Series, dict or single-row
            DataFrame)
        variables: Variables to profile. Defaults to every column
        times: Time grid. Defaults to the explainer's grid
        grid_points: Grid size for numeric variables
        categorical_variables: Extra columns to treat as categorical
        execution_config: Parallelism over variables

    Returns:
        CeterisParibus profile

    Raises:
        ValueError: If more than one observation is given, or on unknown
            variables

    Example:
        >>> cp = predict_profile(explainer, X.iloc[[0]], variables=["karno"])
        >>> cp.result.loc[cp.result["observed"], "survival"].to_numpy()[:3]
        array([0.97, 0.95, 0.93])
    """
    observation = explainer.as_observation(new_observation)
    grid_times = explainer.time_grid(times)
    variables = resolve_variables(explainer, variables)

    prediction = explainer.predict_survival(observation, times=grid_times)[0]

    def profile_variable(variable):
        kind = variable_type(explainer.data[variable], categorical_variables)
        observed = observation[variable].iloc[0]
        grid = _with_observed_value(
            make_variable_grid(explainer.data[variable], grid_points, kind), observed, kind
        )
        rows = pd.concat([observation] * len(grid), ignore_index=True)
        rows[variable] = grid
        curves = explainer.predict_survival(rows, times=grid_times)
        return _long_frame(
            explainer.label, variable, kind, grid, grid_times, curves,
            extra={"observed": _is_observed(grid, observed, kind)},
        )

    with capture_warnings(logger):
        frames = map_variables(
            profile_variable, variables, execution_config, logger, desc="Ceteris paribus"
        )

    return CeterisParibus(
        label=explainer.label,
        observation=observation,
        times=grid_times,
        prediction=prediction,
        result=pd.concat(frames, ignore_index=True),
    )
