from __future__ import annotations
import logging
from typing import Optional, Sequence, Tuple, List
import numpy as np
import pandas as pd
from pathlib import Path
from sklearn.compose import ColumnTransformer
from sklearn.preprocessing import OneHotEncoder, StandardScaler
from sklearn.impute import SimpleImputer
from sklearn.feature_selection import VarianceThreshold
from sklearn.pipeline import Pipeline
from sksurv.datasets import load_veterans_lung_cancer

from survival_explain.config import DataConfig

logger = logging.getLogger("survival_explain.data")

# Veterans' Administration lung cancer trial columns renamed to their
# customary short names (trt, celltype, time, status, karno, diagtime, age, prior)
VETERANS_COLUMNS = {
    "Treatment": "trt",
    "Celltype": "celltype",
    "Karnofsky_score": "karno",
    "Months_from_Diagnosis": "diagtime",
    "Age_in_years": "age",
    "Prior_therapy": "prior",
}


def load_data(file_path: str, config: Optional[DataConfig] = None) -> pd.DataFrame:
    """Load survival data from CSV or pickle file.

    Args:
        file_path: Path to input file (CSV or pickle)
        config: DataConfig naming the time column and the minimum valid time.
            Defaults to DataConfig()

    Returns:
        DataFrame with features, time, and event columns

    Raises:
        FileNotFoundError: If file_path does not exist
        ValueError: If file format is not supported

    Notes:
        Rows with a survival time at or below ``config.min_survival_time``
        are dropped with a warning.
    """
    config = config or DataConfig()
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    suffix = file_path.suffix.lower()

    if suffix == '.csv':
        df = pd.read_csv(file_path)
    elif suffix in ['.pkl', '.pickle']:
        df = pd.read_pickle(file_path)
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            f"Supported formats: .csv, .pkl, .pickle"
        )

    logger.info(f"Loaded {len(df):,} records with {len(df.columns)} columns from {file_path}")

    if config.time_column in df.columns:
        invalid = df[config.time_column] <= config.min_survival_time
        if invalid.any():
            logger.warning(
                f"Removing {int(invalid.sum()):,} records with {config.time_column} <= "
                f"{config.min_survival_time}"
            )
            df = df[~invalid].copy()

    return df


def load_veterans() -> pd.DataFrame:
    """Load the Veterans' Administration lung cancer trial data.

    The dataset ships with scikit-survival, so no download is needed. Column
    names follow ``DataConfig()`` defaults.

    Returns:
        DataFrame with 137 rows and columns trt, celltype, karno, diagtime,
        age, prior, time, status
    """
    X, y = load_veterans_lung_cancer()
    df = X.rename(columns=VETERANS_COLUMNS)
    for col in ("trt", "celltype", "prior"):
        df[col] = df[col].astype(str)
    df["time"] = y["Survival_in_days"].astype(float)
    df["status"] = y["Status"].astype(bool)
    return df.reset_index(drop=True)


def to_structured_y(
    df: pd.DataFrame,
    time_col: str = "time",
    event_col: str = "status"
) -> np.ndarray:
    """Create scikit-survival structured array from DataFrame.

    Args:
        df: DataFrame containing event and time columns
        time_col: Name of the survival time column
        event_col: Name of the event indicator column

    Returns:
        Structured numpy array with dtype=[('event', bool), ('time', float)]

    Example:
        >>> df = pd.DataFrame({'status': [True, False], 'time': [72.0, 411.0]})
        >>> to_structured_y(df).dtype.names
        ('event', 'time')
    """
    y = np.empty(len(df), dtype=[("event", bool), ("time", float)])
    y["event"] = df[event_col].astype(bool).values
    y["time"] = df[time_col].astype(float).values
    return y


# Lower-cased field names recognised when picking the outcome fields
TIME_FIELD_NAMES = ("time", "duration", "survival_in_days", "survival_time", "futime", "t", "stop")
EVENT_FIELD_NAMES = ("event", "status", "observed", "death", "dead", "delta", "e")


def _is_event_indicator(values: np.ndarray) -> bool:
    """True for boolean values or numbers that are all 0 or 1."""
    values = np.asarray(values)
    if values.dtype == np.bool_:
        return True
    if not np.issubdtype(values.dtype, np.number):
        return False
    return bool(np.isin(values, (0, 1)).all())


def _pick_outcome_fields(arr: np.ndarray) -> Tuple[str, str]:
    """Choose (event field, time field) of a two-field structured array.

    Names are tried first, then the value rule: the event field is the only
    boolean field, or failing that the only field holding just 0/1 values.
    """
    names = list(arr.dtype.names)
    lowered = [name.lower() for name in names]

    event_name = next((n for n, low in zip(names, lowered) if low in EVENT_FIELD_NAMES), None)
    time_name = next((n for n, low in zip(names, lowered) if low in TIME_FIELD_NAMES), None)
    if event_name is not None and time_name is None:
        time_name = names[1 - names.index(event_name)]
    elif time_name is not None and event_name is None:
        event_name = names[1 - names.index(time_name)]

    if event_name is None or event_name == time_name:
        bool_fields = [name for name in names if arr.dtype[name] == np.bool_]
        binary_fields = [name for name in names if _is_event_indicator(arr[name])]
        if len(bool_fields) == 1:
            event_name = bool_fields[0]
        elif len(binary_fields) == 1:
            event_name = binary_fields[0]
        else:
            raise ValueError(
                f"Cannot tell the event field from the time field in {tuple(names)}. "
                f"Name them e.g. 'event' and 'time'"
            )
        time_name = names[1 - names.index(event_name)]

    return event_name, time_name


def as_structured_y(y) -> np.ndarray:
    """Coerce survival outcomes into the ('event', 'time') structured array.

    Accepts a structured array or a DataFrame with two fields, or a sequence
    of (event, time) pairs. Named fields may come in any order: they are
    matched by name (event/status/..., time/duration/Survival_in_days/...)
    and otherwise by value, the event field being the only boolean or 0/1
    field. This covers ``sksurv.util.Surv``, ``load_veterans_lung_cancer``
    and lifelines-style frames with an integer event column.

    Raises:
        ValueError: If the outcome cannot be interpreted, the event field is
            not boolean or 0/1, or times are not finite
    """
    if isinstance(y, pd.DataFrame):
        if y.shape[1] != 2:
            raise ValueError(f"Outcome DataFrame must have 2 columns (event, time), got {y.shape[1]}")
        y = y.to_records(index=False)

    arr = np.asarray(y)
    if arr.dtype.names is None:
        if arr.ndim != 2 or arr.shape[1] != 2:
            raise ValueError(
                f"Outcome must be a structured array or (n, 2) array of (event, time), "
                f"got shape {arr.shape}"
            )
        event, time = arr[:, 0], arr[:, 1]
        event_name = "column 0"
    else:
        if len(arr.dtype.names) != 2:
            raise ValueError(f"Outcome must have exactly two fields, got {arr.dtype.names}")
        event_name, time_name = _pick_outcome_fields(arr)
        event, time = arr[event_name], arr[time_name]

    if not _is_event_indicator(event):
        raise ValueError(f"Event indicator ({event_name}) must be boolean or 0/1")

    out = np.empty(len(arr), dtype=[("event", bool), ("time", float)])
    out["event"] = np.asarray(event).astype(bool)
    out["time"] = np.asarray(time, dtype=float)
    if not np.isfinite(out["time"]).all():
        raise ValueError("Outcome times must be finite")
    return out


def make_preprocessor(
    numeric: Sequence[str], categorical: Sequence[str]
) -> ColumnTransformer:
    """Create preprocessing pipeline for survival model features.

    Args:
        numeric: Numeric column names (median imputed, standardized)
        categorical: Categorical column names (mode imputed, one-hot encoded)

    Returns:
        ColumnTransformer with numeric and categorical branches

    Notes:
        - handle_unknown="ignore" keeps predictions working when profiles
          feed levels the encoder has not seen
        - drop="first" reduces multicollinearity for the Cox models
    """
    num_pipe = Pipeline(
        steps=[
            ("impute", SimpleImputer(strategy="median")),
            ("scaler", StandardScaler()),
        ]
    )

    cat_pipe = Pipeline(
        steps=[
            ("impute", SimpleImputer(strategy="most_frequent")),
            ("onehot", OneHotEncoder(handle_unknown="ignore", sparse_output=False, drop="first")),
        ]
    )

    return ColumnTransformer(
        transformers=[
            ("num", num_pipe, list(numeric)),
            ("cat", cat_pipe, list(categorical)),
        ]
    )


def split_X_y(
    df: pd.DataFrame,
    config: Optional[DataConfig] = None,
    dropna: bool = True
) -> Tuple[pd.DataFrame, np.ndarray]:
    """Extract features and survival labels from input DataFrame.

    Args:
        df: Input DataFrame containing the configured feature, time and
            event columns
        config: DataConfig naming columns. Defaults to DataConfig()
        dropna: If True, remove rows with any missing values

    Returns:
        Tuple containing:
        - X: DataFrame with numeric then categorical features
        - y: Structured array with dtype=[('event', bool), ('time', float)]

    Raises:
        KeyError: If required columns are missing
    """
    config = config or DataConfig()
    features = config.feature_columns
    cols_needed = features + [config.time_column, config.event_column]

    missing = [col for col in cols_needed if col not in df.columns]
    if missing:
        raise KeyError(f"Columns {missing} not found in input DataFrame. Available: {list(df.columns)}")

    data = df[cols_needed].copy()
    if dropna:
        data = data.dropna()
    X = data[features].reset_index(drop=True)
    y = to_structured_y(data, time_col=config.time_column, event_col=config.event_column)
    return X, y


def make_pipeline(preprocessor: ColumnTransformer, estimator) -> Pipeline:
    """Create sklearn Pipeline combining preprocessing and survival model.

    Steps:
    1. 'pre': imputation + scaling/encoding
    2. 'varth': variance threshold filter (drops constant columns)
    3. 'model': survival model estimator

    The fitted pipeline accepts raw feature DataFrames, so explainers built
    on it perturb original (un-encoded) variables.
    """
    return Pipeline(
        steps=[
            ("pre", preprocessor),
            ("varth", VarianceThreshold(threshold=1e-12)),
            ("model", estimator),
        ]
    )
