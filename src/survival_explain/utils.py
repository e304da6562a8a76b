from __future__ import annotations
import os
import datetime as dt
import numpy as np
import pandas as pd
from typing import Iterable, Literal, Optional

# Run type for distinguishing sample vs production runs
RunType = Literal["sample", "production"]


def ensure_dir(path: str):
    """Create directory if it doesn't exist.

    Creates the specified directory path, including any necessary parent
    directories. Does nothing if the directory already exists.

    Args:
        path: Directory path to create

    Example:
        >>> ensure_dir("data/outputs/sample/explanations")
    """
    os.makedirs(path, exist_ok=True)


def default_time_grid(y_struct, n: int = 50) -> np.ndarray:
    """Generate default time grid for survival function evaluation.

    Creates evenly spaced time points between the 5th and 95th percentile of
    the observed times. Every explanation computed on an explainer without an
    explicit grid is evaluated on these points.

    Args:
        y_struct: Structured array with dtype=[('event', bool), ('time', float)]
        n: Number of time points to generate. Defaults to 50

    Returns:
        Array of strictly increasing time points with shape (n,)

    Raises:
        ValueError: If n < 2 or all observed times are identical

    Example:
        >>> times = default_time_grid(y, n=100)
        >>> print(f"Time range: {times[0]:.1f} to {times[-1]:.1f}")
        Time range: 7.0 to 287.0
    """
    if n < 2:
        raise ValueError(f"Time grid needs at least 2 points, got n={n}")

    t_min = float(np.percentile(y_struct["time"], 5))
    t_max = float(np.percentile(y_struct["time"], 95))

    if t_min >= t_max:
        raise ValueError(
            f"Cannot build a time grid from degenerate time range [{t_min}, {t_max}]. "
            f"Pass an explicit grid instead."
        )

    return np.linspace(t_min, t_max, n)


def as_time_grid(times: Iterable[float]) -> np.ndarray:
    """Validate a user supplied time grid.

    Args:
        times: Iterable of time points

    Returns:
        1-D float array

    Raises:
        ValueError: If the grid is empty, not 1-D, contains non-finite values
            or is not strictly increasing
    """
    grid = np.asarray(list(times) if not isinstance(times, np.ndarray) else times, dtype=float)
    if grid.ndim != 1 or grid.size == 0:
        raise ValueError(f"Time grid must be a non-empty 1-D sequence, got shape {grid.shape}")
    if not np.isfinite(grid).all():
        raise ValueError("Time grid contains non-finite values")
    if grid.size > 1 and np.any(np.diff(grid) <= 0):
        raise ValueError("Time grid must be strictly increasing")
    return grid


def save_explanation(df: pd.DataFrame, outdir: str, name: str) -> str:
    """Save an explanation result frame to CSV.

    Args:
        df: Long-format explanation frame (e.g. ``VariableResponse.result``)
        outdir: Output directory path, created if missing
        name: File stem, written as ``{name}.csv``

    Returns:
        Full path to the saved CSV file

    Example:
        >>> path = save_explanation(perf.to_frame(), "artifacts", "cox_ph_performance")
        >>> print(path)
        artifacts/cox_ph_performance.csv
    """
    ensure_dir(outdir)
    path = os.path.join(outdir, f"{name}.csv")
    df.to_csv(path, index=False)
    return path


def versioned_name(base: str, run_type: Optional[RunType] = None) -> str:
    """Generate timestamped filename for versioning.

    Args:
        base: Base filename without extension
        run_type: Optional run type ("sample" or "production") to prefix filename

    Returns:
        Versioned name in format "[runtype_]base_YYYYMMDD_HHMMSS"

    Example:
        >>> versioned_name("explanations", run_type="sample")
        'sample_explanations_20250123_143052'
    """
    ts = dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    if run_type:
        return f"{run_type}_{base}_{ts}"
    return f"{base}_{ts}"


def get_output_paths(run_type: RunType = "sample", base: str = "data/outputs") -> dict:
    """Get standardized output directory paths for a given run type.

    Args:
        run_type: Type of run - "sample" for development, "production" for full data
        base: Root directory for all outputs

    Returns:
        Dictionary with keys:
        - base_dir: Root output directory for this run type
        - explanations: Directory for explanation CSVs
        - models: Directory for saved model files
        - mlruns: Directory for MLflow tracking

    Notes:
        All paths are created if they don't exist.
    """
    base_dir = os.path.join(base, run_type)

    paths = {
        "base_dir": base_dir,
        "explanations": os.path.join(base_dir, "explanations"),
        "models": os.path.join(base_dir, "models"),
        "mlruns": os.path.join(base_dir, "mlruns"),
    }

    for path in paths.values():
        ensure_dir(path)

    return paths
