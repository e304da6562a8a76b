"""Per-variable execution helper shared by the profile and importance analyses."""
from __future__ import annotations
import logging
from typing import Callable, List, Optional, Sequence

from joblib import Parallel, delayed

from survival_explain.config import ExecutionConfig
from survival_explain.logging_config import ProgressLogger


def map_variables(
    func: Callable,
    variables: Sequence[str],
    execution_config: Optional[ExecutionConfig],
    logger: logging.Logger,
    desc: str,
) -> List:
    """Apply ``func(variable)`` to every variable, in order.

    Runs sequentially unless ``execution_config.is_parallel()``, in which case
    variables are dispatched through joblib with the configured backend.

    Args:
        func: Callable taking a variable name
        variables: Variable names
        execution_config: Parallelism settings (None = sequential)
        logger: Logger for progress messages
        desc: Description used in progress messages

    Returns:
        List of results aligned with ``variables``
    """
    if execution_config is not None and execution_config.is_parallel():
        logger.info(f"{desc}: {len(variables)} variables on {execution_config.n_jobs} jobs")
        return Parallel(
            n_jobs=execution_config.n_jobs,
            verbose=execution_config.verbose,
            backend=execution_config.backend
        )(delayed(func)(variable) for variable in variables)

    progress = ProgressLogger(logger, total=len(variables), desc=desc)
    results = []
    for variable in variables:
        results.append(func(variable))
        progress.update(1, metrics={"variable": variable})
    return results
