"""Permutation variable importance for survival models.

A variable matters when shuffling its column makes the model's predictions
worse. The loss of the unchanged model (``_full_model_``) is compared with
the loss after permuting one column, averaged over ``B`` permutation
rounds, and with the loss after permuting every column (``_baseline_``).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from survival_explain.config import ExecutionConfig
from survival_explain.explainer import SurvivalExplainer
from survival_explain.logging_config import capture_warnings, log_performance
from survival_explain.metrics import get_loss_function
from survival_explain.parallel import map_variables
from survival_explain.profiles import resolve_variables
from survival_explain.timing import log_execution_time

logger = logging.getLogger("survival_explain.importance")

FULL_MODEL = "_full_model_"
BASELINE = "_baseline_"


@dataclass
class VariableImportance:
    """Permutation importance of each variable.

    Attributes:
        label: Explainer label
        loss: Name of the loss function
        result: Frame with columns label, variable, permutation, dropout_loss.
            Permutation 0 holds the mean over all rounds
    """
    label: str
    loss: str
    result: pd.DataFrame

    def summary(self) -> pd.DataFrame:
        """Mean dropout loss per variable, most important first.

        Returns:
            DataFrame with columns variable, dropout_loss, difference
            (dropout_loss minus the full model loss)
        """
        means = self.result[self.result["permutation"] == 0][["variable", "dropout_loss"]]
        full = float(means.loc[means["variable"] == FULL_MODEL, "dropout_loss"].iloc[0])
        return (
            means.assign(difference=lambda d: d["dropout_loss"] - full)
            .sort_values("dropout_loss", ascending=False)
            .reset_index(drop=True)
        )


@log_execution_time(logger)
def model_parts(
    explainer: SurvivalExplainer,
    loss="integrated_brier_score",
    variables: Optional[Iterable[str]] = None,
    times: Optional[Iterable[float]] = None,
    B: int = 10,
    random_state: Optional[int] = None,
    execution_config: Optional[ExecutionConfig] = None,
) -> VariableImportance:
    """Compute permutation variable importance.

    Args:
        explainer: Explainer to analyse
        loss: "integrated_brier_score", "one_minus_cindex" or a callable
            ``loss(y, survival, times, risk) -> float`` (lower is better)
        variables: Variables to permute. Defaults to every column
        times: Time grid. Defaults to the explainer's grid
        B: Number of permutation rounds
        random_state: Seed for the permutations
        execution_config: Parallelism over variables

    Returns:
        VariableImportance with per-round and mean dropout losses

    Raises:
        ValueError: On unknown loss or variables, or B < 1

    Example:
        >>> vi = model_parts(explainer, loss="one_minus_cindex", B=5)
        >>> vi.summary().head(3)
    """
    if B < 1:
        raise ValueError(f"B must be at least 1, got {B}")

    loss_name, loss_fn = get_loss_function(loss)
    grid = explainer.time_grid(times)
    variables = resolve_variables(explainer, variables)
    data = explainer.data
    y = explainer.y
    n = len(data)

    def evaluate(frame: pd.DataFrame) -> float:
        survival = explainer.predict_survival(frame, times=grid)
        risk = explainer.predict_risk(frame)
        return float(loss_fn(y, survival, grid, risk))

    # One permutation per round, shared by every variable
    rng = np.random.default_rng(random_state)
    permutations = [rng.permutation(n) for _ in range(B)]

    def permuted(columns, perm) -> pd.DataFrame:
        frame = data.copy()
        for column in columns:
            frame[column] = data[column].to_numpy()[perm]
        return frame

    def variable_losses(variable):
        return [evaluate(permuted([variable], perm)) for perm in permutations]

    with capture_warnings(logger):
        full_loss = evaluate(data)
        baseline_losses = [evaluate(permuted(list(data.columns), perm)) for perm in permutations]
        per_variable = map_variables(
            variable_losses, variables, execution_config, logger, desc="Permutation importance"
        )

    rows = []
    entries = [(FULL_MODEL, [full_loss] * B)] + list(zip(variables, per_variable)) + [(BASELINE, baseline_losses)]
    for variable, losses in entries:
        rows.append({"variable": variable, "permutation": 0, "dropout_loss": float(np.mean(losses))})
        for i, value in enumerate(losses, start=1):
            rows.append({"variable": variable, "permutation": i, "dropout_loss": value})

    result = pd.DataFrame(rows)
    result.insert(0, "label", explainer.label)

    log_performance(
        logger,
        "Permutation importance",
        label=explainer.label,
        loss=loss_name,
        full_model=round(full_loss, 4),
        B=B,
    )

    return VariableImportance(label=explainer.label, loss=loss_name, result=result)
