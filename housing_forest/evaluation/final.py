"""Final fit on the full training set and evaluation on the test set."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import pandas as pd

from housing_forest.evaluation.metrics import compute_metrics
from housing_forest.models.workflow import FittedWorkflow, Workflow

logger = logging.getLogger(__name__)


@dataclass
class FinalFit:
    """Result of :func:`last_fit`.

    Attributes:
        workflow: Workflow fitted on all training rows; its prepared recipe
            is the one used to bake the test set.
        predictions: Test rows' ``truth`` and ``estimate`` (log scale),
            indexed like the test frame.
        metrics: Test-set metrics from
            :func:`~housing_forest.evaluation.metrics.compute_metrics`.
        params: The hyperparameters the workflow was finalized with.
    """

    workflow: FittedWorkflow
    predictions: pd.DataFrame
    metrics: Dict[str, float]
    params: Dict[str, Any]


def last_fit(
    workflow: Workflow,
    params: Mapping[str, Any],
    train: pd.DataFrame,
    test: pd.DataFrame,
) -> FinalFit:
    """Finalize ``workflow`` with ``params``, fit on ``train``, score ``test``.

    The recipe is prepared on ``train`` only. The resulting test RMSE is a
    single-split estimate and will differ from the cross-validated mean.
    """
    final = workflow.finalize(params)
    fitted = final.fit(train)

    outcome = workflow.recipe.outcome
    if outcome not in test.columns:
        raise ValueError(f"Test data has no outcome column '{outcome}'.")

    estimate = fitted.predict(test)
    predictions = pd.DataFrame(
        {"truth": test[outcome].to_numpy(dtype=float), "estimate": estimate},
        index=test.index,
    )
    metrics = compute_metrics(predictions["truth"], predictions["estimate"], label="test")
    logger.info(
        "Final fit with %s on %d training rows; test RMSE=%.4f on %d rows",
        fitted.params,
        len(train),
        metrics["rmse"],
        len(test),
    )
    return FinalFit(fitted, predictions, metrics, fitted.params)
