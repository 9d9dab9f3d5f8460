"""Prediction utilities for fitted housing workflows.

Workflows are trained on ``log(sale_price)``. This module back-transforms
those predictions into sale prices (``exp``) for reporting and plots.
"""

import logging
from typing import Protocol, runtime_checkable

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


@runtime_checkable
class _FittedModel(Protocol):
    """Structural type for anything with a ``predict`` method."""

    def predict(self, new_data: pd.DataFrame) -> np.ndarray: ...


class HousingPredictor:
    """Wraps a fitted workflow to produce sale-price predictions.

    Args:
        model: Any fitted object whose ``predict`` returns log-space
            predictions, typically a
            :class:`~housing_forest.models.workflow.FittedWorkflow`.
    """

    def __init__(self, model: _FittedModel) -> None:
        if not isinstance(model, _FittedModel):
            raise TypeError(
                "model must have a predict(X) method. "
                f"Got {type(model).__name__}."
            )
        self.model = model

    def predict_log(self, new_data: pd.DataFrame) -> np.ndarray:
        """Return raw predictions in log-space."""
        log_preds = np.asarray(self.model.predict(new_data), dtype=float)
        logger.debug("predict_log: min=%.3f, max=%.3f", log_preds.min(), log_preds.max())
        return log_preds

    def predict_price(self, new_data: pd.DataFrame) -> np.ndarray:
        """Return sale-price predictions, reversing the ``log`` target transform."""
        prices = np.exp(self.predict_log(new_data))
        logger.info(
            "predict_price: median=%.0f, min=%.0f, max=%.0f",
            np.median(prices),
            prices.min(),
            prices.max(),
        )
        return prices

    def predict_dataframe(self, new_data: pd.DataFrame) -> pd.DataFrame:
        """Return a DataFrame with both log and price predictions.

        Returns:
            DataFrame indexed like ``new_data`` with columns
            ``predicted_log_price`` and ``predicted_sale_price``.
        """
        prices = self.predict_price(new_data)
        return pd.DataFrame(
            {
                "predicted_log_price": np.log(prices),
                "predicted_sale_price": prices,
            },
            index=new_data.index,
        )
