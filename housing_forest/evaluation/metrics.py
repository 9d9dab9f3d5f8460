"""Evaluation metrics for log sale-price regression.

Metrics are computed on the **log scale** the models are trained on, so
RMSE values are directly comparable between cross-validation and the
held-out test set.
"""

import logging
from typing import Dict

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

logger = logging.getLogger(__name__)

# Whether a larger value is better for each metric.
MAXIMIZE: Dict[str, bool] = {
    "rmse": False,
    "mae": False,
    "rsq": True,
}


def _check(y_true: np.ndarray, y_pred: np.ndarray):
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    if y_true.shape != y_pred.shape:
        raise ValueError(
            f"Shape mismatch: y_true {y_true.shape} vs y_pred {y_pred.shape}."
        )
    return y_true, y_pred


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    y_true, y_pred = _check(y_true, y_pred)
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    y_true, y_pred = _check(y_true, y_pred)
    return float(mean_absolute_error(y_true, y_pred))


def rsq(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Squared correlation between truth and estimate.

    Unlike :func:`sklearn.metrics.r2_score` this is always within [0, 1];
    it is NaN when either side is constant.
    """
    y_true, y_pred = _check(y_true, y_pred)
    if np.std(y_true) == 0 or np.std(y_pred) == 0:
        return float("nan")
    return float(np.corrcoef(y_true, y_pred)[0, 1] ** 2)


METRIC_FUNCTIONS = {
    "rmse": rmse,
    "mae": mae,
    "rsq": rsq,
}


def compute_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    label: str = "",
) -> Dict[str, float]:
    """Compute the standard regression metrics on log-scale values.

    Args:
        y_true: Ground-truth log sale prices.
        y_pred: Predicted log sale prices.
        label: Optional label for log output (e.g. ``"test"``).

    Returns:
        Dictionary with the following keys:

        - ``rmse`` – Root Mean Squared Error (log scale) [primary].
        - ``mae``  – Mean Absolute Error (log scale).
        - ``rsq``  – Squared correlation between truth and estimate.
        - ``r2``   – Coefficient of Determination.

    Raises:
        ValueError: If ``y_true`` and ``y_pred`` have different shapes.
    """
    y_true, y_pred = _check(y_true, y_pred)

    results: Dict[str, float] = {
        "rmse": rmse(y_true, y_pred),
        "mae": mae(y_true, y_pred),
        "rsq": rsq(y_true, y_pred),
        "r2": float(r2_score(y_true, y_pred)),
    }

    prefix = f"[{label}] " if label else ""
    logger.info(
        "%sRMSE=%.4f | MAE=%.4f | RSQ=%.4f | R²=%.4f",
        prefix,
        results["rmse"],
        results["mae"],
        results["rsq"],
        results["r2"],
    )
    return results


def metrics_to_dataframe(results: Dict[str, Dict[str, float]]) -> pd.DataFrame:
    """Convert a dict of {split_name: metrics_dict} into a tidy DataFrame.

    Args:
        results: Mapping from split label (e.g. ``"test"``) to the dict
            returned by :func:`compute_metrics`.

    Returns:
        DataFrame with splits as rows and metric names as columns.
    """
    return pd.DataFrame(results).T.rename_axis("split")
