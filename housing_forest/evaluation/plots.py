"""Diagnostic plots for tuning and final evaluation."""

import logging
from pathlib import Path
from typing import Optional, Union

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from housing_forest.tuning.search import TuneResults

logger = logging.getLogger(__name__)


def plot_predicted_vs_actual(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    path: Union[str, Path],
    title: str = "Predicted vs actual sale price",
    price_scale: bool = True,
) -> Path:
    """Scatter predicted against actual values with an identity line.

    Args:
        y_true: Actual log sale prices.
        y_pred: Predicted log sale prices.
        path: Output PNG path; parent directories are created.
        title: Figure title.
        price_scale: Plot ``exp`` of both axes (sale prices) instead of logs.

    Returns:
        Path of the saved figure.
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    if price_scale:
        y_true, y_pred = np.exp(y_true), np.exp(y_pred)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(7, 7))
    ax.scatter(y_true, y_pred, s=14, alpha=0.6, edgecolor="none")
    lo = float(min(y_true.min(), y_pred.min()))
    hi = float(max(y_true.max(), y_pred.max()))
    ax.plot([lo, hi], [lo, hi], color="firebrick", linestyle="--", linewidth=1)
    ax.set_xlabel("Actual" + (" sale price" if price_scale else " log sale price"))
    ax.set_ylabel("Predicted" + (" sale price" if price_scale else " log sale price"))
    ax.set_title(title)
    ax.grid(alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)

    logger.info("Saved predicted-vs-actual plot to %s", path)
    return path


def plot_tuning_results(
    results: TuneResults,
    path: Union[str, Path],
    metric: Optional[str] = None,
) -> Path:
    """Mean CV metric against each tuned hyperparameter, one panel per axis.

    Points are coloured by the other hyperparameters' grid position, so the
    spread at each x value shows how much the remaining axes matter.
    """
    metric = metric or results.metric
    table = results.metric_table(metric).dropna(subset=["mean"])

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    n = len(results.params)
    fig, axes = plt.subplots(1, n, figsize=(5 * n, 4), sharey=True, squeeze=False)
    for ax, param in zip(axes[0], results.params):
        ax.scatter(
            table[param],
            table["mean"],
            c=np.arange(len(table)),
            cmap="viridis",
            s=16,
            alpha=0.7,
        )
        ax.set_xlabel(param)
        ax.grid(alpha=0.3)
    axes[0][0].set_ylabel(f"mean {metric} (CV)")
    fig.suptitle(f"Grid search: {len(table)} complete grid points")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)

    logger.info("Saved tuning plot to %s", path)
    return path
