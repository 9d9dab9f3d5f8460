"""Pick hyperparameters from tuning results.

Three strategies, all deterministic for a given results table:

    - :func:`select_best` – best mean metric.
    - :func:`select_by_one_std_err` – simplest grid point whose mean is
      within one standard error of the best.
    - :func:`select_by_pct_loss` – simplest grid point whose mean is within
      ``limit`` percent of the best.

"Simplest" is defined per hyperparameter by a direction: ``"asc"`` means a
smaller value is simpler (e.g. fewer trees), ``"desc"`` means a larger value
is simpler (e.g. a larger minimum node size). Ties always resolve in grid
generation order. Grid points with failed folds are never selected.
"""

import logging
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from housing_forest.evaluation.metrics import MAXIMIZE
from housing_forest.tuning.grid import CONFIG_COLUMN
from housing_forest.tuning.search import TuneResults

logger = logging.getLogger(__name__)

SIMPLICITY_DIRECTIONS: Dict[str, str] = {
    "mtry": "asc",
    "trees": "asc",
    "min_n": "desc",
}

SELECTION_METHODS = ("best", "one_std_err", "pct_loss")


def _complete_table(results: TuneResults, metric: Optional[str]) -> pd.DataFrame:
    table = results.metric_table(metric).dropna(subset=["mean"])
    if table.empty:
        raise ValueError(
            "No complete grid points to select from; every grid point had a failed fold."
        )
    # Position in grid order, used as the final tie-break.
    return table.reset_index(drop=True).rename_axis("_order").reset_index()


def _best_row(table: pd.DataFrame, metric: str) -> pd.Series:
    ascending = not MAXIMIZE.get(metric, False)
    ranked = table.sort_values(["mean", "_order"], ascending=[ascending, True], kind="mergesort")
    return ranked.iloc[0]


def _as_params(row: pd.Series, results: TuneResults) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for name in results.params:
        value = row[name]
        params[name] = value.item() if hasattr(value, "item") else value
    params[CONFIG_COLUMN] = row[CONFIG_COLUMN]
    return params


def _simplest(
    candidates: pd.DataFrame,
    axis: str,
    direction: Optional[str],
    results: TuneResults,
) -> pd.Series:
    if axis not in results.params:
        raise ValueError(f"Unknown axis '{axis}'. Tuned hyperparameters: {results.params}")
    direction = direction or SIMPLICITY_DIRECTIONS.get(axis, "asc")
    if direction not in ("asc", "desc"):
        raise ValueError(f"direction must be 'asc' or 'desc', got '{direction}'.")
    ordered = candidates.sort_values(
        [axis, "_order"], ascending=[direction == "asc", True], kind="mergesort"
    )
    return ordered.iloc[0]


def select_best(results: TuneResults, metric: Optional[str] = None) -> Dict[str, Any]:
    """Hyperparameters of the grid point with the best mean metric.

    Returns:
        ``{hyperparameter: value, ..., ".config": id}``.
    """
    metric = metric or results.metric
    table = _complete_table(results, metric)
    row = _best_row(table, metric)
    logger.info("select_best(%s): %s mean=%.5f", metric, row[CONFIG_COLUMN], row["mean"])
    return _as_params(row, results)


def select_by_one_std_err(
    results: TuneResults,
    axis: str,
    metric: Optional[str] = None,
    direction: Optional[str] = None,
) -> Dict[str, Any]:
    """Simplest grid point within one standard error of the best.

    The band is ``best mean ± best std_err`` (``+`` for metrics that are
    minimized). A missing std_err (a single fold) counts as zero.

    Args:
        results: Output of :func:`~housing_forest.tuning.search.tune_grid`.
        axis: Hyperparameter that defines simplicity.
        metric: Metric name, default the primary metric.
        direction: ``"asc"`` or ``"desc"``; default from
            :data:`SIMPLICITY_DIRECTIONS`.
    """
    metric = metric or results.metric
    table = _complete_table(results, metric)
    best = _best_row(table, metric)
    std_err = 0.0 if pd.isna(best["std_err"]) else float(best["std_err"])

    if MAXIMIZE.get(metric, False):
        candidates = table[table["mean"] >= best["mean"] - std_err]
    else:
        candidates = table[table["mean"] <= best["mean"] + std_err]

    row = _simplest(candidates, axis, direction, results)
    logger.info(
        "select_by_one_std_err(%s, axis=%s): %d candidates → %s mean=%.5f",
        metric,
        axis,
        len(candidates),
        row[CONFIG_COLUMN],
        row["mean"],
    )
    return _as_params(row, results)


def select_by_pct_loss(
    results: TuneResults,
    axis: str,
    metric: Optional[str] = None,
    limit: float = 2.0,
    direction: Optional[str] = None,
) -> Dict[str, Any]:
    """Simplest grid point whose loss against the best is at most ``limit`` %.

    Loss is ``|mean - best| / |best| * 100``.
    """
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}.")
    metric = metric or results.metric
    table = _complete_table(results, metric)
    best = float(_best_row(table, metric)["mean"])

    if best == 0:
        loss = pd.Series(np.where(table["mean"] == best, 0.0, np.inf), index=table.index)
    else:
        loss = (table["mean"] - best).abs() / abs(best) * 100
    candidates = table[loss <= limit]

    row = _simplest(candidates, axis, direction, results)
    logger.info(
        "select_by_pct_loss(%s, axis=%s, limit=%.2f%%): %d candidates → %s",
        metric,
        axis,
        limit,
        len(candidates),
        row[CONFIG_COLUMN],
    )
    return _as_params(row, results)


def select(
    results: TuneResults,
    method: str = "best",
    axis: Optional[str] = None,
    metric: Optional[str] = None,
    limit: float = 2.0,
    direction: Optional[str] = None,
) -> Dict[str, Any]:
    """Dispatch to one of :data:`SELECTION_METHODS` by name."""
    if method == "best":
        return select_best(results, metric)
    if method not in SELECTION_METHODS:
        raise ValueError(f"Unknown selection method '{method}'. Choose from: {list(SELECTION_METHODS)}")
    if axis is None:
        raise ValueError(f"Selection method '{method}' needs an axis.")
    if method == "one_std_err":
        return select_by_one_std_err(results, axis, metric, direction)
    return select_by_pct_loss(results, axis, metric, limit, direction)
