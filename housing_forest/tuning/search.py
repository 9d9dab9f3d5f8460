"""Grid search over workflow hyperparameters with cross-validation.

Every (grid point × fold) cell is an independent task: the workflow is
finalized with the grid point, fitted on the fold's analysis rows (recipe
prep + forest fit) and scored on the assessment rows. Tasks are dispatched
to a :class:`WorkerPool` of OS processes; each task receives its own copy
of the rows and returns only scalar metrics. Results are merged by
``(.config, fold id)``, never by completion order.

Failure policy (``on_error``):
    - ``"record"`` (default): the failing cell is logged, stored with NaN
      metrics and its error text, and its grid point is marked incomplete
      and excluded from ranking. Other cells are unaffected.
    - ``"raise"``: the first failure aborts the search; the pool is still
      released.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed, effective_n_jobs

from housing_forest.errors import GridConfigError
from housing_forest.evaluation.metrics import MAXIMIZE, METRIC_FUNCTIONS
from housing_forest.models.workflow import Workflow
from housing_forest.tuning.grid import CONFIG_COLUMN, param_columns
from housing_forest.tuning.resampling import Fold

logger = logging.getLogger(__name__)

ON_ERROR_POLICIES = ("record", "raise")


# ---------------------------------------------------------------------------
# Worker pool
# ---------------------------------------------------------------------------


class WorkerPool:
    """Scoped pool of worker processes backed by :class:`joblib.Parallel`.

    The pool is created on ``__enter__``, reused for every batch passed to
    :meth:`map`, and terminated on ``__exit__`` whether or not the block
    raised.

    Args:
        n_jobs: Number of workers; ``-1`` uses every logical core.
        backend: joblib backend. ``"multiprocessing"`` keeps the pool's
            lifetime tied to the context; ``"loky"`` reuses a process-wide
            executor; ``"sequential"`` runs in-process (useful in tests).
        verbose: joblib progress verbosity.
    """

    def __init__(self, n_jobs: int = -1, backend: str = "multiprocessing", verbose: int = 0) -> None:
        self.n_jobs = n_jobs
        self.backend = backend
        self.verbose = verbose
        self._parallel: Optional[Parallel] = None

    @property
    def n_workers(self) -> int:
        if self.backend == "sequential":
            return 1
        return effective_n_jobs(self.n_jobs)

    def __enter__(self) -> "WorkerPool":
        self._parallel = Parallel(
            n_jobs=self.n_jobs, backend=self.backend, verbose=self.verbose
        )
        self._parallel.__enter__()
        logger.info("Worker pool started: %d worker(s), backend=%s", self.n_workers, self.backend)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        parallel, self._parallel = self._parallel, None
        if parallel is not None:
            parallel.__exit__(exc_type, exc, tb)
            logger.info("Worker pool released.")
        return False

    def map(self, func: Callable[..., Any], tasks: Iterable[Sequence[Any]]) -> List[Any]:
        """Run ``func(*task)`` for every task and return results in task order."""
        if self._parallel is None:
            raise RuntimeError("WorkerPool is not open. Use it as a context manager.")
        return self._parallel(delayed(func)(*task) for task in tasks)


# ---------------------------------------------------------------------------
# Cell evaluation
# ---------------------------------------------------------------------------


@dataclass
class CellResult:
    config: str
    fold: str
    metrics: Dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None


def _evaluate_cell(
    workflow: Workflow,
    analysis: pd.DataFrame,
    assessment: pd.DataFrame,
    params: Dict[str, Any],
    config: str,
    fold_id: str,
    metrics: Sequence[str],
    on_error: str,
) -> CellResult:
    try:
        fitted = workflow.finalize(params).fit(analysis)
        estimate = fitted.predict(assessment)
        truth = assessment[workflow.recipe.outcome].to_numpy(dtype=float)
        scores = {m: METRIC_FUNCTIONS[m](truth, estimate) for m in metrics}
        return CellResult(config, fold_id, scores)
    except Exception as exc:
        if on_error == "raise":
            raise
        return CellResult(config, fold_id, error=f"{type(exc).__name__}: {exc}")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TuneResults:
    """Per-cell and aggregated metrics from :func:`tune_grid`.

    Args:
        grid: The grid that was searched, in generation order.
        fold_metrics: One row per (grid point × fold) with the
            hyperparameters, ``.config``, ``id`` (fold), one column per
            metric and ``.error`` (``None`` for successful cells).
        metrics: Metric names, the first being the primary one.
    """

    def __init__(self, grid: pd.DataFrame, fold_metrics: pd.DataFrame, metrics: Sequence[str]) -> None:
        self.grid = grid.reset_index(drop=True)
        self.fold_metrics = fold_metrics
        self.metrics = list(metrics)
        self.params = param_columns(grid)

    @property
    def metric(self) -> str:
        return self.metrics[0]

    @property
    def failures(self) -> pd.DataFrame:
        return self.fold_metrics[self.fold_metrics[".error"].notna()]

    def collect_metrics(self, summarize: bool = True) -> pd.DataFrame:
        """Metrics per grid point (``summarize=True``) or per cell.

        Summarized rows hold ``mean``, ``n`` (successful folds),
        ``std_err`` (sample sd / sqrt(n)) and ``n_failed`` for each
        ``.metric``. A grid point with any failed fold gets a NaN ``mean``
        and is excluded from ranking. Rows follow grid order.
        """
        id_cols = self.params + [CONFIG_COLUMN]
        if not summarize:
            long = self.fold_metrics.melt(
                id_vars=id_cols + ["id", ".error"],
                value_vars=self.metrics,
                var_name=".metric",
                value_name=".estimate",
            )
            return long[id_cols + ["id", ".metric", ".estimate", ".error"]]

        rows = []
        for metric in self.metrics:
            for config, cells in self.fold_metrics.groupby(CONFIG_COLUMN, sort=False):
                ok = cells.loc[cells[".error"].isna(), metric].astype(float)
                n_failed = int(cells[".error"].notna().sum())
                n = int(ok.notna().sum())
                complete = n_failed == 0 and n == len(cells)
                mean = float(ok.mean()) if complete else float("nan")
                std_err = float(ok.std(ddof=1) / np.sqrt(n)) if n > 1 else float("nan")
                rows.append(
                    {
                        CONFIG_COLUMN: config,
                        ".metric": metric,
                        "mean": mean,
                        "n": n,
                        "std_err": std_err,
                        "n_failed": n_failed,
                    }
                )
        summary = pd.DataFrame(rows)
        out = self.grid.merge(summary, on=CONFIG_COLUMN, how="left", sort=False)
        order = {c: i for i, c in enumerate(self.grid[CONFIG_COLUMN])}
        out["_order"] = out[CONFIG_COLUMN].map(order)
        out["_metric"] = out[".metric"].map({m: i for i, m in enumerate(self.metrics)})
        out = out.sort_values(["_metric", "_order"], kind="mergesort")
        return out.drop(columns=["_order", "_metric"]).reset_index(drop=True)[
            self.params + [".metric", "mean", "n", "std_err", "n_failed", CONFIG_COLUMN]
        ]

    def metric_table(self, metric: Optional[str] = None) -> pd.DataFrame:
        """Summarized rows for one metric, in grid order."""
        metric = metric or self.metric
        if metric not in self.metrics:
            raise ValueError(f"Metric '{metric}' was not computed. Available: {self.metrics}")
        table = self.collect_metrics()
        return table[table[".metric"] == metric].reset_index(drop=True)

    def show_best(self, n: int = 5, metric: Optional[str] = None) -> pd.DataFrame:
        """Top ``n`` complete grid points for ``metric``, ties kept in grid order."""
        metric = metric or self.metric
        table = self.metric_table(metric).dropna(subset=["mean"])
        ascending = not MAXIMIZE.get(metric, False)
        return table.sort_values("mean", ascending=ascending, kind="mergesort").head(n)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def _check_grid(workflow: Workflow, grid: pd.DataFrame) -> None:
    tunable = set(workflow.tunable_parameters())
    columns = set(param_columns(grid))
    for name in sorted(tunable - columns):
        raise GridConfigError(name, "is marked for tuning but the grid has no column for it.")
    for name in sorted(columns - tunable):
        raise GridConfigError(name, "has a grid column but is not marked for tuning.")
    if CONFIG_COLUMN not in grid.columns:
        raise GridConfigError("<grid>", f"grid is missing the '{CONFIG_COLUMN}' column.")
    if grid[CONFIG_COLUMN].duplicated().any():
        raise GridConfigError("<grid>", "grid has duplicate config ids.")


def tune_grid(
    workflow: Workflow,
    data: pd.DataFrame,
    folds: Sequence[Fold],
    grid: pd.DataFrame,
    metrics: Sequence[str] = ("rmse", "rsq"),
    pool: Optional[WorkerPool] = None,
    n_jobs: int = -1,
    on_error: str = "record",
) -> TuneResults:
    """Evaluate every grid point on every fold.

    Args:
        workflow: Workflow whose model has hyperparameters marked for tuning.
        data: Training rows; fold indices are positions into this frame.
        folds: Resamples from :func:`~housing_forest.tuning.resampling.vfold_cv`.
        grid: Grid from :func:`~housing_forest.tuning.grid.regular_grid`.
        metrics: Metric names; the first is the primary metric.
        pool: An open :class:`WorkerPool`. When ``None`` a pool of
            ``n_jobs`` workers is opened for this call and released after.
        n_jobs: Worker count used only when ``pool`` is ``None``.
        on_error: ``"record"`` or ``"raise"`` (see module docstring).

    Returns:
        :class:`TuneResults` with one row per (grid point × fold).

    Raises:
        GridConfigError: If grid columns and tunable parameters disagree.
        SchemaError, RoleError: If the recipe cannot be prepared on ``data``.
        ValueError: On an unknown metric or ``on_error`` policy.
    """
    if on_error not in ON_ERROR_POLICIES:
        raise ValueError(f"on_error must be one of {list(ON_ERROR_POLICIES)}, got '{on_error}'.")
    unknown = [m for m in metrics if m not in METRIC_FUNCTIONS]
    if unknown or not metrics:
        raise ValueError(f"Unknown metrics {unknown}. Choose from: {list(METRIC_FUNCTIONS)}")
    if not folds:
        raise ValueError("At least one resample is required.")

    _check_grid(workflow, grid)
    workflow.validate(data)

    if pool is None:
        with WorkerPool(n_jobs=n_jobs) as own_pool:
            return _search(workflow, data, folds, grid, metrics, own_pool, on_error)
    return _search(workflow, data, folds, grid, metrics, pool, on_error)


def _search(
    workflow: Workflow,
    data: pd.DataFrame,
    folds: Sequence[Fold],
    grid: pd.DataFrame,
    metrics: Sequence[str],
    pool: WorkerPool,
    on_error: str,
) -> TuneResults:
    params = param_columns(grid)
    points = grid.to_dict("records")

    def tasks():
        for point in points:
            values = {p: point[p] for p in params}
            for fold in folds:
                yield (
                    workflow,
                    data.iloc[fold.train_idx].copy(),
                    data.iloc[fold.assess_idx].copy(),
                    values,
                    point[CONFIG_COLUMN],
                    fold.id,
                    tuple(metrics),
                    on_error,
                )

    n_cells = len(points) * len(folds)
    logger.info(
        "Tuning %d grid points × %d folds = %d fits on %d worker(s)",
        len(points),
        len(folds),
        n_cells,
        pool.n_workers,
    )
    t0 = time.time()
    results: List[CellResult] = pool.map(_evaluate_cell, tasks())
    elapsed = time.time() - t0

    by_key = {(r.config, r.fold): r for r in results}
    rows = []
    for point in points:
        for fold in folds:
            cell = by_key[(point[CONFIG_COLUMN], fold.id)]
            row = {p: point[p] for p in params}
            row[CONFIG_COLUMN] = cell.config
            row["id"] = cell.fold
            for m in metrics:
                row[m] = cell.metrics.get(m, float("nan"))
            row[".error"] = cell.error
            if cell.error is not None:
                logger.warning("Cell %s/%s failed: %s", cell.config, cell.fold, cell.error)
            rows.append(row)

    fold_metrics = pd.DataFrame(rows, columns=params + [CONFIG_COLUMN, "id"] + list(metrics) + [".error"])
    tuned = TuneResults(grid, fold_metrics, metrics)
    logger.info(
        "Grid search finished in %.1fs: %d cells, %d failed",
        elapsed,
        n_cells,
        len(tuned.failures),
    )
    return tuned
