"""Entry point for the housing random-forest tuning pipeline.

Usage
-----
    python main.py                          # uses configs/config.yaml
    python main.py --config path/to.yaml
    python main.py --data path/to.csv       # override data path
    python main.py --n-jobs 4               # worker processes for tuning
    python main.py --select one_std_err     # selection rule

Pipeline steps
--------------
1. Load raw data and check the columns the recipe needs.
2. Log-transform the sale price; seeded 70/30 train/test split.
3. Declare the recipe (other-pooling, Box-Cox, normalize, dummies) and roles.
4. Declare the random forest with mtry / trees / min_n marked for tuning.
5. Build the regular grid and 3-fold CV resamples of the training set.
6. Grid search on a scoped worker pool.
7. Select hyperparameters, refit on all training rows, evaluate on test.
8. Write the metric tables, selected parameters and plots.
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import yaml

# ---------------------------------------------------------------------------
# Bootstrap logging before any local imports so module-level loggers work.
# ---------------------------------------------------------------------------


def _setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    fmt = fmt or "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO), format=fmt, force=True
    )


_setup_logging()  # default until config is loaded
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Local imports
# ---------------------------------------------------------------------------

from housing_forest import config as defaults
from housing_forest.data.loader import DataIngestor, prepare_dataset, split_train_test
from housing_forest.data.quality import DataQualityChecker
from housing_forest.evaluation.final import FinalFit, last_fit
from housing_forest.evaluation.metrics import metrics_to_dataframe
from housing_forest.evaluation.plots import plot_predicted_vs_actual, plot_tuning_results
from housing_forest.models.forest import TUNE, RandomForestTrainer
from housing_forest.models.predictor import HousingPredictor
from housing_forest.models.workflow import Workflow
from housing_forest.recipes.recipe import Recipe
from housing_forest.recipes.schema import NOMINAL, column_kind
from housing_forest.recipes.steps import StepBoxCox, StepDummy, StepNormalize, StepOther
from housing_forest.tuning.grid import regular_grid
from housing_forest.tuning.resampling import vfold_cv
from housing_forest.tuning.search import TuneResults, WorkerPool, tune_grid
from housing_forest.tuning.selection import select


# ---------------------------------------------------------------------------
# Config helpers
# ---------------------------------------------------------------------------


def load_config(path: str = "configs/config.yaml") -> dict:
    """Load YAML configuration file.

    Args:
        path: Path to the YAML config file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")
    with open(cfg_path) as f:
        return yaml.safe_load(f) or {}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_recipe(recipe_cfg: dict, target: str, train: pd.DataFrame) -> Recipe:
    """Declare the preprocessing recipe from the ``recipe`` config section.

    Explicit ``roles`` win over ``nominal_role``, which tags every other
    nominal column of ``train`` with the given role.
    """
    roles: Dict[str, str] = {}
    nominal_role = recipe_cfg.get("nominal_role")
    if nominal_role:
        for col in train.columns:
            if col != target and column_kind(train[col]) == NOMINAL:
                roles[col] = nominal_role
    roles.update(recipe_cfg.get("roles") or {})

    steps = []
    other_cols = recipe_cfg.get("other_columns", defaults.OTHER_COLUMNS)
    if other_cols:
        steps.append(
            StepOther(
                other_cols,
                threshold=recipe_cfg.get("other_threshold", defaults.OTHER_THRESHOLD),
            )
        )
    boxcox_cols = recipe_cfg.get("boxcox_columns", defaults.BOXCOX_COLUMNS)
    if boxcox_cols:
        steps.append(StepBoxCox(boxcox_cols))
    steps += [StepNormalize(), StepDummy()]
    return Recipe(steps, outcome=target, roles=roles)


def build_model(model_cfg: dict) -> RandomForestTrainer:
    """Random forest with mtry, trees and min_n marked for tuning."""
    return RandomForestTrainer(
        mtry=TUNE,
        trees=TUNE,
        min_n=TUNE,
        importance=model_cfg.get("importance", "impurity_corrected"),
        respect_unordered_factors=model_cfg.get("respect_unordered_factors", "order"),
        seed=model_cfg.get("seed", defaults.RANDOM_STATE),
        n_jobs=model_cfg.get("n_jobs", 1),
    )


def required_columns(cfg: dict, target: str) -> List[str]:
    recipe_cfg = cfg.get("recipe", {})
    cols = [target]
    cols += list(recipe_cfg.get("other_columns", defaults.OTHER_COLUMNS) or [])
    cols += list(recipe_cfg.get("boxcox_columns", defaults.BOXCOX_COLUMNS) or [])
    cols += list((recipe_cfg.get("roles") or {}).keys())
    return list(dict.fromkeys(cols))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def run_pipeline(
    config_path: str = "configs/config.yaml",
    data_path: Optional[str] = None,
    n_jobs: Optional[int] = None,
    select_method: Optional[str] = None,
) -> Dict[str, Any]:
    """Execute the full tuning and evaluation pipeline.

    Args:
        config_path: Path to the YAML configuration file.
        data_path: Override for the raw data path in the config.
        n_jobs: Override for the number of tuning worker processes.
        select_method: Override for the selection rule.

    Returns:
        Dict with ``tuning`` (:class:`TuneResults`), ``selected`` (params),
        ``final`` (:class:`FinalFit`) and ``outputs`` (written paths).
    """
    # ------------------------------------------------------------------ #
    # 0. Config                                                           #
    # ------------------------------------------------------------------ #
    cfg = load_config(config_path)
    log_cfg = cfg.get("logging", {})
    _setup_logging(level=log_cfg.get("level", "INFO"), fmt=log_cfg.get("format"))

    data_cfg = cfg.get("data", {})
    target_cfg = cfg.get("target", {})
    split_cfg = cfg.get("split", {})
    tune_cfg = cfg.get("tuning", {})
    sel_cfg = cfg.get("selection", {})
    out_dir = Path(cfg.get("outputs", {}).get("dir", "outputs"))

    target: str = target_cfg.get("column", defaults.TARGET)
    raw_path = data_path or data_cfg.get("raw_path")
    workers = n_jobs if n_jobs is not None else tune_cfg.get("n_jobs", -1)
    method = select_method or sel_cfg.get("method", "best")

    logger.info(
        "Pipeline config: data=%s | target=%s | n_jobs=%s | select=%s",
        raw_path,
        target,
        workers,
        method,
    )

    # ------------------------------------------------------------------ #
    # 1-2. Load, check, log-transform, split                              #
    # ------------------------------------------------------------------ #
    df_raw = DataIngestor(raw_path).load(sheet_name=data_cfg.get("sheet_name", 0))
    DataQualityChecker(required_columns(cfg, target)).run_all(df_raw)

    df = prepare_dataset(df_raw, target, log_target=target_cfg.get("log", True))
    train, test = split_train_test(
        df,
        test_size=split_cfg.get("test_size", defaults.TEST_SIZE),
        seed=split_cfg.get("seed", defaults.RANDOM_STATE),
    )

    # ------------------------------------------------------------------ #
    # 3-4. Recipe, model, workflow                                        #
    # ------------------------------------------------------------------ #
    recipe = build_recipe(cfg.get("recipe", {}), target, train)
    model = build_model(cfg.get("model", {}))
    workflow = Workflow(recipe, model)
    logger.info("Recipe steps:\n%s", recipe.tidy().to_string(index=False))

    # ------------------------------------------------------------------ #
    # 5. Grid and resamples                                               #
    # ------------------------------------------------------------------ #
    grid = regular_grid(
        tune_cfg.get("ranges", defaults.PARAM_RANGES),
        tune_cfg.get("levels", defaults.PARAM_LEVELS),
    )
    folds = vfold_cv(
        len(train),
        v=tune_cfg.get("folds", defaults.CV_FOLDS),
        repeats=tune_cfg.get("repeats", defaults.CV_REPEATS),
        seed=tune_cfg.get("seed", defaults.RANDOM_STATE),
    )

    # ------------------------------------------------------------------ #
    # 6. Grid search on a scoped pool                                     #
    # ------------------------------------------------------------------ #
    with WorkerPool(n_jobs=workers, backend=tune_cfg.get("backend", "multiprocessing")) as pool:
        tuned = tune_grid(
            workflow,
            train,
            folds,
            grid,
            metrics=tune_cfg.get("metrics", ["rmse", "rsq"]),
            pool=pool,
            on_error=tune_cfg.get("on_error", "record"),
        )

    # ------------------------------------------------------------------ #
    # 7. Select, refit, evaluate                                          #
    # ------------------------------------------------------------------ #
    selected = select(
        tuned,
        method=method,
        axis=sel_cfg.get("axis"),
        limit=sel_cfg.get("limit", 2.0),
        direction=sel_cfg.get("direction"),
    )
    final = last_fit(workflow, selected, train, test)

    # ------------------------------------------------------------------ #
    # 8. Outputs                                                          #
    # ------------------------------------------------------------------ #
    outputs = _write_outputs(out_dir, tuned, selected, final, test)
    _print_summary(tuned, selected, final)
    return {"tuning": tuned, "selected": selected, "final": final, "outputs": outputs}


def _write_outputs(
    out_dir: Path,
    tuned: TuneResults,
    selected: Dict[str, Any],
    final: FinalFit,
    test: pd.DataFrame,
) -> Dict[str, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "tuning_metrics": out_dir / "tuning_metrics.csv",
        "fold_metrics": out_dir / "fold_metrics.csv",
        "selected_params": out_dir / "selected_params.json",
        "test_predictions": out_dir / "test_predictions.csv",
        "recipe_summary": out_dir / "recipe_summary.csv",
    }
    tuned.collect_metrics().to_csv(paths["tuning_metrics"], index=False)
    tuned.fold_metrics.to_csv(paths["fold_metrics"], index=False)
    final.workflow.recipe.summary().to_csv(paths["recipe_summary"], index=False)
    with open(paths["selected_params"], "w") as f:
        json.dump({"params": selected, "test_metrics": final.metrics}, f, indent=2)

    predictions = HousingPredictor(final.workflow).predict_dataframe(test)
    predictions.insert(0, "actual_log_price", final.predictions["truth"])
    predictions.to_csv(paths["test_predictions"])

    paths["predicted_vs_actual"] = plot_predicted_vs_actual(
        final.predictions["truth"],
        final.predictions["estimate"],
        out_dir / "predicted_vs_actual.png",
    )
    paths["tuning_plot"] = plot_tuning_results(tuned, out_dir / "tuning_results.png")

    if final.workflow.model.importance != "none":
        importance = final.workflow.model.variable_importance()
        paths["importance"] = out_dir / "variable_importance.csv"
        importance.rename_axis("variable").to_csv(paths["importance"])
    return paths


def _print_summary(tuned: TuneResults, selected: Dict[str, Any], final: FinalFit) -> None:
    """Print the best grid points, the chosen hyperparameters and test metrics."""
    best = tuned.show_best(n=5)
    test_table = metrics_to_dataframe({"test": final.metrics})
    logger.info("\n\n=== TOP GRID POINTS ===\n%s\n", best.to_string(index=False))
    print("\n=== TOP GRID POINTS ===")
    print(best.to_string(index=False))
    print("\n=== SELECTED HYPERPARAMETERS ===")
    print(json.dumps(selected, indent=2))
    print("\n=== TEST SET ===")
    print(test_table.to_string())


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Random-forest grid search for log sale price."
    )
    parser.add_argument(
        "--config",
        default="configs/config.yaml",
        help="Path to YAML config (default: configs/config.yaml).",
    )
    parser.add_argument(
        "--data",
        default=None,
        help="Override raw data path from config.",
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=None,
        help="Worker processes for the grid search (-1 = all cores).",
    )
    parser.add_argument(
        "--select",
        default=None,
        choices=["best", "one_std_err", "pct_loss"],
        help="Hyperparameter selection rule (default: from config).",
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = _parse_args()
    run_pipeline(
        config_path=args.config,
        data_path=args.data,
        n_jobs=args.n_jobs,
        select_method=args.select,
    )
