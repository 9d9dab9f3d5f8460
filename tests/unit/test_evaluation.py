"""Unit tests for housing_forest/evaluation/final.py and evaluation/plots.py."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from housing_forest.data.loader import split_train_test
from housing_forest.evaluation.final import last_fit
from housing_forest.evaluation.metrics import rmse
from housing_forest.evaluation.plots import plot_predicted_vs_actual, plot_tuning_results
from housing_forest.models.workflow import Workflow
from housing_forest.tuning.grid import regular_grid
from housing_forest.tuning.resampling import vfold_cv
from housing_forest.tuning.search import WorkerPool, tune_grid

PARAMS = {"mtry": 3, "trees": 40, "min_n": 2, ".config": "Preprocessor1_Model001"}


@pytest.fixture()
def split(housing_df: pd.DataFrame):
    return split_train_test(housing_df, test_size=0.3, seed=42)


class TestLastFit:
    def test_predictions_and_metrics(self, toy_workflow: Workflow, split) -> None:
        train, test = split
        final = last_fit(toy_workflow, PARAMS, train, test)
        assert len(final.predictions) == 30
        assert final.predictions.index.equals(test.index)
        assert final.metrics["rmse"] == pytest.approx(
            rmse(final.predictions["truth"], final.predictions["estimate"])
        )
        assert np.isfinite(final.metrics["rmse"]) and final.metrics["rmse"] >= 0
        assert final.params == {"mtry": 3, "trees": 40, "min_n": 2}

    def test_recipe_prepared_on_train_only(self, toy_workflow: Workflow, split) -> None:
        train, test = split
        final = last_fit(toy_workflow, PARAMS, train, test)
        normalize = final.workflow.recipe.prepared_steps_[1]
        assert normalize.means_["x3"] == pytest.approx(train["x3"].mean())

    def test_test_without_outcome(self, toy_workflow: Workflow, split) -> None:
        train, test = split
        with pytest.raises(ValueError, match="no outcome column"):
            last_fit(toy_workflow, PARAMS, train, test.drop(columns=["Sale_Price"]))


class TestPlots:
    def test_predicted_vs_actual(self, tmp_path: Path) -> None:
        y = np.log(np.array([150_000.0, 200_000.0, 250_000.0]))
        out = plot_predicted_vs_actual(y, y + 0.01, tmp_path / "plots" / "pva.png")
        assert out.exists()
        assert out.stat().st_size > 0

    def test_tuning_results(
        self, toy_workflow: Workflow, housing_df: pd.DataFrame, tmp_path: Path
    ) -> None:
        grid = regular_grid({"mtry": [2, 4], "trees": [10, 20], "min_n": [1, 5]}, levels=2)
        folds = vfold_cv(len(housing_df), v=3, seed=1)
        with WorkerPool(n_jobs=1, backend="sequential") as pool:
            results = tune_grid(toy_workflow, housing_df, folds, grid, pool=pool)
        out = plot_tuning_results(results, tmp_path / "tuning.png")
        assert out.exists()
