"""Unit tests for housing_forest/tuning/selection.py."""

import numpy as np
import pandas as pd
import pytest

from housing_forest.tuning.grid import CONFIG_COLUMN
from housing_forest.tuning.search import TuneResults
from housing_forest.tuning.selection import (
    select,
    select_best,
    select_by_one_std_err,
    select_by_pct_loss,
)

# config: (trees, min_n, fold rmse values)
FOLD_RMSE = {
    "M1": (100, 1, [0.20, 0.21, 0.22]),
    "M2": (200, 1, [0.19, 0.20, 0.21]),
    "M3": (300, 5, [0.195, 0.205, 0.215]),
    "M4": (50, 5, [0.30, 0.31, 0.32]),
    "M5": (150, 2, [0.200, 0.203, 0.206]),
}


def _results(cells=FOLD_RMSE, errors=None, rsq=None) -> TuneResults:
    """Build TuneResults from literal fold values, bypassing model fitting."""
    errors = errors or {}
    grid = pd.DataFrame(
        [(trees, min_n, config) for config, (trees, min_n, _) in cells.items()],
        columns=["trees", "min_n", CONFIG_COLUMN],
    )
    rows = []
    for config, (trees, min_n, values) in cells.items():
        for k, value in enumerate(values, start=1):
            error = errors.get((config, k))
            row = {
                "trees": trees,
                "min_n": min_n,
                CONFIG_COLUMN: config,
                "id": f"Fold{k}",
                "rmse": np.nan if error else value,
                ".error": error,
            }
            if rsq is not None:
                row["rsq"] = rsq[config]
            rows.append(row)
    metrics = ["rmse"] if rsq is None else ["rmse", "rsq"]
    return TuneResults(grid, pd.DataFrame(rows), metrics)


class TestSelectBest:
    def test_lowest_rmse(self) -> None:
        assert select_best(_results()) == {"trees": 200, "min_n": 1, CONFIG_COLUMN: "M2"}

    def test_values_are_python_ints(self) -> None:
        params = select_best(_results())
        assert type(params["trees"]) is int

    def test_maximized_metric(self) -> None:
        rsq = {"M1": 0.8, "M2": 0.7, "M3": 0.9, "M4": 0.5, "M5": 0.6}
        assert select_best(_results(rsq=rsq), metric="rsq")[CONFIG_COLUMN] == "M3"

    def test_tie_resolves_in_grid_order(self) -> None:
        cells = {
            "M1": (100, 1, [0.3, 0.3, 0.3]),
            "M2": (200, 1, [0.2, 0.2, 0.2]),
            "M3": (50, 1, [0.2, 0.2, 0.2]),
        }
        assert select_best(_results(cells))[CONFIG_COLUMN] == "M2"

    def test_failed_grid_point_excluded(self) -> None:
        cells = dict(FOLD_RMSE, M6=(400, 1, [0.10, 0.10, 0.10]))
        results = _results(cells, errors={("M6", 2): "ValueError: boom"})
        assert select_best(results)[CONFIG_COLUMN] == "M2"

    def test_all_failed(self) -> None:
        cells = {"M1": (100, 1, [0.2, 0.2])}
        results = _results(cells, errors={("M1", 1): "err"})
        with pytest.raises(ValueError, match="No complete grid points"):
            select_best(results)


class TestSelectByOneStdErr:
    def test_simplest_within_band(self) -> None:
        # band: 0.20 + 0.01/sqrt(3) → M2, M3, M5; fewest trees is M5
        params = select_by_one_std_err(_results(), axis="trees")
        assert params[CONFIG_COLUMN] == "M5"

    def test_min_n_prefers_larger(self) -> None:
        params = select_by_one_std_err(_results(), axis="min_n")
        assert params[CONFIG_COLUMN] == "M3"

    def test_explicit_direction(self) -> None:
        params = select_by_one_std_err(_results(), axis="trees", direction="desc")
        assert params[CONFIG_COLUMN] == "M3"

    def test_unknown_axis(self) -> None:
        with pytest.raises(ValueError, match="Unknown axis"):
            select_by_one_std_err(_results(), axis="mtry")

    def test_single_fold_uses_zero_std_err(self) -> None:
        cells = {"M1": (100, 1, [0.2]), "M2": (50, 1, [0.21])}
        assert select_by_one_std_err(_results(cells), axis="trees")[CONFIG_COLUMN] == "M1"


class TestSelectByPctLoss:
    def test_two_percent(self) -> None:
        # losses: M5 1.5 %, M3 2.5 %, M1 5 %
        params = select_by_pct_loss(_results(), axis="trees", limit=2.0)
        assert params[CONFIG_COLUMN] == "M5"

    def test_three_percent_min_n(self) -> None:
        params = select_by_pct_loss(_results(), axis="min_n", limit=3.0)
        assert params[CONFIG_COLUMN] == "M3"

    def test_zero_limit_is_best(self) -> None:
        params = select_by_pct_loss(_results(), axis="trees", limit=0.0)
        assert params[CONFIG_COLUMN] == "M2"

    def test_negative_limit(self) -> None:
        with pytest.raises(ValueError, match="limit"):
            select_by_pct_loss(_results(), axis="trees", limit=-1.0)


class TestSelectDispatch:
    def test_best(self) -> None:
        assert select(_results())[CONFIG_COLUMN] == "M2"

    def test_pct_loss(self) -> None:
        assert select(_results(), "pct_loss", axis="trees")[CONFIG_COLUMN] == "M5"

    def test_axis_required(self) -> None:
        with pytest.raises(ValueError, match="needs an axis"):
            select(_results(), "one_std_err")

    def test_unknown_method(self) -> None:
        with pytest.raises(ValueError, match="Unknown selection method"):
            select(_results(), "random")
