"""Unit tests for housing_forest/tuning/grid.py and tuning/resampling.py."""

import numpy as np
import pytest

from housing_forest.errors import GridConfigError
from housing_forest.tuning.grid import (
    CONFIG_COLUMN,
    ParamRange,
    param_columns,
    parse_range,
    regular_grid,
)
from housing_forest.tuning.resampling import vfold_cv

DEFAULT_RANGES = {"mtry": [5, 40], "trees": [500, 2500], "min_n": [1, 10]}
DEFAULT_LEVELS = {"mtry": 8, "trees": 10, "min_n": 5}


# ---------------------------------------------------------------------------
# regular_grid
# ---------------------------------------------------------------------------


class TestRegularGrid:
    def test_default_grid_size(self) -> None:
        grid = regular_grid(DEFAULT_RANGES, DEFAULT_LEVELS)
        assert len(grid) == 400
        assert param_columns(grid) == ["mtry", "trees", "min_n"]
        assert not grid.duplicated(subset=param_columns(grid)).any()

    def test_axis_values(self) -> None:
        grid = regular_grid(DEFAULT_RANGES, DEFAULT_LEVELS)
        assert sorted(grid["mtry"].unique()) == [5, 10, 15, 20, 25, 30, 35, 40]
        assert sorted(grid["min_n"].unique()) == [1, 3, 6, 8, 10]
        trees = sorted(grid["trees"].unique())
        assert trees[0] == 500 and trees[-1] == 2500
        assert len(trees) == 10

    def test_integer_dtype(self) -> None:
        grid = regular_grid(DEFAULT_RANGES, DEFAULT_LEVELS)
        for col in ("mtry", "trees", "min_n"):
            assert grid[col].dtype == np.int64

    def test_config_ids(self) -> None:
        grid = regular_grid(DEFAULT_RANGES, DEFAULT_LEVELS)
        assert grid[CONFIG_COLUMN].iloc[0] == "Preprocessor1_Model001"
        assert grid[CONFIG_COLUMN].iloc[-1] == "Preprocessor1_Model400"
        assert grid[CONFIG_COLUMN].is_unique

    def test_last_axis_varies_fastest(self) -> None:
        grid = regular_grid({"mtry": [2, 4], "min_n": [1, 3]}, levels=2)
        assert grid[["mtry", "min_n"]].values.tolist() == [[2, 1], [2, 3], [4, 1], [4, 3]]

    def test_same_input_same_grid(self) -> None:
        a = regular_grid(DEFAULT_RANGES, DEFAULT_LEVELS)
        b = regular_grid(DEFAULT_RANGES, DEFAULT_LEVELS)
        assert a.equals(b)

    def test_shared_level_count(self) -> None:
        grid = regular_grid({"mtry": [2, 8], "trees": [20, 60], "min_n": [1, 5]}, levels=3)
        assert len(grid) == 27
        assert sorted(grid["trees"].unique()) == [20, 40, 60]

    def test_degenerate_range_single_level(self) -> None:
        grid = regular_grid({"mtry": [4, 4]}, levels=1)
        assert grid["mtry"].tolist() == [4]

    def test_missing_level_count(self) -> None:
        with pytest.raises(GridConfigError) as excinfo:
            regular_grid(DEFAULT_RANGES, {"mtry": 2, "trees": 2})
        assert excinfo.value.parameter == "min_n"

    def test_too_many_levels(self) -> None:
        with pytest.raises(GridConfigError, match="holds only 3 integers"):
            regular_grid({"min_n": [1, 3]}, levels=4)

    @pytest.mark.parametrize("levels", [0, -2, 2.5, True])
    def test_invalid_level_count(self, levels) -> None:
        with pytest.raises(GridConfigError, match="levels"):
            regular_grid({"mtry": [1, 10]}, levels=levels)

    def test_empty_ranges(self) -> None:
        with pytest.raises(GridConfigError):
            regular_grid({})


class TestParseRange:
    @pytest.mark.parametrize("value", [5, 5.0, "5,10", [5], [1, 5, 10], None])
    def test_rejects_non_pairs(self, value) -> None:
        with pytest.raises(GridConfigError) as excinfo:
            parse_range("mtry", value)
        assert excinfo.value.parameter == "mtry"

    def test_accepts_tuple(self) -> None:
        assert parse_range("trees", (10, 20)) == ParamRange("trees", 10, 20)

    def test_reversed_bounds(self) -> None:
        with pytest.raises(GridConfigError, match="greater than"):
            parse_range("trees", [100, 10])

    def test_fractional_integer_bounds(self) -> None:
        with pytest.raises(GridConfigError, match="whole-number"):
            parse_range("min_n", [1.5, 4])

    def test_non_finite_bounds(self) -> None:
        with pytest.raises(GridConfigError, match="finite"):
            parse_range("trees", [1, float("inf")])

    def test_continuous_range(self) -> None:
        values = ParamRange("rate", 0.0, 1.0, integer=False).values(5)
        np.testing.assert_allclose(values, [0.0, 0.25, 0.5, 0.75, 1.0])


# ---------------------------------------------------------------------------
# vfold_cv
# ---------------------------------------------------------------------------


class TestVfoldCv:
    def test_partitions_rows(self) -> None:
        folds = vfold_cv(70, v=3, seed=1)
        assert [f.id for f in folds] == ["Fold1", "Fold2", "Fold3"]
        assessed = np.concatenate([f.assess_idx for f in folds])
        assert sorted(assessed.tolist()) == list(range(70))
        for fold in folds:
            assert set(fold.train_idx).isdisjoint(fold.assess_idx)
            assert len(fold.train_idx) + len(fold.assess_idx) == 70

    def test_deterministic(self) -> None:
        a = vfold_cv(50, v=5, seed=3)
        b = vfold_cv(50, v=5, seed=3)
        for fa, fb in zip(a, b):
            np.testing.assert_array_equal(fa.assess_idx, fb.assess_idx)

    def test_repeats(self) -> None:
        folds = vfold_cv(30, v=3, repeats=2, seed=1)
        assert len(folds) == 6
        assert folds[0].id == "Repeat1_Fold1"
        assert folds[-1].id == "Repeat2_Fold3"
        assert not np.array_equal(folds[0].assess_idx, folds[3].assess_idx)

    @pytest.mark.parametrize("kwargs", [{"v": 1}, {"v": 11}, {"repeats": 0}])
    def test_invalid_arguments(self, kwargs) -> None:
        with pytest.raises(ValueError):
            vfold_cv(10, **kwargs)
