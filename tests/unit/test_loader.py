"""Unit tests for housing_forest/data/loader.py."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from housing_forest.data.loader import DataIngestor, prepare_dataset, split_train_test
from housing_forest.errors import SchemaError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_csv(tmp_path: Path) -> Path:
    """Write a minimal valid CSV file and return its path."""
    df = pd.DataFrame({"col_a": [1, 2, 3], "col_b": ["x", "y", "z"]})
    path = tmp_path / "sample.csv"
    df.to_csv(path, index=False)
    return path


@pytest.fixture()
def sample_excel(tmp_path: Path) -> Path:
    """Write a minimal valid Excel file and return its path."""
    df = pd.DataFrame({"col_a": [1, 2, 3], "col_b": ["x", "y", "z"]})
    path = tmp_path / "sample.xlsx"
    df.to_excel(path, index=False, engine="openpyxl")
    return path


# ---------------------------------------------------------------------------
# DataIngestor
# ---------------------------------------------------------------------------


class TestDataIngestor:
    def test_loads_csv(self, sample_csv: Path) -> None:
        df = DataIngestor(sample_csv).load()
        assert list(df.columns) == ["col_a", "col_b"]
        assert len(df) == 3

    def test_loads_excel(self, sample_excel: Path) -> None:
        df = DataIngestor(sample_excel).load()
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ["col_a", "col_b"]

    def test_raises_for_missing_file(self, tmp_path: Path) -> None:
        ingestor = DataIngestor(tmp_path / "nonexistent.csv")
        with pytest.raises(FileNotFoundError, match="File not found"):
            ingestor.load()

    def test_raises_for_empty_csv(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.csv"
        path.write_text("col_a,col_b\n")
        with pytest.raises(ValueError, match="empty"):
            DataIngestor(path).load()

    def test_raises_for_unsupported_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "data.txt"
        path.write_text("a,b\n1,2\n")
        with pytest.raises(ValueError, match="Unsupported"):
            DataIngestor(path).load()

    def test_default_path_uses_env(self, monkeypatch: pytest.MonkeyPatch, sample_csv: Path) -> None:
        monkeypatch.setenv("DATA_PATH", str(sample_csv))
        assert DataIngestor().file_path == sample_csv


# ---------------------------------------------------------------------------
# prepare_dataset
# ---------------------------------------------------------------------------


class TestPrepareDataset:
    def test_log_transform_correct(self, make_housing_df) -> None:
        raw = make_housing_df(n=20, log_target=False)
        out = prepare_dataset(raw, "Sale_Price")
        np.testing.assert_allclose(out["Sale_Price"], np.log(raw["Sale_Price"]), rtol=1e-12)

    def test_does_not_modify_input(self, make_housing_df) -> None:
        raw = make_housing_df(n=10, log_target=False)
        before = raw["Sale_Price"].copy()
        prepare_dataset(raw, "Sale_Price")
        pd.testing.assert_series_equal(raw["Sale_Price"], before)

    def test_strips_metadata(self, make_housing_df) -> None:
        raw = make_housing_df(n=10, log_target=False)
        raw.index = range(100, 110)
        raw.attrs["source"] = "ames"
        out = prepare_dataset(raw, "Sale_Price")
        assert out.attrs == {}
        assert isinstance(out.index, pd.RangeIndex)
        assert out.index[0] == 0

    def test_missing_target_raises(self, make_housing_df) -> None:
        raw = make_housing_df(n=10).drop(columns=["Sale_Price"])
        with pytest.raises(SchemaError, match="Sale_Price"):
            prepare_dataset(raw, "Sale_Price")

    def test_non_positive_target_raises(self, make_housing_df) -> None:
        raw = make_housing_df(n=10, log_target=False)
        raw.loc[3, "Sale_Price"] = 0.0
        with pytest.raises(ValueError, match="strictly positive"):
            prepare_dataset(raw, "Sale_Price")


# ---------------------------------------------------------------------------
# split_train_test
# ---------------------------------------------------------------------------


class TestSplitTrainTest:
    def test_same_seed_same_split(self, housing_df: pd.DataFrame) -> None:
        train_a, test_a = split_train_test(housing_df, test_size=0.3, seed=11)
        train_b, test_b = split_train_test(housing_df, test_size=0.3, seed=11)
        assert list(train_a.index) == list(train_b.index)
        assert list(test_a.index) == list(test_b.index)

    def test_disjoint_and_exhaustive(self, housing_df: pd.DataFrame) -> None:
        train, test = split_train_test(housing_df, test_size=0.3, seed=1)
        assert set(train.index).isdisjoint(test.index)
        assert set(train.index) | set(test.index) == set(housing_df.index)

    def test_sizes(self, housing_df: pd.DataFrame) -> None:
        train, test = split_train_test(housing_df, test_size=0.3, seed=1)
        assert len(train) == 70
        assert len(test) == 30

    def test_different_seed_different_split(self, housing_df: pd.DataFrame) -> None:
        _, test_a = split_train_test(housing_df, seed=1)
        _, test_b = split_train_test(housing_df, seed=2)
        assert set(test_a.index) != set(test_b.index)

    def test_does_not_touch_global_random_state(self, housing_df: pd.DataFrame) -> None:
        np.random.seed(123)
        expected = np.random.rand()
        np.random.seed(123)
        split_train_test(housing_df, seed=5)
        assert np.random.rand() == expected

    @pytest.mark.parametrize("test_size", [0.0, 1.0, -0.1, 1.5])
    def test_invalid_test_size(self, housing_df: pd.DataFrame, test_size: float) -> None:
        with pytest.raises(ValueError, match="test_size"):
            split_train_test(housing_df, test_size=test_size)
