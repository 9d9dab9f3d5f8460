"""Data loading and splitting for the housing sale-price dataset."""

import logging
import os
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd

from housing_forest.errors import SchemaError

logger = logging.getLogger(__name__)

_EXCEL_SUFFIXES = {".xlsx", ".xls"}


class DataIngestor:
    """Handles validated data loading from local CSV or Excel files.

    Args:
        file_path: Path to the data file. Falls back to DATA_PATH env var
            or 'data/ames.csv' if not provided.
    """

    def __init__(self, file_path: Optional[Union[str, Path]] = None) -> None:
        self.file_path = Path(
            file_path or os.getenv("DATA_PATH", "data/ames.csv")
        )

    def load(self, sheet_name: Union[str, int] = 0) -> pd.DataFrame:
        """Load the file into a DataFrame with validation.

        Args:
            sheet_name: Sheet index or name, used for Excel files only.

        Returns:
            Loaded DataFrame.

        Raises:
            FileNotFoundError: If the file path does not exist.
            ValueError: If the suffix is unsupported or the data is empty.
        """
        logger.info("Attempting to load data from: %s", self.file_path)

        if not self.file_path.exists():
            msg = f"File not found: {self.file_path}"
            logger.error(msg)
            raise FileNotFoundError(msg)

        suffix = self.file_path.suffix.lower()
        if suffix not in _EXCEL_SUFFIXES and suffix != ".csv":
            raise ValueError(
                f"Unsupported file type '{suffix}'. Use .csv, .xlsx or .xls."
            )

        try:
            if suffix == ".csv":
                df = pd.read_csv(self.file_path)
            else:
                df = pd.read_excel(
                    self.file_path, sheet_name=sheet_name, engine="openpyxl"
                )
        except Exception as exc:
            logger.error("Failed to read data file: %s", exc)
            raise

        if df.empty:
            raise ValueError(f"Loaded DataFrame from '{self.file_path}' is empty.")

        logger.info("Successfully loaded %d rows and %d columns.", *df.shape)
        return df


def prepare_dataset(
    df: pd.DataFrame,
    target: str,
    log_target: bool = True,
) -> pd.DataFrame:
    """Log-transform the target and strip residual metadata.

    After this call the target column holds ``log(price)`` for the lifetime
    of the returned frame.

    Args:
        df: Raw DataFrame.
        target: Name of the sale-price column.
        log_target: Apply the natural log to ``target``.

    Returns:
        A fresh DataFrame with a RangeIndex, string column names and no
        ``attrs``.

    Raises:
        SchemaError: If ``target`` is missing.
        ValueError: If the target holds non-positive or missing values.
    """
    out = df.copy()
    out.columns = [str(c) for c in out.columns]
    if target not in out.columns:
        raise SchemaError("prepare_dataset", target)

    price = pd.to_numeric(out[target], errors="coerce")
    if price.isnull().any():
        raise ValueError(
            f"Target '{target}' has {int(price.isnull().sum())} missing or "
            "non-numeric values."
        )
    if log_target:
        if (price <= 0).any():
            raise ValueError(
                f"Target '{target}' must be strictly positive to take its log."
            )
        out[target] = np.log(price.astype(float))
        logger.info(
            "Log-transformed '%s': min=%.3f, max=%.3f",
            target,
            out[target].min(),
            out[target].max(),
        )

    out = out.reset_index(drop=True)
    out.attrs = {}
    return out


def split_train_test(
    df: pd.DataFrame,
    test_size: float = 0.3,
    seed: int = 42,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Seeded random partition into training and test rows.

    The permutation comes from a dedicated ``numpy.random.Generator`` built
    from ``seed``, so the split does not depend on (or disturb) any global
    random state and is identical across runs and processes.

    Args:
        df: Prepared DataFrame.
        test_size: Fraction of rows assigned to the test set.
        seed: Seed for the partition.

    Returns:
        ``(train, test)`` DataFrames keeping the original index labels.

    Raises:
        ValueError: If ``test_size`` is outside (0, 1) or either side
            would be empty.
    """
    if not 0.0 < test_size < 1.0:
        raise ValueError(f"test_size must be in (0, 1), got {test_size}.")

    n = len(df)
    n_test = int(round(n * test_size))
    if n_test == 0 or n_test == n:
        raise ValueError(
            f"Cannot split {n} rows with test_size={test_size}: one side is empty."
        )

    rng = np.random.default_rng(seed)
    order = rng.permutation(n)
    test_pos = np.sort(order[:n_test])
    train_pos = np.sort(order[n_test:])

    train = df.iloc[train_pos]
    test = df.iloc[test_pos]
    logger.info(
        "Split sizes (seed=%d) → train: %d | test: %d", seed, len(train), len(test)
    )
    return train, test
