"""Data quality checks for the housing dataset."""

import logging
from typing import List, Sequence

import pandas as pd

from housing_forest.errors import SchemaError

logger = logging.getLogger(__name__)


class DataQualityChecker:
    """Runs schema validation and data quality reports on a DataFrame.

    These methods are stateless – they inspect the data and raise/log
    issues without fitting any parameters for later use.

    Args:
        required_columns: Columns that must be present in the raw data,
            typically the target plus every column a recipe step names.
    """

    def __init__(self, required_columns: Sequence[str] = ()) -> None:
        self.required_columns: List[str] = list(required_columns)

    def validate_schema(self, df: pd.DataFrame) -> None:
        """Assert that all required columns are present.

        Args:
            df: Raw DataFrame immediately after loading.

        Raises:
            SchemaError: If any required column is missing. The error names
                the first missing column; all of them are listed in the
                message.
        """
        missing = [c for c in self.required_columns if c not in df.columns]
        if missing:
            raise SchemaError(
                "validate_schema",
                missing[0],
                detail=f"All missing columns: {missing}",
            )
        logger.info("Schema validation passed – all required columns present.")

    def report_nulls(self, df: pd.DataFrame, top_n: int = 20) -> pd.DataFrame:
        """Return a summary of missing-value rates per column.

        Args:
            df: DataFrame to inspect.
            top_n: Number of columns with the most nulls to log.

        Returns:
            DataFrame with columns ``missing_count`` and ``missing_pct``,
            sorted descending by ``missing_pct``.
        """
        summary = pd.DataFrame(
            {
                "missing_count": df.isnull().sum(),
                "missing_pct": df.isnull().mean() * 100,
            }
        ).sort_values("missing_pct", ascending=False)

        high_null = summary[summary["missing_pct"] > 0].head(top_n)
        if not high_null.empty:
            logger.info(
                "Top-%d columns by missing rate:\n%s", top_n, high_null.to_string()
            )
        return summary

    def report_cardinality(self, df: pd.DataFrame) -> pd.DataFrame:
        """Return unique-value counts for all object/string/category columns."""
        cat_cols = df.select_dtypes(include=["object", "string", "category", "bool"]).columns
        summary = pd.DataFrame(
            {
                "dtype": df[cat_cols].dtypes,
                "n_unique": df[cat_cols].nunique(),
            }
        ).sort_values("n_unique", ascending=False)
        logger.info("Cardinality report:\n%s", summary.to_string())
        return summary

    def run_all(self, df: pd.DataFrame) -> None:
        """Run all quality checks and log results."""
        self.validate_schema(df)
        self.report_nulls(df)
        self.report_cardinality(df)
        logger.info("All quality checks complete.")
