"""Declarative preprocessing steps used by :class:`~housing_forest.recipes.recipe.Recipe`.

Each step is declared with its settings, then *prepared* against training
data with :meth:`RecipeStep.prep` (learning parameters into attributes
with a trailing underscore) and finally *baked* onto any frame with
:meth:`RecipeStep.bake`. A step that needs a column missing from the
frame raises :class:`~housing_forest.errors.SchemaError` at both stages.

Steps run in the order the recipe lists them:
    1. :class:`StepOther` – collapse infrequent levels into ``"other"``.
    2. :class:`StepBoxCox` – Box-Cox power transform.
    3. :class:`StepNormalize` – centre and scale numeric predictors.
    4. :class:`StepDummy` – one-hot encode nominal predictors.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set

import pandas as pd
from sklearn.base import BaseEstimator
from sklearn.preprocessing import OneHotEncoder, PowerTransformer, StandardScaler

from housing_forest.errors import RoleError, SchemaError
from housing_forest.recipes.schema import (
    NOMINAL,
    NUMERIC,
    OUTCOME,
    PREDICTOR,
    ColumnSpec,
    Schema,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class RecipeStep(BaseEstimator):
    """Common column resolution and validation for recipe steps.

    Args:
        columns: Explicit column names. ``None`` selects the step's default
            columns from the schema (see :meth:`default_columns`).
    """

    step_name = "step"

    def __init__(self, columns: Optional[Sequence[str]] = None) -> None:
        self.columns = columns

    def default_columns(self, schema: Schema) -> List[str]:
        raise NotImplementedError

    def resolve_columns(self, df: pd.DataFrame, schema: Schema) -> List[str]:
        """Return the columns this step acts on, validated against data and roles."""
        if self.columns is None:
            cols = self.default_columns(schema)
        elif isinstance(self.columns, str):
            cols = [self.columns]
        else:
            cols = list(self.columns)

        for col in cols:
            if col not in df.columns or col not in schema:
                raise SchemaError(self.step_name, col)
            if schema[col].role == OUTCOME:
                raise RoleError(
                    col, f"step '{self.step_name}' must not transform the outcome."
                )
        return cols

    def check_bake_columns(self, df: pd.DataFrame) -> None:
        if not hasattr(self, "columns_"):
            raise RuntimeError(
                f"Step '{self.step_name}' has not been prepared. Call prep() first."
            )
        for col in self.columns_:
            if col not in df.columns:
                raise SchemaError(self.step_name, col)

    def _require_kind(self, schema: Schema, cols: List[str], kind: str) -> None:
        for col in cols:
            if schema[col].kind != kind:
                raise SchemaError(
                    self.step_name,
                    col,
                    detail=f"Expected a {kind} column, got {schema[col].kind}.",
                )

    def prep(self, df: pd.DataFrame, schema: Schema) -> Schema:
        raise NotImplementedError

    def bake(self, df: pd.DataFrame) -> pd.DataFrame:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class StepOther(RecipeStep):
    """Pool infrequent levels of nominal columns into a single level.

    Args:
        columns: Nominal columns to collapse.
        threshold: Minimum frequency a level needs to be kept. Values below
            1 are proportions of non-missing rows; values of 1 or more are
            absolute counts.
        other: Label used for pooled levels.
    """

    step_name = "other"

    def __init__(
        self,
        columns: Optional[Sequence[str]] = None,
        threshold: float = 0.05,
        other: str = "other",
    ) -> None:
        super().__init__(columns)
        self.threshold = threshold
        self.other = other

    def default_columns(self, schema: Schema) -> List[str]:
        return schema.nominal_predictors()

    def prep(self, df: pd.DataFrame, schema: Schema) -> Schema:
        if self.threshold <= 0:
            raise ValueError(f"threshold must be positive, got {self.threshold}.")
        cols = self.resolve_columns(df, schema)
        self._require_kind(schema, cols, NOMINAL)

        self.columns_ = cols
        self.levels_: Dict[str, List[str]] = {}
        for col in cols:
            counts = df[col].dropna().astype(str).value_counts()
            if self.threshold < 1:
                freq = counts / max(counts.sum(), 1)
            else:
                freq = counts
            keep = sorted(freq[freq >= self.threshold].index.tolist())
            self.levels_[col] = keep
            logger.debug(
                "other[%s]: keeping %d of %d levels", col, len(keep), len(counts)
            )
        return schema

    def bake(self, df: pd.DataFrame) -> pd.DataFrame:
        self.check_bake_columns(df)
        out = df.copy()
        for col, keep in self.levels_.items():
            values = out[col].astype(object)
            as_str = values.where(values.isna(), values.astype(str))
            pooled = as_str.isna() | as_str.isin(keep)
            out[col] = as_str.where(pooled, self.other)
        return out


class StepBoxCox(RecipeStep):
    """Box-Cox transform of strictly positive numeric columns.

    Lambdas are estimated on the training data only, through
    :class:`sklearn.preprocessing.PowerTransformer`.
    """

    step_name = "BoxCox"

    def default_columns(self, schema: Schema) -> List[str]:
        return schema.numeric_predictors()

    def prep(self, df: pd.DataFrame, schema: Schema) -> Schema:
        cols = self.resolve_columns(df, schema)
        self._require_kind(schema, cols, NUMERIC)
        self._check_positive(df, cols)

        self.columns_ = cols
        self.lambdas_: Dict[str, float] = {}
        self.transformer_: Optional[PowerTransformer] = None
        if not cols:
            return schema

        self.transformer_ = PowerTransformer(method="box-cox", standardize=False)
        self.transformer_.fit(df[cols].to_numpy(dtype=float))
        self.lambdas_ = dict(
            zip(cols, map(float, self.transformer_.lambdas_))
        )
        logger.info("BoxCox lambdas: %s", self.lambdas_)
        return schema

    def _check_positive(self, df: pd.DataFrame, cols: List[str]) -> None:
        for col in cols:
            if (pd.to_numeric(df[col], errors="coerce").dropna() <= 0).any():
                raise ValueError(
                    f"[{self.step_name}] column '{col}' has non-positive values; "
                    "Box-Cox requires strictly positive data."
                )

    def bake(self, df: pd.DataFrame) -> pd.DataFrame:
        self.check_bake_columns(df)
        if self.transformer_ is None:
            return df.copy()
        self._check_positive(df, self.columns_)
        out = df.copy()
        out[self.columns_] = self.transformer_.transform(
            out[self.columns_].to_numpy(dtype=float)
        )
        return out


class StepNormalize(RecipeStep):
    """Centre and scale numeric columns (default: all numeric predictors).

    Means and standard deviations come from the data passed to ``prep``;
    zero-variance columns are centred and left unscaled.
    """

    step_name = "normalize"

    def default_columns(self, schema: Schema) -> List[str]:
        return schema.numeric_predictors()

    def prep(self, df: pd.DataFrame, schema: Schema) -> Schema:
        cols = self.resolve_columns(df, schema)
        self._require_kind(schema, cols, NUMERIC)
        self.columns_ = cols
        self.scaler_: Optional[StandardScaler] = None
        if cols:
            self.scaler_ = StandardScaler()
            self.scaler_.fit(df[cols].to_numpy(dtype=float))
        return schema

    @property
    def means_(self) -> pd.Series:
        if self.scaler_ is None:
            return pd.Series(dtype=float)
        return pd.Series(self.scaler_.mean_, index=self.columns_)

    @property
    def scales_(self) -> pd.Series:
        if self.scaler_ is None:
            return pd.Series(dtype=float)
        return pd.Series(self.scaler_.scale_, index=self.columns_)

    def bake(self, df: pd.DataFrame) -> pd.DataFrame:
        self.check_bake_columns(df)
        if self.scaler_ is None:
            return df.copy()
        out = df.copy()
        out[self.columns_] = self.scaler_.transform(
            out[self.columns_].to_numpy(dtype=float)
        )
        return out


class StepDummy(RecipeStep):
    """One-hot encode nominal columns (default: all nominal predictors).

    Levels are learned during ``prep``; levels unseen at that point encode
    as all zeros. Missing values form their own ``"NA"`` level. The source
    columns are replaced by numeric ``<column>_<level>`` predictors.
    """

    step_name = "dummy"

    def default_columns(self, schema: Schema) -> List[str]:
        return schema.nominal_predictors()

    @staticmethod
    def _as_strings(frame: pd.DataFrame) -> pd.DataFrame:
        return frame.astype(object).where(frame.notna(), "NA").astype(str)

    def prep(self, df: pd.DataFrame, schema: Schema) -> Schema:
        cols = self.resolve_columns(df, schema)
        self._require_kind(schema, cols, NOMINAL)
        self.columns_ = cols
        self.encoder_: Optional[OneHotEncoder] = None
        self.feature_names_: List[str] = []
        if not cols:
            return schema

        self.encoder_ = OneHotEncoder(handle_unknown="ignore", sparse_output=False)
        self.encoder_.fit(self._as_strings(df[cols]))
        self.feature_names_ = [
            str(n) for n in self.encoder_.get_feature_names_out(cols)
        ]
        taken = set(schema.without(cols).names) | (set(df.columns) - set(cols))
        seen: Set[str] = set()
        for name in self.feature_names_:
            if name in taken or name in seen:
                raise SchemaError(
                    self.step_name,
                    name,
                    message=f"name collision: indicator column '{name}' already exists.",
                )
            seen.add(name)
        logger.info(
            "dummy: %d nominal columns → %d indicator columns",
            len(cols),
            len(self.feature_names_),
        )
        return schema.without(cols).with_columns(
            ColumnSpec(name, NUMERIC, PREDICTOR) for name in self.feature_names_
        )

    def bake(self, df: pd.DataFrame) -> pd.DataFrame:
        self.check_bake_columns(df)
        if self.encoder_ is None:
            return df.copy()
        encoded = pd.DataFrame(
            self.encoder_.transform(self._as_strings(df[self.columns_])),
            columns=self.feature_names_,
            index=df.index,
        )
        return pd.concat([df.drop(columns=self.columns_), encoded], axis=1)


def step_summary(steps: Sequence[RecipeStep]) -> pd.DataFrame:
    """One row per step: its position, name and declared columns."""
    rows = []
    for i, step in enumerate(steps, start=1):
        declared = "<default>" if step.columns is None else ", ".join(
            [step.columns] if isinstance(step.columns, str) else step.columns
        )
        rows.append({"number": i, "step": step.step_name, "columns": declared})
    return pd.DataFrame(rows, columns=["number", "step", "columns"])

