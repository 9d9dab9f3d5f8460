"""Preprocessing recipe: an ordered list of steps plus column roles.

The :class:`Recipe` is sklearn-compatible. ``fit`` *prepares* the recipe
(every step learns its parameters from the data passed in, which must be
training data only) and ``transform`` *bakes* any frame with those
parameters. The declared recipe is never altered by ``fit``: the steps are
cloned and the prepared copies live in ``prepared_steps_``.

Stateful attributes learned during ``fit``:
    - ``schema_``: :class:`~housing_forest.recipes.schema.Schema` of the
      training frame, with role overrides applied.
    - ``output_schema_``: schema after the last step (dummy columns etc.).
    - ``prepared_steps_``: fitted step instances, in order.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin, clone

from housing_forest.errors import RoleError, SchemaError
from housing_forest.recipes.schema import Schema
from housing_forest.recipes.steps import RecipeStep, step_summary

logger = logging.getLogger(__name__)


class Recipe(BaseEstimator, TransformerMixin):
    """Declarative preprocessing specification.

    Args:
        steps: Steps applied in order.
        outcome: Name of the (log-scale) outcome column.
        roles: Optional ``{column: role}`` overrides, e.g. ``{"Neighborhood":
            "id"}`` to keep a nominal column out of the predictor set.
    """

    def __init__(
        self,
        steps: Sequence[RecipeStep] = (),
        outcome: str = "Sale_Price",
        roles: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.steps = steps
        self.outcome = outcome
        self.roles = roles

    # ------------------------------------------------------------------
    # Sklearn API
    # ------------------------------------------------------------------

    def fit(self, df: pd.DataFrame, y: Optional[pd.Series] = None) -> "Recipe":
        """Prepare every step on ``df``.

        Args:
            df: Training frame, including the outcome column.
            y: Ignored; present for sklearn compatibility.

        Returns:
            Prepared recipe (self).

        Raises:
            SchemaError: If a step references a missing column.
            RoleError: If roles leave no predictors or a step targets the
                outcome.
        """
        schema = Schema.infer(df, outcome=self.outcome, roles=self.roles)
        self.schema_ = schema

        prepared: List[RecipeStep] = []
        current = df
        for step in self.steps:
            fitted = clone(step)
            schema = fitted.prep(current, schema)
            current = fitted.bake(current)
            prepared.append(fitted)

        if not schema.predictors():
            raise RoleError(None, "no predictor columns remain after preprocessing.")

        self.prepared_steps_ = prepared
        self.output_schema_ = schema
        logger.info(
            "Recipe prepared on %d rows: %d steps, %d predictors, ids=%s",
            len(df),
            len(prepared),
            len(schema.predictors()),
            schema.ids(),
        )
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Bake ``df`` with the prepared steps.

        Raises:
            RuntimeError: If the recipe has not been prepared.
            SchemaError: If ``df`` lacks a column a step needs.
        """
        if not hasattr(self, "prepared_steps_"):
            raise RuntimeError("Recipe has not been prepared. Call fit() first.")
        out = df
        for step in self.prepared_steps_:
            out = step.bake(out)
        return out

    # ------------------------------------------------------------------
    # Model matrix helpers
    # ------------------------------------------------------------------

    def split_xy(self, baked: pd.DataFrame) -> Tuple[pd.DataFrame, Optional[pd.Series]]:
        """Separate a baked frame into predictors and outcome.

        Only predictor-role columns are returned in ``X``; id and other
        non-predictor columns are dropped. ``y`` is ``None`` when the
        outcome column is absent (new data at prediction time).
        """
        if not hasattr(self, "output_schema_"):
            raise RuntimeError("Recipe has not been prepared. Call fit() first.")
        predictors = self.output_schema_.predictors()
        for col in predictors:
            if col not in baked.columns:
                raise SchemaError("model_matrix", col)
        y = baked[self.outcome] if self.outcome in baked.columns else None
        return baked[predictors], y

    def summary(self) -> pd.DataFrame:
        """Variables, kinds and roles.

        Before ``fit`` the summary reflects the declared role overrides only.
        """
        if hasattr(self, "schema_"):
            return self.schema_.to_frame()
        roles: Dict[str, str] = dict(self.roles or {})
        rows = [(self.outcome, "numeric", "outcome")]
        rows += [(col, None, role) for col, role in roles.items()]
        return pd.DataFrame(rows, columns=["variable", "kind", "role"])

    def tidy(self) -> pd.DataFrame:
        """One row per declared step."""
        return step_summary(self.steps)
