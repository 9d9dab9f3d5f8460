"""Workflow: one recipe bound to one model specification.

A :class:`Workflow` is a declaration. :meth:`Workflow.fit` clones both
parts, prepares the recipe on the data passed in (and nothing else), bakes
that data and trains the model, returning a :class:`FittedWorkflow` that
owns the prepared recipe, so new data is baked exactly like the training
data was.
"""

import logging
from typing import Any, Dict, List, Mapping

import numpy as np
import pandas as pd
from sklearn.base import clone

from housing_forest.models.forest import TUNABLE, RandomForestTrainer
from housing_forest.recipes.recipe import Recipe

logger = logging.getLogger(__name__)


class Workflow:
    """Recipe + model specification.

    Args:
        recipe: Declared (unprepared) preprocessing recipe.
        model: Model specification, possibly with hyperparameters marked
            for tuning.
    """

    def __init__(self, recipe: Recipe, model: RandomForestTrainer) -> None:
        self.recipe = recipe
        self.model = model

    def tunable_parameters(self) -> List[str]:
        """Hyperparameters that still need values."""
        return self.model.tunable_parameters()

    def validate(self, data: pd.DataFrame) -> List[str]:
        """Dry-run the recipe on ``data`` and return the tunable parameters.

        Schema and role problems surface here as
        :class:`~housing_forest.errors.SchemaError` /
        :class:`~housing_forest.errors.RoleError` before any tuning work is
        dispatched.
        """
        recipe = clone(self.recipe).fit(data)
        logger.info(
            "Workflow validated: %d predictors, tuning %s",
            len(recipe.output_schema_.predictors()),
            self.tunable_parameters(),
        )
        return self.tunable_parameters()

    def finalize(self, params: Mapping[str, Any]) -> "Workflow":
        """Return a new workflow with ``params`` bound to the model.

        Keys starting with ``"."`` (e.g. a ``.config`` id carried along from a
        results table) are ignored.

        Raises:
            ValueError: If ``params`` holds any other key that is not a
                tunable hyperparameter.
        """
        values = {k: _as_python(v) for k, v in params.items() if k in TUNABLE}
        unknown = [k for k in params if k not in TUNABLE and not str(k).startswith(".")]
        if unknown:
            raise ValueError(
                f"Unknown hyperparameters {unknown}. Expected a subset of {list(TUNABLE)}."
            )
        model = clone(self.model).set_params(**values)
        return Workflow(clone(self.recipe), model)

    def fit(self, data: pd.DataFrame) -> "FittedWorkflow":
        """Prepare the recipe on ``data``, bake it and train the model."""
        recipe = clone(self.recipe).fit(data)
        X, y = recipe.split_xy(recipe.transform(data))
        if y is None:
            raise ValueError(
                f"Training data has no outcome column '{recipe.outcome}'."
            )
        model = clone(self.model).fit(X, y)
        return FittedWorkflow(recipe, model)

    def __repr__(self) -> str:
        return f"Workflow(recipe={self.recipe!r}, model={self.model!r})"


class FittedWorkflow:
    """A prepared recipe and a trained model, ready to predict."""

    def __init__(self, recipe: Recipe, model: RandomForestTrainer) -> None:
        self.recipe = recipe
        self.model = model

    def bake(self, new_data: pd.DataFrame) -> pd.DataFrame:
        return self.recipe.transform(new_data)

    def predict(self, new_data: pd.DataFrame) -> np.ndarray:
        """Bake ``new_data`` with the prepared recipe and predict (log scale)."""
        X, _ = self.recipe.split_xy(self.bake(new_data))
        return self.model.predict(X)

    @property
    def params(self) -> Dict[str, Any]:
        return {name: getattr(self.model, name) for name in TUNABLE}


def _as_python(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value
