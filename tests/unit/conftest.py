import numpy as np
import pandas as pd
import pytest

from housing_forest.models.forest import RandomForestTrainer
from housing_forest.models.workflow import Workflow
from housing_forest.recipes.recipe import Recipe
from housing_forest.recipes.steps import StepBoxCox, StepDummy, StepNormalize

TARGET = "Sale_Price"
NUMERIC_COLS = [f"x{i}" for i in range(1, 9)]
CATEGORICAL_COLS = ["neighborhood", "style"]


def _make_housing_df(n: int = 100, seed: int = 0, log_target: bool = True) -> pd.DataFrame:
    """Toy housing frame: 8 positive numeric + 2 categorical predictors."""
    rng = np.random.default_rng(seed)
    data = {col: rng.uniform(1.0, 10.0, n) for col in NUMERIC_COLS}
    data["x1"] = rng.lognormal(mean=2.0, sigma=0.8, size=n)
    data["neighborhood"] = rng.choice(
        ["north", "south", "east", "west", "rare"], size=n, p=[0.3, 0.3, 0.2, 0.18, 0.02]
    )
    data["style"] = rng.choice(["one_story", "two_story"], size=n)
    price = 50_000 * np.exp(
        0.08 * data["x2"] + 0.04 * data["x3"] + 0.05 * np.log(data["x1"])
        + rng.normal(0, 0.05, n)
    )
    data[TARGET] = np.log(price) if log_target else price
    return pd.DataFrame(data)


def _make_workflow(roles=None) -> Workflow:
    if roles is None:
        roles = {col: "id" for col in CATEGORICAL_COLS}
    recipe = Recipe(
        [StepBoxCox(["x1"]), StepNormalize(), StepDummy()],
        outcome=TARGET,
        roles=roles,
    )
    return Workflow(recipe, RandomForestTrainer(importance="none", seed=7))


@pytest.fixture()
def make_housing_df():
    return _make_housing_df


@pytest.fixture()
def housing_df() -> pd.DataFrame:
    return _make_housing_df()


@pytest.fixture()
def make_workflow():
    return _make_workflow


@pytest.fixture()
def toy_workflow() -> Workflow:
    return _make_workflow()
