"""Random-forest model specification for log sale-price regression.

:class:`RandomForestTrainer` wraps :class:`sklearn.ensemble.RandomForestRegressor`
behind the three hyperparameters the tuning grid searches over:

    - ``mtry``  – predictors sampled at each split (``max_features``).
    - ``trees`` – number of trees (``n_estimators``).
    - ``min_n`` – minimum rows in a terminal node (``min_samples_leaf``).

Any of them can be left as :data:`TUNE`, marking it unresolved until a
workflow is finalized with concrete values. Fitting with an unresolved
hyperparameter is an error.

Fixed settings:
    - ``importance``: variable-importance mode, default
      ``"impurity_corrected"`` (bias-corrected impurity importance).
    - ``respect_unordered_factors``: how non-numeric predictors reaching the
      model are split, default ``"order"`` (levels ordered by mean outcome).
    - ``seed``: random seed for tree growing.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.ensemble import RandomForestRegressor
from sklearn.inspection import permutation_importance
from pandas.api.types import is_bool_dtype, is_numeric_dtype

logger = logging.getLogger(__name__)

TUNABLE = ("mtry", "trees", "min_n")
IMPORTANCE_MODES = ("none", "impurity", "impurity_corrected", "permutation")
FACTOR_MODES = ("order", "ignore")


class _Tune:
    """Placeholder for a hyperparameter that will be set by tuning."""

    _instance: Optional["_Tune"] = None

    def __new__(cls) -> "_Tune":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "tune()"

    def __reduce__(self):
        return (_Tune, ())

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_Tune":
        return self


TUNE = _Tune()


def is_tune(value: Any) -> bool:
    return isinstance(value, _Tune)


class RandomForestTrainer(BaseEstimator, RegressorMixin):
    """Random-forest regressor with tunable ``mtry``, ``trees`` and ``min_n``.

    Args:
        mtry: Number of predictors sampled per split, or :data:`TUNE`.
        trees: Number of trees, or :data:`TUNE`.
        min_n: Minimum node size, or :data:`TUNE`.
        importance: One of ``"none"``, ``"impurity"``,
            ``"impurity_corrected"`` or ``"permutation"``.
        respect_unordered_factors: ``"order"`` ranks levels of non-numeric
            predictors by their mean outcome; ``"ignore"`` ranks them
            lexically.
        seed: Random seed for reproducible tree growing.
        n_jobs: Threads used by the underlying forest.
    """

    def __init__(
        self,
        mtry: Any = TUNE,
        trees: Any = TUNE,
        min_n: Any = TUNE,
        importance: str = "impurity_corrected",
        respect_unordered_factors: str = "order",
        seed: int = 42,
        n_jobs: int = 1,
    ) -> None:
        self.mtry = mtry
        self.trees = trees
        self.min_n = min_n
        self.importance = importance
        self.respect_unordered_factors = respect_unordered_factors
        self.seed = seed
        self.n_jobs = n_jobs

    # ------------------------------------------------------------------
    # Tuning helpers
    # ------------------------------------------------------------------

    def tunable_parameters(self) -> List[str]:
        """Names of hyperparameters still marked :data:`TUNE`."""
        return [name for name in TUNABLE if is_tune(getattr(self, name))]

    def _validate(self, n_features: int) -> None:
        unresolved = self.tunable_parameters()
        if unresolved:
            raise ValueError(
                f"Hyperparameters still marked for tuning: {unresolved}. "
                "Finalize the workflow with concrete values before fitting."
            )
        if self.importance not in IMPORTANCE_MODES:
            raise ValueError(
                f"Unknown importance '{self.importance}'. Choose from: {list(IMPORTANCE_MODES)}"
            )
        if self.respect_unordered_factors not in FACTOR_MODES:
            raise ValueError(
                f"Unknown respect_unordered_factors '{self.respect_unordered_factors}'. "
                f"Choose from: {list(FACTOR_MODES)}"
            )
        for name in TUNABLE:
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}.")
        if self.mtry > n_features:
            raise ValueError(
                f"mtry={self.mtry} exceeds the number of predictors ({n_features})."
            )

    # ------------------------------------------------------------------
    # Unordered factors
    # ------------------------------------------------------------------

    @staticmethod
    def _factor_columns(X: pd.DataFrame) -> List[str]:
        return [
            c for c in X.columns
            if not is_numeric_dtype(X[c]) or is_bool_dtype(X[c])
        ]

    def _learn_factor_orders(self, X: pd.DataFrame, y: np.ndarray) -> None:
        self.factor_orders_: Dict[str, Dict[str, float]] = {}
        for col in self._factor_columns(X):
            levels = X[col].astype(object).where(X[col].notna(), "NA").astype(str)
            if self.respect_unordered_factors == "order":
                ordered = (
                    pd.Series(y, index=X.index).groupby(levels).mean()
                    .sort_values(kind="mergesort").index
                )
            else:
                ordered = sorted(levels.unique())
            self.factor_orders_[col] = {lvl: float(i) for i, lvl in enumerate(ordered)}
            logger.debug("Factor '%s' ordered into %d levels", col, len(ordered))

    def _encode(self, X: pd.DataFrame) -> pd.DataFrame:
        if not self.factor_orders_:
            return X
        X = X.copy()
        for col, mapping in self.factor_orders_.items():
            unseen = (len(mapping) - 1) / 2.0
            levels = X[col].astype(object).where(X[col].notna(), "NA").astype(str)
            X[col] = levels.map(mapping).fillna(unseen).astype(float)
        return X

    # ------------------------------------------------------------------
    # Sklearn API
    # ------------------------------------------------------------------

    def _forest(self, max_features: int) -> RandomForestRegressor:
        return RandomForestRegressor(
            n_estimators=int(self.trees),
            max_features=int(max_features),
            min_samples_leaf=int(self.min_n),
            random_state=self.seed,
            n_jobs=self.n_jobs,
        )

    def fit(self, X: pd.DataFrame, y: pd.Series) -> "RandomForestTrainer":
        """Train the forest.

        Args:
            X: Predictor frame (baked recipe output).
            y: Log-transformed outcome.

        Returns:
            Fitted trainer (self).

        Raises:
            ValueError: If a hyperparameter is unresolved or invalid.
        """
        X = pd.DataFrame(X)
        y_arr = np.asarray(y, dtype=float)
        self._validate(X.shape[1])

        self.feature_names_ = [str(c) for c in X.columns]
        self._learn_factor_orders(X, y_arr)
        X_enc = self._encode(X)

        self.model_ = self._forest(self.mtry)
        self.model_.fit(X_enc.to_numpy(dtype=float), y_arr)

        self._importance_cache: Optional[pd.Series] = None
        if self.importance != "none":
            self.training_X_ = X_enc
            self.training_y_ = y_arr

        logger.debug(
            "Forest trained: mtry=%s trees=%s min_n=%s on %d rows",
            self.mtry,
            self.trees,
            self.min_n,
            len(X_enc),
        )
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Generate predictions in log-space.

        Raises:
            RuntimeError: If the model has not been fitted.
        """
        if not hasattr(self, "model_"):
            raise RuntimeError("The model has not been trained. Call fit() first.")
        X = pd.DataFrame(X)
        missing = [c for c in self.feature_names_ if c not in X.columns]
        if missing:
            raise ValueError(f"Prediction data is missing predictors: {missing}")
        X_enc = self._encode(X[self.feature_names_])
        return self.model_.predict(X_enc.to_numpy(dtype=float))

    # ------------------------------------------------------------------
    # Variable importance
    # ------------------------------------------------------------------

    def variable_importance(self) -> pd.Series:
        """Return variable importances as a Series sorted descending.

        ``impurity_corrected`` follows the shadow-variable correction: an
        auxiliary forest is grown on the predictors plus a row-permuted copy
        of them, and each predictor's impurity decrease is reduced by that
        of its permuted shadow. Scores near or below zero mean the predictor
        is no more useful than noise.

        Raises:
            RuntimeError: If the model is unfitted or importance is ``"none"``.
        """
        if not hasattr(self, "model_"):
            raise RuntimeError("The model has not been trained. Call fit() first.")
        if self.importance == "none":
            raise RuntimeError("Variable importance was disabled (importance='none').")
        if self._importance_cache is not None:
            return self._importance_cache

        X, y = self.training_X_, self.training_y_
        if self.importance == "impurity":
            scores = self.model_.feature_importances_
        elif self.importance == "permutation":
            result = permutation_importance(
                self.model_,
                X.to_numpy(dtype=float),
                y,
                n_repeats=5,
                random_state=self.seed,
                n_jobs=self.n_jobs,
            )
            scores = result.importances_mean
        else:
            scores = self._corrected_impurity(X, y)

        self._importance_cache = pd.Series(
            scores, index=self.feature_names_, name=self.importance
        ).sort_values(ascending=False)
        return self._importance_cache

    def _corrected_impurity(self, X: pd.DataFrame, y: np.ndarray) -> np.ndarray:
        rng = np.random.default_rng(self.seed)
        values = X.to_numpy(dtype=float)
        shadow = values[rng.permutation(len(values))]
        augmented = np.hstack([values, shadow])

        n_features = values.shape[1]
        aux = self._forest(min(2 * int(self.mtry), 2 * n_features))
        aux.fit(augmented, y)
        mdi = aux.feature_importances_
        return mdi[:n_features] - mdi[n_features:]
