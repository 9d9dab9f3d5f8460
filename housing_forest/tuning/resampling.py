"""V-fold cross-validation splits."""

import logging
from dataclasses import dataclass
from typing import List

import numpy as np
from sklearn.model_selection import KFold

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fold:
    """Positional row indices of one resample."""

    id: str
    train_idx: np.ndarray
    assess_idx: np.ndarray


def vfold_cv(n_rows: int, v: int = 3, repeats: int = 1, seed: int = 42) -> List[Fold]:
    """Split ``n_rows`` positions into ``v`` folds, ``repeats`` times.

    Each repeat reshuffles with its own seed derived from ``seed``, so the
    folds are identical across runs. Fold ids are ``Fold1`` … ``FoldV``, or
    ``Repeat1_Fold1`` … when ``repeats > 1``.

    Raises:
        ValueError: If ``v < 2``, ``v > n_rows`` or ``repeats < 1``.
    """
    if v < 2:
        raise ValueError(f"v must be at least 2, got {v}.")
    if v > n_rows:
        raise ValueError(f"Cannot make {v} folds from {n_rows} rows.")
    if repeats < 1:
        raise ValueError(f"repeats must be at least 1, got {repeats}.")

    seeds = np.random.default_rng(seed).integers(0, 2**31 - 1, size=repeats)
    positions = np.arange(n_rows)
    folds: List[Fold] = []
    for r, repeat_seed in enumerate(seeds, start=1):
        kf = KFold(n_splits=v, shuffle=True, random_state=int(repeat_seed))
        for k, (train_idx, assess_idx) in enumerate(kf.split(positions), start=1):
            fold_id = f"Fold{k}" if repeats == 1 else f"Repeat{r}_Fold{k}"
            folds.append(Fold(fold_id, train_idx, assess_idx))

    logger.info("Created %d resamples (%d-fold × %d repeat(s))", len(folds), v, repeats)
    return folds
