"""Regular (Cartesian) hyperparameter grids.

Ranges must be written as explicit ``[min, max]`` pairs. A bare number or a
one-element list is rejected with :class:`~housing_forest.errors.GridConfigError`
rather than being widened into some default range, so a typo in the config
cannot silently collapse an axis.
"""

import itertools
import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Iterable, List, Mapping, Sequence, Union

import numpy as np
import pandas as pd

from housing_forest.errors import GridConfigError

logger = logging.getLogger(__name__)

CONFIG_COLUMN = ".config"


@dataclass(frozen=True)
class ParamRange:
    """Closed interval ``[low, high]`` for one hyperparameter."""

    name: str
    low: float
    high: float
    integer: bool = True

    def __post_init__(self) -> None:
        for bound in (self.low, self.high):
            if isinstance(bound, bool) or not isinstance(bound, Real) or not math.isfinite(bound):
                raise GridConfigError(self.name, f"bounds must be finite numbers, got {bound!r}.")
        if self.low > self.high:
            raise GridConfigError(
                self.name, f"lower bound {self.low} is greater than upper bound {self.high}."
            )
        if self.integer and (int(self.low) != self.low or int(self.high) != self.high):
            raise GridConfigError(
                self.name, f"integer range needs whole-number bounds, got [{self.low}, {self.high}]."
            )

    def values(self, levels: int) -> np.ndarray:
        """``levels`` evenly spaced values from ``low`` to ``high`` inclusive."""
        if isinstance(levels, bool) or not isinstance(levels, int) or levels < 1:
            raise GridConfigError(self.name, f"levels must be a positive integer, got {levels!r}.")
        if self.integer:
            distinct = int(self.high - self.low) + 1
            if levels > distinct:
                raise GridConfigError(
                    self.name,
                    f"{levels} levels requested but [{self.low}, {self.high}] "
                    f"holds only {distinct} integers.",
                )
            # Spacing of at least 1 keeps rounded values distinct.
            return np.round(np.linspace(self.low, self.high, levels)).astype(int)
        return np.linspace(self.low, self.high, levels)


def parse_range(name: str, value: Any, integer: bool = True) -> ParamRange:
    """Parse a ``[min, max]`` config value into a :class:`ParamRange`.

    Args:
        name: Hyperparameter name, used in error messages.
        value: A two-element sequence, or an existing :class:`ParamRange`.
        integer: Whether the hyperparameter takes integer values.

    Raises:
        GridConfigError: If ``value`` is a scalar, a string, or a sequence
            whose length is not exactly two.
    """
    if isinstance(value, ParamRange):
        return value
    if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, np.ndarray)):
        raise GridConfigError(
            name,
            f"range must be an explicit [min, max] pair, got {value!r}. "
            "A single value is ambiguous and is not expanded.",
        )
    items = list(value)
    if len(items) != 2:
        raise GridConfigError(
            name, f"range must have exactly two values [min, max], got {items!r}."
        )
    return ParamRange(name, items[0], items[1], integer=integer)


def regular_grid(
    ranges: Union[Mapping[str, Any], Iterable[ParamRange]],
    levels: Union[int, Mapping[str, int]] = 3,
) -> pd.DataFrame:
    """Build a Cartesian grid of evenly spaced values.

    Args:
        ranges: ``{name: [min, max]}`` mapping or :class:`ParamRange` objects.
            Axis order follows the input order.
        levels: Level count shared by every axis, or ``{name: levels}``.

    Returns:
        DataFrame with one column per hyperparameter plus ``.config``
        (``"Preprocessor1_Model001"`` …), one row per grid point, in
        generation order. The last axis varies fastest.

    Raises:
        GridConfigError: On malformed ranges or level counts.
    """
    if isinstance(ranges, Mapping):
        params: List[ParamRange] = [parse_range(n, v) for n, v in ranges.items()]
    else:
        params = list(ranges)
    if not params:
        raise GridConfigError("<grid>", "at least one hyperparameter range is required.")

    axes = []
    for p in params:
        if isinstance(levels, Mapping):
            if p.name not in levels:
                raise GridConfigError(p.name, "no level count given.")
            n = levels[p.name]
        else:
            n = levels
        axes.append(p.values(n))

    rows = list(itertools.product(*axes))
    grid = pd.DataFrame(rows, columns=[p.name for p in params])
    for p in params:
        if p.integer:
            grid[p.name] = grid[p.name].astype("int64")

    width = max(3, len(str(len(grid))))
    grid[CONFIG_COLUMN] = [f"Preprocessor1_Model{i:0{width}d}" for i in range(1, len(grid) + 1)]
    logger.info(
        "Regular grid: %s → %d points",
        " × ".join(f"{p.name}[{len(a)}]" for p, a in zip(params, axes)),
        len(grid),
    )
    return grid


def param_columns(grid: pd.DataFrame) -> List[str]:
    """Hyperparameter columns of a grid (everything but ``.config``)."""
    return [c for c in grid.columns if c != CONFIG_COLUMN]
