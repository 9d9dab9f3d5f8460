"""Explicit dataset schema: column name → (kind, role).

Every recipe step receives the schema alongside the data, so role tags
travel with a typed structure instead of living in a side-table keyed by
column name.

Kinds:
    - ``numeric``: any numeric, non-boolean dtype.
    - ``nominal``: everything else (object, category, bool, string).

Standard roles are ``predictor``, ``outcome`` and ``id``. Other non-empty
role names are accepted through :meth:`Schema.update_role`; a column with a
non-predictor role is carried through baking but never reaches the model.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from housing_forest.errors import RoleError, SchemaError

logger = logging.getLogger(__name__)

NUMERIC = "numeric"
NOMINAL = "nominal"

PREDICTOR = "predictor"
OUTCOME = "outcome"
ID = "id"


@dataclass(frozen=True)
class ColumnSpec:
    """Type and role of a single column."""

    name: str
    kind: str
    role: str = PREDICTOR


def column_kind(series: pd.Series) -> str:
    """Classify a column as ``numeric`` or ``nominal`` from its dtype."""
    if is_numeric_dtype(series) and not is_bool_dtype(series):
        return NUMERIC
    return NOMINAL


def _as_list(columns: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(columns, str):
        return [columns]
    return list(columns)


class Schema:
    """Immutable, ordered collection of :class:`ColumnSpec`.

    Args:
        columns: Column specifications in data order.
    """

    def __init__(self, columns: Iterable[ColumnSpec]) -> None:
        self._columns: Dict[str, ColumnSpec] = {}
        for spec in columns:
            if spec.name in self._columns:
                raise SchemaError("schema", spec.name, detail="Duplicate column name.")
            self._columns[spec.name] = spec
        outcomes = [c.name for c in self._columns.values() if c.role == OUTCOME]
        if len(outcomes) > 1:
            raise RoleError(outcomes[1], f"only one outcome allowed, got {outcomes}.")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def infer(
        cls,
        df: pd.DataFrame,
        outcome: Optional[str] = None,
        roles: Optional[Mapping[str, str]] = None,
    ) -> "Schema":
        """Build a schema from a DataFrame's dtypes.

        Args:
            df: Data whose columns define the schema.
            outcome: Name of the outcome column, or ``None`` for
                outcome-free data (e.g. new data at prediction time).
            roles: Optional ``{column: role}`` overrides applied after
                inference.

        Returns:
            The inferred schema.

        Raises:
            SchemaError: If ``outcome`` or a column in ``roles`` is absent.
            RoleError: If the outcome is not numeric or a role is invalid.
        """
        if outcome is not None and outcome not in df.columns:
            raise SchemaError("schema", outcome, detail="Outcome column is missing.")

        specs = []
        for name in df.columns:
            kind = column_kind(df[name])
            role = OUTCOME if name == outcome else PREDICTOR
            specs.append(ColumnSpec(str(name), kind, role))
        schema = cls(specs)

        if outcome is not None and schema[outcome].kind != NUMERIC:
            raise RoleError(outcome, "the outcome column must be numeric.")

        for name, role in (roles or {}).items():
            schema = schema.update_role(name, role)
        return schema

    def update_role(self, columns: Union[str, Sequence[str]], role: str) -> "Schema":
        """Return a new schema with ``role`` assigned to ``columns``.

        Raises:
            SchemaError: If a column is not part of the schema.
            RoleError: If ``role`` is empty, or would add a second outcome,
                or would demote the outcome.
        """
        if not isinstance(role, str) or not role.strip():
            raise RoleError(None, f"role must be a non-empty string, got {role!r}.")

        names = _as_list(columns)
        updated = dict(self._columns)
        for name in names:
            if name not in updated:
                raise SchemaError("update_role", name)
            current = updated[name]
            if current.role == OUTCOME and role != OUTCOME:
                raise RoleError(name, "the outcome column cannot change role.")
            updated[name] = replace(current, role=role)
        return Schema(updated.values())

    def with_columns(self, specs: Iterable[ColumnSpec]) -> "Schema":
        """Return a new schema with ``specs`` appended (or replaced in place)."""
        updated = dict(self._columns)
        for spec in specs:
            updated[spec.name] = spec
        return Schema(updated.values())

    def without(self, names: Iterable[str]) -> "Schema":
        """Return a new schema with ``names`` removed."""
        drop = set(names)
        return Schema(c for c in self._columns.values() if c.name not in drop)

    # ------------------------------------------------------------------
    # Selectors
    # ------------------------------------------------------------------

    @property
    def names(self) -> List[str]:
        return list(self._columns)

    @property
    def outcome(self) -> Optional[str]:
        for spec in self._columns.values():
            if spec.role == OUTCOME:
                return spec.name
        return None

    def by_role(self, role: str) -> List[str]:
        return [c.name for c in self._columns.values() if c.role == role]

    def predictors(self) -> List[str]:
        return self.by_role(PREDICTOR)

    def numeric_predictors(self) -> List[str]:
        return [
            c.name
            for c in self._columns.values()
            if c.role == PREDICTOR and c.kind == NUMERIC
        ]

    def nominal_predictors(self) -> List[str]:
        return [
            c.name
            for c in self._columns.values()
            if c.role == PREDICTOR and c.kind == NOMINAL
        ]

    def ids(self) -> List[str]:
        return self.by_role(ID)

    def to_frame(self) -> pd.DataFrame:
        """Tabular summary with columns ``variable``, ``kind``, ``role``."""
        return pd.DataFrame(
            [(c.name, c.kind, c.role) for c in self._columns.values()],
            columns=["variable", "kind", "role"],
        )

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def __getitem__(self, name: str) -> ColumnSpec:
        try:
            return self._columns[name]
        except KeyError:
            raise SchemaError("schema", name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._columns

    def __iter__(self) -> Iterator[ColumnSpec]:
        return iter(self._columns.values())

    def __len__(self) -> int:
        return len(self._columns)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"Schema({len(self)} columns, outcome={self.outcome!r})"
