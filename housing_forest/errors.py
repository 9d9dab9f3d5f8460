"""Exception types raised by the housing forest pipeline.

All errors subclass :class:`ValueError` so callers that already guard
against bad input with ``except ValueError`` keep working.
"""

from typing import Optional


class SchemaError(ValueError):
    """A step referenced a column absent from the data, or would duplicate one.

    Args:
        step: Name of the step (or component) that needed the column.
        column: The missing column name.
        detail: Optional extra context appended to the message.
        message: Replaces the default "not present" wording, e.g. for a
            name collision.
    """

    def __init__(
        self,
        step: str,
        column: str,
        detail: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.step = step
        self.column = column
        msg = f"[{step}] " + (message or f"column '{column}' is not present in the data.")
        if detail:
            msg = f"{msg} {detail}"
        super().__init__(msg)


class RoleError(ValueError):
    """Column roles are configured in a way that cannot produce a model."""

    def __init__(self, column: Optional[str], message: str) -> None:
        self.column = column
        prefix = f"[role:{column}] " if column else "[role] "
        super().__init__(prefix + message)


class GridConfigError(ValueError):
    """A hyperparameter range or level count is malformed."""

    def __init__(self, parameter: str, message: str) -> None:
        self.parameter = parameter
        super().__init__(f"[grid:{parameter}] {message}")
