"""
Exceptions raised by obmetrics.

Per-record data problems are not exceptions: they surface as missing outputs.
These classes cover programmer errors and broken reference data.
"""

from typing import Iterable


class ObMetricsError(Exception):
    """Base class for obmetrics errors."""


class InvalidDefinitionError(ObMetricsError, KeyError):
    """Unknown MetS definition identifier."""

    def __init__(self, definition_id: object, available: Iterable[str] = ()) -> None:
        self.definition_id = definition_id
        self.available = sorted(available)
        super().__init__(
            f"Unknown MetS definition '{definition_id}'. "
            f"Available definitions: {self.available}"
        )

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class ReferenceTableError(ObMetricsError, ValueError):
    """Reference table is missing, empty or malformed."""


class MissingInputError(ObMetricsError, ValueError):
    """A record lacks fields that a computation requires."""

    def __init__(self, missing: Iterable[str], context: str = "") -> None:
        self.missing = sorted(missing)
        where = f" for {context}" if context else ""
        super().__init__(f"Missing required fields{where}: {self.missing}")
