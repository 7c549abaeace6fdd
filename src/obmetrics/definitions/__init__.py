"""
Definition registry.

Maps definition identifiers and aliases (case-insensitive) to the
declarative rule sets in this package.
"""

from typing import Dict, List, Union

from ..errors import InvalidDefinitionError
from .ahrens import AHRENS, AHRENS_ACTION, AHRENS_GROUPED
from .base import (
    AgeBand,
    Aggregation,
    AggregationKind,
    ComponentRule,
    Comparator,
    Criterion,
    Cutoff,
    Definition,
)
from .cook import COOK
from .idf import IDF

DEFINITIONS: List[Definition] = [COOK, IDF, AHRENS, AHRENS_ACTION, AHRENS_GROUPED]


def _build_registry(definitions: List[Definition]) -> Dict[str, Definition]:
    """Index definitions by id and alias."""
    registry: Dict[str, Definition] = {}
    for definition in definitions:
        for key in [definition.id, *definition.aliases]:
            key = key.lower()
            if key in registry:
                raise ValueError(f"Duplicate definition identifier '{key}'")
            registry[key] = definition
    return registry


# Global registry instance
registry = _build_registry(DEFINITIONS)


def available_definitions() -> List[str]:
    """Canonical definition ids."""
    return [definition.id for definition in DEFINITIONS]


def get_definition(definition_id: Union[str, int, Definition]) -> Definition:
    """
    Resolve an identifier, alias or Definition instance.

    Raises:
        InvalidDefinitionError: If the identifier is unknown
    """
    if isinstance(definition_id, Definition):
        return definition_id
    key = str(definition_id).strip().lower()
    try:
        return registry[key]
    except KeyError:
        raise InvalidDefinitionError(definition_id, available_definitions()) from None


__all__ = [
    "AHRENS",
    "AHRENS_ACTION",
    "AHRENS_GROUPED",
    "COOK",
    "IDF",
    "AgeBand",
    "Aggregation",
    "AggregationKind",
    "ComponentRule",
    "Comparator",
    "Criterion",
    "Cutoff",
    "Definition",
    "DEFINITIONS",
    "available_definitions",
    "get_definition",
    "registry",
]
