"""
Declarative building blocks for MetS definitions.

A definition is data: age bands, each holding component rules (threshold
criteria on measures) and an aggregation policy. The generic evaluator in
``obmetrics.engine`` interprets these models, so adding a definition does not
need new evaluation code.

Example:
    Definition(
        id="example",
        name="Example (3 of 5)",
        bands=[
            AgeBand(
                components=[
                    ComponentRule(
                        name="Triglycerides",
                        criteria=[
                            Criterion(
                                measure="tg_mg_dl",
                                comparator=">=",
                                cutoff=Cutoff(value=110.0),
                            )
                        ],
                    ),
                    ...
                ],
                aggregation=Aggregation(kind="count", threshold=3),
            )
        ],
    )
"""

from enum import Enum
from typing import Dict, List, Optional
import math

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Comparator(str, Enum):
    GE = ">="
    GT = ">"
    LE = "<="
    LT = "<"

    def apply(self, value: float, cutoff: float) -> bool:
        if self is Comparator.GE:
            return value >= cutoff
        if self is Comparator.GT:
            return value > cutoff
        if self is Comparator.LE:
            return value <= cutoff
        return value < cutoff


class Cutoff(BaseModel):
    """
    Where a criterion's threshold comes from.

    Exactly one source must be given:
        value: fixed cutoff
        by_sex: fixed cutoff per sex code
        percentile: normal quantile, for z-score measures
        table/column: nearest-age reference lookup (optionally puberty staged)

    ``cap_by_sex`` lowers a reference cutoff to a sex-specific ceiling
    (e.g. "90th percentile or the adult cutoff if lower").
    """

    model_config = ConfigDict(frozen=True)

    value: Optional[float] = None
    by_sex: Optional[Dict[int, float]] = None
    percentile: Optional[float] = None
    table: Optional[str] = None
    column: Optional[str] = None
    staged: bool = False
    cap_by_sex: Optional[Dict[int, float]] = None

    @model_validator(mode="after")
    def exactly_one_source(self) -> "Cutoff":
        sources = [
            self.value is not None,
            self.by_sex is not None,
            self.percentile is not None,
            self.table is not None,
        ]
        if sum(sources) != 1:
            raise ValueError(
                "Cutoff needs exactly one of value, by_sex, percentile or table"
            )
        if self.table is not None and self.column is None:
            raise ValueError("Reference table cutoffs need a column")
        if self.table is None and (self.staged or self.cap_by_sex is not None):
            raise ValueError("staged and cap_by_sex only apply to table cutoffs")
        if self.percentile is not None and not 0 < self.percentile < 100:
            raise ValueError("percentile must be between 0 and 100")
        if self.by_sex is not None and set(self.by_sex) != {0, 1}:
            raise ValueError("by_sex must define both sex codes 0 and 1")
        return self


class Criterion(BaseModel):
    """``measure <comparator> cutoff``."""

    model_config = ConfigDict(frozen=True)

    measure: str
    comparator: Comparator
    cutoff: Cutoff


class ComponentRule(BaseModel):
    """
    One MetS component. Altered when any criterion holds, Normal when every
    criterion is evaluable and none holds, missing otherwise.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    criteria: List[Criterion]

    @field_validator("criteria")
    @classmethod
    def at_least_one(cls, v: List[Criterion]) -> List[Criterion]:
        if not v:
            raise ValueError("A component needs at least one criterion")
        return v


class AggregationKind(str, Enum):
    COUNT = "count"
    GATE_COUNT = "gate_count"


class Aggregation(BaseModel):
    """
    How component flags combine into a verdict.

    count: MetS when at least ``threshold`` counted units are Altered.
    gate_count: the ``gate`` component must be Altered, plus at least
        ``threshold`` of the remaining units.

    ``groups`` folds several components into one counted unit (Altered if
    any member is Altered). Components not named in a group count alone.
    """

    model_config = ConfigDict(frozen=True)

    kind: AggregationKind
    threshold: int
    gate: Optional[str] = None
    groups: Optional[Dict[str, List[str]]] = None

    @model_validator(mode="after")
    def validate_gate(self) -> "Aggregation":
        if self.threshold < 1:
            raise ValueError("threshold must be at least 1")
        if self.kind is AggregationKind.GATE_COUNT and self.gate is None:
            raise ValueError("gate_count aggregation needs a gate component")
        if self.kind is AggregationKind.COUNT and self.gate is not None:
            raise ValueError("count aggregation does not take a gate")
        return self


class AgeBand(BaseModel):
    """Rules applying to ages in [min_age, max_age)."""

    model_config = ConfigDict(frozen=True)

    min_age: float = 0.0
    max_age: float = math.inf
    components: List[ComponentRule]
    aggregation: Aggregation
    monitoring_only: bool = False

    @model_validator(mode="after")
    def validate_band(self) -> "AgeBand":
        if self.min_age >= self.max_age:
            raise ValueError("min_age must be < max_age")
        names = [c.name for c in self.components]
        if len(names) != len(set(names)):
            raise ValueError("Component names must be unique within a band")
        agg = self.aggregation
        if agg.gate is not None and agg.gate not in names:
            raise ValueError(f"Gate component '{agg.gate}' is not defined")
        grouped: List[str] = []
        for members in (agg.groups or {}).values():
            grouped.extend(members)
        unknown = set(grouped) - set(names)
        if unknown:
            raise ValueError(f"Grouped components not defined: {sorted(unknown)}")
        if len(grouped) != len(set(grouped)):
            raise ValueError("A component can belong to only one group")
        if agg.gate is not None and agg.gate in grouped:
            raise ValueError("The gate component cannot be grouped")
        if agg.threshold > len(self.counted_units()):
            raise ValueError("threshold exceeds the number of counted components")
        return self

    def contains(self, age: float) -> bool:
        return self.min_age <= age < self.max_age

    def counted_units(self) -> Dict[str, List[str]]:
        """Counted unit name -> member components (gate excluded)."""
        groups = self.aggregation.groups or {}
        grouped = {m for members in groups.values() for m in members}
        units = {name: list(members) for name, members in groups.items()}
        for component in self.components:
            name = component.name
            if name == self.aggregation.gate or name in grouped:
                continue
            units[name] = [name]
        return units


class Definition(BaseModel):
    """A named MetS definition made of non-overlapping age bands."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    reference: str = ""
    aliases: List[str] = []
    bands: List[AgeBand]

    @field_validator("bands")
    @classmethod
    def no_overlapping_bands(cls, v: List[AgeBand]) -> List[AgeBand]:
        if not v:
            raise ValueError("At least one age band required")
        ordered = sorted(v, key=lambda band: band.min_age)
        for i in range(len(ordered) - 1):
            if ordered[i].max_age > ordered[i + 1].min_age:
                raise ValueError("Overlapping age bands")
        return ordered

    def band_for(self, age: Optional[float]) -> Optional[AgeBand]:
        if age is None or math.isnan(age):
            return None
        for band in self.bands:
            if band.contains(age):
                return band
        return None

    @property
    def component_names(self) -> List[str]:
        """Every component produced by any band, in first-seen order."""
        names: List[str] = []
        for band in self.bands:
            for component in band.components:
                if component.name not in names:
                    names.append(component.name)
        return names
