"""
Ahrens et al. (2014), IDEFICS definition of MetS in pre-adolescent children.

Six components against age-, sex- and puberty-specific percentiles:
- Abdominal obesity: waist circumference
- Blood pressure: SBP or DBP (age, sex and height adjusted)
- Triglycerides high
- HDL-C low
- Glucose homeostasis: fasting glucose high
- Insulin resistance: HOMA-IR high

Monitoring level uses the 90th percentile (HDL-C: 10th), action level the
95th (HDL-C: 5th). MetS when at least 2 of the 6 are altered.

``ahrens_grouped`` is the four-group reading at the monitoring level:
triglycerides and HDL-C form one lipid unit, glucose and HOMA-IR one
glucose-insulin unit, and MetS needs at least 3 of the 4 units.

The definition covers children aged 3 to under 11.
"""

from typing import Tuple

from ..config import (
    BLOOD_PRESSURE,
    GLUCOSE_HOMEOSTASIS,
    HDL,
    INSULIN_RESISTANCE,
    OBESITY,
    TRIGLYCERIDES,
)
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

REFERENCE_TABLE = "idefics"
MIN_AGE = 3.0
MAX_AGE = 11.0

GROUPS = {
    "Lipids": [TRIGLYCERIDES, HDL],
    "Glucose_insulin": [GLUCOSE_HOMEOSTASIS, INSULIN_RESISTANCE],
}


def _staged(measure: str, comparator: Comparator, column: str) -> Criterion:
    return Criterion(
        measure=measure,
        comparator=comparator,
        cutoff=Cutoff(table=REFERENCE_TABLE, column=column, staged=True),
    )


def _band(high: int, low: int, grouped: bool = False) -> AgeBand:
    """
    Rules at the given percentiles.

    Args:
        high: Upper percentile for WC, BP, TG, glucose and HOMA-IR
        low: Lower percentile for HDL-C
        grouped: Count lipid and glucose-insulin groups (3 of 4) instead of
            the six components (2 of 6)
    """
    components = [
        ComponentRule(
            name=OBESITY, criteria=[_staged("wc_cm", Comparator.GE, f"wc_p{high}")]
        ),
        ComponentRule(
            name=BLOOD_PRESSURE,
            criteria=[
                Criterion(
                    measure="sbp_zscore",
                    comparator=Comparator.GE,
                    cutoff=Cutoff(percentile=high),
                ),
                Criterion(
                    measure="dbp_zscore",
                    comparator=Comparator.GE,
                    cutoff=Cutoff(percentile=high),
                ),
            ],
        ),
        ComponentRule(
            name=TRIGLYCERIDES,
            criteria=[_staged("tg_mg_dl", Comparator.GE, f"tg_p{high}")],
        ),
        ComponentRule(
            name=HDL, criteria=[_staged("hdl_mg_dl", Comparator.LE, f"hdl_p{low}")]
        ),
        ComponentRule(
            name=GLUCOSE_HOMEOSTASIS,
            criteria=[_staged("glucose_mg_dl", Comparator.GE, f"glucose_p{high}")],
        ),
        ComponentRule(
            name=INSULIN_RESISTANCE,
            criteria=[_staged("homa_ir", Comparator.GE, f"homa_p{high}")],
        ),
    ]
    if grouped:
        aggregation = Aggregation(
            kind=AggregationKind.COUNT, threshold=3, groups=GROUPS
        )
    else:
        aggregation = Aggregation(kind=AggregationKind.COUNT, threshold=2)
    return AgeBand(
        min_age=MIN_AGE,
        max_age=MAX_AGE,
        components=components,
        aggregation=aggregation,
    )


def _levels() -> Tuple[Definition, Definition, Definition]:
    reference = "Ahrens W, et al. Int J Obes. 2014;38:S4-S14"
    monitoring = Definition(
        id="ahrens",
        name="Ahrens (IDEFICS, monitoring level)",
        reference=reference,
        aliases=["idefics", "ahrens_monitoring", "7"],
        bands=[_band(high=90, low=10)],
    )
    action = Definition(
        id="ahrens_action",
        name="Ahrens (IDEFICS, action level)",
        reference=reference,
        aliases=["idefics_action"],
        bands=[_band(high=95, low=5)],
    )
    grouped = Definition(
        id="ahrens_grouped",
        name="Ahrens (IDEFICS, grouped components)",
        reference=reference,
        aliases=["idefics_grouped"],
        bands=[_band(high=90, low=10, grouped=True)],
    )
    return monitoring, action, grouped


AHRENS, AHRENS_ACTION, AHRENS_GROUPED = _levels()
