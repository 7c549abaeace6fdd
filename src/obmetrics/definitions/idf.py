"""
Zimmet et al. (2007), International Diabetes Federation consensus.

Abdominal obesity is mandatory, plus at least 2 of: triglycerides >= 150
mg/dL, low HDL-C, SBP >= 130 or DBP >= 85 mmHg, fasting glucose >= 100 mg/dL.

Age groups:
- 6 to <10 years: MetS is not diagnosed, waist circumference is monitored.
  The 10-16 thresholds are still evaluated; EngineConfig decides whether a
  verdict is reported.
- 10 to <16 years: WC >= 90th percentile, or the adult cutoff if lower;
  HDL-C < 40 mg/dL
- 16 years and over: adult criteria, WC >= 94 cm (male) / 80 cm (female);
  HDL-C < 40 mg/dL (male) / < 50 mg/dL (female)

Under 6 years no band applies and the verdict is missing.
"""

from typing import List

from ..config import (
    BLOOD_PRESSURE,
    FEMALE,
    GLUCOSE_HOMEOSTASIS,
    HDL,
    MALE,
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

ADULT_WC_CM = {MALE: 94.0, FEMALE: 80.0}
ADULT_HDL_MG_DL = {MALE: 40.0, FEMALE: 50.0}

IDF_AGGREGATION = Aggregation(
    kind=AggregationKind.GATE_COUNT, threshold=2, gate=OBESITY
)


def _shared_components() -> List[ComponentRule]:
    """Blood pressure, triglycerides and glucose are the same in every band."""
    return [
        ComponentRule(
            name=BLOOD_PRESSURE,
            criteria=[
                Criterion(
                    measure="sbp_mmHg", comparator=Comparator.GE, cutoff=Cutoff(value=130)
                ),
                Criterion(
                    measure="dbp_mmHg", comparator=Comparator.GE, cutoff=Cutoff(value=85)
                ),
            ],
        ),
        ComponentRule(
            name=TRIGLYCERIDES,
            criteria=[
                Criterion(
                    measure="tg_mg_dl", comparator=Comparator.GE, cutoff=Cutoff(value=150)
                )
            ],
        ),
        ComponentRule(
            name=GLUCOSE_HOMEOSTASIS,
            criteria=[
                Criterion(
                    measure="glucose_mg_dl",
                    comparator=Comparator.GE,
                    cutoff=Cutoff(value=100),
                )
            ],
        ),
    ]


def _ordered(obesity: ComponentRule, hdl: ComponentRule) -> List[ComponentRule]:
    bp, tg, glucose = _shared_components()
    return [obesity, bp, tg, hdl, glucose]


def _child_band(
    min_age: float, max_age: float, monitoring_only: bool = False
) -> AgeBand:
    components = _ordered(
        ComponentRule(
            name=OBESITY,
            criteria=[
                Criterion(
                    measure="wc_cm",
                    comparator=Comparator.GE,
                    cutoff=Cutoff(
                        table="wc_percentiles", column="p90", cap_by_sex=ADULT_WC_CM
                    ),
                )
            ],
        ),
        ComponentRule(
            name=HDL,
            criteria=[
                Criterion(
                    measure="hdl_mg_dl", comparator=Comparator.LT, cutoff=Cutoff(value=40)
                )
            ],
        ),
    )
    return AgeBand(
        min_age=min_age,
        max_age=max_age,
        components=components,
        aggregation=IDF_AGGREGATION,
        monitoring_only=monitoring_only,
    )


def _adult_band(min_age: float) -> AgeBand:
    components = _ordered(
        ComponentRule(
            name=OBESITY,
            criteria=[
                Criterion(
                    measure="wc_cm",
                    comparator=Comparator.GE,
                    cutoff=Cutoff(by_sex=ADULT_WC_CM),
                )
            ],
        ),
        ComponentRule(
            name=HDL,
            criteria=[
                Criterion(
                    measure="hdl_mg_dl",
                    comparator=Comparator.LT,
                    cutoff=Cutoff(by_sex=ADULT_HDL_MG_DL),
                )
            ],
        ),
    )
    return AgeBand(
        min_age=min_age, components=components, aggregation=IDF_AGGREGATION
    )


IDF = Definition(
    id="idf",
    name="Zimmet (IDF)",
    reference="Zimmet P, et al. Pediatr Diabetes. 2007;8:299-306",
    aliases=["zimmet", "5"],
    bands=[
        _child_band(6.0, 10.0, monitoring_only=True),
        _child_band(10.0, 16.0),
        _adult_band(16.0),
    ],
)
