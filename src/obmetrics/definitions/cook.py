"""
Cook et al. (2003), NCEP ATP III adapted for adolescents.

MetS when at least 3 of 5 components are altered:
- Abdominal obesity: waist circumference >= 90th percentile for age and sex
- Blood pressure: SBP or DBP >= 90th percentile for age, sex and height
- Triglycerides >= 110 mg/dL
- HDL-C <= 40 mg/dL
- Fasting glucose >= 110 mg/dL
"""

from ..config import BLOOD_PRESSURE, GLUCOSE_HOMEOSTASIS, HDL, OBESITY, TRIGLYCERIDES
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

COOK_COMPONENTS = [
    ComponentRule(
        name=OBESITY,
        criteria=[
            Criterion(
                measure="wc_cm",
                comparator=Comparator.GE,
                cutoff=Cutoff(table="wc_percentiles", column="p90"),
            )
        ],
    ),
    ComponentRule(
        name=BLOOD_PRESSURE,
        criteria=[
            Criterion(
                measure="sbp_zscore",
                comparator=Comparator.GE,
                cutoff=Cutoff(percentile=90),
            ),
            Criterion(
                measure="dbp_zscore",
                comparator=Comparator.GE,
                cutoff=Cutoff(percentile=90),
            ),
        ],
    ),
    ComponentRule(
        name=TRIGLYCERIDES,
        criteria=[
            Criterion(
                measure="tg_mg_dl", comparator=Comparator.GE, cutoff=Cutoff(value=110)
            )
        ],
    ),
    ComponentRule(
        name=HDL,
        criteria=[
            Criterion(
                measure="hdl_mg_dl", comparator=Comparator.LE, cutoff=Cutoff(value=40)
            )
        ],
    ),
    ComponentRule(
        name=GLUCOSE_HOMEOSTASIS,
        criteria=[
            Criterion(
                measure="glucose_mg_dl",
                comparator=Comparator.GE,
                cutoff=Cutoff(value=110),
            )
        ],
    ),
]

COOK = Definition(
    id="cook",
    name="Cook (NCEP)",
    reference="Cook S, et al. Arch Pediatr Adolesc Med. 2003;157:821-827",
    aliases=["ncep", "1"],
    bands=[
        AgeBand(
            components=COOK_COMPONENTS,
            aggregation=Aggregation(kind=AggregationKind.COUNT, threshold=3),
        )
    ],
)
