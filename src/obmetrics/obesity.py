"""
Obesity status from BMI using the Cole et al. international cutoffs.
"""

from typing import Optional

import numpy as np

from .config import OBESE, OVERWEIGHT, NORMAL_WEIGHT
from .references import ReferenceTable


def classify_cole(
    bmi: Optional[float],
    age: Optional[float],
    sex: Optional[int],
    table: ReferenceTable,
) -> Optional[str]:
    """
    Classify BMI as Normal weight, Overweight or Obese.

    Cutoffs come from the nearest tabulated age for the subject's sex. The
    obese cutoff is checked before the overweight one.

    Args:
        bmi: Body mass index (kg/m²)
        age: Decimal age in years
        sex: 0 male, 1 female
        table: Cole cutoff table with ``overweight`` and ``obese`` columns

    Returns:
        Category label, or None if any input or the reference row is missing
    """
    if bmi is None or np.isnan(bmi):
        return None
    row = table.lookup(age, sex)
    if row is None:
        return None
    if bmi >= row["obese"]:
        return OBESE
    if bmi >= row["overweight"]:
        return OVERWEIGHT
    return NORMAL_WEIGHT


def classify_cole_array(
    bmi: np.ndarray, ages: np.ndarray, sexes: np.ndarray, table: ReferenceTable
) -> np.ndarray:
    """Vectorized ``classify_cole``; object array with None for missing."""
    bmi = np.asarray(bmi, dtype=np.float64)
    cutoffs = table.lookup_many(ages, sexes, ["overweight", "obese"])
    out = np.full(bmi.shape, None, dtype=object)

    valid = np.isfinite(bmi) & np.isfinite(cutoffs["obese"])
    obese = valid & (bmi >= cutoffs["obese"])
    overweight = valid & ~obese & (bmi >= cutoffs["overweight"])
    out[valid] = NORMAL_WEIGHT
    out[overweight] = OVERWEIGHT
    out[obese] = OBESE
    return out
