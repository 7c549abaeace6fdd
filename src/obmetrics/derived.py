"""
Derived measures: BMI, HOMA-IR, and blood pressure sanity correction.
"""

from typing import Optional, Tuple
import logging

import numpy as np
import pandas as pd

from .config import HOMA_DENOMINATOR


def bmi(height_m: Optional[float], weight_kg: Optional[float]) -> Optional[float]:
    """BMI in kg/m², None if either input is missing or height is not positive."""
    if height_m is None or weight_kg is None:
        return None
    if pd.isna(height_m) or pd.isna(weight_kg) or height_m <= 0:
        return None
    return weight_kg / height_m**2


def homa_ir(
    glucose_mg_dl: Optional[float], insulin_microU_ml: Optional[float]
) -> Optional[float]:
    """
    HOMA-IR from fasting glucose (mg/dL) and insulin (µU/mL).

    HOMA-IR = glucose × insulin / 405
    """
    if glucose_mg_dl is None or insulin_microU_ml is None:
        return None
    if pd.isna(glucose_mg_dl) or pd.isna(insulin_microU_ml):
        return None
    return glucose_mg_dl * insulin_microU_ml / HOMA_DENOMINATOR


def bmi_array(height_m: np.ndarray, weight_kg: np.ndarray) -> np.ndarray:
    """Vectorized BMI; NaN where inputs are missing or height <= 0."""
    height_m = np.asarray(height_m, dtype=np.float64)
    weight_kg = np.asarray(weight_kg, dtype=np.float64)
    out = np.full(height_m.shape, np.nan, dtype=np.float64)
    valid = np.isfinite(height_m) & np.isfinite(weight_kg) & (height_m > 0)
    out[valid] = weight_kg[valid] / height_m[valid] ** 2
    return out


def homa_ir_array(glucose_mg_dl: np.ndarray, insulin_microU_ml: np.ndarray) -> np.ndarray:
    """Vectorized HOMA-IR with NaN propagation."""
    glucose_mg_dl = np.asarray(glucose_mg_dl, dtype=np.float64)
    insulin_microU_ml = np.asarray(insulin_microU_ml, dtype=np.float64)
    return glucose_mg_dl * insulin_microU_ml / HOMA_DENOMINATOR


def correct_blood_pressure(
    sbp_mmHg: Optional[float], dbp_mmHg: Optional[float]
) -> Tuple[Optional[float], Optional[float]]:
    """
    Swap systolic and diastolic values when they were entered the wrong way round.

    Systolic pressure is always higher than diastolic, so SBP < DBP indicates
    swapped columns in the source data.
    """
    if sbp_mmHg is None or dbp_mmHg is None:
        return sbp_mmHg, dbp_mmHg
    if sbp_mmHg < dbp_mmHg:
        return dbp_mmHg, sbp_mmHg
    return sbp_mmHg, dbp_mmHg


def correct_blood_pressure_frame(
    df: pd.DataFrame, sbp_col: str = "sbp_mmHg", dbp_col: str = "dbp_mmHg"
) -> pd.DataFrame:
    """
    Return a copy of ``df`` with swapped SBP/DBP pairs corrected.

    Rows with a missing value in either column are left untouched.
    """
    df = df.copy()
    if sbp_col not in df.columns or dbp_col not in df.columns:
        raise ValueError(f"Columns '{sbp_col}' and '{dbp_col}' must exist in DataFrame")

    wrong = (df[sbp_col] < df[dbp_col]).fillna(False).astype(bool)
    n_wrong = int(wrong.sum())
    if n_wrong:
        logging.warning(
            f"{n_wrong} records have systolic < diastolic blood pressure - swapping values"
        )
        sbp = df.loc[wrong, sbp_col].copy()
        df.loc[wrong, sbp_col] = df.loc[wrong, dbp_col]
        df.loc[wrong, dbp_col] = sbp
    return df
